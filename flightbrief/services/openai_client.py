"""
Chat-completions client that turns a TrackedRecord into a short summary.

The record is serialized to JSON and sent as the user message, under a
fixed system instruction. Responses follow the OpenAI envelope:

    {"choices": [{"message": {"role": "assistant", "content": "..."}}]}

A 429 may carry a Retry-After header (seconds); it is passed on with the
RateLimited error so the summarizer can wait exactly that long.
"""

import json
import logging
from typing import Optional

import requests

from flightbrief.config import AppConfig, config
from flightbrief.errors import UpstreamError, UpstreamTimeout, raise_for_provider_status
from flightbrief.models.tracked_record import TrackedRecord

logger = logging.getLogger(__name__)

PROVIDER = 'OpenAI'

SYSTEM_PROMPT = (
    'You are an expert aviation assistant. Your sole purpose is to summarize raw '
    'flight data JSON into a clear, human-readable status update.\n\n'
    '**Rules:**\n'
    '1. Concise: Maximum 2-3 sentences.\n'
    '2. Content: Include flight number, origin, destination, and current status.\n'
    '3. Tone: Informative and professional.'
)


def build_messages(record: TrackedRecord) -> list:
    """System instruction plus the serialized record."""
    flight_json = json.dumps(record.to_dict(), indent=2)
    return [
        {'role': 'system', 'content': SYSTEM_PROMPT},
        {'role': 'user', 'content': f'Summarize this flight data:\n\n{flight_json}'},
    ]


class OpenAIClient:
    """Summarization provider client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = 'https://api.openai.com/v1',
        model: str = 'gpt-3.5-turbo',
        max_tokens: int = 150,
        temperature: float = 0.7,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.session = session or requests.Session()

        if api_key:
            self.session.headers.update({'Authorization': f'Bearer {api_key}'})
        else:
            logger.warning('OpenAI API key not configured - summaries will fail')

        logger.info(
            f'OpenAI client initialized: model={model}, max_tokens={max_tokens}, '
            f'temperature={temperature}'
        )

    @classmethod
    def from_config(cls, cfg: AppConfig = config) -> 'OpenAIClient':
        """Create client from application configuration."""
        return cls(
            api_key=cfg.openai.api_key,
            base_url=cfg.openai.base_url,
            model=cfg.openai.model,
            max_tokens=cfg.openai.max_tokens,
            temperature=cfg.openai.temperature,
            timeout=cfg.openai.timeout_seconds,
        )

    def summarize(self, record: TrackedRecord) -> str:
        """
        Generate a human-readable summary for a flight record.

        Raises:
            RateLimited, UpstreamError, UpstreamTimeout (and NotFound,
            should the endpoint ever answer 404)
        """
        payload = {
            'model': self.model,
            'messages': build_messages(record),
            'max_tokens': self.max_tokens,
            'temperature': self.temperature,
        }

        logger.debug(f'Requesting summary for {record.ident} ({record.identifier})')
        try:
            response = self.session.post(
                f'{self.base_url}/chat/completions',
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f'OpenAI timeout summarizing {record.ident}')
            raise UpstreamTimeout(f'OpenAI did not respond within {self.timeout}s') from e
        except requests.exceptions.RequestException as e:
            logger.error(f'OpenAI request failed for {record.ident}: {e}')
            raise UpstreamError(f'OpenAI request failed: {e}') from e

        raise_for_provider_status(response, PROVIDER, record.ident)

        try:
            data = response.json()
            choices = data.get('choices') or []
            content = choices[0]['message']['content'] if choices else None
        except (ValueError, AttributeError, KeyError, IndexError, TypeError) as e:
            logger.error(f'Unexpected OpenAI response for {record.ident}: {e}')
            raise UpstreamError('OpenAI returned a malformed response', status_code=response.status_code) from e

        summary = content.strip() if isinstance(content, str) else ''
        if not summary:
            logger.error(f'Empty response from OpenAI for {record.ident}')
            raise UpstreamError('OpenAI returned an empty response', status_code=response.status_code)

        logger.info(f'Generated summary for flight {record.ident}: {summary}')
        return summary
