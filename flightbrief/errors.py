"""
Error taxonomy shared by the provider clients, the cache layer and the
summarization workers.

Callers need to tell "does not exist" apart from "try again later", so
every provider outcome is mapped onto one of a handful of exception
types before it leaves a client.
"""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Base class for provider call failures."""

    retryable = True

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class NotFound(FetchError):
    """Provider has no record for the identifier (404 or empty result)."""

    retryable = False


class RateLimited(FetchError):
    """
    Call was refused for quota reasons.

    Raised both for our own outbound quota and for a provider-side 429.
    ``retry_after`` carries the provider's hint in seconds when it sent one.
    """

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(FetchError):
    """5xx response, transport failure or malformed payload."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message, retryable=retryable)
        self.status_code = status_code


class UpstreamTimeout(FetchError):
    """Provider did not answer within the client timeout."""


class PersistenceConflict(Exception):
    """Unique-constraint race while inserting a summary."""


class EventPublishError(Exception):
    """Event could not be handed to the channel."""


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header given in seconds.

    HTTP-date values are not used by either provider and yield None.
    """
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        logger.debug(f'Ignoring non-numeric Retry-After: {value!r}')
        return None
    return max(0.0, seconds)


def raise_for_provider_status(response: requests.Response, provider: str, subject: str) -> None:
    """
    Map a non-2xx provider response onto the error taxonomy.

    Returns silently for successful responses.
    """
    status = response.status_code
    if 200 <= status < 300:
        return

    if status == 404:
        raise NotFound(f'{provider}: no record for {subject}')

    if status == 429:
        retry_after = parse_retry_after(response.headers.get('Retry-After'))
        logger.warning(f'{provider} rate limit hit for {subject} (retry_after={retry_after})')
        raise RateLimited(f'{provider} rate limit exceeded', retry_after=retry_after)

    if status >= 500:
        logger.error(f'{provider} server error {status} for {subject}')
        raise UpstreamError(f'{provider} server error: {status}', status_code=status)

    # Remaining 4xx: bad key, bad request. Retrying will not help.
    logger.error(f'{provider} rejected request for {subject}: {status}')
    raise UpstreamError(
        f'{provider} client error: {status}',
        status_code=status,
        retryable=False,
    )
