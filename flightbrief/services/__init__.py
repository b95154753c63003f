"""
Summarization services.

Turns flight events into stored natural-language summaries: the OpenAI
client, the retry policy, the summary repository and the workers that
tie them together.
"""

from flightbrief.services.backoff import BackoffPolicy
from flightbrief.services.openai_client import OpenAIClient
from flightbrief.services.summarizer import (
    RetryingSummarizer,
    SummarizerWorkerPool,
    SummaryOutcome,
    SummaryState,
)
from flightbrief.services.summary_store import SummaryStore, UpsertResult

__all__ = [
    'BackoffPolicy',
    'OpenAIClient',
    'RetryingSummarizer',
    'SummarizerWorkerPool',
    'SummaryOutcome',
    'SummaryState',
    'SummaryStore',
    'UpsertResult',
]
