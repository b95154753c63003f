"""
FlightBrief Backend Package.

Live flight lookups with natural-language summaries, built with Flask,
SQLAlchemy and requests.

Modules:
    api/         REST endpoints for flights, summaries and system status
    models/      TrackedRecord snapshot and the FlightSummary table
    ingestion/   FlightAware AeroAPI client
    services/    OpenAI summarization, retry policy, summary storage, workers
    cache.py     Cache-aside flight lookups with single-flight provider calls
    events.py    At-least-once event channel between cache and summarizer
    quota.py     Per-minute/hour/day outbound quota limiter
    errors.py    Provider error taxonomy
    config.py    Centralized configuration from environment variables
"""

__version__ = '1.0.0'
