"""
Configuration management for FlightBrief.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase.
"""

import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


@dataclass(frozen=True)
class FlightAwareConfig:
    """FlightAware AeroAPI configuration."""
    api_key: Optional[str] = os.getenv('FLIGHTAWARE_API_KEY') or None
    base_url: str = os.getenv('FLIGHTAWARE_BASE_URL', 'https://aeroapi.flightaware.com/aeroapi')
    timeout_seconds: float = float(os.getenv('FLIGHTAWARE_TIMEOUT_SECONDS', '5'))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class OpenAIConfig:
    """Chat-completions provider used for flight summaries."""
    api_key: Optional[str] = os.getenv('OPENAI_API_KEY') or None
    base_url: str = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1')
    model: str = os.getenv('OPENAI_MODEL', 'gpt-3.5-turbo')
    max_tokens: int = int(os.getenv('OPENAI_MAX_TOKENS', '150'))
    temperature: float = float(os.getenv('OPENAI_TEMPERATURE', '0.7'))
    timeout_seconds: float = float(os.getenv('OPENAI_TIMEOUT_SECONDS', '10'))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class QuotaConfig:
    """
    Outbound call ceilings for one provider.

    Windows are returned smallest first, which is the order the
    limiter checks them in.
    """
    per_minute: int
    per_hour: int
    per_day: int
    enabled: bool = True

    def windows(self) -> List[Tuple[str, int, int]]:
        """(name, duration_seconds, ceiling) for each window."""
        return [
            ('minute', 60, self.per_minute),
            ('hour', 3600, self.per_hour),
            ('day', 86400, self.per_day),
        ]


def _quota_from_env(prefix: str, minute: str, hour: str, day: str) -> QuotaConfig:
    return QuotaConfig(
        per_minute=int(os.getenv(f'{prefix}_RATE_LIMIT_PER_MINUTE', minute)),
        per_hour=int(os.getenv(f'{prefix}_RATE_LIMIT_PER_HOUR', hour)),
        per_day=int(os.getenv(f'{prefix}_RATE_LIMIT_PER_DAY', day)),
        enabled=_env_bool(f'{prefix}_RATE_LIMIT_ENABLED', 'true'),
    )


@dataclass(frozen=True)
class CacheConfig:
    """Flight record cache settings."""
    ttl_seconds: int = int(os.getenv('CACHE_TTL_SECONDS', '300'))
    max_entries: int = 1000


@dataclass(frozen=True)
class RetryConfig:
    """Summarization retry policy."""
    max_attempts: int = int(os.getenv('SUMMARY_MAX_ATTEMPTS', '5'))
    base_delay_seconds: float = float(os.getenv('SUMMARY_BACKOFF_BASE_SECONDS', '2'))
    max_delay_seconds: float = float(os.getenv('SUMMARY_BACKOFF_MAX_SECONDS', '60'))
    jitter_ratio: float = 0.1


@dataclass(frozen=True)
class EventConfig:
    """Event handoff between ingestion and summarization."""
    queue_size: int = int(os.getenv('EVENT_QUEUE_SIZE', '1000'))
    max_deliveries: int = int(os.getenv('EVENT_MAX_DELIVERIES', '3'))
    workers: int = int(os.getenv('SUMMARY_WORKERS', '2'))


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///flightbrief.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    flightaware: FlightAwareConfig
    openai: OpenAIConfig
    flightaware_quota: QuotaConfig
    openai_quota: QuotaConfig
    cache: CacheConfig
    retry: RetryConfig
    events: EventConfig
    database: DatabaseConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        flightaware=FlightAwareConfig(),
        openai=OpenAIConfig(),
        # FlightAware free tier: keep well below the monthly budget
        flightaware_quota=_quota_from_env('FLIGHTAWARE', '10', '200', '300'),
        openai_quota=_quota_from_env('OPENAI', '20', '500', '2000'),
        cache=CacheConfig(),
        retry=RetryConfig(),
        events=EventConfig(),
        database=DatabaseConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
