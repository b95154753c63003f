"""
FlightAware AeroAPI client.

Handles communication with the AeroAPI REST endpoint, including:
- API key authentication (x-apikey header)
- Fixed request timeout
- Mapping HTTP/transport outcomes onto the FetchError taxonomy

Quota enforcement is not done here; the cache layer consults the
QuotaLimiter before it calls fetch().

AeroAPI /flights/{ident} response envelope:
    {
        "flights": [ {fa_flight_id, ident, status, origin, ...}, ... ],
        "links": {...},
        "num_pages": 1
    }

Only the first flight in the array is used. An empty array means the
ident is unknown, not that the provider failed.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import requests

from flightbrief.config import AppConfig, config
from flightbrief.errors import NotFound, UpstreamError, UpstreamTimeout, raise_for_provider_status
from flightbrief.models.tracked_record import TrackedRecord

logger = logging.getLogger(__name__)

PROVIDER = 'FlightAware'


class FlightAwareClient:
    """
    Client for the FlightAware AeroAPI.

    Handles:
    - GET requests to /flights/{identifier}
    - Error mapping (404/empty -> NotFound, 429 -> RateLimited,
      5xx/transport -> UpstreamError, timeout -> UpstreamTimeout)
    - Flattening nested airport objects into codes
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = 'https://aeroapi.flightaware.com/aeroapi',
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

        if api_key:
            self.session.headers.update({'x-apikey': api_key})
            logger.info(f'FlightAware client initialized for {self.base_url}')
        else:
            logger.warning('FlightAware API key not configured - provider calls will be rejected')

        self.request_count = 0

    @classmethod
    def from_config(cls, cfg: AppConfig = config) -> 'FlightAwareClient':
        """Create client from application configuration."""
        return cls(
            api_key=cfg.flightaware.api_key,
            base_url=cfg.flightaware.base_url,
            timeout=cfg.flightaware.timeout_seconds,
        )

    def fetch(self, identifier: str) -> TrackedRecord:
        """
        Fetch the current record for a flight.

        Args:
            identifier: Flight ident (e.g. "UAL123") or fa_flight_id

        Returns:
            TrackedRecord for the first flight in the response

        Raises:
            NotFound, RateLimited, UpstreamError, UpstreamTimeout
        """
        url = f'{self.base_url}/flights/{identifier}'
        logger.debug(f'Fetching flight: {url}')

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error(f'FlightAware timeout for {identifier}')
            raise UpstreamTimeout(f'FlightAware did not respond within {self.timeout}s') from e
        except requests.exceptions.RequestException as e:
            logger.error(f'FlightAware request failed for {identifier}: {e}')
            raise UpstreamError(f'FlightAware request failed: {e}') from e
        finally:
            self.request_count += 1

        raise_for_provider_status(response, PROVIDER, identifier)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f'Failed to parse FlightAware response for {identifier}: {e}')
            raise UpstreamError('FlightAware returned invalid JSON', status_code=response.status_code) from e

        if not isinstance(data, dict):
            raise UpstreamError('FlightAware returned an unexpected payload', status_code=response.status_code)

        flights = data.get('flights') or []
        if not isinstance(flights, list):
            logger.error(f'Unexpected flights field from FlightAware for {identifier}: {type(flights).__name__}')
            raise UpstreamError('FlightAware returned an unexpected payload', status_code=response.status_code)

        logger.info(
            f'FlightAware returned {len(flights)} flights for {identifier} '
            f'(num_pages={data.get("num_pages")})'
        )

        if not flights:
            raise NotFound(f'Flight not found: {identifier}')

        try:
            record = TrackedRecord.from_provider(flights[0], fetched_at=datetime.now(timezone.utc))
        except (ValueError, AttributeError) as e:
            logger.error(f'Malformed flight in FlightAware response for {identifier}: {e}')
            raise UpstreamError(f'FlightAware returned a malformed flight: {e}') from e

        logger.info(f'Fetched flight {record.ident} ({record.status})')
        return record
