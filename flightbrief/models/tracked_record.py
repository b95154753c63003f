"""
TrackedRecord - one flight leg as returned by the flight-data provider.

Records are immutable: the cache hands the same object to every reader
until the entry expires, and a fresh fetch produces a new record rather
than updating an old one.

FlightAware flight format (fields we use):
    fa_flight_id   - Immutable id: {ident}-{departure_epoch}-{carrier}-{seq}
    ident          - Flight number (e.g. UAL123)
    status         - Free-form status ("Scheduled", "En-Route / In Flight")
    scheduled_out / actual_out / scheduled_in / actual_in - ISO 8601 instants
    origin / destination - Code string, or object with code / code_icao
    aircraft_type  - ICAO type designator (e.g. B738)
    latitude / longitude / altitude / groundspeed - Only while airborne
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 instant from the provider, or None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        logger.debug(f'Unparseable timestamp from provider: {value!r}')
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def airport_code(value: Any) -> Optional[str]:
    """
    Flatten a provider location into a single code.

    The provider sends either a plain code or a nested airport object.
    For objects the primary ``code`` wins, then ``code_icao``.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        code = value.get('code')
        if code:
            return code
        icao = value.get('code_icao')
        if icao:
            return icao
        logger.warning(f"Airport object missing 'code' and 'code_icao': {value}")
        return None

    logger.warning(f'Unexpected airport format: {value!r}')
    return None


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Position:
    """Live position. Every field stays None until the aircraft is airborne."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[int] = None  # hundreds of feet, as reported
    groundspeed: Optional[int] = None  # knots

    @classmethod
    def from_provider(cls, flight: dict) -> Optional['Position']:
        position = cls(
            latitude=flight.get('latitude'),
            longitude=flight.get('longitude'),
            altitude=flight.get('altitude'),
            groundspeed=flight.get('groundspeed'),
        )
        if position == cls():
            return None
        return position


@dataclass(frozen=True)
class TrackedRecord:
    """Provider snapshot of a single flight leg."""
    identifier: str
    ident: str
    status: Optional[str]

    scheduled_out: Optional[datetime] = None
    actual_out: Optional[datetime] = None
    scheduled_in: Optional[datetime] = None
    actual_in: Optional[datetime] = None

    origin: Optional[str] = None
    destination: Optional[str] = None
    aircraft_type: Optional[str] = None
    position: Optional[Position] = None

    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_provider(
        cls,
        flight: dict,
        fetched_at: Optional[datetime] = None,
    ) -> 'TrackedRecord':
        """
        Build a record from one element of the provider's ``flights`` array.

        Raises ValueError if the flight has no fa_flight_id.
        """
        identifier = flight.get('fa_flight_id')
        if not identifier:
            raise ValueError('flight is missing fa_flight_id')

        return cls(
            identifier=identifier,
            ident=flight.get('ident') or identifier,
            status=flight.get('status'),
            scheduled_out=parse_datetime(flight.get('scheduled_out')),
            actual_out=parse_datetime(flight.get('actual_out')),
            scheduled_in=parse_datetime(flight.get('scheduled_in')),
            actual_in=parse_datetime(flight.get('actual_in')),
            origin=airport_code(flight.get('origin')),
            destination=airport_code(flight.get('destination')),
            aircraft_type=flight.get('aircraft_type'),
            position=Position.from_provider(flight),
            fetched_at=fetched_at or datetime.now(timezone.utc),
        )

    @property
    def is_airborne(self) -> bool:
        return self.position is not None and self.position.latitude is not None

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict (prompts, events, API responses)."""
        position = self.position or Position()
        return {
            'fa_flight_id': self.identifier,
            'ident': self.ident,
            'status': self.status,
            'scheduled_out': _isoformat(self.scheduled_out),
            'actual_out': _isoformat(self.actual_out),
            'scheduled_in': _isoformat(self.scheduled_in),
            'actual_in': _isoformat(self.actual_in),
            'origin': self.origin,
            'destination': self.destination,
            'aircraft_type': self.aircraft_type,
            'latitude': position.latitude,
            'longitude': position.longitude,
            'altitude': position.altitude,
            'groundspeed': position.groundspeed,
        }
