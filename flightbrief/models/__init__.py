"""
Data models for FlightBrief.

TrackedRecord is the in-memory provider snapshot that lives in the cache
and travels on the event channel. FlightSummary is the only persisted
table: one row per flight leg, keyed by the FlightAware flight id.
"""

from flightbrief.models.base import (
    Base,
    engine,
    SessionLocal,
    build_engine,
    build_session_factory,
    init_db,
)
from flightbrief.models.flight_summary import FlightSummary
from flightbrief.models.tracked_record import Position, TrackedRecord, airport_code, parse_datetime

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'build_engine',
    'build_session_factory',
    'init_db',
    'FlightSummary',
    'Position',
    'TrackedRecord',
    'airport_code',
    'parse_datetime',
]
