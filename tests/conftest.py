"""Shared fixtures for FlightBrief tests."""

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from flightbrief.models import TrackedRecord, build_engine, build_session_factory, init_db
from flightbrief.services.summary_store import SummaryStore


class FakeClock:
    """Manually advanced clock for TTL and quota windows."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def flight_payload(**overrides) -> dict:
    """One element of the AeroAPI ``flights`` array."""
    flight = {
        'fa_flight_id': 'UAL123-1678886400-airline-0123',
        'ident': 'UAL123',
        'status': 'En-Route / In Flight',
        'scheduled_out': '2023-03-15T13:20:00Z',
        'actual_out': '2023-03-15T13:31:00Z',
        'scheduled_in': '2023-03-15T16:45:00Z',
        'actual_in': None,
        'origin': {'code': 'KORD', 'code_icao': 'KORD', 'code_iata': 'ORD', 'name': "Chicago O'Hare Intl"},
        'destination': {'code': 'KSFO', 'code_icao': 'KSFO', 'code_iata': 'SFO'},
        'aircraft_type': 'B738',
        'latitude': 41.2,
        'longitude': -95.9,
        'altitude': 350,
        'groundspeed': 468,
    }
    flight.update(overrides)
    return flight


def make_response(status_code: int = 200, json_data=None, headers=None) -> MagicMock:
    """Stand-in for requests.Response."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.headers = headers or {}
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


def make_record(identifier: str = 'UAL123-1678886400-airline-0123', ident: str = 'UAL123', **overrides) -> TrackedRecord:
    fields = {
        'identifier': identifier,
        'ident': ident,
        'status': 'En-Route / In Flight',
        'origin': 'KORD',
        'destination': 'KSFO',
        'fetched_at': datetime(2023, 3, 15, 14, 0, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return TrackedRecord(**fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def record() -> TrackedRecord:
    return make_record()


@pytest.fixture
def session_factory(tmp_path: Path):
    """Session factory bound to a throwaway SQLite file."""
    engine = build_engine(f'sqlite:///{tmp_path / "summaries.db"}')
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def summary_store(session_factory) -> SummaryStore:
    return SummaryStore(session_factory)
