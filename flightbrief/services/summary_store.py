"""
Persistence for generated flight summaries.

upsert() is the only write path and is idempotent per fa_flight_id:
the first write inserts a row, every later write replaces the text and
bumps last_updated_at while keeping the original generated_at. This is
what makes event redelivery safe.

Two workers can race to insert the same flight. The loser hits the
unique constraint, re-reads the winner's row and updates it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flightbrief.errors import PersistenceConflict
from flightbrief.models import FlightSummary, SessionLocal

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands DateTime columns back without tzinfo
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class UpsertResult:
    """Outcome of one upsert call."""
    summary: FlightSummary
    created: bool
    skipped: bool = False


class SummaryStore:
    """Repository for FlightSummary rows."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session_factory = session_factory
        self._clock = clock

    def upsert(
        self,
        identifier: str,
        ident: str,
        text: str,
        source_fetched_at: Optional[datetime] = None,
    ) -> UpsertResult:
        """
        Insert or update the summary for a flight.

        A write whose source snapshot is strictly older than the one behind
        the stored text is skipped, so a late redelivery cannot roll a
        summary back.
        """
        try:
            return self._upsert_once(identifier, ident, text, source_fetched_at)
        except PersistenceConflict:
            logger.info(f'Concurrent insert for {identifier}, retrying as update')
            return self._upsert_once(identifier, ident, text, source_fetched_at)

    def _upsert_once(
        self,
        identifier: str,
        ident: str,
        text: str,
        source_fetched_at: Optional[datetime],
    ) -> UpsertResult:
        now = self._clock()
        with self.session_factory() as session:
            summary = session.scalar(
                select(FlightSummary).where(FlightSummary.fa_flight_id == identifier)
            )

            if summary is None:
                summary = FlightSummary(
                    fa_flight_id=identifier,
                    ident=ident,
                    summary_text=text,
                    generated_at=now,
                    last_updated_at=now,
                    source_fetched_at=source_fetched_at,
                )
                session.add(summary)
                try:
                    session.commit()
                except IntegrityError as e:
                    session.rollback()
                    raise PersistenceConflict(f'summary for {identifier} already exists') from e
                logger.debug(f'Created summary for {identifier}')
                return UpsertResult(summary=summary, created=True)

            stored_source = _as_utc(summary.source_fetched_at)
            incoming_source = _as_utc(source_fetched_at)
            if stored_source and incoming_source and incoming_source < stored_source:
                logger.warning(
                    f'Skipping stale summary for {identifier}: snapshot {incoming_source.isoformat()} '
                    f'is older than stored {stored_source.isoformat()}'
                )
                return UpsertResult(summary=summary, created=False, skipped=True)

            summary.summary_text = text
            summary.last_updated_at = now
            if incoming_source is not None:
                summary.source_fetched_at = incoming_source
            session.commit()
            logger.debug(f'Updated summary for {identifier}')
            return UpsertResult(summary=summary, created=False)

    def get(self, identifier: str) -> Optional[FlightSummary]:
        """Summary by fa_flight_id."""
        with self.session_factory() as session:
            return session.scalar(
                select(FlightSummary).where(FlightSummary.fa_flight_id == identifier)
            )

    def latest_for_ident(self, ident: str) -> Optional[FlightSummary]:
        """Most recently generated summary for a flight number."""
        with self.session_factory() as session:
            return session.scalar(
                select(FlightSummary)
                .where(FlightSummary.ident == ident)
                .order_by(FlightSummary.generated_at.desc())
                .limit(1)
            )

    def count(self, identifier: Optional[str] = None) -> int:
        """Number of rows, optionally for one fa_flight_id."""
        stmt = select(func.count()).select_from(FlightSummary)
        if identifier is not None:
            stmt = stmt.where(FlightSummary.fa_flight_id == identifier)
        with self.session_factory() as session:
            return session.scalar(stmt)
