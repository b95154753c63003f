"""
FlightSummary model - generated natural-language summary per flight leg.

One row per FlightAware flight id. The row is written by the summarizer
workers only; the API layer reads it.

Design notes:
- fa_flight_id is the idempotency key (unique constraint)
- generated_at is set once on insert and never touched again
- source_fetched_at records which provider snapshot produced the text,
  so an out-of-order redelivery cannot overwrite a newer summary
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Text, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from flightbrief.models.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlightSummary(Base):
    """Latest summary text for a flight leg."""

    __tablename__ = 'flight_summaries'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    fa_flight_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        comment='Immutable FlightAware flight id (e.g., UAL123-1678886400-airline-0123)'
    )

    ident: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment='Flight number (e.g., UAL123)'
    )

    summary_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment='First successful summarization'
    )

    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment='Most recent overwrite of summary_text'
    )

    source_fetched_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment='Provider fetch time of the snapshot behind summary_text'
    )

    __table_args__ = (
        Index('idx_flight_summaries_ident_generated', 'ident', 'generated_at'),
    )

    def to_dict(self) -> dict:
        """JSON-serializable form for API responses."""
        return {
            'ident': self.ident,
            'fa_flight_id': self.fa_flight_id,
            'summary_text': self.summary_text,
            'generated_at': self.generated_at.isoformat() if self.generated_at else None,
            'last_updated_at': self.last_updated_at.isoformat() if self.last_updated_at else None,
        }

    def __repr__(self) -> str:
        return f'<FlightSummary {self.fa_flight_id} ident={self.ident}>'
