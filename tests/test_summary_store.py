"""Tests for summary persistence."""

from datetime import datetime, timedelta, timezone

from flightbrief.services.summary_store import SummaryStore

FLIGHT_ID = 'UAL123-1678886400-airline-0123'
FETCHED = datetime(2023, 3, 15, 14, 0, tzinfo=timezone.utc)


class StepClock:
    """Returns a later time on every call."""

    def __init__(self):
        self.now = datetime(2023, 3, 15, 14, 5, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


class TestUpsert:

    def test_first_write_inserts(self, summary_store):
        result = summary_store.upsert(FLIGHT_ID, 'UAL123', 'First summary', source_fetched_at=FETCHED)

        assert result.created
        assert not result.skipped
        assert summary_store.count() == 1
        assert summary_store.get(FLIGHT_ID).summary_text == 'First summary'

    def test_second_write_updates_in_place(self, session_factory):
        """Text and last_updated_at change, generated_at does not."""
        store = SummaryStore(session_factory, clock=StepClock())
        store.upsert(FLIGHT_ID, 'UAL123', 'First summary', source_fetched_at=FETCHED)
        before = store.get(FLIGHT_ID)

        result = store.upsert(FLIGHT_ID, 'UAL123', 'Second summary', source_fetched_at=FETCHED + timedelta(minutes=5))
        after = store.get(FLIGHT_ID)

        assert not result.created
        assert store.count(FLIGHT_ID) == 1
        assert after.summary_text == 'Second summary'
        assert after.generated_at == before.generated_at
        assert after.last_updated_at > before.last_updated_at

    def test_repeated_delivery_keeps_one_row(self, summary_store):
        for _ in range(3):
            summary_store.upsert(FLIGHT_ID, 'UAL123', 'Same summary', source_fetched_at=FETCHED)
        assert summary_store.count() == 1

    def test_older_snapshot_is_skipped(self, summary_store):
        """A late redelivery of an older fetch does not roll the text back."""
        summary_store.upsert(FLIGHT_ID, 'UAL123', 'Newer', source_fetched_at=FETCHED)

        result = summary_store.upsert(
            FLIGHT_ID, 'UAL123', 'Older', source_fetched_at=FETCHED - timedelta(minutes=10),
        )

        assert result.skipped
        assert summary_store.get(FLIGHT_ID).summary_text == 'Newer'

    def test_same_snapshot_overwrites(self, summary_store):
        """Regenerating from the same snapshot is not stale."""
        summary_store.upsert(FLIGHT_ID, 'UAL123', 'Attempt one', source_fetched_at=FETCHED)
        result = summary_store.upsert(FLIGHT_ID, 'UAL123', 'Attempt two', source_fetched_at=FETCHED)

        assert not result.skipped
        assert summary_store.get(FLIGHT_ID).summary_text == 'Attempt two'

    def test_concurrent_insert_retries_as_update(self, session_factory):
        """Losing an insert race turns into an update of the winner's row."""
        raced = {'done': False}

        def racing_factory():
            session = session_factory()
            if not raced['done']:
                raced['done'] = True
                # Another worker commits between our lookup and our insert
                SummaryStore(session_factory).upsert(FLIGHT_ID, 'UAL123', 'Winner', source_fetched_at=FETCHED)
                session.scalar = lambda *args, **kwargs: None
            return session

        store = SummaryStore(racing_factory)
        result = store.upsert(FLIGHT_ID, 'UAL123', 'Loser', source_fetched_at=FETCHED)

        assert not result.created
        assert store.count() == 1
        assert store.get(FLIGHT_ID).summary_text == 'Loser'


class TestQueries:

    def test_get_missing(self, summary_store):
        assert summary_store.get('nope') is None

    def test_latest_for_ident(self, session_factory):
        """The most recently generated leg wins."""
        store = SummaryStore(session_factory, clock=StepClock())
        store.upsert('UAL123-1678886400-airline-0123', 'UAL123', 'Tuesday leg')
        store.upsert('UAL123-1678972800-airline-0124', 'UAL123', 'Wednesday leg')
        store.upsert('DAL45-1678886400-airline-0001', 'DAL45', 'Other flight')

        latest = store.latest_for_ident('UAL123')

        assert latest.fa_flight_id == 'UAL123-1678972800-airline-0124'
        assert latest.to_dict()['summary_text'] == 'Wednesday leg'

    def test_latest_for_unknown_ident(self, summary_store):
        assert summary_store.latest_for_ident('ZZZ999') is None

    def test_count_by_identifier(self, summary_store):
        summary_store.upsert('A-1', 'AAA1', 'a')
        summary_store.upsert('B-2', 'BBB2', 'b')
        assert summary_store.count() == 2
        assert summary_store.count('A-1') == 1
        assert summary_store.count('C-3') == 0
