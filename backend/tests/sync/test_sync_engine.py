"""Tests for the booking sync engine.

The mail client, store and token provider are in-memory fakes; the
registry is the real default one. Tests critical sync behaviour:
- Full vs incremental selection and the search queries used
- Pagination up to max_results
- Deduplication by confirmation hash
- Per-message failures recorded without aborting the run
- Systemic failures (credentials, search) and cancellation
- Telemetry entries and the last-sync timestamp
"""

import asyncio
from datetime import UTC, datetime

import pytest
from sqlalchemy.exc import OperationalError

from mailsync import gmail_sync
from mailsync.booking_parsers import RawEmail, build_default_registry
from mailsync.gmail_auth import MissingCredentialsError
from mailsync.gmail_sync import (
    CANCELLED_ERROR,
    FULL_SYNC_QUERIES,
    INCREMENTAL_QUERY,
    BookingSyncEngine,
    SyncResult,
)

# ============================================================================
# TEST DOUBLES
# ============================================================================


class FakeMailClient:
    """Serves search pages and emails from memory, recording every call."""

    def __init__(self, emails, pages_per_query=None, fail_ids=(), search_error=None):
        self.emails = {email.id: email for email in emails}
        self.pages_per_query = pages_per_query
        self.fail_ids = set(fail_ids)
        self.search_error = search_error
        self.searches = []
        self.fetched = []

    def search_messages(self, query, max_results=100, page_token=None):
        self.searches.append((query, max_results, page_token))
        if self.search_error:
            raise self.search_error
        if self.pages_per_query is not None:
            return self.pages_per_query[page_token]
        return {"messages": [{"id": i} for i in self.emails], "nextPageToken": None}

    def get_email(self, message_id):
        self.fetched.append(message_id)
        if message_id in self.fail_ids:
            raise RuntimeError("Gmail returned 500")
        return self.emails[message_id]


class FakeStore:
    """BookingStore stand-in keeping everything in lists and dicts."""

    def __init__(self, last_sync=None, existing=()):
        self.last_sync = last_sync
        self.hashes = set(existing)
        self.inserted = []
        self.telemetry = []
        self.synced_at = None

    def exists(self, confirmation_hash):
        return confirmation_hash in self.hashes

    def insert(self, record, user_id, confirmation_hash):
        if confirmation_hash in self.hashes:
            return False
        self.hashes.add(confirmation_hash)
        self.inserted.append((user_id, record))
        return True

    def get_last_sync_timestamp(self, user_id):
        return self.last_sync

    def set_last_sync_timestamp(self, user_id, synced_at):
        self.synced_at = synced_at

    def append_sync_telemetry(self, entry):
        self.telemetry.append(entry)


def make_engine(client, store, token_provider=lambda user_id: "access-token", **kwargs):
    options = {"rate_limit_delay": 0, "page_size": 50, "max_results": 100}
    options.update(kwargs)
    return BookingSyncEngine(
        registry=build_default_registry(),
        mail_client_factory=lambda token: client,
        store=store,
        token_provider=token_provider,
        **options,
    )


@pytest.fixture
def airbnb_email(load_email):
    return load_email("airbnb_confirmation.txt", email_id="m1")


@pytest.fixture
def united_email(load_email):
    return load_email("united_round_trip.txt", email_id="m2")


# ============================================================================
# SYNC TYPE SELECTION
# ============================================================================


def test_incremental_without_previous_sync_runs_full(airbnb_email):
    """Test incremental sync with no timestamp behaves exactly like a full sync."""
    client = FakeMailClient([airbnb_email])
    store = FakeStore(last_sync=None)

    result = asyncio.run(make_engine(client, store).sync(1, "incremental"))

    assert result.sync_type == "full"
    assert len(client.searches) == len(FULL_SYNC_QUERIES)
    for (query, _, _), base_query in zip(client.searches, FULL_SYNC_QUERIES):
        assert query.startswith(base_query)
        assert " after:" in query


def test_incremental_searches_after_last_sync(airbnb_email):
    """Test incremental sync runs one query bounded by the last sync time."""
    last_sync = datetime(2024, 5, 1, tzinfo=UTC)
    client = FakeMailClient([airbnb_email])
    store = FakeStore(last_sync=last_sync)

    result = asyncio.run(make_engine(client, store).sync(1))

    assert result.sync_type == "incremental"
    assert client.searches == [
        (f"{INCREMENTAL_QUERY} after:{int(last_sync.timestamp())}", 50, None)
    ]


def test_unknown_sync_type_fails_run():
    """Test an unknown sync type returns a failed result instead of raising."""
    store = FakeStore()
    client = FakeMailClient([])

    result = asyncio.run(make_engine(client, store).sync(1, "weekly"))

    assert result.success is False
    assert result.sync_type == "weekly"
    assert result.errors == ["Unknown sync type: weekly"]
    assert client.searches == []
    assert [entry["sync_status"] for entry in store.telemetry] == ["failed"]


def test_unreadable_last_sync_fails_run():
    """Test a database error reading the last sync returns a failed result."""

    class BrokenStore(FakeStore):
        def get_last_sync_timestamp(self, user_id):
            raise OperationalError("SELECT", {}, Exception("db down"))

    result = asyncio.run(make_engine(FakeMailClient([]), BrokenStore()).sync(1))

    assert result.success is False
    assert result.sync_type == "incremental"
    assert result.errors


def test_unreachable_store_never_escapes_sync():
    """Test any store failure reading the last sync is reported, not raised.

    CRITICAL: The Celery task relies on sync() always returning a result.
    """

    class UnreachableStore(FakeStore):
        def get_last_sync_timestamp(self, user_id):
            raise ConnectionError("sink unreachable")

    store = UnreachableStore()
    result = asyncio.run(make_engine(FakeMailClient([]), store).incremental_sync(1))

    assert result.success is False
    assert result.errors == ["sink unreachable"]
    assert result.duration_ms >= 0
    assert len(store.telemetry) == 1
    assert store.telemetry[0]["sync_status"] == "failed"
    assert store.telemetry[0]["error_message"] == "sink unreachable"
    assert store.telemetry[0]["completed_at"] is not None


def test_telemetry_write_failure_does_not_fail_sync(airbnb_email):
    """Test a failing completion telemetry write still returns the result."""

    class FlakyTelemetryStore(FakeStore):
        def append_sync_telemetry(self, entry):
            if entry["sync_status"] != "started":
                raise ConnectionError("telemetry sink down")
            super().append_sync_telemetry(entry)

    store = FlakyTelemetryStore(last_sync=datetime.now(UTC))
    result = asyncio.run(make_engine(FakeMailClient([airbnb_email]), store).sync(1))

    assert result.success is True
    assert result.bookings_found == 1


# ============================================================================
# FETCHING AND STORING
# ============================================================================


def test_sync_stores_new_bookings(airbnb_email, united_email):
    """Test every parsed booking is inserted and counted."""
    client = FakeMailClient([airbnb_email, united_email])
    store = FakeStore(last_sync=datetime(2024, 1, 1, tzinfo=UTC))

    result = asyncio.run(make_engine(client, store).sync(1))

    assert result.success is True
    assert result.emails_fetched == 2
    assert result.emails_parsed == 2
    assert result.bookings_found == 2
    assert result.duplicates == 0
    assert result.errors == []
    assert sorted(record.provider for _, record in store.inserted) == ["airbnb", "united"]
    assert store.synced_at is not None


def test_sync_counts_known_bookings_as_duplicates(airbnb_email):
    """Test a booking already stored is skipped and counted as a duplicate.

    CRITICAL: Re-running a sync must never store the same booking twice.
    """
    client = FakeMailClient([airbnb_email])
    store = FakeStore(last_sync=datetime(2024, 1, 1, tzinfo=UTC))
    engine = make_engine(client, store)

    first = asyncio.run(engine.sync(1))
    second = asyncio.run(engine.sync(1))

    assert first.bookings_found == 1
    assert second.bookings_found == 0
    assert second.duplicates == 1
    assert len(store.inserted) == 1


def test_insert_race_counts_as_duplicate(airbnb_email):
    """Test an insert rejected by the unique constraint is a duplicate."""

    class RacingStore(FakeStore):
        def insert(self, record, user_id, confirmation_hash):
            return False

    result = asyncio.run(
        make_engine(FakeMailClient([airbnb_email]), RacingStore(last_sync=datetime.now(UTC))).sync(1)
    )

    assert result.bookings_found == 0
    assert result.duplicates == 1


def test_unparseable_email_is_parsed_but_not_stored():
    """Test an email no extractor handles still counts as processed."""
    newsletter = RawEmail(id="n1", sender="news@example.com", subject="Weekly digest")
    client = FakeMailClient([newsletter])
    store = FakeStore(last_sync=datetime.now(UTC))

    result = asyncio.run(make_engine(client, store).sync(1))

    assert result.emails_parsed == 1
    assert result.bookings_found == 0
    assert store.inserted == []


def test_rate_limit_delay_applied_once_per_message(airbnb_email, united_email, monkeypatch):
    """Test the engine pauses rate_limit_delay before each message fetch."""
    pauses = []

    async def fake_sleep(seconds):
        pauses.append(seconds)

    monkeypatch.setattr(gmail_sync.asyncio, "sleep", fake_sleep)
    client = FakeMailClient([airbnb_email, united_email])
    store = FakeStore(last_sync=datetime.now(UTC))

    asyncio.run(make_engine(client, store, rate_limit_delay=0.25).sync(1))

    assert pauses == [0.25, 0.25]
    assert client.fetched == ["m1", "m2"]


def test_failed_message_is_recorded_and_skipped(airbnb_email, united_email):
    """Test one failing message does not stop the others."""
    client = FakeMailClient([airbnb_email, united_email], fail_ids={"m1"})
    store = FakeStore(last_sync=datetime.now(UTC))

    result = asyncio.run(make_engine(client, store).sync(1))

    assert result.success is True
    assert result.emails_fetched == 2
    assert result.emails_parsed == 1
    assert result.bookings_found == 1
    assert result.errors == ["Email m1: Gmail returned 500"]


def test_search_pagination_respects_max_results(load_email):
    """Test pages are followed until max_results, with shrinking page sizes."""
    emails = [load_email("airbnb_confirmation.txt", email_id=f"m{i}") for i in range(5)]
    pages = {
        None: {"messages": [{"id": "m0"}, {"id": "m1"}], "nextPageToken": "p2"},
        "p2": {"messages": [{"id": "m2"}, {"id": "m3"}], "nextPageToken": "p3"},
        "p3": {"messages": [{"id": "m4"}], "nextPageToken": None},
    }
    client = FakeMailClient(emails, pages_per_query=pages)
    store = FakeStore(last_sync=datetime.now(UTC))

    result = asyncio.run(make_engine(client, store, page_size=2, max_results=3).sync(1))

    assert [(size, token) for _, size, token in client.searches] == [(2, None), (1, "p2")]
    assert result.emails_fetched == 3
    assert client.fetched == ["m0", "m1", "m2"]


# ============================================================================
# SYSTEMIC FAILURES AND CANCELLATION
# ============================================================================


def test_missing_credentials_fails_run():
    """Test a user without a token gets a failed result, not an exception."""

    def no_token(user_id):
        raise MissingCredentialsError(f"No mail connection for user {user_id}")

    client = FakeMailClient([])
    store = FakeStore(last_sync=datetime.now(UTC))

    result = asyncio.run(make_engine(client, store, token_provider=no_token).sync(1))

    assert result.success is False
    assert result.errors == ["No mail connection for user 1"]
    assert client.searches == []
    assert store.synced_at is None
    assert store.telemetry[-1]["sync_status"] == "failed"
    assert store.telemetry[-1]["error_message"] == "No mail connection for user 1"


def test_search_failure_aborts_run():
    """Test a search error ends the run as failed and keeps the old timestamp."""
    client = FakeMailClient([], search_error=RuntimeError("Gmail unavailable"))
    store = FakeStore(last_sync=datetime(2024, 1, 1, tzinfo=UTC))

    result = asyncio.run(make_engine(client, store).sync(1))

    assert result.success is False
    assert result.errors == ["Gmail unavailable"]
    assert store.synced_at is None


def test_database_outage_aborts_run(airbnb_email):
    """Test a lost database connection stops processing further messages."""

    class DownStore(FakeStore):
        def exists(self, confirmation_hash):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

    client = FakeMailClient([airbnb_email])
    result = asyncio.run(make_engine(client, DownStore(last_sync=datetime.now(UTC))).sync(1))

    assert result.success is False
    assert result.emails_parsed == 0


def test_stop_cancels_remaining_work(airbnb_email, united_email):
    """Test stop() ends the run after the in-flight message."""
    client = FakeMailClient([airbnb_email, united_email])
    store = FakeStore(last_sync=datetime.now(UTC))
    engine = make_engine(client, store)

    original_insert = store.insert

    def insert_then_stop(record, user_id, confirmation_hash):
        engine.stop()
        return original_insert(record, user_id, confirmation_hash)

    store.insert = insert_then_stop

    result = asyncio.run(engine.sync(1))

    assert result.success is False
    assert result.errors == [CANCELLED_ERROR]
    assert result.bookings_found == 1
    assert client.fetched == ["m1"]
    assert store.synced_at is None


# ============================================================================
# TELEMETRY
# ============================================================================


def test_telemetry_started_and_completed(airbnb_email):
    """Test a run appends a started entry and a completed entry with counts."""
    store = FakeStore(last_sync=datetime.now(UTC))

    result = asyncio.run(make_engine(FakeMailClient([airbnb_email]), store).sync(1))

    assert [entry["sync_status"] for entry in store.telemetry] == ["started", "completed"]
    completed = store.telemetry[-1]
    assert completed["user_id"] == 1
    assert completed["sync_type"] == "incremental"
    assert completed["bookings_found"] == 1
    assert completed["duration_ms"] == result.duration_ms
    assert completed["error_details"] is None
    assert completed["completed_at"] is not None


def test_last_sync_set_to_run_start(airbnb_email):
    """Test the new last-sync timestamp is the run's start time."""
    store = FakeStore(last_sync=datetime(2024, 1, 1, tzinfo=UTC))
    before = datetime.now(UTC)

    asyncio.run(make_engine(FakeMailClient([airbnb_email]), store).sync(1))

    assert store.synced_at >= before
    assert store.synced_at == store.telemetry[0]["started_at"]


def test_sync_result_to_dict():
    """Test SyncResult serialises to a plain dict for task results."""
    result = SyncResult(sync_type="full", success=True, bookings_found=2, errors=["x"])

    assert result.to_dict() == {
        "sync_type": "full",
        "success": True,
        "emails_fetched": 0,
        "emails_parsed": 0,
        "bookings_found": 2,
        "duplicates": 0,
        "errors": ["x"],
        "duration_ms": 0,
    }
