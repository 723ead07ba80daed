"""Tests for booking persistence.

Runs against the in-memory SQLite database set up in conftest. Covers:
- Booking insert and hash-based deduplication
- Mail connection upsert and token updates
- Last-sync bookkeeping and sync telemetry rows
"""

from datetime import UTC, datetime

import pytest

from database import (
    BookingStore,
    get_mail_connection,
    get_sync_logs,
    get_travel_bookings,
    save_mail_connection,
    update_mail_tokens,
)
from mailsync.booking_parsers import AirbnbExtractor, confirmation_hash

# ============================================================================
# BOOKINGS (TIER 1 CRITICAL)
# ============================================================================


@pytest.fixture
def airbnb_record(load_email):
    return AirbnbExtractor().parse(load_email("airbnb_confirmation.txt"))


def test_insert_booking_persists_record(clean_db, airbnb_record):
    """Test an extracted booking is stored with its parser metadata."""
    store = BookingStore()
    booking_hash = confirmation_hash(airbnb_record.confirmation_number, airbnb_record.email_id)

    assert store.insert(airbnb_record, 1, booking_hash) is True

    bookings = get_travel_bookings(1)
    assert len(bookings) == 1
    stored = bookings[0]
    assert stored["provider"] == "airbnb"
    assert stored["booking_type"] == "accommodation"
    assert stored["status"] == "confirmed"
    assert stored["title"] == "Modern Apartment in Austin"
    assert stored["confirmation_hash"] == booking_hash
    assert stored["start_date"] == "2024-03-15"
    assert stored["end_date"] == "2024-03-18"
    assert stored["total_price"] == 450.0
    assert stored["currency"] == "USD"
    assert stored["details"]["host_name"] == "Sarah"
    assert stored["parser_used"] == "airbnb"
    assert stored["is_ai_parsed"] is False


def test_duplicate_hash_is_rejected(clean_db, airbnb_record):
    """Test the unique hash constraint turns a second insert into a no-op.

    CRITICAL: Concurrent syncs must never store the same booking twice.
    """
    store = BookingStore()
    booking_hash = confirmation_hash(airbnb_record.confirmation_number, airbnb_record.email_id)

    assert store.insert(airbnb_record, 1, booking_hash) is True
    assert store.insert(airbnb_record, 1, booking_hash) is False
    assert len(get_travel_bookings(1)) == 1


def test_exists_checks_hash(clean_db, airbnb_record):
    """Test exists() reflects stored hashes only."""
    store = BookingStore()

    assert store.exists("0123456789abcdef") is False

    store.insert(airbnb_record, 1, "0123456789abcdef")

    assert store.exists("0123456789abcdef") is True


def test_bookings_are_scoped_to_user(clean_db, airbnb_record):
    """Test one user's bookings are not returned for another user."""
    BookingStore().insert(airbnb_record, 1, "aaaaaaaaaaaaaaaa")

    assert get_travel_bookings(2) == []


# ============================================================================
# MAIL CONNECTIONS
# ============================================================================


def test_save_mail_connection_upserts_by_user(clean_db):
    """Test reconnecting a mailbox replaces the user's single connection."""
    first_id = save_mail_connection(1, "old@example.com", "token-1", "refresh-1")
    second_id = save_mail_connection(1, "new@example.com", "token-2")

    connection = get_mail_connection(1)

    assert first_id == second_id
    assert connection["email_address"] == "new@example.com"
    assert connection["access_token"] == "token-2"
    assert connection["refresh_token"] is None
    assert connection["connection_status"] == "active"


def test_update_mail_tokens(clean_db):
    """Test refreshed tokens replace the stored ones."""
    connection_id = save_mail_connection(1, "me@example.com", "token-1", "refresh-1")
    expires = datetime(2030, 1, 1, tzinfo=UTC)

    assert update_mail_tokens(connection_id, "token-2", "refresh-2", expires) is True
    assert update_mail_tokens(9999, "x", "y", expires) is False

    connection = get_mail_connection(1)
    assert connection["access_token"] == "token-2"
    assert connection["refresh_token"] == "refresh-2"


def test_get_mail_connection_missing(clean_db):
    """Test a user without a connection gets None."""
    assert get_mail_connection(42) is None


# ============================================================================
# SYNC BOOKKEEPING
# ============================================================================


def test_last_sync_timestamp_round_trip(clean_db):
    """Test the last sync timestamp comes back timezone-aware."""
    store = BookingStore()
    save_mail_connection(1, "me@example.com", "token-1")
    synced_at = datetime(2024, 5, 1, 12, 30, tzinfo=UTC)

    assert store.get_last_sync_timestamp(1) is None

    store.set_last_sync_timestamp(1, synced_at)

    assert store.get_last_sync_timestamp(1) == synced_at
    assert get_mail_connection(1)["last_sync_status"] == "completed"


def test_last_sync_without_connection_is_none(clean_db):
    """Test a user who never connected has no last sync."""
    store = BookingStore()
    store.set_last_sync_timestamp(7, datetime.now(UTC))

    assert store.get_last_sync_timestamp(7) is None


def test_sync_telemetry_rows(clean_db):
    """Test telemetry entries are appended and listed newest first."""
    store = BookingStore()
    started_at = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    store.append_sync_telemetry(
        {"user_id": 1, "sync_type": "full", "sync_status": "started", "started_at": started_at}
    )
    store.append_sync_telemetry(
        {
            "user_id": 1,
            "sync_type": "full",
            "sync_status": "failed",
            "emails_fetched": 3,
            "emails_parsed": 2,
            "error_message": "Email m3: boom",
            "error_details": {"errors": ["Email m3: boom"]},
            "duration_ms": 120,
            "started_at": started_at,
            "completed_at": datetime(2024, 5, 1, 12, 1, tzinfo=UTC),
        }
    )

    logs = get_sync_logs(1)

    assert [log["sync_status"] for log in logs] == ["failed", "started"]
    assert logs[0]["emails_fetched"] == 3
    assert logs[0]["error_details"] == {"errors": ["Email m3: boom"]}
    assert logs[1]["emails_fetched"] == 0
