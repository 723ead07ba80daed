"""
Travel Bookings - Database Operations

Handles all database operations for mailbox booking sync.

Modules:
- Booking persistence (booking_exists, save_travel_booking, get_travel_bookings)
- Mail connection management (save_mail_connection, get_mail_connection, update_mail_tokens)
- Sync bookkeeping (get_last_sync_at, update_last_sync, save_sync_log, get_sync_logs)
- BookingStore: the persistence sink handed to the sync engine
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError

from .base import get_session
from .models.bookings import MailConnection, MailSyncLog, TravelBooking

# ============================================================================
# TRAVEL BOOKINGS
# ============================================================================


def _to_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value)


def booking_exists(confirmation_hash: str) -> bool:
    """Check whether a booking with this confirmation hash is stored."""
    with get_session() as session:
        return (
            session.query(TravelBooking.id)
            .filter(TravelBooking.confirmation_hash == confirmation_hash)
            .first()
            is not None
        )


def save_travel_booking(record, user_id: int, confirmation_hash: str) -> Optional[int]:
    """
    Save an extracted booking.

    The unique constraint on confirmation_hash is the real dedup guarantee;
    a concurrent sync that inserted the same booking first makes this a no-op.

    Args:
        record: BookingRecord from an extractor
        user_id: Owner of the mailbox
        confirmation_hash: Dedup key for the booking

    Returns:
        New booking id, or None if the hash already exists
    """
    metadata = record.metadata
    with get_session() as session:
        booking = TravelBooking(
            user_id=user_id,
            provider=record.provider,
            booking_type=record.booking_type.value,
            status=record.status.value,
            title=record.title,
            confirmation_number=record.confirmation_number,
            confirmation_hash=confirmation_hash,
            location_name=record.location_name,
            location_address=record.location_address,
            location_lat=record.location_lat,
            location_lng=record.location_lng,
            start_date=_to_date(record.start_date),
            end_date=_to_date(record.end_date),
            start_time=record.start_time,
            end_time=record.end_time,
            total_price=record.total_price,
            price_per_night=record.price_per_night,
            currency=record.currency,
            details=record.details.to_dict(),
            email_id=record.email_id,
            email_subject=record.email_subject,
            email_date=record.email_date,
            parser_used=metadata.parser_used,
            parser_confidence=metadata.confidence,
            parsing_time_ms=metadata.parsing_time_ms,
            is_ai_parsed=record.is_ai_parsed,
        )
        try:
            session.add(booking)
            session.commit()
        except IntegrityError:
            session.rollback()
            return None
        return booking.id


def get_travel_bookings(user_id: int, limit: int = 100) -> list:
    """Get stored bookings for a user, most recent trip first."""
    with get_session() as session:
        bookings = (
            session.query(TravelBooking)
            .filter(TravelBooking.user_id == user_id)
            .order_by(TravelBooking.start_date.desc(), TravelBooking.id.desc())
            .limit(limit)
            .all()
        )

        return [
            {
                "id": b.id,
                "provider": b.provider,
                "booking_type": b.booking_type,
                "status": b.status,
                "title": b.title,
                "confirmation_number": b.confirmation_number,
                "confirmation_hash": b.confirmation_hash,
                "location_name": b.location_name,
                "start_date": b.start_date.isoformat() if b.start_date else None,
                "end_date": b.end_date.isoformat() if b.end_date else None,
                "start_time": b.start_time,
                "end_time": b.end_time,
                "total_price": float(b.total_price) if b.total_price is not None else None,
                "currency": b.currency,
                "details": b.details or {},
                "email_id": b.email_id,
                "parser_used": b.parser_used,
                "parser_confidence": b.parser_confidence,
                "is_ai_parsed": b.is_ai_parsed,
            }
            for b in bookings
        ]


# ============================================================================
# MAIL CONNECTIONS
# ============================================================================


def _connection_to_dict(connection: MailConnection) -> dict:
    return {
        "id": connection.id,
        "user_id": connection.user_id,
        "email_address": connection.email_address,
        "access_token": connection.access_token,
        "refresh_token": connection.refresh_token,
        "token_expires_at": connection.token_expires_at,
        "connection_status": connection.connection_status,
        "last_sync_at": connection.last_sync_at,
        "last_sync_status": connection.last_sync_status,
        "created_at": connection.created_at,
        "updated_at": connection.updated_at,
    }


def save_mail_connection(
    user_id: int,
    email_address: str,
    access_token: str,
    refresh_token: str = None,
    token_expires_at: datetime = None,
) -> int:
    """Create or replace the mail connection of a user (tokens already encrypted)."""
    with get_session() as session:
        connection = (
            session.query(MailConnection)
            .filter(MailConnection.user_id == user_id)
            .first()
        )
        if connection is None:
            connection = MailConnection(user_id=user_id)
            session.add(connection)

        connection.email_address = email_address
        connection.access_token = access_token
        connection.refresh_token = refresh_token
        connection.token_expires_at = token_expires_at
        connection.connection_status = "active"

        session.commit()
        return connection.id


def get_mail_connection(user_id: int) -> Optional[dict]:
    """Get the active mail connection for a user."""
    with get_session() as session:
        connection = (
            session.query(MailConnection)
            .filter(
                MailConnection.user_id == user_id,
                MailConnection.connection_status == "active",
            )
            .first()
        )

        if not connection:
            return None

        return _connection_to_dict(connection)


def update_mail_tokens(
    connection_id: int,
    access_token: str,
    refresh_token: str,
    token_expires_at: datetime,
) -> bool:
    """Update mail tokens after refresh."""
    with get_session() as session:
        connection = session.get(MailConnection, connection_id)

        if not connection:
            return False

        connection.access_token = access_token
        connection.refresh_token = refresh_token
        connection.token_expires_at = token_expires_at
        connection.connection_status = "active"

        session.commit()
        return True


# ============================================================================
# SYNC BOOKKEEPING
# ============================================================================


def get_last_sync_at(user_id: int) -> Optional[datetime]:
    """Timestamp of the last successful sync (UTC), or None."""
    with get_session() as session:
        connection = (
            session.query(MailConnection)
            .filter(MailConnection.user_id == user_id)
            .first()
        )
        if not connection or not connection.last_sync_at:
            return None

        last_sync = connection.last_sync_at
        # SQLite hands back naive datetimes
        if last_sync.tzinfo is None:
            last_sync = last_sync.replace(tzinfo=timezone.utc)
        return last_sync


def update_last_sync(user_id: int, synced_at: datetime, status: str = "completed") -> bool:
    """Record a successful sync on the user's connection."""
    with get_session() as session:
        connection = (
            session.query(MailConnection)
            .filter(MailConnection.user_id == user_id)
            .first()
        )

        if not connection:
            return False

        connection.last_sync_at = synced_at
        connection.last_sync_status = status

        session.commit()
        return True


def save_sync_log(entry: dict) -> int:
    """Append one sync telemetry row."""
    with get_session() as session:
        log = MailSyncLog(
            user_id=entry["user_id"],
            sync_type=entry["sync_type"],
            sync_status=entry["sync_status"],
            emails_fetched=entry.get("emails_fetched", 0),
            emails_parsed=entry.get("emails_parsed", 0),
            bookings_found=entry.get("bookings_found", 0),
            duplicates=entry.get("duplicates", 0),
            duration_ms=entry.get("duration_ms"),
            error_message=entry.get("error_message"),
            error_details=entry.get("error_details"),
            started_at=entry.get("started_at"),
            completed_at=entry.get("completed_at"),
        )
        session.add(log)
        session.commit()
        return log.id


def get_sync_logs(user_id: int, limit: int = 20) -> list:
    """Recent sync telemetry rows for a user, newest first."""
    with get_session() as session:
        logs = (
            session.query(MailSyncLog)
            .filter(MailSyncLog.user_id == user_id)
            .order_by(MailSyncLog.id.desc())
            .limit(limit)
            .all()
        )

        return [
            {
                "id": log.id,
                "sync_type": log.sync_type,
                "sync_status": log.sync_status,
                "emails_fetched": log.emails_fetched,
                "emails_parsed": log.emails_parsed,
                "bookings_found": log.bookings_found,
                "duplicates": log.duplicates,
                "duration_ms": log.duration_ms,
                "error_message": log.error_message,
                "error_details": log.error_details,
                "started_at": log.started_at,
                "completed_at": log.completed_at,
            }
            for log in logs
        ]


class BookingStore:
    """Persistence sink used by the sync engine."""

    def exists(self, confirmation_hash: str) -> bool:
        return booking_exists(confirmation_hash)

    def insert(self, record, user_id: int, confirmation_hash: str) -> bool:
        """Insert a booking; False when the hash was already stored."""
        return save_travel_booking(record, user_id, confirmation_hash) is not None

    def get_last_sync_timestamp(self, user_id: int) -> Optional[datetime]:
        return get_last_sync_at(user_id)

    def set_last_sync_timestamp(self, user_id: int, synced_at: datetime) -> None:
        update_last_sync(user_id, synced_at)

    def append_sync_telemetry(self, entry: dict) -> None:
        save_sync_log(entry)
