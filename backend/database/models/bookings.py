"""
Travel booking models.

Maps to:
- travel_bookings table
- mail_connections table
- mail_sync_log table
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import false, func

from database.base import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class TravelBooking(Base):
    """A booking extracted from a confirmation email."""

    __tablename__ = "travel_bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, default=1)
    provider = Column(String(100), nullable=False)
    booking_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="confirmed", server_default="confirmed")
    title = Column(Text, nullable=False)
    confirmation_number = Column(String(100), nullable=True)
    confirmation_hash = Column(String(16), nullable=False)

    # Location
    location_name = Column(String(255), nullable=True)
    location_address = Column(Text, nullable=True)
    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)

    # Dates & times (HH:MM strings)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)

    # Pricing
    total_price = Column(Numeric(12, 2), nullable=True)
    price_per_night = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True, default="USD", server_default="USD")

    details = Column(JSONType, nullable=True)

    # Source email
    email_id = Column(String(255), nullable=True)
    email_subject = Column(Text, nullable=True)
    email_date = Column(String(100), nullable=True)

    # Parser metadata
    parser_used = Column(String(50), nullable=True)
    parser_confidence = Column(Float, nullable=True)
    parsing_time_ms = Column(Integer, nullable=True)
    is_ai_parsed = Column(Boolean, nullable=False, default=False, server_default=false())

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("confirmation_hash", name="uq_travel_bookings_hash"),
        CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'pending', 'completed')",
            name="ck_travel_bookings_status",
        ),
        CheckConstraint(
            "booking_type IN ('accommodation', 'flight', 'restaurant', 'activity', "
            "'car_rental', 'train', 'cruise')",
            name="ck_travel_bookings_type",
        ),
        Index("idx_travel_bookings_user_start", "user_id", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<TravelBooking(id={self.id}, provider={self.provider}, title={self.title})>"


class MailConnection(Base):
    """OAuth connection to a user's mailbox (encrypted tokens)."""

    __tablename__ = "mail_connections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    email_address = Column(String(255), nullable=True)
    access_token = Column(Text, nullable=False)  # Encrypted
    refresh_token = Column(Text, nullable=True)  # Encrypted
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    connection_status = Column(
        String(20), nullable=True, default="active", server_default="active"
    )
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_status = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_mail_connections_user"),
        CheckConstraint(
            "connection_status IN ('active', 'expired', 'revoked', 'error')",
            name="ck_mail_connections_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<MailConnection(id={self.id}, user_id={self.user_id}, status={self.connection_status})>"


class MailSyncLog(Base):
    """One telemetry row per sync event (started / completed / failed)."""

    __tablename__ = "mail_sync_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    sync_type = Column(String(20), nullable=False)
    sync_status = Column(String(20), nullable=False)
    emails_fetched = Column(Integer, nullable=False, default=0, server_default="0")
    emails_parsed = Column(Integer, nullable=False, default=0, server_default="0")
    bookings_found = Column(Integer, nullable=False, default=0, server_default="0")
    duplicates = Column(Integer, nullable=False, default=0, server_default="0")
    duration_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONType, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "sync_status IN ('started', 'completed', 'failed')",
            name="ck_mail_sync_log_status",
        ),
        CheckConstraint(
            "sync_type IN ('full', 'incremental')",
            name="ck_mail_sync_log_type",
        ),
        Index("idx_mail_sync_log_user", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<MailSyncLog(id={self.id}, user_id={self.user_id}, status={self.sync_status})>"
