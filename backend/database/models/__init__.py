# backend/database/models/__init__.py
"""SQLAlchemy models for all database tables."""

from .bookings import MailConnection, MailSyncLog, TravelBooking

__all__ = [
    "MailConnection",
    "MailSyncLog",
    "TravelBooking",
]
