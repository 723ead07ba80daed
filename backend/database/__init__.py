"""
Database Layer - Public API

This module provides the public interface for all database operations.
It imports and re-exports functions from domain-specific modules.

Usage:
    from database import get_session, BookingStore, get_mail_connection
    # or
    import database

Organization:
    - base.py: Engine, session factory and table creation
    - bookings.py: Travel bookings, mail connections and sync telemetry
    - models/: SQLAlchemy models
"""

# Core connection utilities (always available)
from .base import Base, SessionLocal, engine, get_session, init_db

# Booking sync operations
from .bookings import (
    BookingStore,
    # Bookings
    booking_exists,
    save_travel_booking,
    get_travel_bookings,
    # Connection management
    save_mail_connection,
    get_mail_connection,
    update_mail_tokens,
    # Sync bookkeeping
    get_last_sync_at,
    update_last_sync,
    save_sync_log,
    get_sync_logs,
)

__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "get_session",
    "init_db",
    "BookingStore",
    "booking_exists",
    "save_travel_booking",
    "get_travel_bookings",
    "save_mail_connection",
    "get_mail_connection",
    "update_mail_tokens",
    "get_last_sync_at",
    "update_last_sync",
    "save_sync_log",
    "get_sync_logs",
]
