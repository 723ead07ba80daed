# backend/database/base.py
"""
SQLAlchemy Base and Engine Configuration

Provides the declarative base for all models and engine factory.

DATABASE_URL, when set, wins over the POSTGRES_* variables (tests point it
at SQLite). When TESTING=true without DATABASE_URL, this module ONLY
connects to the test database (travel_db_test).
"""

import logging
import os
from contextlib import contextmanager

from dotenv import load_dotenv
from sqlalchemy import URL, create_engine, make_url
from sqlalchemy.exc import OperationalError, TimeoutError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

load_dotenv(override=False)

logger = logging.getLogger(__name__)

# ============================================================================
# CRITICAL: TEST DATABASE SAFETY CHECK
# ============================================================================
IS_TESTING = os.getenv("TESTING", "").lower() in ("true", "1", "yes")
PRODUCTION_DB_NAME = "travel_db"
TEST_DB_NAME = os.getenv("POSTGRES_TEST_DB", "travel_db_test")

db_name = os.getenv("POSTGRES_DB", PRODUCTION_DB_NAME)

# SAFETY: If testing, FORCE use of test database
if IS_TESTING:
    if db_name == PRODUCTION_DB_NAME:
        db_name = TEST_DB_NAME
        logger.warning(
            f"TESTING=true but POSTGRES_DB was production. Forcing test database: {db_name}"
        )
    elif db_name != TEST_DB_NAME:
        logger.warning(f"TESTING=true with custom database: {db_name}")

_explicit_url = os.getenv("DATABASE_URL", "").strip()

if _explicit_url:
    DATABASE_URL = make_url(_explicit_url)
else:
    # Database URL (using URL.create to avoid password exposure in logs)
    DATABASE_URL = URL.create(
        "postgresql",
        username=os.getenv("POSTGRES_USER", "travel_user"),
        password=os.getenv("POSTGRES_PASSWORD", "travel_password"),
        host=os.getenv("POSTGRES_HOST", "localhost"),
        port=int(os.getenv("POSTGRES_PORT", "5432")),
        database=db_name,
    )

# Declarative base for all models
Base = declarative_base()


def build_engine(url):
    """Engine for a database URL; SQLite shares one connection across threads."""
    url = make_url(url)
    if url.get_backend_name() == "sqlite":
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,
        max_overflow=0,
        pool_pre_ping=True,  # Verify connections before use
        echo=False,  # Set to True for SQL logging during development
        hide_parameters=True,  # Redact password in logs
    )


engine = build_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_session():
    """Get a new SQLAlchemy session (context manager)."""
    try:
        db = SessionLocal()
    except TimeoutError:
        logger.error("Connection pool exhausted (all connections in use)")
        raise
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise

    try:
        yield db
    except Exception as e:
        logger.error(f"Session error: {e}")
        db.rollback()  # Explicit rollback on error
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create all tables registered on Base (used by tests and first boot)."""
    from . import models  # noqa: F401  (registers models on Base)

    Base.metadata.create_all(bind=engine)
