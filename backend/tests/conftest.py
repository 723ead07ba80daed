"""Core test fixtures for booking sync tests.

Provides reusable fixtures for database cleanup, HTTP mocking and sample
email loading.

CRITICAL: Tests run against an in-memory SQLite database. The environment
below is set BEFORE any project module is imported, so the engine in
database.base never points at a real Postgres instance.
"""

import os
import tempfile
from pathlib import Path

# CRITICAL: Set test mode BEFORE importing database modules
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="booking_sync_logs_")
os.environ["LOG_PROPAGATE"] = "true"
os.environ.pop("LLM_PROVIDER", None)
os.environ.pop("TOKEN_ENCRYPTION_KEY", None)

import pytest  # noqa: E402
import responses  # noqa: E402

from mailsync.booking_parsers.base import RawEmail  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "sample_emails"


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def clean_db():
    """Fresh schema for each test.

    Creates every table registered on Base, then deletes all rows after the
    test (children before parents).

    Yields:
        Engine: The SQLite engine the database package is bound to
    """
    from database.base import Base, engine, init_db

    init_db()
    yield engine

    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


# ============================================================================
# API MOCKING FIXTURES
# ============================================================================


@pytest.fixture
def mock_responses():
    """Enable HTTP request mocking.

    Yields:
        RequestsMock: HTTP request mocking context manager
    """
    with responses.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def no_sleep(monkeypatch):
    """Record Gmail client sleeps instead of waiting.

    Returns:
        list: Seconds passed to each time.sleep call
    """
    sleeps = []
    monkeypatch.setattr("mailsync.gmail_client.time.sleep", sleeps.append)
    return sleeps


# ============================================================================
# TEST DATA HELPERS
# ============================================================================


def load_email_fixture(fixture_name: str, email_id: str = None) -> RawEmail:
    """Load a sample email from the sample_emails directory.

    Fixture files start with From/Subject/Date header lines, then a blank
    line, then the body. '.html' fixtures become HTML-only emails.

    Args:
        fixture_name: Name of email fixture file (e.g., 'airbnb_confirmation.txt')
        email_id: Message id to assign (defaults to the file stem)

    Returns:
        RawEmail: Parsed fixture

    Example:
        email = load_email_fixture('airbnb_confirmation.txt')
        assert 'airbnb.com' in email.sender
    """
    file_path = FIXTURES_DIR / fixture_name

    if not file_path.exists():
        raise FileNotFoundError(f"Email fixture not found: {file_path}")

    raw = file_path.read_text(encoding="utf-8")
    header_block, _, body = raw.partition("\n\n")

    headers = {}
    for line in header_block.splitlines():
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    is_html = file_path.suffix == ".html"
    return RawEmail(
        id=email_id or file_path.stem,
        sender=headers.get("from", ""),
        subject=headers.get("subject", ""),
        date=headers.get("date", ""),
        body_text="" if is_html else body,
        body_html=body if is_html else None,
    )


@pytest.fixture
def load_email():
    """Fixture handle on load_email_fixture for test modules."""
    return load_email_fixture
