"""Tests for mailbox credential handling.

Covers token encryption at rest, the missing-credential paths and the
refresh flow against Google's token endpoint (mocked with responses).
"""

from datetime import UTC, datetime, timedelta

import pytest
import responses
from cryptography.fernet import Fernet

from database import get_mail_connection
from mailsync import gmail_auth
from mailsync.gmail_auth import (
    GOOGLE_TOKEN_URL,
    MissingCredentialsError,
    connect_mailbox,
    decrypt_token,
    encrypt_token,
    get_valid_access_token,
    refresh_access_token,
)


@pytest.fixture
def cipher(monkeypatch):
    """Enable token encryption with a throwaway key."""
    fernet = Fernet(Fernet.generate_key())
    monkeypatch.setattr(gmail_auth, "cipher", fernet)
    return fernet


@pytest.fixture
def oauth_client(monkeypatch):
    monkeypatch.setattr(gmail_auth, "GMAIL_CLIENT_ID", "client-id")
    monkeypatch.setattr(gmail_auth, "GMAIL_CLIENT_SECRET", "client-secret")


# ============================================================================
# ENCRYPTION
# ============================================================================


def test_encrypt_decrypt_round_trip(cipher):
    """Test stored tokens are encrypted and decrypt back to the original."""
    encrypted = encrypt_token("ya29.secret")

    assert encrypted != "ya29.secret"
    assert decrypt_token(encrypted) == "ya29.secret"


def test_encryption_disabled_passes_tokens_through(monkeypatch):
    """Test tokens are stored as-is when no encryption key is configured."""
    monkeypatch.setattr(gmail_auth, "cipher", None)

    assert encrypt_token("plain") == "plain"
    assert decrypt_token("plain") == "plain"


def test_decrypt_with_wrong_key_is_missing_credentials(cipher, monkeypatch):
    """Test a token encrypted under another key is treated as no credential."""
    encrypted = encrypt_token("ya29.secret")
    monkeypatch.setattr(gmail_auth, "cipher", Fernet(Fernet.generate_key()))

    with pytest.raises(MissingCredentialsError):
        decrypt_token(encrypted)


# ============================================================================
# ACCESS TOKENS
# ============================================================================


def test_no_connection_raises_missing_credentials(clean_db):
    """Test a user without a mailbox connection cannot sync."""
    with pytest.raises(MissingCredentialsError):
        get_valid_access_token(1)


def test_valid_token_returned_without_refresh(clean_db, cipher):
    """Test a token far from expiry is decrypted and returned as-is."""
    connect_mailbox(
        1, "me@example.com", "access-1", "refresh-1",
        expires_at=datetime.now(UTC) + timedelta(hours=1),
    )

    assert get_valid_access_token(1) == "access-1"
    assert get_mail_connection(1)["access_token"] != "access-1"


def test_expired_token_is_refreshed_and_stored(clean_db, cipher, oauth_client, mock_responses):
    """Test an expiring token is refreshed and the new one saved encrypted."""
    mock_responses.add(
        responses.POST,
        GOOGLE_TOKEN_URL,
        json={"access_token": "access-2", "expires_in": 3600},
        status=200,
    )
    connect_mailbox(
        1, "me@example.com", "access-1", "refresh-1",
        expires_at=datetime.now(UTC) + timedelta(minutes=2),
    )

    assert get_valid_access_token(1) == "access-2"
    assert len(mock_responses.calls) == 1

    connection = get_mail_connection(1)
    assert decrypt_token(connection["access_token"]) == "access-2"
    # Google did not rotate the refresh token, so the old one is kept
    assert decrypt_token(connection["refresh_token"]) == "refresh-1"


def test_expired_token_without_refresh_token(clean_db):
    """Test an expired token with nothing to refresh it is missing credentials."""
    connect_mailbox(
        1, "me@example.com", "access-1",
        expires_at=datetime.now(UTC) - timedelta(hours=1),
    )

    with pytest.raises(MissingCredentialsError):
        get_valid_access_token(1)


def test_refresh_failure_is_missing_credentials(oauth_client, mock_responses):
    """Test a rejected refresh surfaces as MissingCredentialsError."""
    mock_responses.add(
        responses.POST, GOOGLE_TOKEN_URL, json={"error": "invalid_grant"}, status=400
    )

    with pytest.raises(MissingCredentialsError):
        refresh_access_token("revoked-refresh-token")


def test_refresh_requires_client_credentials(monkeypatch):
    """Test refresh is refused when the OAuth client is not configured."""
    monkeypatch.setattr(gmail_auth, "GMAIL_CLIENT_ID", None)

    with pytest.raises(MissingCredentialsError):
        refresh_access_token("refresh-1")
