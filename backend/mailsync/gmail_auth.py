"""
Gmail Credential Module

Supplies a valid bearer token for a user's mailbox. Tokens are stored
Fernet-encrypted on the mail connection row and refreshed against Google's
token endpoint when they are about to expire. The authorization-code flow
itself lives outside this package.
"""

import os
from datetime import UTC, datetime, timedelta

import requests
from cryptography.fernet import Fernet, InvalidToken
from dotenv import load_dotenv

import database

from .logging_config import get_logger

# Load environment variables (Docker env vars take precedence)
load_dotenv(override=False)

logger = get_logger(__name__)

# Gmail OAuth Configuration
GMAIL_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GMAIL_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh tokens this close to expiry
REFRESH_MARGIN = timedelta(minutes=5)

# Encryption key for storing tokens
ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")
cipher = Fernet(ENCRYPTION_KEY) if ENCRYPTION_KEY else None


class MissingCredentialsError(Exception):
    """No usable mailbox credential for the user."""


def encrypt_token(token: str) -> str:
    """Encrypt sensitive token for storage."""
    if not cipher:
        logger.warning(
            "TOKEN_ENCRYPTION_KEY not set. Storing token unencrypted (NOT recommended for production)"
        )
        return token
    return cipher.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt stored token."""
    if not cipher:
        return encrypted_token

    try:
        if isinstance(encrypted_token, bytes):
            return cipher.decrypt(encrypted_token).decode()
        return cipher.decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        logger.error("Gmail token decryption failed (wrong TOKEN_ENCRYPTION_KEY?)")
        raise MissingCredentialsError("Stored token could not be decrypted") from e


def refresh_access_token(refresh_token: str) -> dict:
    """
    Refresh an expired access token.

    Args:
        refresh_token: Refresh token from previous authentication

    Returns:
        Dictionary with new 'access_token', 'refresh_token', 'expires_at'
    """
    if not GMAIL_CLIENT_ID or not GMAIL_CLIENT_SECRET:
        raise MissingCredentialsError("GOOGLE_CLIENT_ID or GOOGLE_CLIENT_SECRET not configured")

    data = {
        "grant_type": "refresh_token",
        "client_id": GMAIL_CLIENT_ID,
        "client_secret": GMAIL_CLIENT_SECRET,
        "refresh_token": refresh_token,
    }

    headers = {"Content-Type": "application/x-www-form-urlencoded"}

    try:
        logger.info("Refreshing Gmail access token")
        response = requests.post(GOOGLE_TOKEN_URL, data=data, headers=headers, timeout=10)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Gmail token refresh failed: {e}")
        raise MissingCredentialsError(f"Token refresh failed: {e}") from e

    token_data = response.json()
    expires_in = token_data.get("expires_in", 3600)

    return {
        "access_token": token_data.get("access_token"),
        # Google only sometimes rotates the refresh token
        "refresh_token": token_data.get("refresh_token", refresh_token),
        "expires_at": datetime.now(UTC) + timedelta(seconds=expires_in),
    }


def connect_mailbox(
    user_id: int,
    email_address: str,
    access_token: str,
    refresh_token: str = None,
    expires_at: datetime = None,
) -> int:
    """Store freshly issued tokens (encrypted) as the user's mail connection."""
    connection_id = database.save_mail_connection(
        user_id=user_id,
        email_address=email_address,
        access_token=encrypt_token(access_token),
        refresh_token=encrypt_token(refresh_token) if refresh_token else None,
        token_expires_at=expires_at,
    )
    logger.info(f"Mail connection saved: id={connection_id}", extra={"user_id": user_id})
    return connection_id


def get_valid_access_token(user_id: int) -> str:
    """
    Get a valid access token for a user's mailbox, refreshing if needed.

    Args:
        user_id: Owner of the mail connection

    Returns:
        Valid access token string

    Raises:
        MissingCredentialsError: No connection, or the token is expired and
            cannot be refreshed
    """
    connection = database.get_mail_connection(user_id)
    if not connection or not connection.get("access_token"):
        raise MissingCredentialsError(f"No mail connection for user {user_id}")

    access_token = decrypt_token(connection["access_token"])
    refresh_token = (
        decrypt_token(connection["refresh_token"])
        if connection.get("refresh_token")
        else None
    )

    expires_at = connection.get("token_expires_at")
    if not expires_at:
        return access_token

    if isinstance(expires_at, str):
        expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))

    # Ensure expires_at is timezone-aware for comparison
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)

    if expires_at > datetime.now(UTC) + REFRESH_MARGIN:
        return access_token

    if not refresh_token:
        raise MissingCredentialsError("Access token expired and no refresh token available")

    logger.info("Access token expired, refreshing", extra={"user_id": user_id})
    new_tokens = refresh_access_token(refresh_token)

    database.update_mail_tokens(
        connection_id=connection["id"],
        access_token=encrypt_token(new_tokens["access_token"]),
        refresh_token=encrypt_token(new_tokens["refresh_token"]),
        token_expires_at=new_tokens["expires_at"],
    )

    return new_tokens["access_token"]
