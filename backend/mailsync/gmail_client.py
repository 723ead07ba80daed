"""
Gmail API Client Module

Handles Gmail API interactions for fetching travel booking emails.
Includes rate limiting, pagination, exponential backoff and body decoding.
"""

import base64
import os
import time
from datetime import datetime, timezone
from email.header import decode_header, make_header
from typing import Optional

import requests
from dotenv import load_dotenv
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials

from .booking_parsers.base import RawEmail
from .logging_config import get_logger

# Load environment variables (Docker env vars take precedence)
load_dotenv(override=False)

logger = get_logger(__name__)

# Request configuration; pacing between messages is owned by the sync engine
REQUEST_TIMEOUT = int(os.getenv("GMAIL_REQUEST_TIMEOUT", "60"))
MAX_RETRIES = 3
BACKOFF_MULTIPLIER = 2
RETRYABLE_STATUS_CODES = (429, 500, 503)

# Google OAuth configuration (needed for automatic token refresh)
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Gmail API base URL
GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"

# Gmail caps maxResults per page
MAX_PAGE_SIZE = 500


def build_gmail_service(access_token: str, refresh_token: str = None) -> AuthorizedSession:
    """
    Build Gmail API session with credentials.

    Uses requests-based AuthorizedSession for direct REST calls.

    Args:
        access_token: Valid OAuth access token
        refresh_token: Optional refresh token for automatic refresh

    Returns:
        AuthorizedSession object for making Gmail API requests
    """
    credentials = Credentials(
        token=access_token,
        refresh_token=refresh_token,
        token_uri=GOOGLE_TOKEN_URL,
        client_id=os.getenv("GOOGLE_CLIENT_ID"),
        client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
    )
    return AuthorizedSession(credentials)


def fetch_with_backoff(
    session,
    method: str,
    url: str,
    max_retries: int = MAX_RETRIES,
    timeout: int = REQUEST_TIMEOUT,
    **kwargs,
):
    """
    Execute Gmail API request with exponential backoff using requests.

    Retries 429/500/503 responses and connection errors; any other HTTP
    error is raised immediately.

    Args:
        session: AuthorizedSession (or any requests.Session)
        method: HTTP method ('GET', 'POST', etc.)
        url: Full API URL
        max_retries: Maximum number of attempts
        timeout: Per-request timeout in seconds
        **kwargs: Additional arguments to pass to session.request()

    Returns:
        Response JSON dict

    Raises:
        requests.HTTPError: If request fails after all retries
        requests.RequestException: If the connection keeps failing
    """
    delay = 1
    last_error = None

    for attempt in range(max_retries):
        try:
            response = session.request(method, url, timeout=timeout, **kwargs)
            response.raise_for_status()

            return response.json()

        except requests.HTTPError as e:
            last_error = e
            status = e.response.status_code if e.response is not None else None
            if status not in RETRYABLE_STATUS_CODES:
                raise
            logger.warning(
                f"Gmail API returned {status} (attempt {attempt + 1}/{max_retries}), "
                f"retrying in {delay}s"
            )
        except requests.RequestException as e:
            last_error = e
            logger.warning(
                f"Gmail API request failed (attempt {attempt + 1}/{max_retries}): {e}, "
                f"retrying in {delay}s"
            )

        if attempt < max_retries - 1:
            time.sleep(delay)
            delay *= BACKOFF_MULTIPLIER

    raise last_error


def _decode_body(data: str) -> str:
    # Gmail strips base64 padding
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="ignore")


def _decode_header_value(value: str) -> str:
    try:
        return str(make_header(decode_header(value)))
    except (UnicodeDecodeError, LookupError, ValueError):
        return value


def _collect_bodies(part: dict, bodies: dict) -> None:
    """Walk a (possibly nested) MIME tree keeping the first text and HTML bodies."""
    mime_type = part.get("mimeType", "")
    data = part.get("body", {}).get("data")
    is_attachment = bool(part.get("filename"))

    if data and not is_attachment:
        if mime_type == "text/plain" and "text" not in bodies:
            bodies["text"] = _decode_body(data)
        elif mime_type == "text/html" and "html" not in bodies:
            bodies["html"] = _decode_body(data)

    for child in part.get("parts", []):
        _collect_bodies(child, bodies)


def extract_email(message: dict) -> RawEmail:
    """
    Convert a raw Gmail API message (format=full) into a RawEmail.

    Headers are MIME-decoded, bodies base64url-decoded. The plain-text body
    is kept alongside the HTML one; readers prefer the plain text.

    Args:
        message: Gmail message resource

    Returns:
        RawEmail
    """
    payload = message.get("payload", {})
    headers = {
        h["name"].lower(): _decode_header_value(h["value"])
        for h in payload.get("headers", [])
    }

    bodies: dict = {}
    _collect_bodies(payload, bodies)

    date = headers.get("date", "")
    internal_date = message.get("internalDate")
    if not date and internal_date:
        date = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc).isoformat()

    return RawEmail(
        id=message.get("id", ""),
        sender=headers.get("from", ""),
        subject=headers.get("subject", ""),
        date=date,
        body_text=bodies.get("text", ""),
        body_html=bodies.get("html"),
        recipient=headers.get("to", ""),
    )


class GmailClient:
    """Thin Gmail REST client over an authorized requests session."""

    def __init__(self, session, request_timeout: int = REQUEST_TIMEOUT, max_retries: int = MAX_RETRIES):
        self.session = session
        self.request_timeout = request_timeout
        self.max_retries = max_retries

    def search_messages(
        self, query: str, max_results: int = 100, page_token: Optional[str] = None
    ) -> dict:
        """
        List message ids matching a Gmail search query (one page).

        Args:
            query: Gmail search query
            max_results: Maximum messages for this page (capped at 500)
            page_token: Pagination token from the previous page

        Returns:
            Dictionary with 'messages' list and 'nextPageToken'
        """
        url = f"{GMAIL_API_BASE}/users/me/messages"
        params = {"q": query, "maxResults": min(max_results, MAX_PAGE_SIZE)}
        if page_token:
            params["pageToken"] = page_token

        try:
            result = fetch_with_backoff(
                self.session, "GET", url,
                max_retries=self.max_retries, timeout=self.request_timeout, params=params,
            )
        except requests.RequestException as e:
            logger.error(f"Gmail list messages error: {e}")
            raise

        return {
            "messages": result.get("messages", []),
            "nextPageToken": result.get("nextPageToken"),
            "resultSizeEstimate": result.get("resultSizeEstimate", 0),
        }

    def get_message(self, message_id: str) -> dict:
        """Fetch a full Gmail message resource."""
        url = f"{GMAIL_API_BASE}/users/me/messages/{message_id}"
        try:
            return fetch_with_backoff(
                self.session, "GET", url,
                max_retries=self.max_retries, timeout=self.request_timeout,
                params={"format": "full"},
            )
        except requests.RequestException as e:
            logger.error(f"Gmail get message error for {message_id}: {e}")
            raise

    def get_email(self, message_id: str) -> RawEmail:
        return extract_email(self.get_message(message_id))

    @classmethod
    def from_token(cls, access_token: str, refresh_token: str = None) -> "GmailClient":
        return cls(build_gmail_service(access_token, refresh_token))
