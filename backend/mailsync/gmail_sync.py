"""
Gmail Booking Sync Module

Handles synchronization of travel booking emails from Gmail.
Supports full sync (initial, two-year window) and incremental sync
(messages after the last successful sync).

Pagination and per-message fetching are strictly sequential with a fixed
delay between messages; a failed message is recorded and skipped. Only a
systemic failure (no credential, database unreachable, search failure)
ends a run early, and even then a SyncResult is returned rather than raised.
"""

import asyncio
import os
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Callable, Optional

from dotenv import load_dotenv
from sqlalchemy.exc import OperationalError

from database.bookings import BookingStore

from .booking_parsers import (
    BookingExtractor,
    ExtractorRegistry,
    build_default_fallback,
    build_default_registry,
    confirmation_hash,
)
from .gmail_auth import MissingCredentialsError, get_valid_access_token
from .gmail_client import REQUEST_TIMEOUT, GmailClient
from .logging_config import get_logger

# Load environment variables (Docker env vars take precedence)
load_dotenv(override=False)

logger = get_logger(__name__)

# Sync configuration
RATE_LIMIT_DELAY = float(os.getenv("GMAIL_RATE_LIMIT_DELAY", "0.1"))  # Pause before each message fetch
BATCH_SIZE = int(os.getenv("GMAIL_BATCH_SIZE", "50"))  # Messages per search page
MAX_RESULTS = int(os.getenv("GMAIL_MAX_RESULTS", "100"))  # Per query
LOOKBACK_DAYS = int(os.getenv("GMAIL_SYNC_LOOKBACK_DAYS", "730"))  # Two years

FULL_SYNC = "full"
INCREMENTAL_SYNC = "incremental"

FULL_SYNC_QUERIES = [
    'from:noreply@airbnb.com subject:"reservation confirmed"',
    'from:booking.com subject:"booking confirmation"',
    'from:hotels.com subject:"booking confirmation"',
    'from:noreply@united.com subject:"flight confirmation"',
    'from:noreply@delta.com subject:"flight confirmation"',
    'from:no-reply@opentable.com subject:"reservation"',
    'from:uber.com subject:"trip receipt"',
    'from:lyft.com subject:"ride receipt"',
    'from:viator.com subject:"booking confirmation"',
    'from:expedia.com subject:"itinerary"',
]

INCREMENTAL_QUERY = (
    "(from:airbnb.com OR from:booking.com OR from:hotels.com "
    "OR from:united.com OR from:delta.com OR from:opentable.com)"
)

CANCELLED_ERROR = "Sync cancelled"


@dataclass
class SyncResult:
    """Outcome of one sync run."""

    sync_type: str = FULL_SYNC
    success: bool = False
    emails_fetched: int = 0
    emails_parsed: int = 0
    bookings_found: int = 0
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _after_filter(since: datetime) -> str:
    if since.tzinfo is None:
        since = since.replace(tzinfo=UTC)
    return f"after:{int(since.timestamp())}"


def _error_text(error: Exception) -> str:
    # asyncio.TimeoutError carries no message
    return str(error) or type(error).__name__


class BookingSyncEngine:
    """
    Walks a user's mailbox and stores the bookings found in it.

    Args:
        registry: Extractor registry used to parse each email
        mail_client_factory: Callable building a mail client from an access token
        store: Persistence sink (see database.bookings.BookingStore)
        token_provider: Callable returning a valid access token for a user id
        fallback: Optional AI fallback extractor
        rate_limit_delay: Seconds to wait before each message fetch
        page_size: Search page size
        max_results: Message ceiling per query
        lookback_days: Full sync window
        request_timeout: Upper bound in seconds for any single mail API call
    """

    def __init__(
        self,
        registry: ExtractorRegistry,
        mail_client_factory: Callable[[str], object],
        store,
        token_provider: Callable[[int], str],
        fallback: Optional[BookingExtractor] = None,
        rate_limit_delay: float = RATE_LIMIT_DELAY,
        page_size: int = BATCH_SIZE,
        max_results: int = MAX_RESULTS,
        lookback_days: int = LOOKBACK_DAYS,
        request_timeout: float = REQUEST_TIMEOUT,
    ):
        self.registry = registry
        self.mail_client_factory = mail_client_factory
        self.store = store
        self.token_provider = token_provider
        self.fallback = fallback
        self.rate_limit_delay = rate_limit_delay
        self.page_size = page_size
        self.max_results = max_results
        self.lookback_days = lookback_days
        self.request_timeout = request_timeout
        self._stop_requested = False

    def stop(self) -> None:
        """Stop scheduling new pages and messages; in-flight work finishes."""
        self._stop_requested = True

    async def sync(self, user_id: int, sync_type: str = "auto") -> SyncResult:
        """Run a sync; 'auto' means incremental (which itself falls back to full)."""
        if sync_type == FULL_SYNC:
            return await self.full_sync(user_id)
        if sync_type in ("auto", INCREMENTAL_SYNC):
            return await self.incremental_sync(user_id)

        logger.error(f"Unknown sync type: {sync_type}", extra={"user_id": user_id})
        return await self._failed(
            user_id, sync_type, f"Unknown sync type: {sync_type}",
            time.perf_counter(), datetime.now(UTC),
        )

    async def full_sync(self, user_id: int) -> SyncResult:
        """Scan the last `lookback_days` of mail with one query per provider."""
        since = datetime.now(UTC) - timedelta(days=self.lookback_days)
        date_filter = _after_filter(since)
        queries = [f"{query} {date_filter}" for query in FULL_SYNC_QUERIES]
        return await self._run(user_id, FULL_SYNC, queries)

    async def incremental_sync(self, user_id: int) -> SyncResult:
        """Scan mail since the last successful sync, or run a full sync if there is none."""
        started = time.perf_counter()
        started_at = datetime.now(UTC)
        try:
            last_sync = await asyncio.to_thread(self.store.get_last_sync_timestamp, user_id)
        except Exception as e:
            logger.error(f"Could not read last sync timestamp: {e}", extra={"user_id": user_id})
            return await self._failed(user_id, INCREMENTAL_SYNC, _error_text(e), started, started_at)

        if last_sync is None:
            logger.info("No previous sync, running full sync instead", extra={"user_id": user_id})
            return await self.full_sync(user_id)

        query = f"{INCREMENTAL_QUERY} {_after_filter(last_sync)}"
        return await self._run(user_id, INCREMENTAL_SYNC, [query])

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self, user_id: int, sync_type: str, queries: list[str]) -> SyncResult:
        self._stop_requested = False
        result = SyncResult(sync_type=sync_type)
        started = time.perf_counter()
        started_at = datetime.now(UTC)
        log_extra = {"sync_id": uuid.uuid4().hex[:8], "user_id": user_id}

        logger.info(f"Starting {sync_type} booking sync ({len(queries)} queries)", extra=log_extra)

        try:
            access_token = await asyncio.to_thread(self.token_provider, user_id)
            client = self.mail_client_factory(access_token)

            await asyncio.to_thread(
                self.store.append_sync_telemetry,
                self._telemetry(user_id, result, "started", started_at),
            )

            for query in queries:
                if self._stop_requested:
                    break
                await self._process_query(client, query, user_id, result, log_extra)

            if self._stop_requested:
                logger.warning("Sync cancelled", extra=log_extra)
                result.errors.append(CANCELLED_ERROR)
            else:
                await asyncio.to_thread(self.store.set_last_sync_timestamp, user_id, started_at)
                result.success = True

        except MissingCredentialsError as e:
            logger.error(f"No valid access token available: {e}", extra=log_extra)
            result.errors.append(_error_text(e))
        except Exception as e:
            logger.error(f"Booking sync failed: {e}", exc_info=True, extra=log_extra)
            result.errors.append(_error_text(e))

        return await self._finish(user_id, result, started, started_at, log_extra)

    async def _failed(
        self, user_id: int, sync_type: str, error: str, started: float, started_at: datetime
    ) -> SyncResult:
        """Failed result for a run that could not start, with its telemetry row."""
        result = SyncResult(sync_type=sync_type, errors=[error])
        log_extra = {"sync_id": uuid.uuid4().hex[:8], "user_id": user_id}
        return await self._finish(user_id, result, started, started_at, log_extra)

    async def _finish(
        self, user_id: int, result: SyncResult, started: float, started_at: datetime, log_extra: dict
    ) -> SyncResult:
        result.duration_ms = int((time.perf_counter() - started) * 1000)

        status = "completed" if result.success else "failed"
        try:
            await asyncio.to_thread(
                self.store.append_sync_telemetry,
                self._telemetry(user_id, result, status, started_at, datetime.now(UTC)),
            )
        except Exception as e:
            logger.error(f"Could not write sync telemetry: {e}", extra=log_extra)

        logger.info(
            f"Sync {status}: {result.emails_fetched} fetched, {result.emails_parsed} parsed, "
            f"{result.bookings_found} bookings, {result.duplicates} duplicates, "
            f"{len(result.errors)} errors in {result.duration_ms}ms",
            extra=log_extra,
        )
        return result

    async def _process_query(self, client, query: str, user_id: int, result: SyncResult, log_extra: dict) -> None:
        logger.info(f"Searching: {query}", extra=log_extra)
        message_ids = await self._search(client, query)
        result.emails_fetched += len(message_ids)

        for message_id in message_ids:
            if self._stop_requested:
                break

            await asyncio.sleep(self.rate_limit_delay)

            try:
                await self._process_message(client, message_id, user_id, result, log_extra)
                result.emails_parsed += 1
            except OperationalError:
                raise
            except Exception as e:
                logger.warning(f"Failed to process email {message_id}: {e}", extra=log_extra)
                result.errors.append(f"Email {message_id}: {_error_text(e)}")

    async def _search(self, client, query: str) -> list[str]:
        """Collect message ids page by page, up to max_results."""
        message_ids: list[str] = []
        page_token = None

        while len(message_ids) < self.max_results and not self._stop_requested:
            page_size = min(self.page_size, self.max_results - len(message_ids))
            page = await self._call(client.search_messages, query, page_size, page_token)

            message_ids.extend(m["id"] for m in page.get("messages") or [])

            page_token = page.get("nextPageToken")
            if not page_token:
                break

        if len(message_ids) >= self.max_results:
            logger.info(f"Reached max results limit ({self.max_results})")

        return message_ids[: self.max_results]

    async def _process_message(self, client, message_id: str, user_id: int, result: SyncResult, log_extra: dict) -> None:
        email = await self._call(client.get_email, message_id)

        record = await self.registry.parse_one(email, fallback=self.fallback)
        if record is None:
            return

        if not record.start_date:
            logger.debug(f"Skipping booking without a start date from email {message_id}", extra=log_extra)
            return

        booking_hash = confirmation_hash(record.confirmation_number, email.id)

        if await asyncio.to_thread(self.store.exists, booking_hash):
            logger.debug(f"Booking already exists: {booking_hash}", extra=log_extra)
            result.duplicates += 1
            return

        # The unique constraint catches a concurrent insert of the same hash
        if await asyncio.to_thread(self.store.insert, record, user_id, booking_hash):
            result.bookings_found += 1
            logger.info(
                f"Stored {record.booking_type.value} booking: {record.title}",
                extra={**log_extra, "provider": record.provider, "parser": record.metadata.parser_used},
            )
        else:
            result.duplicates += 1

    async def _call(self, fn, *args):
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.request_timeout)

    @staticmethod
    def _telemetry(
        user_id: int,
        result: SyncResult,
        status: str,
        started_at: datetime,
        completed_at: Optional[datetime] = None,
    ) -> dict:
        return {
            "user_id": user_id,
            "sync_type": result.sync_type,
            "sync_status": status,
            "emails_fetched": result.emails_fetched,
            "emails_parsed": result.emails_parsed,
            "bookings_found": result.bookings_found,
            "duplicates": result.duplicates,
            "duration_ms": result.duration_ms,
            "error_message": result.errors[0] if result.errors else None,
            "error_details": {"errors": list(result.errors)} if result.errors else None,
            "started_at": started_at,
            "completed_at": completed_at,
        }


def build_sync_engine(**overrides) -> BookingSyncEngine:
    """Engine wired to Gmail, the database store and the configured AI fallback."""
    options = {
        "registry": build_default_registry(),
        "mail_client_factory": GmailClient.from_token,
        "store": BookingStore(),
        "token_provider": get_valid_access_token,
        "fallback": build_default_fallback(),
    }
    options.update(overrides)
    return BookingSyncEngine(**options)
