"""
Extractor Registry

Holds the provider extractors, picks the best one for an email and runs
parsing off the event loop. Selection is by descending priority; ties keep
registration order. Extractor failures never escape the registry: they are
logged and the email falls through to the fallback (if any) or yields None.
"""

import asyncio
import os
from typing import Callable, Optional, Sequence

from ..logging_config import get_logger
from .airbnb import AirbnbExtractor
from .airlines import AirlineExtractor
from .base import BookingExtractor, BookingRecord, RawEmail
from .booking_com import BookingComExtractor
from .hotel_chains import HotelChainsExtractor
from .restaurants import RestaurantExtractor
from .vacation_rentals import VacationRentalExtractor

logger = get_logger(__name__)

DEFAULT_PARSE_TIMEOUT = float(os.getenv("PARSER_TIMEOUT", "30"))
DEFAULT_CONCURRENCY = int(os.getenv("PARSER_CONCURRENCY", "5"))

ProgressCallback = Callable[[int, int], None]


class ExtractorRegistry:
    """Priority-ordered set of booking extractors keyed by provider id."""

    def __init__(self, timeout: float = DEFAULT_PARSE_TIMEOUT):
        self.timeout = timeout
        self._extractors: dict[str, BookingExtractor] = {}
        self._by_priority: list[BookingExtractor] = []

    def register(self, extractor: BookingExtractor) -> None:
        """Add an extractor, replacing any with the same provider id."""
        if extractor.provider in self._extractors:
            logger.warning(
                f"Extractor {extractor.provider} is already registered, replacing",
                extra={"parser": extractor.provider},
            )
        self._extractors[extractor.provider] = extractor
        self._update_priority_list()
        logger.debug(
            f"Registered extractor: {extractor.display_name} (priority: {extractor.priority})",
            extra={"parser": extractor.provider},
        )

    def unregister(self, provider: str) -> None:
        if self._extractors.pop(provider, None) is not None:
            self._update_priority_list()
            logger.debug(f"Unregistered extractor: {provider}", extra={"parser": provider})

    def get(self, provider: str) -> Optional[BookingExtractor]:
        return self._extractors.get(provider)

    @property
    def extractors(self) -> list[BookingExtractor]:
        """Registered extractors, highest priority first."""
        return list(self._by_priority)

    def __len__(self) -> int:
        return len(self._extractors)

    def __contains__(self, provider: str) -> bool:
        return provider in self._extractors

    def find_best(self, email: RawEmail) -> Optional[BookingExtractor]:
        """First extractor, in priority order, that claims the email."""
        for extractor in self._by_priority:
            try:
                if extractor.can_parse(email):
                    logger.debug(
                        f"Selected extractor {extractor.display_name} for email from {email.sender}",
                        extra={"parser": extractor.provider},
                    )
                    return extractor
            except Exception as e:
                logger.error(
                    f"Error checking extractor {extractor.provider}: {e}",
                    exc_info=True,
                    extra={"parser": extractor.provider},
                )
        return None

    async def parse_one(
        self, email: RawEmail, fallback: Optional[BookingExtractor] = None
    ) -> Optional[BookingRecord]:
        """Parse an email with the best extractor, then the fallback.

        Returns:
            BookingRecord, or None when no extractor produced one
        """
        extractor = self.find_best(email)
        if extractor is not None:
            record = await self._run(extractor, email)
            if record is not None:
                return record

        if fallback is not None and _accepts(fallback, email):
            logger.debug(
                f"Trying fallback extractor {fallback.display_name} for email {email.id}",
                extra={"parser": fallback.provider},
            )
            record = await self._run(fallback, email)
            if record is not None:
                return record

        logger.debug(f"No extractor produced a booking for email from {email.sender}")
        return None

    async def parse_batch(
        self,
        emails: Sequence[RawEmail],
        concurrency: int = DEFAULT_CONCURRENCY,
        fallback: Optional[BookingExtractor] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[Optional[BookingRecord]]:
        """Parse emails in chunks of ``concurrency``; results keep input order.

        Raises:
            ValueError: concurrency is less than 1
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        results: list[Optional[BookingRecord]] = []
        total = len(emails)

        for start in range(0, total, concurrency):
            chunk = emails[start:start + concurrency]
            chunk_results = await asyncio.gather(
                *[self.parse_one(email, fallback) for email in chunk]
            )
            results.extend(chunk_results)

            if on_progress:
                on_progress(len(results), total)

        return results

    @staticmethod
    def statistics(results: Sequence[Optional[BookingRecord]]) -> dict:
        """Success counts, per-extractor counts and averages for a batch."""
        stats = {
            "total": len(results),
            "successful": 0,
            "failed": 0,
            "by_parser": {},
            "avg_confidence": 0.0,
            "avg_parsing_time_ms": 0.0,
        }
        total_confidence = 0.0
        total_time = 0

        for record in results:
            if record is None:
                stats["failed"] += 1
                continue
            stats["successful"] += 1
            parser = record.metadata.parser_used
            stats["by_parser"][parser] = stats["by_parser"].get(parser, 0) + 1
            total_confidence += record.confidence
            total_time += record.metadata.parsing_time_ms

        if stats["successful"]:
            stats["avg_confidence"] = total_confidence / stats["successful"]
            stats["avg_parsing_time_ms"] = total_time / stats["successful"]

        return stats

    async def _run(self, extractor: BookingExtractor, email: RawEmail) -> Optional[BookingRecord]:
        try:
            record = await asyncio.wait_for(
                asyncio.to_thread(extractor.parse, email), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Extractor {extractor.provider} timed out after {self.timeout}s on email {email.id}",
                extra={"parser": extractor.provider},
            )
            return None
        except Exception as e:
            logger.error(
                f"Extractor {extractor.provider} failed on email {email.id}: {e}",
                exc_info=True,
                extra={"parser": extractor.provider},
            )
            return None

        logger.debug(
            f"Parsed email {email.id} with {extractor.display_name} "
            f"(confidence: {record.confidence:.2f})",
            extra={"parser": extractor.provider, "provider": record.provider},
        )
        return record

    def _update_priority_list(self) -> None:
        self._by_priority = sorted(
            self._extractors.values(), key=lambda e: e.priority, reverse=True
        )


def _accepts(extractor: BookingExtractor, email: RawEmail) -> bool:
    try:
        return extractor.can_parse(email)
    except Exception as e:
        logger.error(
            f"Error checking extractor {extractor.provider}: {e}",
            exc_info=True,
            extra={"parser": extractor.provider},
        )
        return False


def build_default_registry(timeout: float = DEFAULT_PARSE_TIMEOUT) -> ExtractorRegistry:
    """Registry holding every provider extractor."""
    registry = ExtractorRegistry(timeout=timeout)
    registry.register(AirbnbExtractor())
    registry.register(BookingComExtractor())
    registry.register(HotelChainsExtractor())
    registry.register(AirlineExtractor())
    # Restaurant signals are the broadest, so it goes last among equals
    registry.register(VacationRentalExtractor())
    registry.register(RestaurantExtractor())
    logger.info(f"Registered {len(registry)} booking extractors")
    return registry
