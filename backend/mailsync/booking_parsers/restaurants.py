"""
Restaurant Reservation Extractor

Covers the table-booking platforms (OpenTable, Resy, Yelp, SevenRooms,
Tock, Quandoo) plus restaurants mailing their own confirmations. Detection
is signal based; the record provider is the platform key when one is
recognised, otherwise 'restaurant'.
"""

import re
import time
from typing import Optional

from .base import (
    BookingDetails,
    BookingRecord,
    BookingType,
    RawEmail,
    build_record,
    detect_booking_status,
    extract_location,
    find_date,
    first_date,
    first_int,
    first_match,
    get_email_content,
    parse_time,
)
from .signals import (
    DetectionSignal,
    NO_SIGNAL,
    SignalSet,
    check_brand_signal,
    check_domain_signal,
    check_structure_signal,
    check_subject_signal,
    has_minimum_signals,
)

PLATFORMS = {
    "opentable": {"domains": ["opentable.com"], "names": ["OpenTable"]},
    "resy": {"domains": ["resy.com"], "names": ["Resy"]},
    "yelp": {"domains": ["yelp.com", "yelpreservations.com"], "names": ["Yelp"]},
    "sevenrooms": {"domains": ["sevenrooms.com"], "names": ["SevenRooms"]},
    "tock": {"domains": ["tock.com", "exploretock.com"], "names": ["Tock"]},
    "quandoo": {"domains": ["quandoo.com"], "names": ["Quandoo"]},
}

GENERIC_DOMAIN_PATTERNS = {"restaurant": [r"restaurant|dining|reservations"]}

SUBJECT_PATTERNS = [
    r"reservation\s+confirmed",
    r"dining\s+reservation",
    r"table\s+(?:for|reserved)",
    r"your\s+reservation\s+at",
    r"confirmed:\s+.*restaurant",
]

STRUCTURE_CUES = [
    r"restaurant|dining|cuisine",
    r"party\s+(?:of|size)|guests?|diners?",
    r"\d{1,2}:\d{2}\s*(?:am|pm)?",
    r"\d{1,2}/\d{1,2}/\d{2,4}|\d{4}-\d{2}-\d{2}|\w+\s+\d{1,2},?\s+\d{4}",
    r"reservation|booking|confirmed",
]

SUBJECT_TITLE_PATTERNS = [
    r"reservation\s+at\s+(.+?)$",
    r"confirmed:\s+(.+?)$",
    r"table\s+at\s+(.+?)$",
]

CONTENT_TITLE_PATTERNS = [
    r"^\s*restaurant:[ \t]*([^\n]+)",
    r"^\s*venue:[ \t]*([^\n]+)",
]

DATE_PATTERNS = [
    r"date:[ \t]*([^\n]+)",
    r"\bon[ \t]+([^\n]+)",
]

TIME_PATTERNS = [
    r"time:\s*(\d{1,2}:\d{2}\s*(?:[AP]\.?M\.?)?)",
    r"\bat\s+(\d{1,2}:\d{2}\s*(?:[AP]\.?M\.?)?)",
]

PARTY_SIZE_PATTERNS = [
    r"party\s+(?:of|size):?\s*(\d+)",
    r"(\d+)\s*(?:guests?|diners?|people)",
    r"table\s+for\s+(\d+)",
    r"reservation\s+for\s+(\d+)",
]

CONFIRMATION_PATTERNS = [
    r"confirmation\s*(?:number|code|#)?:?\s*((?-i:[A-Z0-9][A-Z0-9-]{3,}))",
    r"reservation\s*(?:number|code|id|#):?\s*((?-i:[A-Z0-9][A-Z0-9-]{3,}))",
    r"reference:?\s*((?-i:[A-Z0-9][A-Z0-9-]{3,}))",
]

CUISINE_TYPES = [
    "italian", "french", "japanese", "chinese", "mexican", "thai",
    "indian", "american", "mediterranean", "spanish", "korean",
    "vietnamese", "greek", "steakhouse", "seafood", "sushi",
]

MEAL_TIME_PATTERN = r"\b(\d{1,2}):(\d{2})\s*(?:([ap])\.?m\.?)?"


class RestaurantExtractor:
    """Restaurant reservations from booking platforms and restaurants."""

    provider = "restaurant"
    display_name = "Restaurant Reservations"
    priority = 85

    def detect(self, email: RawEmail) -> SignalSet:
        content = get_email_content(email)
        return {
            "domain": check_domain_signal(
                email.sender,
                {key: platform["domains"] for key, platform in PLATFORMS.items()},
                GENERIC_DOMAIN_PATTERNS,
                pattern_confidence=0.6,
            ),
            "provider": check_brand_signal(
                email.subject,
                content,
                {key: platform["names"] for key, platform in PLATFORMS.items()},
                body_confidence=0.9,
                subject_confidence=0.9,
            ),
            "subject": check_subject_signal(email.subject, SUBJECT_PATTERNS, 0.85),
            "structure": check_structure_signal(
                content, STRUCTURE_CUES, base=0.6, step=0.08, minimum=3,
                source="structure:restaurant",
            ),
            "timing": _meal_timing_signal(content),
        }

    def can_parse(self, email: RawEmail) -> bool:
        return has_minimum_signals(self.detect(email))

    def parse(self, email: RawEmail) -> BookingRecord:
        started = time.perf_counter()
        content = get_email_content(email)
        signals = self.detect(email)

        platform = signals["provider"].value or signals["domain"].value or self.provider
        location_name, address = extract_location(content)
        start_time = _extract_time(content)

        details = BookingDetails(
            party_size=first_int(PARTY_SIZE_PATTERNS, content),
            cuisine_type=_extract_cuisine(content),
            special_requests=first_match([r"(?:special\s+)?requests?:[ \t]*([^\n]+)"], content),
            meal_period=_meal_period(content, start_time),
        )
        if platform in PLATFORMS:
            details.extras["platform"] = platform

        return build_record(
            email,
            self.provider,
            started,
            provider=platform,
            booking_type=BookingType.RESTAURANT,
            title=_extract_restaurant_name(content, email.subject),
            confirmation_number=first_match(CONFIRMATION_PATTERNS, content),
            location_name=location_name,
            location_address=address,
            start_date=first_date(DATE_PATTERNS, content) or find_date(content),
            start_time=start_time,
            details=details,
            status=detect_booking_status(email.subject, content),
        )


def _meal_timing_signal(content: str) -> DetectionSignal:
    """A time inside typical breakfast, lunch, dinner or late-night hours."""
    match = re.search(MEAL_TIME_PATTERN, content or "", re.IGNORECASE)
    if not match:
        return NO_SIGNAL

    hour = int(match.group(1))
    period = (match.group(3) or "").lower()
    if period == "p" and hour < 12:
        hour += 12
    elif period == "a" and hour == 12:
        hour = 0

    if 6 <= hour < 15 or 17 <= hour < 24 or hour < 2:
        return DetectionSignal(True, 0.7, hour, "meal-timing")
    return NO_SIGNAL


def _extract_restaurant_name(content: str, subject: str) -> str:
    name = first_match(SUBJECT_TITLE_PATTERNS, subject)
    if name:
        return re.sub(r"\s+is\s+confirmed.*$", "", name, flags=re.IGNORECASE).strip()

    name = first_match(CONTENT_TITLE_PATTERNS, content, re.IGNORECASE | re.MULTILINE)
    if name:
        return name

    return "Restaurant"


def _extract_time(content: str) -> Optional[str]:
    labelled = first_match(TIME_PATTERNS, content)
    return parse_time(labelled) if labelled else parse_time(content)


def _extract_cuisine(content: str) -> Optional[str]:
    lower = (content or "").lower()
    for cuisine in CUISINE_TYPES:
        if re.search(rf"\b{cuisine}\b", lower):
            return cuisine.capitalize()
    return None


def _meal_period(content: str, start_time: Optional[str]) -> Optional[str]:
    match = re.search(r"\b(breakfast|brunch|lunch|dinner|supper)\b", content or "", re.IGNORECASE)
    if match:
        return match.group(1).lower()

    if not start_time:
        return None
    hour = int(start_time.split(":")[0])
    if 6 <= hour < 11:
        return "breakfast"
    if 11 <= hour < 15:
        return "lunch"
    if 17 <= hour < 22:
        return "dinner"
    if hour >= 22 or hour < 2:
        return "late night"
    return None
