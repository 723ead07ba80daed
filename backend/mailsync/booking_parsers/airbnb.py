"""
Airbnb Extractor

Handles Airbnb reservation confirmation (and cancellation) emails:
- Confirmation code: HMXK-ABCD-2024
- Stay dates (Check-in / Check-out)
- Property title, address and type
- Total price, nightly rate and currency
- Host, guest count and check-in/out times
"""

import re
import time

from .base import (
    BookingDetails,
    BookingRecord,
    BookingType,
    RawEmail,
    build_record,
    detect_booking_status,
    detect_currency,
    extract_location,
    first_date,
    first_int,
    first_match,
    get_email_content,
    has_keywords,
    is_from_domain,
    parse_amount,
    parse_price,
    parse_time,
)

AIRBNB_DOMAINS = ["airbnb.com", "airbnb."]

SUBJECT_KEYWORDS = [
    "reservation confirmed",
    "booking confirmed",
    "confirmation",
    "reserved",
    "reservation cancelled",
    "reservation canceled",
    "réservation confirmée",
    "buchungsbestätigung",
]

CONFIRMATION_PATTERNS = [
    r"confirmation\s+code:?\s*((?-i:[A-Z0-9][A-Z0-9-]{3,}))",
    r"confirmation\s+#?:?\s*((?-i:[A-Z0-9][A-Z0-9-]{3,}))",
    r"booking\s+code:?\s*((?-i:[A-Z0-9][A-Z0-9-]{3,}))",
    r"reference:?\s*((?-i:[A-Z0-9][A-Z0-9-]{3,}))",
]

SUBJECT_TITLE_PATTERNS = [
    r"(?:confirmed|cancell?ed)\s+-\s+(.+?)$",
    r"reservation\s+(?:for|at)\s+(.+?)$",
]

CHECK_IN_PATTERNS = [
    r"check[\s-]?in(?:\s+date)?:[ \t]*([^\n]+)",
    r"arrival:[ \t]*([^\n]+)",
]

CHECK_OUT_PATTERNS = [
    r"check[\s-]?out(?:\s+date)?:[ \t]*([^\n]+)",
    r"departure:[ \t]*([^\n]+)",
]

TOTAL_PATTERNS = [
    r"total(?:\s+\(\w{3}\))?:?\s*\$?\s*([\d,]+\.?\d*)",
    r"amount\s+paid(?:\s+\(\w{3}\))?:?\s*\$?\s*([\d,]+\.?\d*)",
]

PER_NIGHT_PATTERNS = [
    r"\$?([\d,]+\.?\d*)\s*(?:x|×)\s*\d+\s*nights?",
    r"\$?([\d,]+\.?\d*)\s*per\s*night",
    r"\$?([\d,]+\.?\d*)\s*/\s*night",
]

PROPERTY_TYPES = ["apartment", "house", "villa", "studio", "condo", "loft", "cottage", "cabin"]

PROPERTY_LINE_PATTERN = (
    r"\b(?:apartment|house|home|villa|studio|condo|loft|cottage|cabin|suite|room|flat)\b"
)


class AirbnbExtractor:
    """Airbnb reservation emails."""

    provider = "airbnb"
    display_name = "Airbnb"
    priority = 90

    def can_parse(self, email: RawEmail) -> bool:
        if not is_from_domain(email, AIRBNB_DOMAINS):
            return False
        return has_keywords(email.subject, SUBJECT_KEYWORDS)

    def parse(self, email: RawEmail) -> BookingRecord:
        started = time.perf_counter()
        content = get_email_content(email)

        location_name, address = extract_location(content)
        total, per_night = _extract_price(content)

        return build_record(
            email,
            self.provider,
            started,
            provider=self.provider,
            booking_type=BookingType.ACCOMMODATION,
            title=_extract_title(content, email.subject),
            confirmation_number=first_match(CONFIRMATION_PATTERNS, content),
            location_name=location_name,
            location_address=address,
            start_date=first_date(CHECK_IN_PATTERNS, content),
            end_date=first_date(CHECK_OUT_PATTERNS, content),
            total_price=total,
            price_per_night=per_night,
            currency=detect_currency(content),
            details=_extract_details(content),
            status=detect_booking_status(email.subject, content),
        )


def _extract_title(content: str, subject: str) -> str:
    title = first_match(SUBJECT_TITLE_PATTERNS, subject)
    if title:
        return title

    # Standalone line naming the property
    for line in content.splitlines():
        cleaned = line.strip()
        if (
            10 < len(cleaned) < 100
            and ":" not in cleaned
            and not cleaned[0].isdigit()
            and re.search(PROPERTY_LINE_PATTERN, cleaned, re.IGNORECASE)
        ):
            return cleaned

    return "Airbnb Property"


def _extract_price(content: str):
    total = first_match(TOTAL_PATTERNS, content)
    total = parse_amount(total) if total else parse_price(content)
    per_night = first_match(PER_NIGHT_PATTERNS, content)
    return total, parse_amount(per_night) if per_night else None


def _extract_details(content: str) -> BookingDetails:
    details = BookingDetails()

    details.host_name = first_match(
        [r"^\s*host(?:ed\s+by)?:[ \t]*([^\n]+)"], content, re.IGNORECASE | re.MULTILINE
    )
    details.num_guests = first_int([r"(\d+)\s*(?:guests?|adults?|people)"], content)

    check_in_time = first_match(
        [r"check-in\s+time:?\s*(?:after\s*)?(\d{1,2}:\d{2}\s*[AP]\.?M\.?)"], content
    )
    if check_in_time:
        details.check_in_time = parse_time(check_in_time)

    check_out_time = first_match(
        [r"check-out\s+time:?\s*(?:before\s*)?(\d{1,2}:\d{2}\s*[AP]\.?M\.?)"], content
    )
    if check_out_time:
        details.check_out_time = parse_time(check_out_time)

    lower = content.lower()
    for property_type in PROPERTY_TYPES:
        if property_type in lower:
            details.property_type = property_type
            break

    return details
