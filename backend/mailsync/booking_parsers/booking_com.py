"""
Booking.com Extractor

Booking.com confirmations carry a dotted confirmation number
(123.456.789), a PIN code, the property name in the subject and a
"Total price: USD 540.00" line.
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

BOOKING_DOMAINS = ["booking.com", "booking."]

SUBJECT_KEYWORDS = [
    "booking confirmation",
    "reservation confirmation",
    "confirmation",
    "confirmed",
    "your booking",
    "buchungsbestätigung",
    "confirmation de réservation",
]

CONFIRMATION_PATTERNS = [
    r"confirmation\s+number:?\s*(\d[\d.]*\d)",
    r"booking\s+number:?\s*(\d[\d.]*\d)",
    r"reference\s+number:?\s*(\d[\d.]*\d)",
    r"confirmation\s+#:?\s*(\d[\d.]*\d)",
]

SUBJECT_TITLE_PATTERNS = [
    r"(?:confirmation|bestätigung)\s+-\s+(.+?)$",
    r"booking\s+at\s+(.+?)$",
    r"reservation\s+for\s+(.+?)$",
]

HOTEL_LINE_PATTERNS = [
    r"^\s*([^,:\n]*\b(?:hotel|inn|resort|suites?|lodge|motel|hostel)\b[^,:\n]*)$",
    r"^\s*((?:hilton|marriott|hyatt|sheraton|westin|radisson|holiday inn|best western|four seasons|ritz)[^,:\n]*)$",
]

CHECK_IN_PATTERNS = [
    r"check[\s-]?in:[ \t]*([^\n]+)",
    r"arrival:[ \t]*([^\n]+)",
]

CHECK_OUT_PATTERNS = [
    r"check[\s-]?out:[ \t]*([^\n]+)",
    r"departure:[ \t]*([^\n]+)",
]

# (currency, amount) pairs
TOTAL_PATTERNS = [
    r"total\s+price:?\s*(?:(?-i:([A-Z]{3}))\s*)?[$€£]?\s*([\d,]+\.?\d*)",
    r"total:?\s*(?:(?-i:([A-Z]{3}))\s*)?[$€£]?\s*([\d,]+\.?\d*)",
    r"(?-i:([A-Z]{3}))\s*([\d,]+\.?\d*)\s*(?:total|includes)",
]

ROOM_TYPE_PATTERNS = [
    r"room\s+type:?[ \t]*([^\n]+)",
    r"((?:king|queen|double|twin|single|suite|deluxe|standard)[^,\n]*room[^,\n]*)",
]

PENDING_PATTERNS = (r"\bpending\b", r"\bwaiting\b", r"\bprocessing\b")


class BookingComExtractor:
    """Booking.com hotel reservations."""

    provider = "booking.com"
    display_name = "Booking.com"
    priority = 90

    def can_parse(self, email: RawEmail) -> bool:
        if not is_from_domain(email, BOOKING_DOMAINS):
            return False
        return has_keywords(email.subject, SUBJECT_KEYWORDS)

    def parse(self, email: RawEmail) -> BookingRecord:
        started = time.perf_counter()
        content = get_email_content(email)

        location_name, address = extract_location(content)
        total, currency = _extract_total(content)

        return build_record(
            email,
            self.provider,
            started,
            provider=self.provider,
            booking_type=BookingType.ACCOMMODATION,
            title=_extract_hotel_name(content, email.subject),
            confirmation_number=first_match(CONFIRMATION_PATTERNS, content),
            location_name=location_name,
            location_address=address,
            start_date=first_date(CHECK_IN_PATTERNS, content),
            end_date=first_date(CHECK_OUT_PATTERNS, content),
            total_price=total,
            price_per_night=_per_night(content, total),
            currency=currency or detect_currency(content),
            details=_extract_details(content),
            status=detect_booking_status(
                email.subject, content, pending_patterns=PENDING_PATTERNS
            ),
        )


def _extract_hotel_name(content: str, subject: str) -> str:
    title = first_match(SUBJECT_TITLE_PATTERNS, subject)
    if title:
        return title

    title = first_match(HOTEL_LINE_PATTERNS, content, re.IGNORECASE | re.MULTILINE)
    if title:
        return title

    return "Hotel"


def _extract_total(content: str) -> tuple[Optional[float], Optional[str]]:
    for pattern in TOTAL_PATTERNS:
        match = re.search(pattern, content, re.IGNORECASE)
        if match:
            amount = parse_amount(match.group(2))
            if amount:
                return amount, match.group(1)
    return parse_price(content), None


def _per_night(content: str, total: Optional[float]) -> Optional[float]:
    nights = first_int([r"(\d+)\s*nights?\b"], content)
    if total and nights:
        return round(total / nights, 2)
    return None


def _extract_details(content: str) -> BookingDetails:
    details = BookingDetails()

    details.room_type = first_match(ROOM_TYPE_PATTERNS, content)
    details.num_rooms = first_int([r"(\d+)\s*rooms?\b"], content)
    details.num_guests = first_int([r"(\d+)\s*(?:guests?|adults?)\b"], content)
    details.pin_code = first_match([r"PIN\s*(?:code)?:?\s*(\d+)"], content)

    check_in_time = first_match([r"check-in[^\n]*?(?:from|after)\s*(\d{1,2}:\d{2})"], content)
    if check_in_time:
        details.check_in_time = parse_time(check_in_time)

    check_out_time = first_match([r"check-out[^\n]*?(?:until|before)\s*(\d{1,2}:\d{2})"], content)
    if check_out_time:
        details.check_out_time = parse_time(check_out_time)

    if re.search(r"breakfast\s+included", content, re.IGNORECASE):
        details.amenities.append("Breakfast")
    if re.search(r"\bwi-?fi\b", content, re.IGNORECASE):
        details.amenities.append("WiFi")
    if re.search(r"\bparking\b", content, re.IGNORECASE):
        details.amenities.append("Parking")

    return details
