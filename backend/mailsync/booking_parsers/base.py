"""
Booking Parser Base - Shared Types and Extraction Toolkit

Contains:
- Booking record types (RawEmail, BookingRecord, BookingDetails, FlightLeg)
- The BookingExtractor protocol every provider extractor satisfies
- Common utility functions for date, price, time and currency parsing
- Default confidence scoring and record assembly
"""

import hashlib
import re
import time
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from bs4 import BeautifulSoup
from dateutil import parser as dateutil_parser

PARSER_VERSION = "v1.0"
CONFIRMATION_HASH_LENGTH = 16


class BookingType(str, Enum):
    """Closed set of booking categories"""

    ACCOMMODATION = "accommodation"
    FLIGHT = "flight"
    RESTAURANT = "restaurant"
    ACTIVITY = "activity"
    CAR_RENTAL = "car_rental"
    TRAIN = "train"
    CRUISE = "cruise"


class BookingStatus(str, Enum):
    """Lifecycle state reported by the provider"""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    PENDING = "pending"


@dataclass(frozen=True)
class RawEmail:
    """A fetched email, exactly as the mail provider returned it."""

    id: str
    sender: str
    subject: str
    date: str = ""
    body_text: str = ""
    body_html: Optional[str] = None
    recipient: str = ""


@dataclass
class FlightLeg:
    """One flight segment of an itinerary"""

    flight_number: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    date: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    seat: Optional[str] = None
    cabin_class: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class BookingDetails:
    """Typed booking details plus an open map for provider-specific extras.

    Fields are grouped by booking type; anything that does not fit a named
    field goes into ``extras``.
    """

    # Accommodation
    property_type: Optional[str] = None
    room_type: Optional[str] = None
    num_guests: Optional[int] = None
    num_rooms: Optional[int] = None
    amenities: list[str] = field(default_factory=list)
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    host_name: Optional[str] = None
    host_email: Optional[str] = None
    host_phone: Optional[str] = None
    pin_code: Optional[str] = None
    nightly_rate: Optional[float] = None
    cleaning_fee: Optional[float] = None
    security_deposit: Optional[float] = None
    service_fee: Optional[float] = None

    # Flight
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    seat_number: Optional[str] = None
    cabin_class: Optional[str] = None
    all_flights: list[FlightLeg] = field(default_factory=list)

    # Restaurant
    party_size: Optional[int] = None
    cuisine_type: Optional[str] = None
    meal_period: Optional[str] = None
    special_requests: Optional[str] = None

    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize populated fields only."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or value == [] or value == {}:
                continue
            if f.name == "all_flights":
                value = [leg.to_dict() for leg in value]
            result[f.name] = value
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "BookingDetails":
        """Build details from a loose mapping; unknown keys land in extras.

        Known fields are coerced to their declared type; a value that does
        not coerce is dropped.
        """
        known = {f.name for f in fields(cls)} - {"extras", "all_flights"}
        details = cls()
        for key, value in (data or {}).items():
            if value is None:
                continue
            if key in known:
                value = _coerce_detail(key, value)
                if value is not None:
                    setattr(details, key, value)
            elif key == "all_flights" and isinstance(value, list):
                leg_fields = {f.name for f in fields(FlightLeg)}
                details.all_flights = [
                    FlightLeg(**{k: v for k, v in leg.items() if k in leg_fields})
                    for leg in value
                    if isinstance(leg, dict)
                ]
            else:
                details.extras[key] = value
        return details


INT_DETAIL_FIELDS = {"num_guests", "num_rooms", "party_size"}
AMOUNT_DETAIL_FIELDS = {"nightly_rate", "cleaning_fee", "security_deposit", "service_fee"}
TIME_DETAIL_FIELDS = {"check_in_time", "check_out_time"}
LIST_DETAIL_FIELDS = {"amenities"}


def _coerce_detail(name: str, value: Any) -> Any:
    """Value converted to the type of the named BookingDetails field, or None."""
    if isinstance(value, bool):
        return None

    if name in INT_DETAIL_FIELDS:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, int):
            return value if value > 0 else None
        match = re.match(r"^\s*(\d+)\b", str(value))
        return int(match.group(1)) if match and int(match.group(1)) > 0 else None

    if name in AMOUNT_DETAIL_FIELDS:
        if isinstance(value, (int, float)):
            return float(value) if value >= 0 else None
        if isinstance(value, str) and re.search(r"\d", value):
            return parse_amount(value)
        return None

    if name in TIME_DETAIL_FIELDS:
        return parse_time(value) if isinstance(value, str) else None

    if name in LIST_DETAIL_FIELDS:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list):
            return None
        items = [str(item).strip() for item in value if isinstance(item, (str, int, float))]
        return [item for item in items if item] or None

    if isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


@dataclass
class ParserMetadata:
    """Which extractor produced a record and how sure it was."""

    parser_used: str = ""
    confidence: float = 0.0
    parsing_time_ms: int = 0
    parsed_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    parser_version: str = PARSER_VERSION

    def __post_init__(self):
        self.confidence = min(max(float(self.confidence), 0.0), 1.0)


@dataclass
class BookingRecord:
    """Structured booking extracted from a single email."""

    provider: str
    booking_type: BookingType
    title: str
    start_date: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    confirmation_number: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    end_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    total_price: Optional[float] = None
    price_per_night: Optional[float] = None
    currency: Optional[str] = None
    details: BookingDetails = field(default_factory=BookingDetails)
    email_id: str = ""
    email_date: str = ""
    email_subject: str = ""
    is_ai_parsed: bool = False
    metadata: ParserMetadata = field(default_factory=ParserMetadata)

    def __post_init__(self):
        self.booking_type = BookingType(self.booking_type)
        self.status = BookingStatus(self.status)

    @property
    def confidence(self) -> float:
        return self.metadata.confidence

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["booking_type"] = self.booking_type.value
        data["status"] = self.status.value
        data["details"] = self.details.to_dict()
        data["metadata"] = asdict(self.metadata)
        return data


@runtime_checkable
class BookingExtractor(Protocol):
    """Capability shared by every extractor the registry can hold."""

    provider: str
    display_name: str
    priority: int

    def can_parse(self, email: RawEmail) -> bool: ...

    def parse(self, email: RawEmail) -> BookingRecord: ...


# ============================================================================
# EMAIL CONTENT HELPERS
# ============================================================================


BLOCK_TAGS = [
    "p", "div", "br", "tr", "li", "table", "section",
    "h1", "h2", "h3", "h4", "h5", "h6",
]
CELL_TAGS = ["td", "th"]


def strip_html(html: str) -> str:
    """Convert an HTML body to text, one block element per line.

    Inline markup stays on its line so 'Label: value' pairs survive
    (<p><strong>Check-in:</strong> March 15</p> -> 'Check-in: March 15').
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    for tag in soup.find_all(CELL_TAGS):
        tag.insert_after(" ")
    for tag in soup.find_all(BLOCK_TAGS):
        tag.insert_after("\n")

    lines = (re.sub(r"\s+", " ", line).strip() for line in soup.get_text().splitlines())
    return "\n".join(line for line in lines if line)


def get_email_content(email: RawEmail) -> str:
    """Prefer the plain-text body; fall back to stripped HTML."""
    if email.body_text and email.body_text.strip():
        return email.body_text
    if email.body_html:
        return strip_html(email.body_html)
    return ""


def has_keywords(text: str, keywords) -> bool:
    lower = (text or "").lower()
    return any(keyword.lower() in lower for keyword in keywords)


def is_from_domain(email: RawEmail, domains) -> bool:
    sender = (email.sender or "").lower()
    return any(domain in sender for domain in domains)


def first_match(patterns, text: str, flags: int = re.IGNORECASE) -> Optional[str]:
    """Return the first capture group of the first pattern that matches."""
    if not text:
        return None
    for pattern in patterns:
        match = re.search(pattern, text, flags)
        if match and match.group(1) and match.group(1).strip():
            return match.group(1).strip()
    return None


def first_int(patterns, text: str) -> Optional[int]:
    value = first_match(patterns, text)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


# ============================================================================
# DATE / TIME / PRICE PARSING
# ============================================================================

MONTH_PATTERN = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?"
    r"|Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)

DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d-%B-%Y",
]

# Date-shaped substrings searched for inside longer lines
DATE_SHAPES = [
    rf"\b{MONTH_PATTERN}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b",
    rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+{MONTH_PATTERN}\.?,?\s+\d{{4}}\b",
    r"\b\d{4}[-/]\d{1,2}[-/]\d{1,2}\b",
    r"\b\d{1,2}/\d{1,2}/\d{4}\b",
    rf"\b\d{{1,2}}-{MONTH_PATTERN}-\d{{4}}\b",
]

TIME_12H_PATTERN = r"\b(\d{1,2}):(\d{2})\s*([AaPp])\.?\s*[Mm]\b"
TIME_24H_PATTERN = r"\b(\d{1,2}):(\d{2})\b"

PRICE_PATTERNS = [
    r"\$\s?([\d,]+\.?\d*)",
    r"USD\s?([\d,]+\.?\d*)",
    r"([\d,]+\.?\d*)\s?USD",
    r"Total:?\s?\$?\s?([\d,]+\.?\d*)",
]

CURRENCY_CODES = ("USD", "EUR", "GBP", "CAD", "AUD", "JPY", "CNY", "MXN", "CHF")
CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY"}


def _normalize_date_text(text: str) -> str:
    text = re.sub(r"(\d)(?:st|nd|rd|th)\b", r"\1", text)
    text = re.sub(r"\bSept\b", "Sep", text, flags=re.IGNORECASE)
    text = re.sub(rf"({MONTH_PATTERN})\.", r"\1", text, flags=re.IGNORECASE)
    text = text.replace(",", " ")
    return re.sub(r"\s+", " ", text).strip()


def _try_formats(text: str) -> Optional[str]:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_date(text: str) -> Optional[str]:
    """Parse a date in any common email format to YYYY-MM-DD.

    Literal formats are tried first, then date-shaped substrings, then
    dateutil's fuzzy parser. Text without a four-digit year is not guessed.
    Returns None when nothing parses.
    """
    if not text or not text.strip():
        return None

    iso = _try_formats(_normalize_date_text(text))
    if iso:
        return iso

    # ISO timestamps (2024-01-15T10:30:00Z)
    stamp = re.match(r"^\s*(\d{4}-\d{2}-\d{2})[T ]\d", text)
    if stamp:
        iso = _try_formats(stamp.group(1))
        if iso:
            return iso

    for shape in DATE_SHAPES:
        match = re.search(shape, text, re.IGNORECASE)
        if match:
            iso = _try_formats(_normalize_date_text(match.group(0)))
            if iso:
                return iso

    if not re.search(r"\b(?:19|20)\d{2}\b", text):
        return None

    try:
        return dateutil_parser.parse(text, fuzzy=True).date().isoformat()
    except (ValueError, OverflowError):
        return None


def find_date(text: str) -> Optional[str]:
    """Return the first date-shaped substring in ``text``, parsed."""
    if not text:
        return None
    positions = []
    for shape in DATE_SHAPES:
        match = re.search(shape, text, re.IGNORECASE)
        if match:
            positions.append((match.start(), match.group(0)))
    for _, candidate in sorted(positions):
        iso = parse_date(candidate)
        if iso:
            return iso
    return None


def first_date(patterns, text: str) -> Optional[str]:
    """First labelled value (e.g. 'Check-in: ...') that parses as a date."""
    if not text:
        return None
    for pattern in patterns:
        for match in re.finditer(pattern, text, re.IGNORECASE):
            date = parse_date(match.group(1).strip())
            if date:
                return date
    return None


def parse_time(text: str) -> Optional[str]:
    """Parse '3:00 PM' or '15:00' style times to zero-padded HH:MM."""
    if not text:
        return None

    match = re.search(TIME_12H_PATTERN, text)
    if match:
        hours, minutes = int(match.group(1)), match.group(2)
        period = match.group(3).lower()
        if 1 <= hours <= 12 and int(minutes) < 60:
            if period == "p" and hours < 12:
                hours += 12
            elif period == "a" and hours == 12:
                hours = 0
            return f"{hours:02d}:{minutes}"

    match = re.search(TIME_24H_PATTERN, text)
    if match:
        hours, minutes = int(match.group(1)), match.group(2)
        if hours < 24 and int(minutes) < 60:
            return f"{hours:02d}:{minutes}"

    return None


def parse_amount(text: str) -> Optional[float]:
    """Extract numeric amount from text like '$1,234.50', '540.00 USD' or '63,75'."""
    if not text:
        return None

    cleaned = re.sub(r"[£$€¥\s]", "", text)

    # European decimal comma (63,75)
    if re.match(r"^\d+,\d{2}$", cleaned):
        cleaned = cleaned.replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")

    match = re.search(r"(\d+\.?\d*)", cleaned)
    if match:
        try:
            return float(match.group(1))
        except ValueError:
            pass
    return None


def parse_price(text: str) -> Optional[float]:
    """Find the first price in text; first successful pattern wins."""
    if not text:
        return None
    for pattern in PRICE_PATTERNS:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            amount = parse_amount(match.group(1))
            if amount is not None:
                return amount
    return None


def detect_currency(text: str, default: str = "USD") -> str:
    if not text:
        return default
    code = re.search(rf"\b({'|'.join(CURRENCY_CODES)})\b", text)
    if code:
        return code.group(1)
    symbol = re.search(r"[$€£¥]", text)
    if symbol:
        return CURRENCY_SYMBOLS[symbol.group(0)]
    return default


CANCELLED_PATTERNS = (r"\bcancel(?:l)?ed\b", r"\bcancellation confirm")
PENDING_PATTERNS = (r"\bpending\b", r"\bwaiting\b", r"\bawaiting\b")


def detect_booking_status(
    subject: str,
    content: str,
    cancelled_patterns=CANCELLED_PATTERNS,
    pending_patterns=PENDING_PATTERNS,
) -> BookingStatus:
    combined = f"{subject} {content}"
    if any(re.search(p, combined, re.IGNORECASE) for p in cancelled_patterns):
        return BookingStatus.CANCELLED
    if any(re.search(p, combined, re.IGNORECASE) for p in pending_patterns):
        return BookingStatus.PENDING
    return BookingStatus.CONFIRMED


# ============================================================================
# LOCATION
# ============================================================================

# "123 Main Street, Austin, TX 78701"
STREET_ADDRESS_PATTERN = (
    r"(\d+[ \t]+[^,\n]+,[ \t]*([^,\n]+?),[ \t]*([A-Z]{2})\b(?:[ \t]+\d{5}(?:-\d{4})?)?)"
)
LABELLED_ADDRESS_PATTERNS = [
    r"^\s*(?:property\s+)?address:[ \t]*([^\n]+)",
    r"^\s*location:[ \t]*([^\n]+)",
]


def extract_location(content: str) -> tuple[Optional[str], Optional[str]]:
    """Return (location_name, address), e.g. ('Austin, TX', '123 Main St, ...')."""
    if not content:
        return None, None

    match = re.search(STREET_ADDRESS_PATTERN, content)
    if match:
        return f"{match.group(2).strip()}, {match.group(3)}", match.group(1).strip()

    address = first_match(LABELLED_ADDRESS_PATTERNS, content, re.IGNORECASE | re.MULTILINE)
    if address:
        city = re.search(r",\s*([^,]+),\s*([A-Z]{2})\b", address)
        if city:
            return f"{city.group(1).strip()}, {city.group(2)}", address
        return None, address

    return None, None


# ============================================================================
# CONFIDENCE AND RECORD ASSEMBLY
# ============================================================================


def default_confidence(record: BookingRecord) -> float:
    """Score a record by which fields were populated (capped at 1.0)."""
    score = 0.0
    if record.title:
        score += 0.2
    if record.start_date:
        score += 0.2
    if record.provider:
        score += 0.1
    if record.booking_type:
        score += 0.1
    if record.confirmation_number:
        score += 0.1
    if record.location_name:
        score += 0.1
    if record.total_price:
        score += 0.1
    if record.end_date or record.start_time:
        score += 0.1
    return min(round(score, 2), 1.0)


def build_record(
    email: RawEmail,
    parser_used: str,
    started: float,
    confidence: Optional[float] = None,
    **booking,
) -> BookingRecord:
    """Assemble a BookingRecord with source and parser metadata.

    Args:
        email: Source email
        parser_used: Provider id of the extractor
        started: time.perf_counter() value taken when parsing began
        confidence: Explicit confidence; default scoring when None
        **booking: BookingRecord fields

    Returns:
        BookingRecord whose start_date falls back to the email's own date
    """
    if not booking.get("start_date"):
        booking["start_date"] = parse_date(email.date)

    record = BookingRecord(
        email_id=email.id,
        email_date=email.date,
        email_subject=email.subject,
        **booking,
    )
    record.metadata = ParserMetadata(
        parser_used=parser_used,
        confidence=default_confidence(record) if confidence is None else confidence,
        parsing_time_ms=int((time.perf_counter() - started) * 1000),
    )
    return record


def confirmation_hash(confirmation_number: Optional[str], email_id: str) -> str:
    """Short SHA-256 digest used as the booking deduplication key."""
    source = confirmation_number or email_id
    return hashlib.sha256(source.encode("utf-8")).hexdigest()[:CONFIRMATION_HASH_LENGTH]
