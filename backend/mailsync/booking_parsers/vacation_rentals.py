"""
Vacation Rental Extractor

VRBO/HomeAway, Vacasa, TripAdvisor Rentals and FlipKey stays. Beyond the
usual stay fields these emails carry host contact details, a fee
breakdown (nightly rate, cleaning fee, security deposit) and sometimes GPS
coordinates for the property.
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
    parse_amount,
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
from ..logging_config import get_logger

logger = get_logger(__name__)

RENTAL_BRANDS = {
    "vrbo": {
        "domains": ["vrbo.com", "homeaway.com"],
        "names": ["VRBO", "HomeAway"],
        "patterns": [r"vrbo", r"homeaway"],
        "confirmation": r"\b(\d{7,})\b",
    },
    "vacasa": {
        "domains": ["vacasa.com"],
        "names": ["Vacasa"],
        "patterns": [r"vacasa"],
        "confirmation": r"\b(\d{6,})\b",
    },
    "tripadvisor": {
        "domains": ["tripadvisor.com", "tripadvisorrentals.com"],
        "names": ["TripAdvisor Rentals"],
        "patterns": [r"tripadvisor.*rental"],
        "confirmation": r"\b(\d{6,})\b",
    },
    "flipkey": {
        "domains": ["flipkey.com"],
        "names": ["FlipKey"],
        "patterns": [r"flipkey"],
        "confirmation": r"\b(\d{6,})\b",
    },
}

SUBJECT_PATTERNS = [
    r"booking\s+confirmed",
    r"reservation\s+confirmed",
    r"property\s+booking",
    r"vacation\s+rental",
    r"your\s+stay\s+at",
    r"booking\s+request\s+accepted",
    r"rental\s+confirmation",
]

PROPERTY_TYPES = [
    "house", "villa", "apartment", "condo", "cottage", "cabin", "chalet", "townhouse",
]

PROPERTY_TYPE_PATTERNS = [
    (r"\b(?:house|home)\b", "house"),
    (r"\bvilla\b", "villa"),
    (r"\bapartment\b", "apartment"),
    (r"\bcondo(?:minium)?\b", "condo"),
    (r"\bcottage\b", "cottage"),
    (r"\bcabin\b", "cabin"),
    (r"\bchalet\b", "chalet"),
    (r"\btownhouse\b", "townhouse"),
    (r"\bloft\b", "loft"),
]

STRUCTURE_CUES = [
    r"check[\s-]?in",
    r"check[\s-]?out",
    r"property|house|villa|apartment|condo",
    r"host|owner|property\s+manager",
    r"instruction|direction|access|key|code",
    r"rules",
]

FEE_CUES = [
    r"(?:security|damage)\s+deposit",
    r"cleaning\s+fee",
    r"service\s+fee",
    r"per\s+night|nightly\s+rate",
]

SUBJECT_TITLE_PATTERNS = [
    r"booking\s+(?:for|at)\s+(.+?)$",
    r"reservation\s+(?:for|at)\s+(.+?)$",
    r"your\s+stay\s+at\s+(.+?)$",
]

CONTENT_TITLE_PATTERNS = [
    r"^\s*property\s+name:[ \t]*([^\n]+)",
    r"^\s*property:[ \t]*([^\n]+)",
    r"^\s*listing\s+title:[ \t]*([^\n]+)",
]

CHECK_IN_PATTERNS = [
    r"check[\s-]?in(?:\s+date)?:[ \t]*([^\n]+)",
    r"arrival(?:\s+date)?:[ \t]*([^\n]+)",
]

CHECK_OUT_PATTERNS = [
    r"check[\s-]?out(?:\s+date)?:[ \t]*([^\n]+)",
    r"departure(?:\s+date)?:[ \t]*([^\n]+)",
]

CONFIRMATION_PATTERNS = [
    r"confirmation\s*(?:number|code|#)?:?\s*((?-i:[A-Z0-9][A-Z0-9-]{5,}))",
    r"reservation\s*(?:number|code|#)?:?\s*((?-i:[A-Z0-9][A-Z0-9-]{5,}))",
    r"booking\s*(?:number|id|reference|#)?:?\s*((?-i:[A-Z0-9][A-Z0-9-]{5,}))",
]

COORDINATE_PATTERN = (
    r"(?:coordinates|gps|lat(?:itude)?(?:\s*/\s*long?(?:itude)?)?):?\s*"
    r"(-?\d{1,2}\.\d{3,}),\s*(-?\d{1,3}\.\d{3,})"
)

AMENITIES = ["wifi", "pool", "parking", "kitchen", "washer", "dryer", "air conditioning", "heating"]


class VacationRentalExtractor:
    """Whole-property rentals outside Airbnb."""

    provider = "vacation_rental"
    display_name = "Vacation Rentals"
    priority = 85

    def detect(self, email: RawEmail) -> SignalSet:
        content = get_email_content(email)
        return {
            "domain": check_domain_signal(
                email.sender,
                {key: brand["domains"] for key, brand in RENTAL_BRANDS.items()},
                {key: brand["patterns"] for key, brand in RENTAL_BRANDS.items()},
                pattern_confidence=0.6,
            ),
            "provider": check_brand_signal(
                email.subject,
                content,
                {key: brand["names"] for key, brand in RENTAL_BRANDS.items()},
                body_confidence=0.9,
                subject_confidence=0.9,
            ),
            "subject": check_subject_signal(email.subject, SUBJECT_PATTERNS, 0.8),
            "property_type": _property_type_signal(content),
            "structure": check_structure_signal(
                content, STRUCTURE_CUES, base=0.6, step=0.08, minimum=3,
                source="structure:rental",
            ),
            "fees": check_structure_signal(
                content, FEE_CUES, base=0.7, step=0.05, minimum=2, source="fees:rental"
            ),
        }

    def can_parse(self, email: RawEmail) -> bool:
        signals = self.detect(email)
        if not signals["domain"].matched and signals["property_type"].confidence > 0.7:
            logger.debug(
                f"Potential vacation rental sender: {email.sender}",
                extra={"parser": self.provider},
            )
        return has_minimum_signals(signals)

    def parse(self, email: RawEmail) -> BookingRecord:
        started = time.perf_counter()
        content = get_email_content(email)
        signals = self.detect(email)

        brand = signals["provider"].value or signals["domain"].value or self.provider
        location_name, address = extract_location(content)
        if location_name is None:
            location_name = first_match([r"^\s*city:[ \t]*([^,\n]+)"], content, re.IGNORECASE | re.MULTILINE)
        lat, lng = _extract_coordinates(content)

        details = _extract_details(content)
        total = first_match([r"total(?:\s+cost|\s+price)?:?\s*\$?\s*([\d,]+\.?\d*)"], content)

        confidence = (
            signals["provider"].confidence
            or signals["domain"].confidence
            or 0.7
        )

        return build_record(
            email,
            self.provider,
            started,
            confidence=confidence,
            provider=brand,
            booking_type=BookingType.ACCOMMODATION,
            title=_extract_property_name(content, email.subject),
            confirmation_number=_extract_confirmation(content, brand),
            location_name=location_name,
            location_address=address,
            location_lat=lat,
            location_lng=lng,
            start_date=first_date(CHECK_IN_PATTERNS, content),
            end_date=first_date(CHECK_OUT_PATTERNS, content),
            total_price=parse_amount(total) if total else None,
            price_per_night=details.nightly_rate,
            currency=detect_currency(content),
            details=details,
            status=detect_booking_status(email.subject, content),
        )


def _property_type_signal(content: str) -> DetectionSignal:
    found = [
        kind for kind in PROPERTY_TYPES
        if re.search(rf"\b{kind}\b", content or "", re.IGNORECASE)
    ]
    if found:
        return DetectionSignal(True, min(0.7 + len(found) * 0.1, 1.0), found, "property-type")
    return NO_SIGNAL


def _extract_property_name(content: str, subject: str) -> str:
    name = first_match(SUBJECT_TITLE_PATTERNS, subject)
    if name:
        return name
    name = first_match(CONTENT_TITLE_PATTERNS, content, re.IGNORECASE | re.MULTILINE)
    if name:
        return name
    return "Vacation Rental"


def _extract_confirmation(content: str, brand: str) -> Optional[str]:
    number = first_match(CONFIRMATION_PATTERNS, content)
    if number:
        return number
    pattern = RENTAL_BRANDS.get(brand, {}).get("confirmation")
    return first_match([pattern], content) if pattern else None


def _extract_coordinates(content: str) -> tuple[Optional[float], Optional[float]]:
    match = re.search(COORDINATE_PATTERN, content or "", re.IGNORECASE)
    if not match:
        return None, None
    lat, lng = float(match.group(1)), float(match.group(2))
    if -90 <= lat <= 90 and -180 <= lng <= 180:
        return lat, lng
    return None, None


def _amount(patterns, content: str) -> Optional[float]:
    value = first_match(patterns, content)
    return parse_amount(value) if value else None


def _extract_details(content: str) -> BookingDetails:
    details = BookingDetails()

    for pattern, kind in PROPERTY_TYPE_PATTERNS:
        if re.search(pattern, content, re.IGNORECASE):
            details.property_type = kind
            break

    details.host_name = first_match(
        [r"host(?:ed\s+by)?:[ \t]*([A-Za-z][A-Za-z .'-]+?)[ \t]*(?:\n|,|$)",
         r"owner:[ \t]*([A-Za-z][A-Za-z .'-]+?)[ \t]*(?:\n|,|$)"],
        content,
        re.IGNORECASE | re.MULTILINE,
    )
    details.host_email = first_match(
        [r"host\s+email:?\s*([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"], content
    )
    phone = first_match([r"host\s+phone:?[ \t]*([\d ()+-]{7,})"], content)
    details.host_phone = phone.strip() if phone else None

    details.nightly_rate = _amount(
        [r"(?:per\s+night|nightly\s+rate):?\s*\$?\s*([\d,]+\.?\d*)",
         r"\$\s*([\d,]+\.?\d*)\s*(?:per|/)\s*night"],
        content,
    )
    details.security_deposit = _amount(
        [r"(?:security|damage)\s+deposit:?\s*\$?\s*([\d,]+\.?\d*)"], content
    )
    details.cleaning_fee = _amount([r"cleaning\s+fee:?\s*\$?\s*([\d,]+\.?\d*)"], content)
    details.service_fee = _amount([r"service\s+fee:?\s*\$?\s*([\d,]+\.?\d*)"], content)

    details.num_guests = first_int([r"(?:sleeps|accommodates|guests?):?\s*(\d+)"], content)
    bedrooms = first_int([r"(\d+)\s*(?:bedrooms?|br)\b"], content)
    if bedrooms:
        details.extras["bedrooms"] = bedrooms

    check_in_time = first_match(
        [r"check[\s-]?in\s+(?:time|after|from):?\s*(\d{1,2}(?::\d{2})?\s*(?:[ap]\.?m\.?)?)"], content
    )
    if check_in_time:
        details.check_in_time = parse_time(_with_minutes(check_in_time))
    check_out_time = first_match(
        [r"check[\s-]?out\s+(?:time|by|before):?\s*(\d{1,2}(?::\d{2})?\s*(?:[ap]\.?m\.?)?)"], content
    )
    if check_out_time:
        details.check_out_time = parse_time(_with_minutes(check_out_time))

    details.amenities = [
        amenity for amenity in AMENITIES
        if re.search(rf"\b{amenity}\b", content, re.IGNORECASE)
    ]

    return details


def _with_minutes(value: str) -> str:
    """'4 PM' -> '4:00 PM' so parse_time accepts hour-only values."""
    return re.sub(r"^(\d{1,2})(?![:\d])\s*", r"\1:00 ", value.strip())
