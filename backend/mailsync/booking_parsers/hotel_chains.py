"""
Hotel Chains Extractor (Multi-Brand)

One extractor covering the large hotel groups. Detection combines
independent signals (sender domain, brand mention, subject phrasing,
reservation structure, confirmation number) and claims an email once at
least two strong signals agree. The detected group key becomes the record
provider, e.g. 'marriott' for a JW Marriott confirmation.
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
    parse_price,
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

HOTEL_GROUPS = {
    "marriott": {
        "domains": ["marriott.com", "marriottbonvoy.com", "ritzcarlton.com"],
        "brands": [
            "JW Marriott", "Marriott", "Ritz-Carlton", "St. Regis", "Westin",
            "Sheraton", "Le Méridien", "Renaissance Hotel", "Courtyard by Marriott",
            "Autograph Collection", "Bonvoy",
        ],
        "patterns": [r"marriott"],
        "confirmation": r"\b(\d{8,})\b",
    },
    "hilton": {
        "domains": ["hilton.com", "hiltonhonors.com", "res.hilton.com"],
        "brands": [
            "Hilton", "Waldorf Astoria", "Conrad Hotel", "DoubleTree",
            "Embassy Suites", "Hampton Inn", "Homewood Suites", "Curio Collection",
        ],
        "patterns": [r"hilton"],
        "confirmation": r"\b(\d{9,})\b",
    },
    "ihg": {
        "domains": ["ihg.com", "ihgrewardsclub.com", "holidayinn.com"],
        "brands": [
            "InterContinental", "Holiday Inn", "Crowne Plaza", "Kimpton",
            "Hotel Indigo", "Six Senses", "Regent Hotel", "IHG",
        ],
        "patterns": [r"\bihg\b", r"intercontinental"],
        "confirmation": r"\b(\d{8,})\b",
    },
    "hyatt": {
        "domains": ["hyatt.com", "worldofhyatt.com"],
        "brands": [
            "Park Hyatt", "Grand Hyatt", "Hyatt Regency", "Andaz",
            "Alila", "Thompson Hotel", "Hyatt",
        ],
        "patterns": [r"hyatt"],
        "confirmation": r"\b(\d{8,})\b",
    },
    "accor": {
        "domains": ["accor.com", "all.accor.com", "accorhotels.com"],
        "brands": [
            "Sofitel", "Novotel", "Fairmont", "Raffles", "Pullman",
            "Swissôtel", "Mercure", "Accor",
        ],
        "patterns": [r"accor"],
        "confirmation": r"\b(\d{8,})\b",
    },
    "fourseasons": {
        "domains": ["fourseasons.com"],
        "brands": ["Four Seasons"],
        "patterns": [r"four-?seasons"],
        "confirmation": r"\b(\d{6,})\b",
    },
    "mandarin": {
        "domains": ["mandarinoriental.com"],
        "brands": ["Mandarin Oriental"],
        "patterns": [r"mandarin"],
        "confirmation": r"\b(\d{6,})\b",
    },
    "oneandonly": {
        "domains": ["oneandonlyresorts.com", "oneandonly.com"],
        "brands": ["One&Only", "One & Only"],
        "patterns": [r"oneandonly"],
        "confirmation": r"\b(\d{6,})\b",
    },
    "auberge": {
        "domains": ["aubergeresorts.com"],
        "brands": ["Auberge Resorts", "Auberge"],
        "patterns": [r"auberge"],
        "confirmation": r"\b(\d{6,})\b",
    },
}

SUBJECT_PATTERNS = [
    r"reservation\s+confirmation",
    r"booking\s+confirmation",
    r"hotel\s+reservation",
    r"your\s+stay\s+at",
    r"reservation\s+for",
    r"confirmed\s+reservation",
    r"booking\s+details",
]

STRUCTURE_CUES = [
    r"check[\s-]?in",
    r"check[\s-]?out",
    r"\b(?:room|suite|villa|residence)\b",
    r"\b(?:guests?|adults?|child(?:ren)?|occupancy)\b",
    r"\b(?:nights?|stay)\b",
]

CONFIRMATION_PATTERNS = [
    r"confirmation\s*(?:number|#|no\.?|code)?\s*:\s*((?-i:[A-Z0-9]{6,}))",
    r"reservation\s*(?:number|#|no\.?)\s*:?\s*((?-i:[A-Z0-9]{6,}))",
    r"itinerary\s*(?:number|#)\s*:?\s*((?-i:[A-Z0-9]{6,}))",
]

SUBJECT_TITLE_PATTERNS = [
    r"confirmation\s+-\s+(.+?)$",
    r"your\s+stay\s+at\s+(.+?)$",
    r"reservation\s+(?:for|at)\s+(.+?)$",
]

CHECK_IN_PATTERNS = [
    r"check[\s-]?in(?:\s+date)?:?[ \t]*([^\n]+)",
    r"arrival(?:\s+date)?:?[ \t]*([^\n]+)",
]

CHECK_OUT_PATTERNS = [
    r"check[\s-]?out(?:\s+date)?:?[ \t]*([^\n]+)",
    r"departure(?:\s+date)?:?[ \t]*([^\n]+)",
]

TOTAL_PATTERNS = [
    r"total(?:\s+(?:stay|cost|price|charges?|for\s+stay))?:?\s*(?:(?-i:[A-Z]{3})\s*)?[$€£]?\s*([\d,]+\.?\d*)",
    r"amount\s+(?:due|paid):?\s*(?:(?-i:[A-Z]{3})\s*)?[$€£]?\s*([\d,]+\.?\d*)",
]

PER_NIGHT_PATTERNS = [
    r"(?:nightly\s+)?rate:?\s*[$€£]?\s*([\d,]+\.?\d*)\s*(?:(?-i:[A-Z]{3})\s*)?(?:per|/)\s*night",
    r"[$€£]\s*([\d,]+\.?\d*)\s*(?:(?-i:[A-Z]{3})\s*)?(?:per|/)\s*night",
    r"(?:nightly\s+rate|per\s+night):?\s*[$€£]?\s*([\d,]+\.?\d*)",
]

ROOM_TYPE_PATTERNS = [
    r"room(?:\s+type)?:[ \t]*([^\n]+)",
    r"accommodation:[ \t]*([^\n]+)",
]


class HotelChainsExtractor:
    """Marriott, Hilton, IHG, Hyatt, Accor and luxury independents."""

    provider = "hotel_chains"
    display_name = "Hotel Chains (Multi-Brand)"
    priority = 85

    def detect(self, email: RawEmail) -> SignalSet:
        """Collect every detection signal for an email."""
        content = get_email_content(email)

        domain_signal = check_domain_signal(
            email.sender,
            {key: group["domains"] for key, group in HOTEL_GROUPS.items()},
            {key: group["patterns"] for key, group in HOTEL_GROUPS.items()},
            pattern_confidence=0.7,
        )
        brand_signal = check_brand_signal(
            email.subject,
            content,
            {key: group["brands"] for key, group in HOTEL_GROUPS.items()},
        )

        return {
            "domain": domain_signal,
            "brand": brand_signal,
            "subject": check_subject_signal(email.subject, SUBJECT_PATTERNS, 0.8),
            "structure": check_structure_signal(
                content, STRUCTURE_CUES, base=0.7, step=0.05, minimum=3
            ),
            "confirmation": _confirmation_signal(content),
        }

    def can_parse(self, email: RawEmail) -> bool:
        signals = self.detect(email)
        if _group_key(signals) is None:
            return False
        return has_minimum_signals(signals)

    def parse(self, email: RawEmail) -> BookingRecord:
        started = time.perf_counter()
        content = get_email_content(email)
        signals = self.detect(email)
        group = _group_key(signals) or self.provider

        location_name, address = extract_location(content)
        details = _extract_details(content)
        details.extras["hotel_group"] = group
        brand = _brand_name(email.subject, content, group)
        if brand:
            details.extras["hotel_brand"] = brand

        total = first_match(TOTAL_PATTERNS, content)
        per_night = first_match(PER_NIGHT_PATTERNS, content)
        if per_night:
            details.nightly_rate = parse_amount(per_night)

        return build_record(
            email,
            self.provider,
            started,
            confidence=max(signal.confidence for signal in signals.values()),
            provider=group,
            booking_type=BookingType.ACCOMMODATION,
            title=_extract_title(email.subject, content, brand),
            confirmation_number=_extract_confirmation(content, group),
            location_name=location_name,
            location_address=address,
            start_date=first_date(CHECK_IN_PATTERNS, content),
            end_date=first_date(CHECK_OUT_PATTERNS, content),
            total_price=parse_amount(total) if total else parse_price(content),
            price_per_night=details.nightly_rate,
            currency=detect_currency(content),
            details=details,
            status=detect_booking_status(email.subject, content),
        )


def _confirmation_signal(content: str) -> DetectionSignal:
    number = first_match(CONFIRMATION_PATTERNS, content)
    if number:
        return DetectionSignal(True, 0.9, number, "confirmation")
    return NO_SIGNAL


def _group_key(signals: SignalSet) -> Optional[str]:
    for name in ("domain", "brand"):
        signal = signals.get(name)
        if signal and signal.matched:
            return signal.value
    return None


def _brand_name(subject: str, content: str, group: str) -> Optional[str]:
    """Most specific brand of the group mentioned in the email."""
    text = f"{subject}\n{content}".lower()
    for brand in HOTEL_GROUPS.get(group, {}).get("brands", []):
        if brand.lower() in text:
            return brand
    return None


def _extract_title(subject: str, content: str, brand: Optional[str]) -> str:
    title = first_match(SUBJECT_TITLE_PATTERNS, subject)
    if title:
        return title

    if brand:
        # Brand followed by the property name, e.g. 'JW Marriott Los Angeles'
        name = first_match([rf"({re.escape(brand)}[^\n,.:]*)"], content)
        if name:
            return name
        return brand

    return "Hotel Reservation"


def _extract_confirmation(content: str, group: str) -> Optional[str]:
    number = first_match(CONFIRMATION_PATTERNS, content)
    if number:
        return number

    pattern = HOTEL_GROUPS.get(group, {}).get("confirmation")
    if pattern:
        return first_match([pattern], content)
    return None


def _extract_details(content: str) -> BookingDetails:
    details = BookingDetails()

    details.room_type = first_match(ROOM_TYPE_PATTERNS, content)
    details.num_guests = first_int(
        [r"(\d+)\s*(?:guests?|adults?)\b", r"guests?:\s*(\d+)"], content
    )
    details.num_rooms = first_int([r"(\d+)\s*rooms?\b", r"rooms?:\s*(\d+)"], content)

    check_in_time = first_match(
        [r"check[\s-]?in\s+time:?\s*(?:after\s*)?(\d{1,2}:\d{2}\s*(?:[AP]\.?M\.?)?)"], content
    )
    if check_in_time:
        details.check_in_time = parse_time(check_in_time)

    check_out_time = first_match(
        [r"check[\s-]?out\s+time:?\s*(?:before\s*)?(\d{1,2}:\d{2}\s*(?:[AP]\.?M\.?)?)"], content
    )
    if check_out_time:
        details.check_out_time = parse_time(check_out_time)

    return details
