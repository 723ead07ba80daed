"""
Airline Extractor (Multi-Carrier)

Flight confirmations and e-tickets from the major carriers. The itinerary
is split into legs on its Outbound/Return/Departure/Flight headings; the
first leg fills the record and every leg is kept in details.all_flights,
so a round trip stays a single booking.
"""

import re
import time
from typing import Optional

from .base import (
    BookingDetails,
    BookingRecord,
    BookingType,
    FlightLeg,
    RawEmail,
    build_record,
    detect_booking_status,
    detect_currency,
    find_date,
    first_match,
    get_email_content,
    has_keywords,
    parse_amount,
    parse_price,
    parse_time,
)

# carrier key -> (display name, sender fragments)
AIRLINES = {
    "united": ("United Airlines", ["united.com", "unitedairlines"]),
    "delta": ("Delta Air Lines", ["delta.com", "deltaairlines"]),
    "american": ("American Airlines", ["@aa.com", ".aa.com", "americanairlines"]),
    "southwest": ("Southwest Airlines", ["southwest.com"]),
    "jetblue": ("JetBlue", ["jetblue.com"]),
    "alaska": ("Alaska Airlines", ["alaskaair.com"]),
    "spirit": ("Spirit Airlines", ["spirit.com"]),
    "frontier": ("Frontier Airlines", ["flyfrontier.com", "frontier.com"]),
    "lufthansa": ("Lufthansa", ["lufthansa.com"]),
    "airfrance": ("Air France", ["airfrance"]),
    "klm": ("KLM", ["klm.com"]),
    "british_airways": ("British Airways", ["britishairways", "@ba.com"]),
    "emirates": ("Emirates", ["emirates.com"]),
    "qantas": ("Qantas", ["qantas.com"]),
    "air_canada": ("Air Canada", ["aircanada.com", "aircanada.ca"]),
    "singapore_airlines": ("Singapore Airlines", ["singaporeair.com"]),
}

SUBJECT_KEYWORDS = [
    "flight confirmation",
    "booking confirmation",
    "ticket",
    "itinerary",
    "boarding pass",
    "eticket",
    "your flight",
    "reservation",
    "trip confirmation",
]

FLIGHT_NUMBER_PATTERNS = [
    r"(?:flight|flt)(?:\s+number)?:?\s*((?-i:[A-Z][A-Z0-9])\s?\d{1,4})\b",
    r"(?-i:\b([A-Z]{2}\s?\d{1,4})\b)",
]

AIRPORT_PATTERNS = [
    # San Francisco (SFO) to New York (JFK)
    r"\(([A-Z]{3})\)[^()\n]*?(?:\bto\b|→|-|–|>)[^()\n]*?\(([A-Z]{3})\)",
    # SFO → JFK, SFO - JFK
    r"\b([A-Z]{3})\s*(?:\bto\b|→|-|–|>)\s*([A-Z]{3})\b",
]

DEPART_TIME_PATTERN = r"depart(?:s|ure|ing)?:?\s*(\d{1,2}:\d{2}\s*(?:[AP]\.?M\.?)?)"
ARRIVE_TIME_PATTERN = r"arriv(?:e|es|al|ing):?\s*(\d{1,2}:\d{2}\s*(?:[AP]\.?M\.?)?)"
SEAT_PATTERN = r"seat:?\s*([A-Z]?\d{1,3}[A-Z]?)\b"

CABIN_CLASSES = [
    ("first class", "First"),
    ("business", "Business"),
    ("premium economy", "Premium Economy"),
    ("basic economy", "Basic Economy"),
    ("main cabin", "Main Cabin"),
    ("economy", "Economy"),
]

CONFIRMATION_PATTERNS = [
    r"confirmation\s*(?:code|number|#)?:?\s*((?-i:[A-Z0-9]{5,}))",
    r"(?:record|booking)\s*locator:?\s*((?-i:[A-Z0-9]{5,}))",
    r"reference\s*(?:number|#)?:?\s*((?-i:[A-Z0-9]{5,}))",
    r"ticket\s*number:?\s*(\d[\d-]+)",
]

TOTAL_PATTERNS = [
    r"total\s*(?:fare|price|amount|cost)?:?\s*(?:(?-i:[A-Z]{3})\s*)?\$?\s*([\d,]+\.?\d*)",
    r"\bfare:?\s*\$?\s*([\d,]+\.?\d*)",
    r"amount\s*(?:paid|due)?:?\s*\$?\s*([\d,]+\.?\d*)",
]

CANCELLED_PATTERNS = (
    r"\bcancel(?:l)?ed\b",
    r"\bcancellation confirm",
    r"\brefund(?:ed| issued| processed)\b",
)
PENDING_PATTERNS = (r"\bpending\b", r"\bwait-?list(?:ed)?\b", r"\bstandby\b")

MAX_LEGS = 4

# A leg starts at one of these headings, but not at field labels such as
# "Departure: 8:05 AM" or "Departure airport: SFO"
SEGMENT_HEADING_PATTERN = re.compile(
    r"^\s*(?:outbound|inbound|return(?:ing)?|departure|departing|flight|segment|leg)\b"
    r"(?!\s*(?:airport|city|gate|terminal|time)\b)"
    r"(?!\s*:?\s*\d{1,2}:\d{2})",
    re.IGNORECASE,
)


class AirlineExtractor:
    """Flight bookings for the carriers listed in AIRLINES."""

    provider = "airline"
    display_name = "Airline (Multi)"
    priority = 85

    def can_parse(self, email: RawEmail) -> bool:
        if detect_carrier(email.sender) is None:
            return False
        return has_keywords(email.subject, SUBJECT_KEYWORDS)

    def parse(self, email: RawEmail) -> BookingRecord:
        started = time.perf_counter()
        content = get_email_content(email)

        carrier = detect_carrier(email.sender) or self.provider
        airline = AIRLINES[carrier][0] if carrier in AIRLINES else "Airline"

        legs = extract_flights(content)
        primary = legs[0] if legs else FlightLeg()

        details = BookingDetails(
            airline=airline,
            flight_number=primary.flight_number,
            departure_airport=primary.departure_airport,
            arrival_airport=primary.arrival_airport,
            seat_number=primary.seat,
            cabin_class=primary.cabin_class,
            all_flights=legs,
        )

        title = primary.flight_number or (
            f"{airline} {primary.departure_airport or 'Flight'} "
            f"to {primary.arrival_airport or 'Destination'}"
        )
        location_name = None
        if primary.departure_airport and primary.arrival_airport:
            location_name = f"{primary.departure_airport} to {primary.arrival_airport}"

        total = first_match(TOTAL_PATTERNS, content)

        return build_record(
            email,
            self.provider,
            started,
            provider=carrier,
            booking_type=BookingType.FLIGHT,
            title=title,
            confirmation_number=first_match(CONFIRMATION_PATTERNS, content),
            location_name=location_name,
            start_date=primary.date,
            start_time=primary.departure_time,
            end_time=primary.arrival_time,
            total_price=parse_amount(total) if total else parse_price(content),
            currency=detect_currency(content),
            details=details,
            status=detect_booking_status(
                email.subject, content, CANCELLED_PATTERNS, PENDING_PATTERNS
            ),
        )


def detect_carrier(sender: str) -> Optional[str]:
    """Carrier key for a sender address, e.g. 'united' for united.com."""
    sender = (sender or "").lower()
    for key, (_, fragments) in AIRLINES.items():
        if any(fragment in sender for fragment in fragments):
            return key
    return None


def _has_leg_data(lines: list[str]) -> bool:
    segment = "\n".join(lines)
    if first_match(FLIGHT_NUMBER_PATTERNS, segment):
        return True
    return any(re.search(pattern, segment) for pattern in AIRPORT_PATTERNS)


def split_segments(content: str) -> list[str]:
    """Split an itinerary into one section per flight leg.

    A heading opens a new section only once the current one holds a flight
    number or route, so "Outbound - May 10" followed by "Flight UA 256"
    stays one leg. Text before the first heading (confirmation number,
    route summary) is appended to the first leg, after the leg's own lines.
    """
    preamble: list[str] = []
    segments: list[list[str]] = []

    for line in content.splitlines():
        if SEGMENT_HEADING_PATTERN.match(line):
            if not segments or _has_leg_data(segments[-1]):
                segments.append([line])
                continue
        if segments:
            segments[-1].append(line)
        else:
            preamble.append(line)

    if not segments:
        return [content]

    segments[0].extend(preamble)
    return ["\n".join(lines) for lines in segments]


def extract_flights(content: str) -> list[FlightLeg]:
    legs = []
    for segment in split_segments(content):
        leg = _parse_leg(segment)
        if leg.flight_number or (leg.departure_airport and leg.arrival_airport):
            legs.append(leg)
        if len(legs) == MAX_LEGS:
            break
    return legs


def _parse_leg(segment: str) -> FlightLeg:
    leg = FlightLeg()

    number = first_match(FLIGHT_NUMBER_PATTERNS, segment)
    if number:
        leg.flight_number = re.sub(r"^([A-Z0-9]{2})\s*(\d)", r"\1 \2", number.upper())

    for pattern in AIRPORT_PATTERNS:
        match = re.search(pattern, segment)
        if match:
            leg.departure_airport, leg.arrival_airport = match.group(1), match.group(2)
            break

    leg.date = find_date(segment)

    depart = first_match([DEPART_TIME_PATTERN], segment)
    if depart:
        leg.departure_time = parse_time(depart)
    arrive = first_match([ARRIVE_TIME_PATTERN], segment)
    if arrive:
        leg.arrival_time = parse_time(arrive)

    seat = first_match([SEAT_PATTERN], segment)
    if seat:
        leg.seat = seat.upper()

    lower = segment.lower()
    for needle, label in CABIN_CLASSES:
        if needle in lower:
            leg.cabin_class = label
            break

    return leg
