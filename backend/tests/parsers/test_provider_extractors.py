"""Tests for the provider booking extractors.

Each extractor is run against a realistic confirmation email from
tests/fixtures/sample_emails. Validates extraction of:
- Dates, times and stay length
- Totals, nightly rates and currency
- Confirmation numbers and locations
- Provider-specific details (flight legs, party size, host contact)
"""

import pytest

from mailsync.booking_parsers import (
    AirbnbExtractor,
    AirlineExtractor,
    BookingComExtractor,
    BookingStatus,
    BookingType,
    HotelChainsExtractor,
    RawEmail,
    RestaurantExtractor,
    VacationRentalExtractor,
)

# ============================================================================
# AIRBNB
# ============================================================================


def test_airbnb_claims_confirmation_email(load_email):
    """Test Airbnb extractor claims emails from airbnb.com with a booking subject."""
    email = load_email("airbnb_confirmation.txt")

    assert AirbnbExtractor().can_parse(email)


def test_airbnb_ignores_other_senders(load_email):
    """Test Airbnb extractor needs the airbnb.com sender, not just the subject."""
    email = load_email("booking_com_confirmation.txt")

    assert not AirbnbExtractor().can_parse(email)


def test_airbnb_extracts_stay(load_email):
    """Test Airbnb extractor extracts title, dates, price and location.

    CRITICAL: The confirmation code feeds the dedup hash; a wrong code
    means duplicate bookings on every sync.
    """
    record = AirbnbExtractor().parse(load_email("airbnb_confirmation.txt"))

    assert record.provider == "airbnb"
    assert record.booking_type == BookingType.ACCOMMODATION
    assert record.status == BookingStatus.CONFIRMED
    assert record.title == "Modern Apartment in Austin"
    assert record.confirmation_number == "HMXK-ABCD-2024"
    assert record.start_date == "2024-03-15"
    assert record.end_date == "2024-03-18"
    assert record.total_price == 450.0
    assert record.price_per_night == 150.0
    assert record.currency == "USD"
    assert record.location_name == "Austin, TX"
    assert record.location_address == "123 Congress Avenue, Austin, TX 78701"


def test_airbnb_extracts_details(load_email):
    """Test Airbnb extractor fills host, guests, times and property type."""
    record = AirbnbExtractor().parse(load_email("airbnb_confirmation.txt"))
    details = record.details

    assert details.host_name == "Sarah"
    assert details.num_guests == 2
    assert details.check_in_time == "15:00"
    assert details.check_out_time == "11:00"
    assert details.property_type == "apartment"


def test_airbnb_full_record_scores_full_confidence(load_email):
    """Test a record with every scored field populated reaches confidence 1.0."""
    record = AirbnbExtractor().parse(load_email("airbnb_confirmation.txt"))

    assert record.confidence == 1.0
    assert record.metadata.parser_used == "airbnb"
    assert record.metadata.parsing_time_ms >= 0
    assert record.email_id == "airbnb_confirmation"
    assert not record.is_ai_parsed


def test_airbnb_detects_cancellation(load_email):
    """Test cancelled reservations keep their dates but carry cancelled status."""
    record = AirbnbExtractor().parse(load_email("airbnb_cancellation.txt"))

    assert record.status == BookingStatus.CANCELLED
    assert record.title == "Beach House in Malibu"
    assert record.start_date == "2024-06-01"
    assert record.end_date == "2024-06-05"
    assert record.details.property_type == "house"


# ============================================================================
# BOOKING.COM
# ============================================================================


def test_booking_com_extracts_stay(load_email):
    """Test Booking.com extractor reads the dotted number and the EUR total."""
    email = load_email("booking_com_confirmation.txt")
    extractor = BookingComExtractor()

    assert extractor.can_parse(email)

    record = extractor.parse(email)

    assert record.provider == "booking.com"
    assert record.title == "Hotel Lisboa Plaza"
    assert record.confirmation_number == "123.456.789"
    assert record.start_date == "2024-05-10"
    assert record.end_date == "2024-05-13"
    assert record.total_price == 540.0
    assert record.currency == "EUR"
    assert record.price_per_night == 180.0
    assert record.location_address == "Travessa do Salitre 7, Lisbon, Portugal"


def test_booking_com_extracts_details(load_email):
    """Test Booking.com extractor fills room, PIN, times and amenities."""
    record = BookingComExtractor().parse(load_email("booking_com_confirmation.txt"))
    details = record.details

    assert details.pin_code == "4321"
    assert details.room_type == "Deluxe Double Room"
    assert details.num_rooms == 1
    assert details.num_guests == 2
    assert details.check_in_time == "15:00"
    assert details.check_out_time == "11:00"
    assert details.amenities == ["Breakfast", "WiFi"]


# ============================================================================
# HOTEL CHAINS
# ============================================================================


def test_hotel_chains_detects_marriott_group(load_email):
    """Test signal detection: domain, subject, structure and confirmation agree."""
    email = load_email("marriott_confirmation.txt")
    extractor = HotelChainsExtractor()

    signals = extractor.detect(email)

    assert signals["domain"].matched
    assert signals["domain"].value == "marriott"
    assert signals["domain"].confidence == 1.0
    assert signals["subject"].matched
    assert signals["confirmation"].value == "84736251"
    assert extractor.can_parse(email)


def test_hotel_chains_extracts_stay(load_email):
    """Test the detected group becomes the provider and the brand is kept."""
    record = HotelChainsExtractor().parse(load_email("marriott_confirmation.txt"))

    assert record.provider == "marriott"
    assert record.metadata.parser_used == "hotel_chains"
    assert record.confidence == 1.0
    assert record.title == "JW Marriott Los Angeles L.A. LIVE"
    assert record.confirmation_number == "84736251"
    assert record.start_date == "2024-06-20"
    assert record.end_date == "2024-06-23"
    assert record.total_price == 867.0
    assert record.price_per_night == 289.0
    assert record.location_name == "Los Angeles, CA"
    assert record.details.extras["hotel_group"] == "marriott"
    assert record.details.extras["hotel_brand"] == "JW Marriott"


def test_hotel_chains_extracts_details(load_email):
    """Test room type, occupancy and check-in/out times."""
    details = HotelChainsExtractor().parse(load_email("marriott_confirmation.txt")).details

    assert details.room_type == "Deluxe King Room"
    assert details.num_guests == 2
    assert details.num_rooms == 1
    assert details.check_in_time == "16:00"
    assert details.check_out_time == "12:00"


def test_hotel_chains_needs_two_strong_signals():
    """Test a lone brand mention is not enough to claim an email."""
    email = RawEmail(
        id="m1",
        sender="friend@example.com",
        subject="Dinner next week?",
        body_text="We could meet at the Hilton bar.",
    )

    assert not HotelChainsExtractor().can_parse(email)


# ============================================================================
# AIRLINES
# ============================================================================


def test_airline_extracts_round_trip_as_one_booking(load_email):
    """Test a two-leg itinerary yields one record with both legs.

    CRITICAL: Splitting a round trip into two bookings would double count
    the fare.
    """
    email = load_email("united_round_trip.txt")
    extractor = AirlineExtractor()

    assert extractor.can_parse(email)

    record = extractor.parse(email)

    assert record.provider == "united"
    assert record.booking_type == BookingType.FLIGHT
    assert record.title == "UA 256"
    assert record.confirmation_number == "K7XQ2P"
    assert record.location_name == "SFO to JFK"
    assert record.start_date == "2024-05-10"
    assert record.start_time == "08:05"
    assert record.end_time == "16:40"
    assert record.total_price == 612.4
    assert record.currency == "USD"

    legs = record.details.all_flights
    assert len(legs) == 2
    assert legs[1].flight_number == "UA 789"
    assert legs[1].departure_airport == "JFK"
    assert legs[1].arrival_airport == "SFO"
    assert legs[1].date == "2024-05-15"
    assert legs[1].seat == "21C"


def test_airline_primary_leg_fills_details(load_email):
    """Test the first leg populates the flight fields of the details."""
    details = AirlineExtractor().parse(load_email("united_round_trip.txt")).details

    assert details.airline == "United Airlines"
    assert details.flight_number == "UA 256"
    assert details.departure_airport == "SFO"
    assert details.arrival_airport == "JFK"
    assert details.seat_number == "23A"
    assert details.cabin_class == "Economy"


def test_airline_parses_html_only_email(load_email):
    """Test HTML tables are flattened into lines the leg parser understands."""
    email = load_email("delta_confirmation.html")
    record = AirlineExtractor().parse(email)

    assert record.provider == "delta"
    assert record.title == "DL 1123"
    assert record.confirmation_number == "GHT5KL"
    assert record.start_date == "2024-03-12"
    assert record.start_time == "07:15"
    assert record.end_time == "09:05"
    assert record.total_price == 329.2
    assert record.details.departure_airport == "ATL"
    assert record.details.arrival_airport == "LAX"
    assert record.details.cabin_class == "Main Cabin"


def test_airline_splits_legs_on_flight_headings():
    """Test legs whose date line follows the flight number stay intact.

    CRITICAL: Each leg must keep its own flight number and date; the
    return flight must never become the primary leg.
    """
    email = RawEmail(
        id="m-ua",
        sender="United Airlines <notifications@united.com>",
        subject="Your flight confirmation",
        body_text=(
            "Confirmation number: K7XQ2P\n"
            "Flight 1: UA 256\n"
            "San Francisco (SFO) to New York (JFK)\n"
            "Date: May 10, 2024\n"
            "Departure: 8:05 AM\n"
            "Flight 2: UA 789\n"
            "New York (JFK) to San Francisco (SFO)\n"
            "Date: May 15, 2024\n"
        ),
    )

    record = AirlineExtractor().parse(email)
    legs = record.details.all_flights

    assert [leg.flight_number for leg in legs] == ["UA 256", "UA 789"]
    assert [leg.date for leg in legs] == ["2024-05-10", "2024-05-15"]
    assert legs[1].departure_airport == "JFK"
    assert record.title == "UA 256"
    assert record.start_date == "2024-05-10"
    assert record.start_time == "08:05"
    assert record.confirmation_number == "K7XQ2P"


def test_airline_preamble_fills_first_leg():
    """Test text before the first heading is kept with the first leg."""
    email = RawEmail(
        id="m-dl",
        sender="Delta <no-reply@delta.com>",
        subject="Your flight itinerary",
        body_text=(
            "Trip: ATL - LAX, Main Cabin\n"
            "Departure - Tuesday, March 12, 2024\n"
            "DL 1123\n"
        ),
    )

    legs = AirlineExtractor().parse(email).details.all_flights

    assert len(legs) == 1
    assert legs[0].flight_number == "DL 1123"
    assert legs[0].departure_airport == "ATL"
    assert legs[0].arrival_airport == "LAX"
    assert legs[0].date == "2024-03-12"
    assert legs[0].cabin_class == "Main Cabin"


def test_airline_requires_known_carrier():
    """Test an itinerary from an unknown sender is left to other extractors."""
    email = RawEmail(id="m1", sender="deals@cheapflights.example", subject="Your flight itinerary")

    assert not AirlineExtractor().can_parse(email)


# ============================================================================
# RESTAURANTS
# ============================================================================


def test_restaurant_extracts_reservation(load_email):
    """Test OpenTable reservation: platform, time, party size and requests."""
    email = load_email("opentable_reservation.txt")
    extractor = RestaurantExtractor()

    assert extractor.can_parse(email)

    record = extractor.parse(email)

    assert record.provider == "opentable"
    assert record.booking_type == BookingType.RESTAURANT
    assert record.title == "Nopa"
    assert record.confirmation_number == "2048"
    assert record.start_date == "2024-04-20"
    assert record.start_time == "19:30"
    assert record.location_name == "San Francisco, CA"
    assert record.details.party_size == 4
    assert record.details.special_requests == "Window table, birthday celebration"
    assert record.details.extras["platform"] == "opentable"


def test_restaurant_infers_meal_period_and_cuisine(load_email):
    """Test meal period comes from the time when the email does not name one."""
    details = RestaurantExtractor().parse(load_email("opentable_reservation.txt")).details

    assert details.meal_period == "dinner"
    assert details.cuisine_type == "Mediterranean"


def test_restaurant_brand_is_whole_word():
    """Test 'Tock' inside 'stock' is not read as the Tock platform."""
    email = RawEmail(
        id="m1",
        sender="updates@broker.example",
        subject="Portfolio update",
        body_text="Your stock order was filled.",
    )

    signals = RestaurantExtractor().detect(email)

    assert not signals["provider"].matched


# ============================================================================
# VACATION RENTALS
# ============================================================================


def test_vacation_rental_extracts_stay(load_email):
    """Test VRBO stay: brand, title, dates, coordinates and total."""
    email = load_email("vrbo_confirmation.txt")
    extractor = VacationRentalExtractor()

    assert extractor.can_parse(email)

    record = extractor.parse(email)

    assert record.provider == "vrbo"
    assert record.metadata.parser_used == "vacation_rental"
    assert record.confidence == pytest.approx(0.9)
    assert record.title == "Lakeside Cabin Retreat"
    assert record.confirmation_number == "HA-7781234"
    assert record.start_date == "2024-07-04"
    assert record.end_date == "2024-07-08"
    assert record.location_name == "Bend, OR"
    assert record.location_lat == pytest.approx(45.123456)
    assert record.location_lng == pytest.approx(-121.654321)
    assert record.total_price == 1400.0
    assert record.price_per_night == 225.0


def test_vacation_rental_extracts_host_and_fees(load_email):
    """Test host contact, fee breakdown, capacity and hour-only check-in."""
    details = VacationRentalExtractor().parse(load_email("vrbo_confirmation.txt")).details

    assert details.property_type == "cabin"
    assert details.host_name == "Jamie Rivera"
    assert details.host_email == "jamie@example.com"
    assert details.host_phone == "(555) 123-4567"
    assert details.nightly_rate == 225.0
    assert details.cleaning_fee == 150.0
    assert details.security_deposit == 500.0
    assert details.num_guests == 6
    assert details.extras["bedrooms"] == 2
    assert details.check_in_time == "16:00"
    assert details.check_out_time == "10:00"
    assert details.amenities == ["wifi", "parking", "kitchen"]


def test_vacation_rental_ignores_restaurant_email(load_email):
    """Test a dinner reservation gathers no rental signals."""
    email = load_email("opentable_reservation.txt")

    assert not VacationRentalExtractor().can_parse(email)
