"""
Booking Parsers

Provider extractors that turn travel confirmation emails into BookingRecords,
plus the registry that selects between them.
"""

from .ai_fallback import AIFallbackExtractor, build_default_fallback, build_llm_completion
from .airbnb import AirbnbExtractor
from .airlines import AirlineExtractor
from .base import (
    BookingDetails,
    BookingExtractor,
    BookingRecord,
    BookingStatus,
    BookingType,
    FlightLeg,
    ParserMetadata,
    RawEmail,
    confirmation_hash,
)
from .booking_com import BookingComExtractor
from .hotel_chains import HotelChainsExtractor
from .registry import ExtractorRegistry, build_default_registry
from .restaurants import RestaurantExtractor
from .signals import DetectionSignal, has_minimum_signals
from .vacation_rentals import VacationRentalExtractor

__all__ = [
    "AIFallbackExtractor",
    "AirbnbExtractor",
    "AirlineExtractor",
    "BookingComExtractor",
    "BookingDetails",
    "BookingExtractor",
    "BookingRecord",
    "BookingStatus",
    "BookingType",
    "DetectionSignal",
    "ExtractorRegistry",
    "FlightLeg",
    "HotelChainsExtractor",
    "ParserMetadata",
    "RawEmail",
    "RestaurantExtractor",
    "VacationRentalExtractor",
    "build_default_fallback",
    "build_default_registry",
    "build_llm_completion",
    "confirmation_hash",
    "has_minimum_signals",
]
