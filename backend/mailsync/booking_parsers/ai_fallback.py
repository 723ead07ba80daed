"""
AI Fallback Extractor

Last resort for travel-looking emails no provider extractor claimed. The
email is sent to a language model with a fixed JSON schema; every field of
the answer is validated on its own, so one bad value never sinks the rest.
AI-parsed records are capped at 0.7 confidence.

The model call is injected as a plain ``complete(prompt) -> str`` callable;
build_llm_completion() wires it to the configured Anthropic/OpenAI provider.
"""

import json
import re
import time
from typing import Any, Callable, Optional

from config.llm_config import LLMConfig, load_llm_config

from ..llm_providers import get_llm_provider
from ..logging_config import get_logger
from .base import (
    BookingDetails,
    BookingRecord,
    BookingStatus,
    BookingType,
    RawEmail,
    build_record,
    get_email_content,
    parse_amount,
    parse_date,
    parse_time,
)

logger = get_logger(__name__)

Completion = Callable[[str], str]

MAX_CONTENT_CHARS = 3000
MAX_AI_CONFIDENCE = 0.7
MIN_AI_CONFIDENCE = 0.1

TRAVEL_KEYWORDS = [
    "booking", "reservation", "confirmation", "flight", "hotel",
    "airbnb", "rental", "restaurant", "ticket", "itinerary",
    "check-in", "check-out", "departure", "arrival", "travel",
]

REQUIRED_FIELDS = ["title", "start_date", "booking_type", "provider"]
OPTIONAL_FIELDS = ["confirmation_number", "location_name", "total_price", "end_date"]

SYSTEM_PROMPT = (
    "You are a travel booking data extractor. Extract structured data from "
    "emails and return ONLY valid JSON. Be precise and accurate."
)

PROMPT_TEMPLATE = """Extract travel booking information from this email. Return ONLY valid JSON with these fields (use null for missing values):
{{
  "provider": "company name (e.g., airbnb, united, booking.com)",
  "booking_type": "accommodation|flight|restaurant|activity|car_rental|train|cruise",
  "title": "property/flight/restaurant name",
  "confirmation_number": "booking reference",
  "location_name": "city, state/country",
  "location_address": "full address if available",
  "start_date": "YYYY-MM-DD format",
  "end_date": "YYYY-MM-DD format or null",
  "start_time": "HH:MM format or null",
  "end_time": "HH:MM format or null",
  "total_price": numeric value or null,
  "currency": "USD|EUR|GBP etc",
  "details": {{
    "flight_number": "for flights",
    "seat_number": "for flights",
    "property_type": "for accommodations",
    "party_size": "for restaurants",
    "additional_info": "any other relevant details"
  }}
}}

Email Subject: {subject}
Email From: {sender}
Email Date: {date}
Email Content:
{content}
"""


class AIFallbackExtractor:
    """Model-backed extractor used only when no provider extractor applies."""

    provider = "ai_fallback"
    display_name = "AI Parser"
    priority = 10

    def __init__(self, complete: Completion):
        self.complete = complete

    def can_parse(self, email: RawEmail) -> bool:
        text = f"{email.subject} {email.sender}".lower()
        return any(keyword in text for keyword in TRAVEL_KEYWORDS)

    def parse(self, email: RawEmail) -> BookingRecord:
        started = time.perf_counter()
        prompt = build_prompt(email)

        try:
            extracted = parse_json_response(self.complete(prompt))
        except Exception as e:
            logger.warning(
                f"AI extraction failed for email {email.id}: {e}",
                extra={"parser": self.provider},
            )
            return minimal_record(email, started)

        booking = validate_extraction(extracted, email)
        return build_record(
            email,
            self.provider,
            started,
            confidence=calculate_confidence(booking),
            **booking,
        )


def build_prompt(email: RawEmail) -> str:
    content = get_email_content(email)[:MAX_CONTENT_CHARS]
    return PROMPT_TEMPLATE.format(
        subject=email.subject,
        sender=email.sender,
        date=email.date,
        content=content,
    )


def parse_json_response(text: str) -> dict:
    """Pull the JSON object out of a model answer.

    Models sometimes wrap the JSON in prose or code fences, so the first
    complete object is decoded and anything after it is ignored.

    Raises:
        ValueError: No JSON object in the answer
    """
    if not text:
        raise ValueError("Empty completion")

    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            data, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data
        start = text.find("{", start + 1)

    raise ValueError("No JSON object in completion")


def _clean_string(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    cleaned = str(value).strip()
    if not cleaned or cleaned.lower() in ("null", "none", "n/a"):
        return None
    return cleaned


def validate_booking_type(value: Any) -> BookingType:
    try:
        return BookingType(str(value).strip().lower())
    except ValueError:
        return BookingType.ACTIVITY


def validate_date(value: Any) -> Optional[str]:
    text = _clean_string(value)
    return parse_date(text) if text else None


def validate_time(value: Any) -> Optional[str]:
    text = _clean_string(value)
    if text and re.match(r"^\d{1,2}:\d{2}$", text):
        return parse_time(text)
    return None


def validate_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None
    return parse_amount(str(value))


def validate_extraction(data: dict, email: RawEmail) -> dict:
    """Check each field independently and return BookingRecord keyword args."""
    details = data.get("details")
    status = _clean_string(data.get("status"))
    currency = _clean_string(data.get("currency"))

    return {
        "provider": _clean_string(data.get("provider")) or "unknown",
        "booking_type": validate_booking_type(data.get("booking_type")),
        "title": _clean_string(data.get("title")) or email.subject,
        "confirmation_number": _clean_string(data.get("confirmation_number")),
        "location_name": _clean_string(data.get("location_name")),
        "location_address": _clean_string(data.get("location_address")),
        "start_date": validate_date(data.get("start_date")),
        "end_date": validate_date(data.get("end_date")),
        "start_time": validate_time(data.get("start_time")),
        "end_time": validate_time(data.get("end_time")),
        "total_price": validate_price(data.get("total_price")),
        "currency": currency.upper() if currency and len(currency) == 3 else "USD",
        "details": BookingDetails.from_dict(details if isinstance(details, dict) else {}),
        "status": (
            BookingStatus(status.lower())
            if status and status.lower() in {s.value for s in BookingStatus}
            else BookingStatus.CONFIRMED
        ),
        "is_ai_parsed": True,
    }


def calculate_confidence(booking: dict) -> float:
    """Weighted field coverage scaled into [0.1, 0.7].

    Required fields count double; an 'unknown' provider counts as missing.
    """
    score = 0
    total = 0

    for name in REQUIRED_FIELDS:
        total += 2
        value = booking.get(name)
        if value and not (name == "provider" and value == "unknown"):
            score += 2

    for name in OPTIONAL_FIELDS:
        total += 1
        if booking.get(name):
            score += 1

    confidence = (score / total) * MAX_AI_CONFIDENCE
    return min(max(confidence, MIN_AI_CONFIDENCE), MAX_AI_CONFIDENCE)


def minimal_record(email: RawEmail, started: float) -> BookingRecord:
    """Placeholder record for an email the model could not handle."""
    return build_record(
        email,
        AIFallbackExtractor.provider,
        started,
        confidence=MIN_AI_CONFIDENCE,
        provider="unknown",
        booking_type=BookingType.ACTIVITY,
        title=email.subject,
        status=BookingStatus.PENDING,
        is_ai_parsed=True,
    )


def build_llm_completion(config: LLMConfig) -> Completion:
    """Completion callable backed by the configured LLM provider."""
    provider = get_llm_provider(config)

    def complete(prompt: str) -> str:
        response = provider.complete(prompt, system_prompt=SYSTEM_PROMPT)
        logger.info(
            f"AI extraction used {response.total_tokens} tokens "
            f"({response.input_tokens} in, {response.output_tokens} out), cost ${response.cost:.6f}",
            extra={"parser": AIFallbackExtractor.provider, "provider": config.provider.value},
        )
        return response.content

    return complete


def build_default_fallback() -> Optional[AIFallbackExtractor]:
    """AI fallback from environment config, or None when no LLM is configured."""
    config = load_llm_config()
    if config is None:
        logger.info("LLM not configured; AI fallback disabled")
        return None
    return AIFallbackExtractor(build_llm_completion(config))
