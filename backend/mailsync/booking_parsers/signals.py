"""
Detection signals for multi-brand booking extractors.

Each check looks at one independent piece of evidence (sender domain,
subject line, brand mentions, body structure) and returns a DetectionSignal.
An extractor claims an email once enough strong signals agree.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

MIN_SIGNAL_THRESHOLD = 2
STRONG_SIGNAL_CONFIDENCE = 0.5


@dataclass(frozen=True)
class DetectionSignal:
    matched: bool
    confidence: float
    value: Optional[Any] = None
    source: str = ""


NO_SIGNAL = DetectionSignal(matched=False, confidence=0.0)

# Named mapping of signal name -> DetectionSignal
SignalSet = dict[str, DetectionSignal]


def check_domain_signal(
    sender: str,
    domains_by_key: dict[str, list[str]],
    patterns_by_key: Optional[dict[str, list[str]]] = None,
    pattern_confidence: float = 0.7,
) -> DetectionSignal:
    """Exact domain match (1.0) or looser sender pattern match.

    Args:
        sender: Sender address (e.g. 'reservations@marriott.com')
        domains_by_key: Family key -> known sender domains
        patterns_by_key: Family key -> regex patterns tried on the sender
        pattern_confidence: Confidence for a pattern match (0.6-0.7)

    Returns:
        DetectionSignal whose value is the matching family key
    """
    sender = (sender or "").lower()

    for key, domains in domains_by_key.items():
        for domain in domains:
            if domain in sender:
                return DetectionSignal(True, 1.0, key, f"domain:{domain}")

    for key, patterns in (patterns_by_key or {}).items():
        for pattern in patterns:
            if re.search(pattern, sender, re.IGNORECASE):
                return DetectionSignal(True, pattern_confidence, key, f"pattern:{pattern}")

    return NO_SIGNAL


def check_subject_signal(subject: str, patterns, confidence: float = 0.8) -> DetectionSignal:
    for pattern in patterns:
        if re.search(pattern, subject or "", re.IGNORECASE):
            return DetectionSignal(True, confidence, None, f"subject:{pattern}")
    return NO_SIGNAL


def check_brand_signal(
    subject: str,
    content: str,
    names_by_key: dict[str, list[str]],
    body_confidence: float = 0.85,
    subject_confidence: float = 0.95,
) -> DetectionSignal:
    """Brand or platform name mentioned anywhere; stronger when in the subject."""
    subject_lower = (subject or "").lower()
    all_text = f"{subject_lower} {(content or '').lower()}"

    for key, names in names_by_key.items():
        for name in names:
            # Whole words only ('Tock' must not match 'stock')
            pattern = rf"\b{re.escape(name.lower())}\b"
            if re.search(pattern, all_text):
                in_subject = re.search(pattern, subject_lower) is not None
                confidence = subject_confidence if in_subject else body_confidence
                return DetectionSignal(True, confidence, key, f"brand:{name}")

    return NO_SIGNAL


def count_cues(content: str, cues) -> int:
    return sum(1 for cue in cues if re.search(cue, content or "", re.IGNORECASE))


def check_structure_signal(
    content: str,
    cues,
    base: float = 0.6,
    step: float = 0.08,
    minimum: int = 3,
    source: str = "structure",
) -> DetectionSignal:
    """Count structural cues in the body; needs ``minimum`` cues to register."""
    found = count_cues(content, cues)
    if found >= minimum:
        return DetectionSignal(True, min(base + found * step, 1.0), found, source)
    return NO_SIGNAL


def strong_signal_count(signals: SignalSet) -> int:
    return sum(
        1 for signal in signals.values()
        if signal and signal.confidence > STRONG_SIGNAL_CONFIDENCE
    )


def has_minimum_signals(signals: SignalSet, threshold: int = MIN_SIGNAL_THRESHOLD) -> bool:
    return strong_signal_count(signals) >= threshold
