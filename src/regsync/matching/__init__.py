"""Upload signal normalization and library match detection."""

from .detector import MatchConfig, MatchDetector, classify_upload, confidence_for, detect_match
from .signals import extract_signals

__all__ = [
    "MatchConfig",
    "MatchDetector",
    "classify_upload",
    "confidence_for",
    "detect_match",
    "extract_signals",
]
