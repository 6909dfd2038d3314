"""Detector data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..constants import SCAM_THRESHOLD, DetectionMethod, ScamType


@dataclass(frozen=True)
class ScamAnalysis:
    """Final verdict for one analyzed text."""

    is_scam: bool
    confidence: float
    reasons: tuple[str, ...] = ()
    detected_keywords: tuple[str, ...] = ()
    detection_method: DetectionMethod = DetectionMethod.RULE_BASED
    scam_type: ScamType = ScamType.UNKNOWN
    warning_message: str = ""
    suspicious_parts: tuple[str, ...] = ()

    @classmethod
    def safe(cls) -> "ScamAnalysis":
        """Neutral result for input that was not analyzed."""
        return cls(is_scam=False, confidence=0.0, scam_type=ScamType.SAFE)

    def to_dict(self) -> dict:
        return {
            "is_scam": self.is_scam,
            "confidence": round(self.confidence, 4),
            "reasons": list(self.reasons),
            "detected_keywords": list(self.detected_keywords),
            "detection_method": self.detection_method.value,
            "scam_type": self.scam_type.value,
            "warning_message": self.warning_message,
            "suspicious_parts": list(self.suspicious_parts),
        }


@dataclass
class KeywordSignal:
    """Outcome of keyword and regex pattern matching."""

    confidence: float = 0.0
    reasons: list[str] = field(default_factory=list)
    detected_keywords: list[str] = field(default_factory=list)
    matched_patterns: list[str] = field(default_factory=list)
    categories: set[str] = field(default_factory=set)

    @property
    def is_scam(self) -> bool:
        return self.confidence >= SCAM_THRESHOLD


@dataclass
class SignalResult:
    """Outcome of one reputation analyzer (URL, phone or account)."""

    extracted_items: list[str] = field(default_factory=list)
    flagged_items: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    risk_score: float = 0.0
    lookup_failures: int = 0

    @property
    def has_hits(self) -> bool:
        return bool(self.flagged_items)


@dataclass
class UrlSignal(SignalResult):
    """URL analysis with the subset confirmed by the phishing registry."""

    registry_hits: list[str] = field(default_factory=list)


@dataclass
class PhoneSignal(SignalResult):
    """Phone analysis; flagged items are registry-confirmed numbers."""

    voice_count: int = 0
    sms_count: int = 0
    suspicious_prefix: bool = False


@dataclass
class AccountSignal(SignalResult):
    """Account analysis; flagged items are registry-confirmed accounts."""

    total_fraud_count: int = 0


@dataclass
class LlmRequest:
    """Context handed to the contextual analyzer. All fields are redacted."""

    redacted_text: str
    recent_context: str
    current_message: str
    rule_reasons: list[str] = field(default_factory=list)
    detected_keywords: list[str] = field(default_factory=list)


@dataclass
class LlmVerdict:
    """Structured verdict returned by the contextual analyzer."""

    is_scam: bool
    confidence: float
    scam_type: ScamType = ScamType.UNKNOWN
    warning_message: str = ""
    reasons: list[str] = field(default_factory=list)
    suspicious_parts: list[str] = field(default_factory=list)
    raw: Optional[str] = None
