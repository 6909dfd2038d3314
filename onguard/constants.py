"""Centralized constants for OnGuard.

Enums and thresholds shared by the analyzers, the fusion engine and the
registry clients.
"""

from enum import Enum


class DetectionMethod(str, Enum):
    """How a verdict was reached."""

    RULE_BASED = "rule_based"  # Keyword/pattern rules only
    EXTERNAL_DB = "external_db"  # Rules plus at least one registry hit
    LLM = "llm"  # Contextual analyzer alone
    HYBRID = "hybrid"  # Rules blended with the contextual analyzer

    def __str__(self) -> str:
        return self.value


class ScamType(str, Enum):
    """Scam categories used for warning text and statistics."""

    INVESTMENT = "investment"  # 투자/코인/주식
    USED_TRADE = "used_trade"  # 중고거래/선입금
    PHISHING = "phishing"  # 피싱 링크/사이트
    IMPERSONATION = "impersonation"  # 기관/지인 사칭
    ROMANCE = "romance"
    LOAN = "loan"  # 대출/선수수료
    VOICE_PHISHING = "voice_phishing"  # 보이스피싱 신고 이력
    SAFE = "safe"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: str | None) -> "ScamType":
        """Convert a stored value back to the enum, defaulting to UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.lower())
        except ValueError:
            return cls.UNKNOWN

    def __str__(self) -> str:
        return self.value


# Final verdict threshold (inclusive for rule-only results)
SCAM_THRESHOLD = 0.5

# Corroboration thresholds for registry report counts
FRAUD_REPORT_THRESHOLD = 3
MANY_REPORTS_THRESHOLD = 5


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a score into [low, high]."""
    return max(low, min(high, value))


def dedupe(items) -> list:
    """Drop duplicates while keeping first-seen order."""
    return list(dict.fromkeys(items))
