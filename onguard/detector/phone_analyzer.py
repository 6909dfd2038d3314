"""Phone number reputation analysis against the Counter Scam 112 registry."""

from __future__ import annotations

import logging
import re
from typing import Optional

from ..constants import FRAUD_REPORT_THRESHOLD, MANY_REPORTS_THRESHOLD, clamp, dedupe
from ..registry.counter_scam import CounterScamClient, normalize_phone
from ..utils.pii import mask_phone_number
from .models import PhoneSignal

logger = logging.getLogger(__name__)

SCORE_DB_REGISTERED = 0.9
SCORE_VOICE_PHISHING = 0.21
SCORE_SMS_PHISHING = 0.18
SCORE_MULTIPLE_REPORTS = 0.3
SCORE_SUSPICIOUS_PREFIX = 0.2

# Internet phones and caller-ID masking numbers
SUSPICIOUS_PREFIXES = ("070", "050")

# Each shape must stand alone: no digit (or digit group) directly before or after.
_BEFORE = r"(?<![\d+\-])"
_AFTER = r"(?!\d|-\d)"
PHONE_PATTERNS = (
    re.compile(_BEFORE + r"01[016789]-?\d{3,4}-?\d{4}" + _AFTER),  # Mobile
    re.compile(_BEFORE + r"02-?\d{3,4}-?\d{4}" + _AFTER),  # Seoul
    re.compile(_BEFORE + r"0[3-6]\d-?\d{3,4}-?\d{4}" + _AFTER),  # Regional
    re.compile(_BEFORE + r"1[5689]\d{2}-?\d{4}" + _AFTER),  # Representative (1588-xxxx)
    re.compile(_BEFORE + r"070-?\d{3,4}-?\d{4}" + _AFTER),  # Internet phone
    re.compile(_BEFORE + r"050\d-?\d{3,4}-?\d{4}" + _AFTER),  # Safe number
    re.compile(r"(?<![\d+])\+82[-\s]?0?1[016789][-\s]?\d{3,4}[-\s]?\d{4}" + _AFTER),  # International
)


def extract_phone_numbers(text: str) -> list[str]:
    """Phone-shaped tokens in order of appearance, one per normalized number."""
    found: list[tuple[int, str]] = []
    for pattern in PHONE_PATTERNS:
        found.extend((m.start(), m.group(0)) for m in pattern.finditer(text or ""))

    phones: list[str] = []
    seen: set[str] = set()
    for _, raw in sorted(found):
        normalized = normalize_phone(raw)
        if normalized not in seen:
            seen.add(normalized)
            phones.append(raw)
    return phones


class PhoneReputationAnalyzer:
    """
    Scores phone numbers found in text.

    A number alone adds nothing unless it uses a suspicious prefix or the
    registry holds at least FRAUD_REPORT_THRESHOLD reports for it.
    """

    def __init__(self, client: Optional[CounterScamClient] = None):
        self.client = client

    async def analyze(self, text: str) -> PhoneSignal:
        phones = extract_phone_numbers(text)
        signal = PhoneSignal(extracted_items=phones)
        if not phones:
            return signal

        score = 0.0
        for phone in phones:
            if score >= 1.0:
                logger.debug("Max risk score reached, skipping remaining phones")
                break

            normalized = normalize_phone(phone)
            masked = mask_phone_number(normalized)

            if normalized.startswith(SUSPICIOUS_PREFIXES):
                signal.suspicious_prefix = True
                score += SCORE_SUSPICIOUS_PREFIX
                signal.reasons.append(f"의심 전화번호 대역: {normalized[:3]}xxx")

            if self.client is None:
                continue

            result = await self.client.lookup(normalized)
            if not result.ok:
                signal.lookup_failures += 1
                continue

            report = result.value
            if report.total_count < FRAUD_REPORT_THRESHOLD:
                if report.total_count > 0:
                    logger.debug("Phone has minor reports: %s (total=%d)", masked, report.total_count)
                continue

            signal.flagged_items.append(phone)
            score += SCORE_DB_REGISTERED
            signal.reasons.append(f"Counter Scam 112 DB 등록 번호: {masked}")
            logger.warning("Scam phone detected: %s (total=%d)", masked, report.total_count)

            if report.voice_count > 0:
                signal.voice_count += report.voice_count
                score += SCORE_VOICE_PHISHING
                signal.reasons.append(f"보이스피싱 신고 {report.voice_count}건")

            if report.sms_count > 0:
                signal.sms_count += report.sms_count
                score += SCORE_SMS_PHISHING
                signal.reasons.append(f"스미싱 신고 {report.sms_count}건")

            if report.total_count >= MANY_REPORTS_THRESHOLD:
                score += SCORE_MULTIPLE_REPORTS
                signal.reasons.append(f"다수 신고 이력 ({report.total_count}건)")

        signal.flagged_items = dedupe(signal.flagged_items)
        signal.reasons = dedupe(signal.reasons)
        signal.risk_score = clamp(score)
        return signal
