"""Bank account reputation analysis against the police fraud-account registry."""

from __future__ import annotations

import logging
import re
from typing import Optional

from ..constants import FRAUD_REPORT_THRESHOLD, MANY_REPORTS_THRESHOLD, clamp, dedupe
from ..registry.police_fraud import PoliceFraudClient
from ..utils.pii import mask_account_number
from .models import AccountSignal

logger = logging.getLogger(__name__)

SCORE_DB_REGISTERED = 0.95
SCORE_MULTIPLE_REPORTS = 0.3

MIN_ACCOUNT_DIGITS = 10
MAX_ACCOUNT_DIGITS = 14

_BEFORE = r"(?<![\d\-])"
_AFTER = r"(?![\d\-])"
ACCOUNT_PATTERNS = (
    re.compile(_BEFORE + r"\d{3}-\d{4}-\d{4}-\d{2}" + _AFTER),  # 3-4-4-2 (Nonghyup and others)
    re.compile(_BEFORE + r"\d{6}-\d{2}-\d{6}" + _AFTER),  # 6-2-6 (legacy Kookmin)
    re.compile(_BEFORE + r"\d{3,4}-\d{2,6}-\d{4,7}" + _AFTER),  # 3-part
    re.compile(r"(?<!\d)\d{10,14}(?!\d)"),  # Contiguous
)

# Digits that begin like a phone number are left to the phone analyzer.
PHONE_PREFIX_RE = re.compile(r"^(?:01[016789]|02|0[3-6]\d|070|050)")
REPRESENTATIVE_RE = re.compile(r"^1[5689]\d{6}$")


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def looks_like_phone(digits: str) -> bool:
    return bool(PHONE_PREFIX_RE.match(digits) or REPRESENTATIVE_RE.match(digits))


def extract_account_numbers(text: str) -> list[str]:
    """Account-shaped tokens in order of appearance, excluding phone-shaped ones."""
    found: list[tuple[int, str]] = []
    for pattern in ACCOUNT_PATTERNS:
        found.extend((m.start(), m.group(0)) for m in pattern.finditer(text or ""))

    accounts: list[str] = []
    seen: set[str] = set()
    for _, raw in sorted(found):
        digits = _digits(raw)
        if digits in seen or looks_like_phone(digits):
            continue
        seen.add(digits)
        accounts.append(raw)
    return accounts


class AccountReputationAnalyzer:
    """
    Scores account numbers found in text.

    An account number by itself adds nothing; only registry confirmation
    (at least FRAUD_REPORT_THRESHOLD reports) raises the score.
    """

    def __init__(self, client: Optional[PoliceFraudClient] = None):
        self.client = client

    async def analyze(self, text: str) -> AccountSignal:
        accounts = extract_account_numbers(text)
        signal = AccountSignal(extracted_items=accounts)
        if not accounts or self.client is None:
            return signal

        score = 0.0
        for account in accounts:
            if score >= 1.0:
                logger.debug("Max risk score reached, skipping remaining accounts")
                break

            digits = _digits(account)
            if not MIN_ACCOUNT_DIGITS <= len(digits) <= MAX_ACCOUNT_DIGITS:
                logger.debug("Invalid account length: %d", len(digits))
                continue

            masked = mask_account_number(digits)
            result = await self.client.lookup(digits)
            if not result.ok:
                signal.lookup_failures += 1
                continue

            count = result.value.fraud_count
            if count < FRAUD_REPORT_THRESHOLD:
                if count > 0:
                    logger.debug("Account has minor reports: %s (count=%d)", masked, count)
                else:
                    logger.debug("Account clean: %s", masked)
                continue

            signal.flagged_items.append(account)
            signal.total_fraud_count += count
            score += SCORE_DB_REGISTERED
            signal.reasons.append(f"경찰청 사기신고 계좌: {masked} ({count}건)")
            logger.warning("Fraud account detected: %s (count=%d)", masked, count)

            if count >= MANY_REPORTS_THRESHOLD:
                score += SCORE_MULTIPLE_REPORTS
                signal.reasons.append(f"다수 사기 신고 이력 ({count}건)")

        signal.flagged_items = dedupe(signal.flagged_items)
        signal.reasons = dedupe(signal.reasons)
        signal.risk_score = clamp(score)
        return signal
