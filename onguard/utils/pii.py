"""PII masking for text that leaves the process (LLM prompts, logs)."""

from __future__ import annotations

import re
from typing import Iterable

NATIONAL_ID_RE = re.compile(r"(?<!\d)\d{6}-?[1-4]\d{6}(?!\d)")

INTL_PHONE_RE = re.compile(
    r"(?<![\d+])\+82[-\s]?(1[016789]|2|[3-6]\d|70|50\d)[-\s]?(\d{3,4})[-\s]?(\d{4})(?![\d-])"
)
DOMESTIC_PHONE_RE = re.compile(
    r"(?<![\d-])(01[016789]|070|050\d|02|0[3-6]\d)[-\s]?(\d{3,4})[-\s]?(\d{4})(?![\d-])"
)

ACCOUNT_RES = (
    re.compile(r"(?<![\d-])\d{3}-\d{4}-\d{4}-\d{2}(?![\d-])"),
    re.compile(r"(?<![\d-])\d{6}-\d{2}-\d{6}(?![\d-])"),
    re.compile(r"(?<![\d-])\d{3,4}-\d{2,6}-\d{4,7}(?![\d-])"),
    re.compile(r"(?<![\d-])\d{10,14}(?![\d-])"),
)

PASSPORT_RE = re.compile(r"(?<![A-Za-z0-9])[A-Z][A-Z]?\d{7,8}(?![A-Za-z0-9])")

PHONE_PREFIX_RE = re.compile(r"^(01[016789]|070|050\d|02|0[3-6]\d|1[5689]\d{2})")

NATIONAL_ID_TOKEN = "[NATIONAL_ID]"
PASSPORT_TOKEN = "[PASSPORT]"
ACCOUNT_TOKEN = "[ACCOUNT]"


def mask_phone_number(digits: str) -> str:
    """Mask a normalized phone number for display: 01012345678 -> 010-****-5678."""
    digits = re.sub(r"\D", "", digits or "")
    if len(digits) < 8:
        return "****"
    match = PHONE_PREFIX_RE.match(digits)
    prefix = match.group(1) if match else digits[:3]
    if len(digits) == 8 and prefix.startswith("1"):
        return f"{prefix}-****"
    return f"{prefix}-****-{digits[-4:]}"


def mask_account_number(digits: str) -> str:
    """Mask account digits keeping the first and last four: 1101****6789."""
    digits = re.sub(r"\D", "", digits or "")
    if len(digits) <= 8:
        return "*" * len(digits)
    return f"{digits[:4]}****{digits[-4:]}"


class PiiRedactor:
    """
    Masks personal identifiers in free text.

    Order matters: national IDs first (their 13 digits would otherwise be
    taken for an account), then phones, then accounts, then passports.
    Phones keep the prefix and the last four digits; everything else is
    replaced by a placeholder token.
    """

    def mask(self, text: str) -> str:
        if not text:
            return text or ""
        masked = NATIONAL_ID_RE.sub(NATIONAL_ID_TOKEN, text)
        masked = INTL_PHONE_RE.sub(self._mask_intl_phone, masked)
        masked = DOMESTIC_PHONE_RE.sub(self._mask_domestic_phone, masked)
        for pattern in ACCOUNT_RES:
            masked = pattern.sub(ACCOUNT_TOKEN, masked)
        masked = PASSPORT_RE.sub(PASSPORT_TOKEN, masked)
        return masked

    def mask_all(self, items: Iterable[str]) -> list[str]:
        return [self.mask(item) for item in items]

    @staticmethod
    def _mask_intl_phone(match: re.Match) -> str:
        return f"+82-{match.group(1)}-****-{match.group(3)}"

    @staticmethod
    def _mask_domestic_phone(match: re.Match) -> str:
        return f"{match.group(1)}-****-{match.group(3)}"
