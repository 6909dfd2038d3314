"""
Counter Scam 112 phone registry client.

The public search page issues a session cookie on GET; lookups are AJAX
JSON POSTs carrying that cookie:

    POST {"telNum": "01012345678"}
    -> {"totalCount": 4, "voiceCount": 3, "smsCount": 1}

Zero or absent counts mean the number has no reports.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from ..utils.pii import mask_phone_number
from .base import BaseRegistryClient, MalformedResponseError

if TYPE_CHECKING:
    from ..cache import ExternalLookupCache

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.counterscam112.go.kr/"
DEFAULT_SEARCH_PATH = "phishing/searchPhoneAjax.do"


@dataclass(frozen=True)
class PhoneReport:
    """Report counts for one phone number."""

    total_count: int = 0
    voice_count: int = 0
    sms_count: int = 0

    @property
    def has_reports(self) -> bool:
        return self.total_count > 0


def _as_count(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return max(0, int(str(value).strip()))
    except ValueError:
        raise MalformedResponseError(f"non-numeric count: {value!r}")


class CounterScamClient(BaseRegistryClient[PhoneReport]):
    """Looks up voice-phishing / smishing reports for a phone number."""

    registry_name = "counter_scam"
    base_url = DEFAULT_BASE_URL
    session_path = "phishing/searchPhone.do"

    def __init__(
        self,
        cache: "ExternalLookupCache",
        base_url: Optional[str] = None,
        search_path: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(cache, base_url=base_url, **kwargs)
        self.search_path = (search_path or DEFAULT_SEARCH_PATH).lstrip("/")

    def _ajax_headers(self) -> dict[str, str]:
        origin = self.base_url.rstrip("/")
        return {
            "X-Requested-With": "XMLHttpRequest",
            "Referer": f"{origin}/{self.session_path}",
            "Origin": origin,
            "Accept": "application/json, text/javascript, */*; q=0.01",
        }

    async def search_phone(self, phone_number: str):
        """Normalize and look up a phone number."""
        return await self.lookup(normalize_phone(phone_number))

    async def _query(self, key: str, token: str) -> PhoneReport:
        client = await self._get_client()
        resp = await client.post(
            self.search_path,
            json={"telNum": key},
            headers=self._ajax_headers(),
        )
        report = self._parse(self._decode_json(resp))
        logger.debug(
            "Phone lookup %s: total=%d voice=%d sms=%d",
            self.describe_key(key),
            report.total_count,
            report.voice_count,
            report.sms_count,
        )
        return report

    def _parse(self, payload: Any) -> PhoneReport:
        if not isinstance(payload, dict):
            raise MalformedResponseError("expected a JSON object")
        return PhoneReport(
            total_count=_as_count(payload.get("totalCount")),
            voice_count=_as_count(payload.get("voiceCount")),
            sms_count=_as_count(payload.get("smsCount")),
        )

    def _is_hit(self, value: PhoneReport) -> bool:
        return value.has_reports

    def describe_key(self, key: str) -> str:
        return mask_phone_number(key)


def normalize_phone(phone: str) -> str:
    """Strip separators and map the +82 country code to a leading 0."""
    digits = re.sub(r"\D", "", phone or "")
    if (phone or "").strip().startswith("+82") or (digits.startswith("82") and len(digits) >= 11):
        digits = "0" + digits[2:]
        if digits.startswith("00"):
            digits = digits[1:]
    return digits
