"""
National police fraud-account registry client.

Session: GET the public search page (cookie jar).
Lookup: form POST key=P, no=<digits>, ftype=A, answered with

    {"result": true, "value": [{"result": "OK", "count": "4"}], "message": ""}

where count is the number of fraud reports filed against the account.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from ..utils.pii import mask_account_number
from .base import BaseRegistryClient, MalformedResponseError, RegistryLookupError

if TYPE_CHECKING:
    from ..cache import ExternalLookupCache

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.police.go.kr/"


@dataclass(frozen=True)
class AccountReport:
    """Fraud report count for one account number."""

    fraud_count: int = 0

    @property
    def has_fraud_history(self) -> bool:
        return self.fraud_count > 0


class PoliceFraudClient(BaseRegistryClient[AccountReport]):
    """Looks up fraud reports filed against a bank account number."""

    registry_name = "police_fraud"
    base_url = DEFAULT_BASE_URL
    session_path = "www/security/cyber/cyber04.jsp"
    search_path = "user/cyber/fraud.do"

    def __init__(self, cache: "ExternalLookupCache", base_url: Optional[str] = None, **kwargs):
        super().__init__(cache, base_url=base_url, **kwargs)

    async def search_account(self, account_number: str):
        """Normalize and look up an account number."""
        return await self.lookup(re.sub(r"\D", "", account_number or ""))

    async def _query(self, key: str, token: str) -> AccountReport:
        client = await self._get_client()
        resp = await client.post(
            self.search_path,
            data={"key": "P", "no": key, "ftype": "A"},
            headers={
                "X-Requested-With": "XMLHttpRequest",
                "Referer": f"{self.base_url}{self.session_path}",
            },
        )
        report = self._parse(self._decode_json(resp))
        logger.debug("Account lookup %s: count=%d", self.describe_key(key), report.fraud_count)
        return report

    def _parse(self, payload: Any) -> AccountReport:
        if not isinstance(payload, dict):
            raise MalformedResponseError("expected a JSON object")
        if not payload.get("result"):
            raise RegistryLookupError(f"registry rejected query: {payload.get('message') or 'no message'}")

        values = payload.get("value") or []
        if not isinstance(values, list):
            raise MalformedResponseError("'value' is not a list")
        if not values:
            return AccountReport()

        first = values[0] if isinstance(values[0], dict) else {}
        try:
            count = int(str(first.get("count") or "0").strip())
        except ValueError:
            count = 0
        return AccountReport(fraud_count=max(0, count))

    def _is_hit(self, value: AccountReport) -> bool:
        return value.has_fraud_history

    def describe_key(self, key: str) -> str:
        return mask_account_number(key)
