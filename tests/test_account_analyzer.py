"""Tests for account number extraction and reputation scoring."""

import pytest

from onguard.detector.account_analyzer import (
    AccountReputationAnalyzer,
    extract_account_numbers,
    looks_like_phone,
)
from onguard.registry import AccountReport, LookupResult


class _FakeAccountClient:
    def __init__(self, counts: dict | None = None, fail: bool = False):
        self._counts = counts or {}
        self._fail = fail
        self.calls: list[str] = []

    async def lookup(self, key):
        self.calls.append(key)
        if self._fail:
            return LookupResult.failure("police_fraud", "session failed")
        return LookupResult.success("police_fraud", AccountReport(self._counts.get(key, 0)))

    async def close(self):
        return None


class TestExtraction:
    def test_three_part_account(self):
        assert extract_account_numbers("계좌번호 110-123-456789로 보내세요") == ["110-123-456789"]

    def test_four_part_account(self):
        assert extract_account_numbers("농협 302-1234-5678-91 입니다") == ["302-1234-5678-91"]

    def test_contiguous_digits(self):
        assert extract_account_numbers("계좌 1101234567890 확인") == ["1101234567890"]

    def test_phone_numbers_are_not_accounts(self):
        assert extract_account_numbers("연락처 010-1234-5678 / 01012345678") == []
        assert extract_account_numbers("사무실 031-123-4567 입니다") == []

    def test_looks_like_phone(self):
        assert looks_like_phone("01012345678")
        assert looks_like_phone("15881234")
        assert not looks_like_phone("110123456789")


class TestAccountReputationAnalyzer:
    @pytest.mark.asyncio
    async def test_lone_account_adds_nothing(self):
        signal = await AccountReputationAnalyzer().analyze("계좌번호 110-123-456789로 보내세요")
        assert signal.extracted_items == ["110-123-456789"]
        assert signal.risk_score == 0.0
        assert signal.reasons == []

    @pytest.mark.asyncio
    async def test_confirmed_fraud_account(self):
        client = _FakeAccountClient({"110123456789": 4})
        signal = await AccountReputationAnalyzer(client).analyze("계좌번호 110-123-456789로 보내세요")

        assert client.calls == ["110123456789"]
        assert signal.flagged_items == ["110-123-456789"]
        assert signal.total_fraud_count == 4
        assert signal.risk_score == pytest.approx(0.95)
        assert signal.reasons == ["경찰청 사기신고 계좌: 1101****6789 (4건)"]

    @pytest.mark.asyncio
    async def test_many_reports(self):
        client = _FakeAccountClient({"110123456789": 7})
        signal = await AccountReputationAnalyzer(client).analyze("계좌번호 110-123-456789로 보내세요")
        assert "다수 사기 신고 이력 (7건)" in signal.reasons
        assert signal.risk_score == 1.0

    @pytest.mark.asyncio
    async def test_below_threshold(self):
        client = _FakeAccountClient({"110123456789": 2})
        signal = await AccountReputationAnalyzer(client).analyze("계좌번호 110-123-456789로 보내세요")
        assert signal.flagged_items == []
        assert signal.risk_score == 0.0

    @pytest.mark.asyncio
    async def test_lookup_failure(self):
        client = _FakeAccountClient(fail=True)
        signal = await AccountReputationAnalyzer(client).analyze("계좌번호 110-123-456789로 보내세요")
        assert signal.lookup_failures == 1
        assert signal.risk_score == 0.0

    @pytest.mark.asyncio
    async def test_stops_once_score_saturates(self):
        client = _FakeAccountClient({"110123456789": 5, "3021234567891": 5})
        signal = await AccountReputationAnalyzer(client).analyze(
            "첫 계좌 110-123-456789 두번째 302-1234-5678-91 입니다"
        )
        assert client.calls == ["110123456789"]
        assert signal.risk_score == 1.0
