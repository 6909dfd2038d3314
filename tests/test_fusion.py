"""Tests for the hybrid fusion engine."""

import asyncio

import httpx
import pytest

from onguard.cache import ExternalLookupCache
from onguard.constants import DetectionMethod, ScamType
from onguard.detector import (
    AccountReputationAnalyzer,
    ContextualAnalyzer,
    FusionEngine,
    PhoneReputationAnalyzer,
    UrlReputationAnalyzer,
)
from onguard.detector.fusion import COMBO_REASON, recent_context
from onguard.detector.models import AccountSignal, KeywordSignal, PhoneSignal, ScamAnalysis, UrlSignal
from onguard.metrics import metrics
from onguard.registry import (
    AccountReport,
    CounterScamClient,
    LookupResult,
    PhishingUrlRegistry,
    PhoneReport,
    PoliceFraudClient,
)

SECOND_HAND_SCAM = "급전 필요합니다 계좌번호 110-123-456789로 입금해주세요"
FAMILY_SCAM = "엄마 나 급하게 송금 좀 해줘 010-1234-5678로 연락줘"
CREDENTIAL_REQUEST = "인증번호 알려주세요 보안카드 번호도요"


class _FakeBackend:
    def __init__(self, reply: str = "", *, error: Exception | None = None, available: bool = True):
        self.reply = reply
        self.error = error
        self._available = available
        self.calls: list[tuple[str, str]] = []

    @property
    def available(self) -> bool:
        return self._available

    async def complete(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        if self.error:
            raise self.error
        return self.reply

    async def close(self) -> None:
        return None


class _FakeAccountClient:
    def __init__(self, counts: dict):
        self._counts = counts

    async def lookup(self, key):
        return LookupResult.success("police_fraud", AccountReport(self._counts.get(key, 0)))

    async def close(self):
        return None


class _BrokenUrlAnalyzer(UrlReputationAnalyzer):
    async def analyze(self, text):
        raise RuntimeError("url analyzer exploded")


def _engine(backend=None, **kwargs) -> FusionEngine:
    return FusionEngine(contextual_analyzer=ContextualAnalyzer(backend), **kwargs)


class TestRuleOnly:
    @pytest.mark.asyncio
    async def test_short_text_is_safe(self):
        result = await _engine().analyze("송금해줘")
        assert not result.is_scam
        assert result.confidence == 0.0
        assert result.scam_type is ScamType.SAFE
        assert metrics.snapshot()["short_circuits"] == 1

    @pytest.mark.asyncio
    async def test_reported_account_end_to_end(self):
        engine = _engine(account_analyzer=AccountReputationAnalyzer(_FakeAccountClient({"110123456789": 4})))
        result = await engine.analyze(SECOND_HAND_SCAM)

        assert result.is_scam
        assert result.confidence == pytest.approx(0.65)
        assert result.detection_method is DetectionMethod.EXTERNAL_DB
        assert result.scam_type is ScamType.USED_TRADE
        assert "경찰청 사기신고 계좌: 1101****6789 (4건)" in result.reasons
        assert "매우 위험 키워드 1개 발견: 입금해주" in result.reasons
        assert result.warning_message == (
            "중고거래 사기가 의심됩니다 (위험도 65%). 선입금을 요구하면 직거래로 진행하세요."
        )
        assert result.suspicious_parts == result.detected_keywords[:3]

    @pytest.mark.asyncio
    async def test_keywords_only_is_rule_based(self):
        result = await _engine().analyze(SECOND_HAND_SCAM)
        assert result.is_scam
        assert result.detection_method is DetectionMethod.RULE_BASED

    @pytest.mark.asyncio
    async def test_benign_text(self):
        result = await _engine().analyze("오늘 저녁에 같이 밥 먹을래? 7시에 보자")
        assert not result.is_scam
        assert result.reasons == ()
        assert result.scam_type is ScamType.SAFE
        assert result.warning_message == ""

    @pytest.mark.asyncio
    async def test_combo_bonus_reason(self):
        result = await _engine().analyze("긴급 입금 확인 필요 https://example.com/pay", use_llm=False)
        assert COMBO_REASON in result.reasons
        assert result.confidence <= 0.65

    @pytest.mark.asyncio
    async def test_failing_analyzer_is_no_signal(self):
        engine = _engine(url_analyzer=_BrokenUrlAnalyzer())
        result = await engine.analyze(SECOND_HAND_SCAM)
        assert result.is_scam
        assert metrics.snapshot()["analyzer_errors"] == 1

    def test_analyze_sync(self):
        engine = _engine()
        result = engine.analyze_sync(SECOND_HAND_SCAM, use_llm=False)
        engine.close_sync()
        assert result.is_scam
        assert metrics.snapshot()["total_analyses"] == 1


class TestRuleConfidence:
    def test_keywords_alone(self):
        score = FusionEngine.rule_confidence(KeywordSignal(confidence=0.3), UrlSignal(), PhoneSignal(), AccountSignal())
        assert score == pytest.approx(0.3)

    def test_confirmed_signal_raises_score(self):
        account = AccountSignal(flagged_items=["110-123-456789"], risk_score=0.5)
        score = FusionEngine.rule_confidence(KeywordSignal(confidence=0.3), UrlSignal(), PhoneSignal(), account)
        assert score == pytest.approx(0.575)

    def test_prefix_only_phone_adds_a_little(self):
        phone = PhoneSignal(extracted_items=["070-1234-5678"], risk_score=0.2, suspicious_prefix=True)
        score = FusionEngine.rule_confidence(KeywordSignal(confidence=0.3), UrlSignal(), phone, AccountSignal())
        assert score == pytest.approx(0.32)

    def test_adding_signals_never_lowers_score(self):
        keyword = KeywordSignal(confidence=0.9)
        base = FusionEngine.rule_confidence(keyword, UrlSignal(), PhoneSignal(), AccountSignal())
        url = UrlSignal(flagged_items=["https://evil.tk"], risk_score=0.3)
        assert FusionEngine.rule_confidence(keyword, url, PhoneSignal(), AccountSignal()) >= base

    def test_clamped_to_one(self):
        account = AccountSignal(flagged_items=["x"], risk_score=1.0)
        url = UrlSignal(flagged_items=["y"], risk_score=1.0)
        assert FusionEngine.rule_confidence(KeywordSignal(confidence=1.0), url, PhoneSignal(), account) == 1.0

    def test_threshold_is_inclusive(self):
        assert FusionEngine._rule_result(0.5, ["x"], [], False).is_scam
        assert not FusionEngine._rule_result(0.49, ["x"], [], False).is_scam


class TestEscalation:
    @pytest.mark.asyncio
    async def test_blended_verdict(self):
        backend = _FakeBackend('{"isScam": true, "confidence": 90, "scamType": "IMPERSONATION", "reasons": ["가족 사칭"]}')
        result = await _engine(backend).analyze(FAMILY_SCAM)

        assert len(backend.calls) == 1
        assert result.detection_method is DetectionMethod.HYBRID
        assert result.confidence == pytest.approx(0.65 * 0.4 + 0.9 * 0.6)
        assert result.is_scam
        assert result.scam_type is ScamType.IMPERSONATION
        assert "가족 사칭" in result.reasons
        assert metrics.snapshot()["escalations"] == 1

    @pytest.mark.asyncio
    async def test_llm_scam_flag_wins_over_low_blend(self):
        backend = _FakeBackend('{"isScam": true, "confidence": 0.2}')
        result = await _engine(backend).analyze(FAMILY_SCAM)
        assert result.confidence == pytest.approx(0.65 * 0.4 + 0.2 * 0.6)
        assert result.is_scam

    @pytest.mark.asyncio
    async def test_request_is_redacted(self):
        backend = _FakeBackend('{"confidence": 0.9}')
        await _engine(backend).analyze(FAMILY_SCAM)
        _, user = backend.calls[0]
        assert "010-****-5678" in user
        assert "010-1234-5678" not in user

    @pytest.mark.asyncio
    async def test_caller_can_skip_llm(self):
        backend = _FakeBackend('{"confidence": 0.9}')
        result = await _engine(backend).analyze(FAMILY_SCAM, use_llm=False)
        assert backend.calls == []
        assert result.detection_method is DetectionMethod.RULE_BASED

    @pytest.mark.asyncio
    async def test_low_score_not_escalated(self):
        backend = _FakeBackend('{"confidence": 0.9}')
        result = await _engine(backend).analyze("택배 배송조회 해봤어? 내일 온대")
        assert backend.calls == []
        assert not result.is_scam

    @pytest.mark.asyncio
    async def test_no_trigger_not_escalated(self):
        backend = _FakeBackend('{"confidence": 0.9}')
        result = await _engine(backend).analyze(CREDENTIAL_REQUEST)
        assert backend.calls == []
        assert result.is_scam
        assert result.detection_method is DetectionMethod.RULE_BASED

    @pytest.mark.asyncio
    async def test_unavailable_backend_not_called(self):
        backend = _FakeBackend('{"confidence": 0.9}', available=False)
        await _engine(backend).analyze(FAMILY_SCAM)
        assert backend.calls == []
        assert metrics.snapshot()["escalations"] == 0

    @pytest.mark.asyncio
    async def test_llm_failure_keeps_rule_verdict(self):
        backend = _FakeBackend(error=RuntimeError("backend down"))
        result = await _engine(backend).analyze(FAMILY_SCAM)

        assert result.is_scam
        assert result.confidence == pytest.approx(0.65)
        assert result.detection_method is DetectionMethod.RULE_BASED
        snapshot = metrics.snapshot()
        assert snapshot["escalations"] == 1
        assert snapshot["llm_failures"] == 1


class TestRecentContext:
    def test_last_lines(self):
        text = "\n".join(f"line {i}" for i in range(15)) + "\n\n"
        context, current = recent_context(text)
        assert context.splitlines()[0] == "line 5"
        assert len(context.splitlines()) == 10
        assert current == "line 14"

    def test_empty(self):
        assert recent_context("") == ("", "")


@pytest.mark.asyncio
async def test_close_releases_clients():
    closed = []

    class _Client(_FakeAccountClient):
        async def close(self):
            closed.append("account")

    class _Backend(_FakeBackend):
        async def close(self):
            closed.append("backend")

    engine = _engine(_Backend(), account_analyzer=AccountReputationAnalyzer(_Client({})))
    await engine.close()
    assert closed == ["account", "backend"]


CONTACT_DETAILS = "계좌번호 110-123-456789 확인 부탁 010-1234-5678 https://example.org/a"


class _FakePhoneClient:
    def __init__(self, total: int):
        self._total = total

    async def lookup(self, key):
        return LookupResult.success("counter_scam", PhoneReport(total_count=self._total, voice_count=1))

    async def close(self):
        return None


class _LoopBoundTransport(httpx.AsyncBaseTransport):
    """Like a pooled connection: unusable from any loop but the first."""

    def __init__(self, handler):
        self._handler = handler
        self._loop = None
        self.methods: list[str] = []

    async def handle_async_request(self, request):
        loop = asyncio.get_running_loop()
        if self._loop is None:
            self._loop = loop
        elif self._loop is not loop:
            raise RuntimeError("Event loop is closed")
        await request.aread()
        self.methods.append(request.method)
        return self._handler(request)


def _counter_scam_reply(request: httpx.Request) -> httpx.Response:
    if request.method == "GET":
        return httpx.Response(200, headers={"Set-Cookie": "JSESSIONID=abc; Path=/"})
    return httpx.Response(200, json={"totalCount": 5, "voiceCount": 2, "smsCount": 0})


class TestRegistryIntegration:
    def test_analyze_sync_keeps_registry_connections_usable(self):
        transport = _LoopBoundTransport(_counter_scam_reply)
        client = CounterScamClient(ExternalLookupCache(), transport=transport)
        engine = _engine(phone_analyzer=PhoneReputationAnalyzer(client))

        first = engine.analyze_sync("이 번호로 연락주세요 010-1234-5678", use_llm=False)
        second = engine.analyze_sync("이 번호로 연락주세요 010-9876-5432", use_llm=False)
        engine.close_sync()

        assert "Counter Scam 112 DB 등록 번호: 010-****-5678" in first.reasons
        assert "Counter Scam 112 DB 등록 번호: 010-****-5432" in second.reasons
        assert second.detection_method is DetectionMethod.EXTERNAL_DB
        assert transport.methods == ["GET", "POST", "POST"]
        assert metrics.snapshot()["registries"]["counter_scam"]["failures"] == 0

    def test_close_sync_without_sync_use(self):
        engine = _engine()
        engine.close_sync()

    @pytest.mark.asyncio
    async def test_registry_outage_degrades_to_keywords(self):
        down = httpx.MockTransport(lambda request: httpx.Response(503))
        cache = ExternalLookupCache()
        engine = _engine(
            phone_analyzer=PhoneReputationAnalyzer(CounterScamClient(cache, transport=down)),
            account_analyzer=AccountReputationAnalyzer(PoliceFraudClient(cache, transport=down)),
        )

        result = await engine.analyze(CONTACT_DETAILS, use_llm=False)
        keywords_only = await _engine().analyze(CONTACT_DETAILS, use_llm=False)
        await engine.close()

        assert result.confidence == pytest.approx(keywords_only.confidence)
        assert result.confidence == pytest.approx(0.4)
        assert result.detection_method is DetectionMethod.RULE_BASED
        registries = metrics.snapshot()["registries"]
        assert registries["counter_scam"]["failures"] == 1
        assert registries["police_fraud"]["failures"] == 1
        assert metrics.snapshot()["analyzer_errors"] == 0

    @pytest.mark.asyncio
    async def test_confirmed_evidence_never_lowers_confidence(self):
        baseline = await _engine().analyze(CONTACT_DETAILS, use_llm=False)
        engines = [
            _engine(account_analyzer=AccountReputationAnalyzer(_FakeAccountClient({"110123456789": 4}))),
            _engine(phone_analyzer=PhoneReputationAnalyzer(_FakePhoneClient(5))),
            _engine(
                url_analyzer=UrlReputationAnalyzer(
                    PhishingUrlRegistry(ExternalLookupCache(), blocklist=["example.org"])
                )
            ),
        ]

        for engine in engines:
            result = await engine.analyze(CONTACT_DETAILS, use_llm=False)
            assert result.confidence > baseline.confidence
            assert result.detection_method is DetectionMethod.EXTERNAL_DB


def test_analysis_to_dict():
    analysis = ScamAnalysis(
        is_scam=True,
        confidence=0.654321,
        reasons=("대출 사기 의심",),
        detection_method=DetectionMethod.HYBRID,
        scam_type=ScamType.LOAN,
    )
    assert analysis.to_dict() == {
        "is_scam": True,
        "confidence": 0.6543,
        "reasons": ["대출 사기 의심"],
        "detected_keywords": [],
        "detection_method": "hybrid",
        "scam_type": "loan",
        "warning_message": "",
        "suspicious_parts": [],
    }
