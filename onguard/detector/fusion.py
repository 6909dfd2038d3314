"""Hybrid fusion of rule signals and the contextual analyzer."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from ..constants import SCAM_THRESHOLD, DetectionMethod, ScamType, clamp, dedupe
from ..metrics import metrics
from ..utils.pii import PiiRedactor
from .account_analyzer import AccountReputationAnalyzer
from .contextual import ContextualAnalyzer
from .keywords import (
    COMBO_MONEY_MARKERS,
    COMBO_URGENCY_MARKERS,
    MONEY_TRIGGERS,
    URGENCY_TRIGGERS,
)
from .models import (
    AccountSignal,
    KeywordSignal,
    LlmRequest,
    LlmVerdict,
    PhoneSignal,
    ScamAnalysis,
    UrlSignal,
)
from .patterns import PatternMatcher, compact_text
from .phone_analyzer import PhoneReputationAnalyzer
from .response_parser import infer_scam_type, rule_warning
from .url_analyzer import UrlReputationAnalyzer

logger = logging.getLogger(__name__)

S = TypeVar("S")

MIN_TEXT_LENGTH = 10
RECENT_CONTEXT_LINES = 10

# Confirmed reputation signals raise the rule score to at least their own
# score, plus a fraction of it.
SIGNAL_BONUS = 0.15
PREFIX_ONLY_BONUS = 0.1

COMBO_THRESHOLD = 0.4
COMBO_BONUS = 0.08
COMBO_REASON = "의심스러운 조합: 긴급 + 금전 + URL"

# Rule confidence ceiling, so the contextual analyzer can move a blended score.
RULE_CONFIDENCE_CAP = 0.65

ESCALATION_LOW = 0.5
ESCALATION_HIGH = 1.0

RULE_WEIGHT = 0.4
LLM_WEIGHT = 0.6

SUSPICIOUS_PARTS_LIMIT = 3


def recent_context(text: str, limit: int = RECENT_CONTEXT_LINES) -> tuple[str, str]:
    """Last `limit` non-blank lines joined, and the last line on its own."""
    lines = [line.strip() for line in (text or "").split("\n") if line.strip()]
    recent = lines[-limit:]
    return "\n".join(recent), (recent[-1] if recent else "")


class FusionEngine:
    """
    Runs the rule analyzers, fuses their signals and decides escalation.

    Analyzers are injected; any of them failing is treated as no signal.
    """

    def __init__(
        self,
        pattern_matcher: Optional[PatternMatcher] = None,
        url_analyzer: Optional[UrlReputationAnalyzer] = None,
        phone_analyzer: Optional[PhoneReputationAnalyzer] = None,
        account_analyzer: Optional[AccountReputationAnalyzer] = None,
        contextual_analyzer: Optional[ContextualAnalyzer] = None,
        redactor: Optional[PiiRedactor] = None,
        min_text_length: int = MIN_TEXT_LENGTH,
    ):
        self.pattern_matcher = pattern_matcher or PatternMatcher()
        self.url_analyzer = url_analyzer or UrlReputationAnalyzer()
        self.phone_analyzer = phone_analyzer or PhoneReputationAnalyzer()
        self.account_analyzer = account_analyzer or AccountReputationAnalyzer()
        self.contextual_analyzer = contextual_analyzer or ContextualAnalyzer()
        self.redactor = redactor or PiiRedactor()
        self.min_text_length = min_text_length
        self._sync_loop: Optional[asyncio.AbstractEventLoop] = None

    async def analyze(self, text: str, use_llm: bool = True) -> ScamAnalysis:
        """Classify one message (or conversation excerpt)."""
        if not text or len(text.strip()) < self.min_text_length:
            metrics.record_short_circuit()
            return ScamAnalysis.safe()

        keyword, url, phone, account = await asyncio.gather(
            self._guarded("keywords", self._match_keywords(text), KeywordSignal()),
            self._guarded("url", self.url_analyzer.analyze(text), UrlSignal()),
            self._guarded("phone", self.phone_analyzer.analyze(text), PhoneSignal()),
            self._guarded("account", self.account_analyzer.analyze(text), AccountSignal()),
        )

        reasons = dedupe(keyword.reasons + url.reasons + phone.reasons + account.reasons)
        rule_confidence = self.rule_confidence(keyword, url, phone, account)

        if rule_confidence > COMBO_THRESHOLD and self._has_golden_combo(text, url):
            rule_confidence += COMBO_BONUS
            reasons = dedupe(reasons + [COMBO_REASON])
        rule_confidence = clamp(rule_confidence, 0.0, RULE_CONFIDENCE_CAP)

        logger.debug(
            "Rule result: confidence=%.2f keyword=%.2f url=%.2f phone=%.2f account=%.2f",
            rule_confidence,
            keyword.confidence,
            url.risk_score,
            phone.risk_score,
            account.risk_score,
        )

        if use_llm and self._should_escalate(text, rule_confidence, url, phone, account):
            metrics.record_escalation()
            verdict = await self.contextual_analyzer.analyze(
                self._build_request(text, reasons, keyword.detected_keywords)
            )
            if verdict is not None:
                result = self._combine(rule_confidence, reasons, keyword.detected_keywords, verdict)
                self._record(result)
                return result
            logger.warning("Contextual analysis unavailable, using rule verdict (%.2f)", rule_confidence)
        elif not use_llm:
            logger.debug("Contextual analysis bypassed by caller")

        external_hit = bool(url.registry_hits or phone.has_hits or account.has_hits)
        result = self._rule_result(rule_confidence, reasons, keyword.detected_keywords, external_hit)
        self._record(result)
        return result

    def analyze_sync(self, text: str, use_llm: bool = True) -> ScamAnalysis:
        """
        Blocking wrapper for callers without an event loop.

        Every call runs on one private loop owned by the engine: pooled
        registry connections and session locks are bound to the loop that
        created them. Release it with close_sync().
        """
        if self._sync_loop is None or self._sync_loop.is_closed():
            self._sync_loop = asyncio.new_event_loop()
        return self._sync_loop.run_until_complete(self.analyze(text, use_llm=use_llm))

    def close_sync(self) -> None:
        """Close clients opened through analyze_sync, then its private loop."""
        loop = self._sync_loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.run_until_complete(self.close())
        finally:
            loop.close()
            self._sync_loop = None

    async def close(self) -> None:
        """Close registry clients and the contextual backend."""
        for client in (self.phone_analyzer.client, self.account_analyzer.client):
            if client is not None:
                await client.close()
        await self.contextual_analyzer.close()

    @staticmethod
    def rule_confidence(
        keyword: KeywordSignal,
        url: UrlSignal,
        phone: PhoneSignal,
        account: AccountSignal,
    ) -> float:
        """Combine analyzer scores into the (uncapped) rule confidence."""
        confidence = keyword.confidence

        if url.has_hits:
            confidence = max(confidence, url.risk_score) + url.risk_score * SIGNAL_BONUS

        if phone.has_hits:
            confidence = max(confidence, phone.risk_score) + phone.risk_score * SIGNAL_BONUS
        elif phone.suspicious_prefix:
            confidence += phone.risk_score * PREFIX_ONLY_BONUS

        if account.has_hits:
            confidence = max(confidence, account.risk_score) + account.risk_score * SIGNAL_BONUS

        return clamp(confidence)

    async def _match_keywords(self, text: str) -> KeywordSignal:
        return self.pattern_matcher.analyze(text)

    async def _guarded(self, name: str, task: Awaitable[S], fallback: S) -> S:
        try:
            return await task
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s analyzer failed, treating as no signal", name)
            metrics.record_analyzer_error()
            return fallback

    @staticmethod
    def _has_golden_combo(text: str, url: UrlSignal) -> bool:
        lowered = text.lower()
        has_urgency = any(marker in lowered for marker in COMBO_URGENCY_MARKERS)
        has_money = any(marker in lowered for marker in COMBO_MONEY_MARKERS)
        return has_urgency and has_money and bool(url.extracted_items)

    def _should_escalate(
        self,
        text: str,
        rule_confidence: float,
        url: UrlSignal,
        phone: PhoneSignal,
        account: AccountSignal,
    ) -> bool:
        if not self.contextual_analyzer.available:
            logger.debug("Contextual analyzer not available")
            return False
        if not ESCALATION_LOW <= rule_confidence <= ESCALATION_HIGH:
            logger.debug("No escalation: confidence %.2f outside window", rule_confidence)
            return False

        compacted = compact_text(text)
        has_money = any(trigger in compacted for trigger in MONEY_TRIGGERS)
        has_urgency = any(trigger in compacted for trigger in URGENCY_TRIGGERS)
        triggered = (
            has_money
            or has_urgency
            or bool(url.extracted_items)
            or phone.has_hits
            or account.has_hits
        )
        if not triggered:
            logger.debug("No escalation: no money/urgency/URL/registry trigger")
        return triggered

    def _build_request(self, text: str, reasons: list[str], keywords: list[str]) -> LlmRequest:
        context, current = recent_context(text)
        return LlmRequest(
            redacted_text=self.redactor.mask(text),
            recent_context=self.redactor.mask(context),
            current_message=self.redactor.mask(current),
            rule_reasons=self.redactor.mask_all(reasons),
            detected_keywords=list(keywords),
        )

    @staticmethod
    def _combine(
        rule_confidence: float,
        reasons: list[str],
        keywords: list[str],
        verdict: LlmVerdict,
    ) -> ScamAnalysis:
        final = clamp(rule_confidence * RULE_WEIGHT + verdict.confidence * LLM_WEIGHT)
        logger.debug(
            "Blend: rule=%.2f llm=%.2f final=%.2f type=%s",
            rule_confidence,
            verdict.confidence,
            final,
            verdict.scam_type,
        )
        return ScamAnalysis(
            is_scam=final > SCAM_THRESHOLD or verdict.is_scam,
            confidence=final,
            reasons=tuple(dedupe(reasons + verdict.reasons)),
            detected_keywords=tuple(keywords),
            detection_method=DetectionMethod.HYBRID,
            scam_type=verdict.scam_type,
            warning_message=verdict.warning_message,
            suspicious_parts=tuple(verdict.suspicious_parts),
        )

    @staticmethod
    def _rule_result(
        confidence: float,
        reasons: list[str],
        keywords: list[str],
        external_hit: bool,
    ) -> ScamAnalysis:
        is_scam = confidence >= SCAM_THRESHOLD
        if not reasons and not is_scam:
            scam_type = ScamType.SAFE
            warning = ""
        else:
            scam_type = infer_scam_type(reasons)
            warning = rule_warning(scam_type, confidence)

        return ScamAnalysis(
            is_scam=is_scam,
            confidence=confidence,
            reasons=tuple(reasons),
            detected_keywords=tuple(keywords),
            detection_method=DetectionMethod.EXTERNAL_DB if external_hit else DetectionMethod.RULE_BASED,
            scam_type=scam_type,
            warning_message=warning,
            suspicious_parts=tuple(keywords[:SUSPICIOUS_PARTS_LIMIT]),
        )

    @staticmethod
    def _record(result: ScamAnalysis) -> None:
        metrics.record_analysis(
            result.is_scam,
            result.scam_type.value,
            result.detection_method.value,
        )
