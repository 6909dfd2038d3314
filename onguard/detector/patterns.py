"""Rule-based keyword and regex pattern matching."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Mapping, Optional

from ..constants import clamp, dedupe
from ..metrics import metrics
from .keywords import (
    CATEGORY_MARKERS,
    COMBINATION_BONUS,
    COMBINATION_REASON,
    DEFAULT_KEYWORD_TIERS,
    DEFAULT_PATTERN_RULES,
    KeywordTier,
    PatternRule,
)
from .models import KeywordSignal

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def compact_text(text: str) -> str:
    """Lowercase and remove all whitespace."""
    return _WHITESPACE_RE.sub("", (text or "").lower())


class PatternMatcher:
    """
    Scores text against tiered scam keywords and weighted regex rules.

    Pure and stateless after construction: the same text always yields the
    same signal.
    """

    def __init__(
        self,
        extra_keywords: Optional[Mapping[str, Iterable[str]]] = None,
        pattern_rules: Iterable[PatternRule] = DEFAULT_PATTERN_RULES,
    ):
        """
        Args:
            extra_keywords: Additional phrases per tier name ("critical",
                "high", "medium"), appended to the built-in sets
            pattern_rules: Weighted regex rules run on the raw text
        """
        self._tiers: list[tuple[KeywordTier, list[tuple[str, str]]]] = []
        extra_keywords = extra_keywords or {}
        for tier, builtin in DEFAULT_KEYWORD_TIERS.items():
            phrases = list(builtin) + [str(k) for k in extra_keywords.get(tier.name.lower(), ()) or ()]
            # (display form, compacted lowercase form), first occurrence wins
            compiled: dict[str, str] = {}
            for phrase in phrases:
                needle = compact_text(phrase)
                if needle and needle not in compiled.values():
                    compiled[phrase.strip()] = needle
            self._tiers.append((tier, list(compiled.items())))
        self._rules = tuple(pattern_rules)

    def analyze(self, text: str) -> KeywordSignal:
        """Score text; never raises for any string input."""
        compacted = compact_text(text)
        signal = KeywordSignal()
        total = 0.0

        for tier, phrases in self._tiers:
            detected = [phrase for phrase, needle in phrases if needle in compacted]
            if not detected:
                continue
            total += len(detected) * tier.value
            signal.detected_keywords.extend(detected)
            signal.reasons.append(f"{tier.label} 키워드 {len(detected)}개 발견: {', '.join(detected[:3])}")

        for rule in self._rules:
            if rule.regex.search(text or ""):
                total += rule.weight
                signal.matched_patterns.append(rule.name)
                signal.reasons.append(f"{rule.description} 감지")
                metrics.record_pattern_hit(rule.name)

        signal.categories = self.categories_for(signal.detected_keywords)
        if len(signal.categories) >= 2:
            total += COMBINATION_BONUS
            signal.reasons.append(COMBINATION_REASON)

        signal.detected_keywords = dedupe(signal.detected_keywords)
        signal.reasons = dedupe(signal.reasons)
        signal.confidence = clamp(total)
        logger.debug(
            "Pattern match: confidence=%.2f keywords=%d patterns=%s",
            signal.confidence,
            len(signal.detected_keywords),
            signal.matched_patterns,
        )
        return signal

    @staticmethod
    def categories_for(keywords: Iterable[str]) -> set[str]:
        """Money / urgency / auth categories covered by the detected keywords."""
        lowered = [k.lower() for k in keywords]
        return {
            category
            for category, markers in CATEGORY_MARKERS.items()
            if any(marker in keyword for keyword in lowered for marker in markers)
        }
