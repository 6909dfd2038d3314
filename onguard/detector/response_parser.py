"""Parsing of contextual-analyzer replies into LlmVerdict.

Two reply shapes are accepted:
- A JSON object (possibly wrapped in a ```json fence or surrounded by prose)
  with isScam, confidence, scamType, warningMessage, reasons, suspiciousParts.
- The legacy one-line form "[위험도: 높음|중간|낮음] <reason>".
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Optional

from ..constants import SCAM_THRESHOLD, ScamType, clamp
from .models import LlmVerdict

logger = logging.getLogger(__name__)

FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)
LEGACY_RE = re.compile(r"\[위험도:\s*(높음|중간|낮음)\]\s*(.*)", re.DOTALL)

LEGACY_CONFIDENCE = {
    "높음": 0.85,
    "중간": 0.6,
    "낮음": 0.3,
}

# Checked in order; the first substring found wins.
SCAM_TYPE_MARKERS: list[tuple[tuple[str, ...], ScamType]] = [
    (("투자",), ScamType.INVESTMENT),
    (("중고", "거래"), ScamType.USED_TRADE),
    (("보이스피싱", "스미싱"), ScamType.VOICE_PHISHING),
    (("피싱",), ScamType.PHISHING),
    (("사칭",), ScamType.IMPERSONATION),
    (("로맨스",), ScamType.ROMANCE),
    (("대출",), ScamType.LOAN),
    (("정상",), ScamType.SAFE),
]

# Rule reasons carry Korean vocabulary; checked in order.
INFERENCE_MARKERS: list[tuple[tuple[str, ...], ScamType]] = [
    (("보이스피싱 신고",), ScamType.VOICE_PHISHING),
    (("투자", "수익", "코인", "주식"), ScamType.INVESTMENT),
    (("입금", "선결제", "거래", "택배"), ScamType.USED_TRADE),
    (("URL", "링크", "피싱"), ScamType.PHISHING),
    (("사칭", "기관"), ScamType.IMPERSONATION),
    (("대출",), ScamType.LOAN),
    (("로맨스", "연인"), ScamType.ROMANCE),
]

DEFAULT_WARNINGS = {
    ScamType.INVESTMENT: "투자 사기가 의심됩니다 (위험도 {pct}%).",
    ScamType.USED_TRADE: "중고거래 사기가 의심됩니다 (위험도 {pct}%).",
    ScamType.PHISHING: "피싱 링크가 포함되어 있습니다 (위험도 {pct}%).",
    ScamType.VOICE_PHISHING: "보이스피싱/스미싱 의심 (위험도 {pct}%).",
    ScamType.IMPERSONATION: "사칭 사기가 의심됩니다 (위험도 {pct}%).",
    ScamType.LOAN: "대출 사기가 의심됩니다 (위험도 {pct}%).",
}
FALLBACK_WARNING = "사기 의심 메시지입니다 (위험도 {pct}%)."

# Advice appended to rule-only warnings
RULE_ADVICE = {
    ScamType.INVESTMENT: "고수익을 보장하는 투자는 대부분 사기입니다.",
    ScamType.USED_TRADE: "선입금을 요구하면 직거래로 진행하세요.",
    ScamType.PHISHING: "의심스러운 링크를 클릭하지 마세요.",
    ScamType.VOICE_PHISHING: "모르는 번호의 송금 요청에 응하지 마세요.",
    ScamType.IMPERSONATION: "공식 채널을 통해 확인하세요.",
    ScamType.LOAN: "선수수료 요구는 불법입니다.",
}
FALLBACK_ADVICE = "주의하세요."

DEFAULT_LLM_REASON = "LLM 문맥 분석 결과"


def percent(confidence: float) -> int:
    return int(clamp(confidence) * 100)


def parse_scam_type(value: Any) -> ScamType:
    """Map a free-form scam type (Korean label or enum name) to ScamType."""
    if not value:
        return ScamType.UNKNOWN
    text = str(value).strip()

    by_name = text.upper().replace("-", "_").replace(" ", "_")
    if by_name in ScamType.__members__:
        return ScamType[by_name]
    by_value = ScamType.from_string(text)
    if by_value is not ScamType.UNKNOWN:
        return by_value

    for markers, scam_type in SCAM_TYPE_MARKERS:
        if any(marker in text for marker in markers):
            return scam_type
    return ScamType.UNKNOWN


def infer_scam_type(reasons: list[str]) -> ScamType:
    """Best-effort scam type from rule reasons."""
    joined = " ".join(reasons)
    for markers, scam_type in INFERENCE_MARKERS:
        if any(marker in joined for marker in markers):
            return scam_type
    return ScamType.UNKNOWN


def default_warning(scam_type: ScamType, confidence: float) -> str:
    template = DEFAULT_WARNINGS.get(scam_type, FALLBACK_WARNING)
    return template.format(pct=percent(confidence))


def rule_warning(scam_type: ScamType, confidence: float) -> str:
    """Warning for verdicts reached without the contextual analyzer."""
    advice = RULE_ADVICE.get(scam_type, FALLBACK_ADVICE)
    return f"{default_warning(scam_type, confidence)} {advice}"


def _as_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).strip().rstrip("%"))
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    if number > 1.0:
        number /= 100.0
    return clamp(number)


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1", "예"):
            return True
        if lowered in ("false", "no", "0", "아니오"):
            return False
    return None


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


def _json_candidate(raw: str) -> Optional[str]:
    fenced = FENCED_JSON_RE.search(raw)
    if fenced:
        return fenced.group(1)
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    return raw[start : end + 1]


def parse_json_response(raw: str, context_text: str = "") -> Optional[LlmVerdict]:
    candidate = _json_candidate(raw)
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug("Contextual reply is not valid JSON: %s", e)
        return None
    if not isinstance(data, dict):
        return None

    confidence = _as_confidence(data.get("confidence"))
    is_scam = _as_bool(data.get("isScam", data.get("is_scam")))
    if confidence is None and is_scam is None:
        return None
    if confidence is None:
        confidence = 0.0
    if is_scam is None:
        is_scam = confidence >= SCAM_THRESHOLD

    scam_type = parse_scam_type(data.get("scamType", data.get("scam_type")))
    if scam_type is ScamType.UNKNOWN and context_text:
        scam_type = infer_scam_type([context_text])
    warning = str(data.get("warningMessage", data.get("warning_message")) or "").strip()
    if not warning and is_scam:
        warning = default_warning(scam_type, confidence)

    reasons = _as_str_list(data.get("reasons")) or [DEFAULT_LLM_REASON]

    return LlmVerdict(
        is_scam=is_scam,
        confidence=confidence,
        scam_type=scam_type,
        warning_message=warning,
        reasons=reasons,
        suspicious_parts=_as_str_list(data.get("suspiciousParts", data.get("suspicious_parts"))),
        raw=raw,
    )


def parse_legacy_response(raw: str) -> Optional[LlmVerdict]:
    match = LEGACY_RE.search(raw)
    if not match:
        return None

    level = match.group(1)
    reason = match.group(2).strip()
    confidence = LEGACY_CONFIDENCE[level]

    if level == "높음":
        warning = f"이 메시지는 피싱/사기일 가능성이 매우 높습니다. {reason}"
    elif level == "중간":
        warning = f"이 메시지는 피싱/사기일 가능성이 있습니다. {reason}"
    else:
        warning = f"일부 위험 신호가 감지되었지만 확실하지 않습니다. {reason}"

    return LlmVerdict(
        is_scam=level != "낮음",
        confidence=confidence,
        scam_type=parse_scam_type(reason),
        warning_message=warning.strip(),
        reasons=[reason] if reason else [],
        raw=raw,
    )


def parse_response(raw: Optional[str], context_text: str = "") -> Optional[LlmVerdict]:
    """Parse a reply with the JSON strategy, then the legacy one; None if neither fits."""
    if not raw or not raw.strip():
        return None
    verdict = parse_json_response(raw, context_text)
    if verdict is None:
        verdict = parse_legacy_response(raw)
    if verdict is None:
        logger.debug("Unrecognized contextual reply (%d chars)", len(raw))
    return verdict
