"""Contextual (LLM) analysis of ambiguous messages.

The analyzer only ever sees redacted text. It builds a chat prompt, calls a
backend with a bounded timeout and parses the reply; any failure yields None
so the caller falls back to the rule verdict.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..metrics import metrics
from .models import LlmRequest, LlmVerdict
from .response_parser import parse_response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0

SYSTEM_PROMPT = (
    '너는 사기 탐지 전문가야. 너의 이름은 "OnGuard"이고, 한국어 메신저 대화에서 '
    "피싱/사기 메시지를 분석하는 보안 전문가야. 대화 흐름 전체와 현재 메시지를 함께 보고 "
    "판단해. 반드시 아래 JSON 형식으로만 답변해. JSON 이외의 텍스트는 출력하지 마."
)

RESPONSE_INSTRUCTIONS = """요청:
전체 대화 흐름과 현재 메시지를 분석하여 아래 JSON 형식으로 응답하세요.
반드시 JSON만 출력하고, 다른 텍스트는 포함하지 마세요.

JSON 필드 설명:
- isScam: 사기 의심 여부 (true/false)
- confidence: 사기 가능성 (0~100 정수, 50 이상이면 사기 의심)
- scamType: 사기 유형 (INVESTMENT/USED_TRADE/PHISHING/VOICE_PHISHING/IMPERSONATION/ROMANCE/LOAN/UNKNOWN 중 하나)
- warningMessage: 사용자에게 보여줄 경고 메시지 (한국어, 1~2문장)
- reasons: 탐지 이유 목록 (짧고 명확하게)
- suspiciousParts: 원문에서 의심되는 표현 인용 (최대 3개)

출력 형식:
```json
{
  "isScam": true,
  "confidence": 75,
  "scamType": "PHISHING",
  "warningMessage": "피싱 링크가 포함되어 있습니다.",
  "reasons": ["피싱 URL 감지", "긴급 유도 표현"],
  "suspiciousParts": ["지금 바로 클릭", "bit.ly/xxx"]
}
```"""


@runtime_checkable
class LlmBackend(Protocol):
    """Prompt-in, text-out completion service."""

    @property
    def available(self) -> bool: ...

    async def complete(self, system: str, user: str) -> str: ...


class HttpLlmBackend:
    """OpenAI-compatible chat-completions backend over httpx."""

    def __init__(
        self,
        endpoint: str = "",
        api_key: str = "",
        model: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = (endpoint or "").rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def available(self) -> bool:
        return bool(self.endpoint and self.model)

    @property
    def completions_url(self) -> str:
        if self.endpoint.endswith("/chat/completions"):
            return self.endpoint
        return f"{self.endpoint}/chat/completions"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def complete(self, system: str, user: str) -> str:
        client = await self._get_client()
        resp = await client.post(
            self.completions_url,
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                "temperature": 0.1,
                "max_tokens": 512,
            },
        )
        resp.raise_for_status()
        data = resp.json()
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Unexpected completion payload: {e}") from e


def build_prompt(request: LlmRequest) -> str:
    """User block: recent conversation, current message and the rule summary."""
    lines = [line for line in request.recent_context.splitlines() if line.strip()]
    recent_block = "\n".join(f"- {line}" for line in lines) if lines else "- (최근 대화 없음)"
    reasons_text = "; ".join(request.rule_reasons) or "없음"
    keywords_text = ", ".join(request.detected_keywords) or "없음"

    return (
        f"[최근 대화]\n{recent_block}\n\n"
        f"[현재 메시지]\n{request.current_message}\n\n"
        "추가 정보:\n"
        f"- 룰 기반 탐지 이유: {reasons_text}\n"
        f"- 탐지된 키워드: {keywords_text}\n\n"
        f"{RESPONSE_INSTRUCTIONS}"
    )


class ContextualAnalyzer:
    """Runs the LLM step; returns a verdict or None, never raises."""

    def __init__(
        self,
        backend: Optional[LlmBackend] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.backend = backend
        self.timeout_seconds = timeout_seconds

    @property
    def available(self) -> bool:
        return self.backend is not None and self.backend.available

    async def analyze(self, request: LlmRequest) -> Optional[LlmVerdict]:
        if not self.available:
            return None

        prompt = build_prompt(request)
        try:
            raw = await asyncio.wait_for(
                self.backend.complete(SYSTEM_PROMPT, prompt),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Contextual analysis timed out after %.1fs", self.timeout_seconds)
            metrics.record_llm_failure()
            return None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Contextual analysis failed: %s", e)
            metrics.record_llm_failure()
            return None

        verdict = parse_response(raw, request.recent_context or request.redacted_text)
        if verdict is None:
            logger.warning("Contextual reply could not be parsed")
            metrics.record_llm_failure()
            return None

        logger.debug(
            "Contextual verdict: is_scam=%s confidence=%.2f type=%s",
            verdict.is_scam,
            verdict.confidence,
            verdict.scam_type,
        )
        return verdict

    async def close(self) -> None:
        close = getattr(self.backend, "close", None)
        if close is not None:
            await close()
