"""URL reputation analysis.

Extracts URLs from message text and scores each one:
- Phishing registry match (local blocklist / remote DB)
- Free or throwaway TLD
- Shortener domain (destination hidden)
- Phishing vocabulary in host or path
- Bank/brand token in the host on a non-official domain
- IP-literal host, excessive length, obfuscating characters
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

from rapidfuzz import fuzz

from ..constants import clamp, dedupe
from ..registry.phishing_url import PhishingUrlRegistry
from ..utils.domains import (
    decode_idn_host,
    extract_hostname,
    has_public_suffix,
    host_words,
    is_ip_host,
    is_official_domain,
    normalize_homoglyphs,
    strip_public_suffix,
)
from .keywords import (
    BANK_OFFICIAL_DOMAINS,
    PHISHING_URL_KEYWORDS,
    SHORTENER_DOMAINS,
    SUSPICIOUS_TLDS,
)
from .models import UrlSignal

logger = logging.getLogger(__name__)

SCORE_REGISTRY = 0.9  # Registered phishing URL: near-certain
SCORE_BANK_SPOOF = 0.5
SCORE_FREE_TLD = 0.4
SCORE_IP_HOST = 0.35
SCORE_SHORTENER = 0.3
SCORE_PHISHING_KEYWORD = 0.25  # Per keyword
SCORE_LONG_URL = 0.2
SCORE_SPECIAL_CHARS = 0.2

MAX_URL_LENGTH = 150
MAX_SPECIAL_CHARS = 5
LOOKALIKE_RATIO = 85

_URL_CHARS = r"[A-Za-z0-9\-._~:/?#\[\]@!$&()*+,;=%]"
URL_RE = re.compile(
    rf"(?:https?://|www\.){_URL_CHARS}+"
    rf"|(?<![@A-Za-z0-9.\-])(?:[A-Za-z0-9](?:[A-Za-z0-9\-]{{0,61}}[A-Za-z0-9])?\.)+[A-Za-z]{{2,24}}"
    rf"(?::\d{{2,5}})?(?:/{_URL_CHARS}*)?",
    re.IGNORECASE,
)
_TRAILING_PUNCT = ".,;:!?)]}'\""


def extract_urls(text: str) -> list[str]:
    """
    Find web URLs in free text, normalized to carry a scheme.

    Recognizes scheme-qualified, www.-prefixed and bare host.tld/path forms.
    Bare hosts count only when their suffix is a real public suffix, so
    "file.txt" or "0.1btc" are not taken for URLs.
    """
    urls: list[str] = []
    for match in URL_RE.finditer(text or ""):
        token = match.group(0).rstrip(_TRAILING_PUNCT)
        if not token:
            continue
        lower = token.lower()
        if not lower.startswith(("http://", "https://")):
            if not lower.startswith("www."):
                if not has_public_suffix(token):
                    continue
            token = f"https://{token}"
        if not extract_hostname(token):
            continue
        urls.append(token)
    return dedupe(urls)


def _official_labels() -> dict[str, set[str]]:
    labels: dict[str, set[str]] = {}
    for brand, domains in BANK_OFFICIAL_DOMAINS.items():
        labels[brand] = {d.split(".", 1)[0] for d in domains}
    return labels


class UrlReputationAnalyzer:
    """Scores URLs found in text; registry failures count as no signal."""

    def __init__(self, registry: Optional[PhishingUrlRegistry] = None):
        self.registry = registry
        self._official_labels = _official_labels()

    async def analyze(self, text: str) -> UrlSignal:
        urls = extract_urls(text)
        signal = UrlSignal(extracted_items=urls)
        if not urls:
            return signal

        registry_results = await asyncio.gather(*(self._check_registry(url) for url in urls))

        score = 0.0
        flagged: list[str] = []
        for url, registry_hit in zip(urls, registry_results):
            if registry_hit is None:
                signal.lookup_failures += 1
            elif registry_hit:
                signal.registry_hits.append(url)
                flagged.append(url)
                score += SCORE_REGISTRY
                signal.reasons.append("피싱사이트 DB 등록 URL")
                logger.warning("Registered phishing URL in message: %s", extract_hostname(url))

            url_score, reasons = self.score_url(url)
            if url_score > 0:
                flagged.append(url)
                score += url_score
                signal.reasons.extend(reasons)

        signal.flagged_items = dedupe(flagged)
        signal.reasons = dedupe(signal.reasons)
        signal.risk_score = clamp(score)
        return signal

    async def _check_registry(self, url: str) -> Optional[bool]:
        """True/False from the registry, None when the lookup failed."""
        if self.registry is None:
            return False
        result = await self.registry.is_phishing_url(url)
        if not result.ok:
            return None
        return bool(result.value)

    def score_url(self, url: str) -> tuple[float, list[str]]:
        """Local heuristics for one URL (no network)."""
        score = 0.0
        reasons: list[str] = []

        host = extract_hostname(url)
        display_host = decode_idn_host(host)
        rest = url.split("://", 1)[-1].lower()

        tld = host.rsplit(".", 1)[-1] if "." in host else ""
        if tld in SUSPICIOUS_TLDS:
            score += SCORE_FREE_TLD
            reasons.append(f"무료 도메인 URL 감지: {display_host}")

        if any(host == d or host.endswith("." + d) for d in SHORTENER_DOMAINS):
            score += SCORE_SHORTENER
            reasons.append("단축 URL 감지 (목적지 불명)")

        keyword_hits = [kw for kw in PHISHING_URL_KEYWORDS if kw in rest]
        if keyword_hits:
            score += SCORE_PHISHING_KEYWORD * len(keyword_hits)
            reasons.append(f"피싱 의심 키워드: {', '.join(keyword_hits)}")

        for brand in self._spoofed_brands(host):
            score += SCORE_BANK_SPOOF
            reasons.append(f"금융기관 사칭 의심: {brand}")

        if is_ip_host(host):
            score += SCORE_IP_HOST
            reasons.append("IP 주소 직접 접근 (비정상)")

        if len(url) > MAX_URL_LENGTH:
            score += SCORE_LONG_URL
            reasons.append("비정상적으로 긴 URL")

        if sum(url.count(c) for c in "@%&") > MAX_SPECIAL_CHARS:
            score += SCORE_SPECIAL_CHARS
            reasons.append("특수문자 과다 사용 (난독화 의심)")

        return score, reasons

    def _spoofed_brands(self, host: str) -> list[str]:
        """
        Brands named in the host's labels on a domain the brand does not own.

        A brand is named when a host word equals the brand token, equals the
        first label of one of its official domains, or is a close lookalike of
        one (homoglyphs and typos, e.g. "kbstarr", "woor1bank").
        """
        if not host or is_ip_host(host):
            return []

        normalized = normalize_homoglyphs(decode_idn_host(host)).lower()
        words = host_words(strip_public_suffix(normalized))
        if not words:
            return []

        spoofed: list[str] = []
        claimed: set[str] = set()
        for brand, domains in BANK_OFFICIAL_DOMAINS.items():
            if claimed.intersection(domains) or not self._names_brand(brand, words):
                continue
            # Punycode lookalikes never equal an official host, so they fall through.
            if is_official_domain(host, domains):
                continue
            spoofed.append(brand)
            claimed.update(domains)
        return spoofed

    def _names_brand(self, brand: str, words: list[str]) -> bool:
        labels = self._official_labels.get(brand, set())
        for word in words:
            if word == brand or word in labels:
                return True
            for label in labels:
                if len(label) >= 6 and fuzz.ratio(word, label) >= LOOKALIKE_RATIO:
                    return True
        return False
