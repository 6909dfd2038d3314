"""
Phishing URL reputation registry.

Two sources, checked in order:
- Local blocklist of known phishing hosts/URLs (config/phishing_urls.txt)
- Optional remote JSON endpoint answering whether a URL is known phishing

Remote answers are cached in the shared ExternalLookupCache. Remote
failures surface as failed LookupResults and never raise.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Iterable, Optional

import aiohttp

from ..metrics import metrics
from ..utils.domains import canonicalize_domain, extract_hostname
from .base import LookupResult, MalformedResponseError, RegistryAPIError, RegistryTimeoutError

if TYPE_CHECKING:
    from ..cache import ExternalLookupCache

logger = logging.getLogger(__name__)

REGISTRY_NAME = "phishing_url"


def _url_key(url: str) -> str:
    """Scheme-less, lowercased URL without trailing slash ("evil.tk/login")."""
    value = (url or "").strip().lower()
    if "://" in value:
        value = value.split("://", 1)[1]
    if value.startswith("www."):
        value = value[4:]
    return value.rstrip("/")


class PhishingUrlRegistry:
    """Known-phishing URL lookups against a local blocklist and a remote DB."""

    registry_name = REGISTRY_NAME

    def __init__(
        self,
        cache: "ExternalLookupCache",
        blocklist: Optional[Iterable[str]] = None,
        endpoint: Optional[str] = None,
        timeout_seconds: float = 10.0,
        api_key: Optional[str] = None,
    ):
        self.cache = cache
        self.endpoint = endpoint or None
        self.timeout_seconds = timeout_seconds
        self.api_key = api_key
        self._blocked_urls: set[str] = set()
        self._blocked_hosts: set[str] = set()
        for entry in blocklist or ():
            self.add_to_blocklist(entry)

    def add_to_blocklist(self, entry: str) -> None:
        """Add a host ("evil.tk") or URL ("evil.tk/login") to the local blocklist."""
        key = _url_key(entry)
        if not key:
            return
        if "/" in key:
            self._blocked_urls.add(key)
        else:
            self._blocked_hosts.add(canonicalize_domain(key))

    @property
    def blocklist_size(self) -> int:
        return len(self._blocked_urls) + len(self._blocked_hosts)

    def in_blocklist(self, url: str) -> bool:
        """True when the URL, its host, or any parent domain of its host is blocked."""
        key = _url_key(url)
        if key in self._blocked_urls:
            return True
        host = canonicalize_domain(extract_hostname(url))
        while host:
            if host in self._blocked_hosts:
                return True
            if "." not in host:
                break
            host = host.split(".", 1)[1]
        return False

    async def is_phishing_url(self, url: str) -> LookupResult[bool]:
        """
        Check whether a normalized URL is known phishing.

        Returns:
            LookupResult carrying True/False, or a failure when the remote
            endpoint could not be consulted.
        """
        if self.in_blocklist(url):
            metrics.record_lookup(self.registry_name, hit=True)
            return LookupResult.success(self.registry_name, True)

        if not self.endpoint:
            return LookupResult.success(self.registry_name, False)

        key = _url_key(url)
        cached = self.cache.get(self.registry_name, key)
        if cached is not None:
            metrics.record_lookup(self.registry_name, cached=True, hit=bool(cached))
            return LookupResult.success(self.registry_name, cached, cached=True)

        try:
            verdict = await self._query_remote(url)
        except RegistryTimeoutError:
            return self._failed(key, "timed out")
        except (RegistryAPIError, MalformedResponseError) as e:
            return self._failed(key, str(e))
        except aiohttp.ClientError as e:
            return self._failed(key, f"network error: {type(e).__name__}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("URL registry lookup raised unexpectedly")
            return self._failed(key, f"unexpected error: {type(e).__name__}")

        self.cache.put(self.registry_name, key, verdict)
        metrics.record_lookup(self.registry_name, hit=verdict)
        return LookupResult.success(self.registry_name, verdict)

    def _failed(self, key: str, reason: str) -> LookupResult[bool]:
        logger.warning("URL registry lookup failed for %s: %s", key[:80], reason)
        metrics.record_lookup_failure(self.registry_name)
        return LookupResult.failure(self.registry_name, reason)

    async def _query_remote(self, url: str) -> bool:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.endpoint,
                    headers=headers,
                    json={"url": url},
                    timeout=self.timeout_seconds,
                ) as resp:
                    if resp.status != 200:
                        raise RegistryAPIError(resp.status, "URL registry error")
                    try:
                        payload = await resp.json()
                    except (aiohttp.ContentTypeError, ValueError, TypeError) as e:
                        raise MalformedResponseError(f"invalid JSON: {e}") from e
        except asyncio.TimeoutError as e:
            raise RegistryTimeoutError(f"URL registry timeout after {self.timeout_seconds}s") from e

        verdict = self._parse(payload)
        logger.debug("URL registry: %s = %s", _url_key(url)[:80], verdict)
        return verdict

    @staticmethod
    def _parse(payload: Any) -> bool:
        if isinstance(payload, bool):
            return payload
        if isinstance(payload, dict):
            for field_name in ("phishing", "is_phishing", "malicious"):
                value = payload.get(field_name)
                if isinstance(value, bool):
                    return value
        raise MalformedResponseError("expected a boolean verdict")
