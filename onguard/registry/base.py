"""Base classes for external fraud registry clients in OnGuard."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar

import httpx

from ..metrics import metrics

if TYPE_CHECKING:
    from ..cache import ExternalLookupCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RegistryLookupError(Exception):
    """Base exception for registry lookup errors."""

    pass


class RegistryTimeoutError(RegistryLookupError):
    """Registry did not answer within the lookup timeout."""

    pass


class RegistryAPIError(RegistryLookupError):
    """Registry returned an error status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"API error {status_code}: {message}")


class MalformedResponseError(RegistryLookupError):
    """Registry answered with a body we cannot interpret."""

    pass


class SessionError(RegistryLookupError):
    """Registry session could not be established."""

    def __init__(self, registry: str, message: str):
        self.registry = registry
        self.message = message
        super().__init__(f"{registry} session failed: {message}")


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    """Outcome of one registry call: a value or an error description."""

    registry: str
    value: Optional[T] = None
    error: Optional[str] = None
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, registry: str, value: T, cached: bool = False) -> "LookupResult[T]":
        return cls(registry=registry, value=value, cached=cached)

    @classmethod
    def failure(cls, registry: str, error: str) -> "LookupResult[T]":
        return cls(registry=registry, error=error)


class BaseRegistryClient(ABC, Generic[T]):
    """
    Base class for registries queried over HTTP with a cookie session.

    Provides:
    - Shared httpx client with sensible defaults (cookie jar persists the session)
    - Cached lookups through the shared ExternalLookupCache
    - Standard error handling: every failure becomes a failed LookupResult

    Subclasses implement `_open_session()`, `_query()` and `_parse()`.
    """

    registry_name: str = "unknown"
    base_url: str = ""
    timeout_seconds: float = 10.0
    session_path: str = ""
    user_agent: str = (
        "Mozilla/5.0 (Linux; Android 14) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Mobile Safari/537.36"
    )

    def __init__(
        self,
        cache: "ExternalLookupCache",
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        if base_url:
            self.base_url = base_url
        self.base_url = self.base_url.rstrip("/") + "/"
        if timeout_seconds is not None:
            self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def lookup(self, key: str) -> LookupResult[T]:
        """
        Look up one normalized key (phone digits, account digits).

        Cached answers are returned without touching the network. Failures
        are logged and returned as LookupResult.failure; they are never cached.
        """
        cached = self.cache.get(self.registry_name, key)
        if cached is not None:
            metrics.record_lookup(self.registry_name, cached=True, hit=self._is_hit(cached))
            return LookupResult.success(self.registry_name, cached, cached=True)

        token: Optional[str] = None

        async def action(session_token: str) -> T:
            nonlocal token
            token = session_token
            return await self._query(key, session_token)

        try:
            value = await self.cache.with_session(self.registry_name, self._open_session, action)

        except (httpx.TimeoutException, asyncio.TimeoutError):
            return self._failed(key, "timed out", token)

        except httpx.HTTPStatusError as e:
            return self._failed(key, f"API error: {e.response.status_code}", token)

        except RegistryLookupError as e:
            return self._failed(key, str(e), token)

        except httpx.HTTPError as e:
            return self._failed(key, f"network error: {type(e).__name__}", token)

        except asyncio.CancelledError:
            raise

        except Exception as e:
            logger.exception("%s lookup raised unexpectedly", self.registry_name)
            return self._failed(key, f"unexpected error: {type(e).__name__}", token)

        self.cache.put(self.registry_name, key, value)
        metrics.record_lookup(self.registry_name, hit=self._is_hit(value))
        return LookupResult.success(self.registry_name, value)

    def _failed(self, key: str, reason: str, token: Optional[str] = None) -> LookupResult[T]:
        logger.warning("%s lookup failed for %s: %s", self.registry_name, self.describe_key(key), reason)
        metrics.record_lookup_failure(self.registry_name)
        if token is not None:
            # The session may have expired server-side; renew on the next lookup.
            self.cache.invalidate_session(self.registry_name, token)
        return LookupResult.failure(self.registry_name, reason)

    async def _open_session(self) -> str:
        """Visit the registry's search page so the cookie jar holds a session."""
        client = await self._get_client()
        client.cookies.clear()
        resp = await client.get(self.session_path)
        if resp.status_code >= 400:
            raise SessionError(self.registry_name, f"session page returned {resp.status_code}")
        token = "; ".join(f"{name}={value}" for name, value in client.cookies.items())
        # Some deployments hand out no cookie; the visit itself is the session.
        return token or f"{self.registry_name}-{int(time.time())}"

    @abstractmethod
    async def _query(self, key: str, token: str) -> T:
        """Perform the registry request for one key. Raise on any failure."""
        raise NotImplementedError

    @abstractmethod
    def _parse(self, payload: Any) -> T:
        """Convert a decoded JSON payload into the registry's report type."""
        raise NotImplementedError

    def _is_hit(self, value: T) -> bool:
        return False

    def describe_key(self, key: str) -> str:
        """Masked form of a key, safe to log."""
        return "****"

    @staticmethod
    def _decode_json(resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            raise RegistryAPIError(resp.status_code, resp.reason_phrase or "error")
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"invalid JSON: {e}") from e
