"""Shared lookup cache and registry session manager for OnGuard.

One instance is shared by the URL, phone and account analyzers:
- Memory cache keyed by (registry, key) with per-entry TTL
- Size bound with oldest-first eviction
- Per-registry session tokens renewed lazily (single-flight)
- Thread-safe mutations; reads of a live entry take no lock

Usage:
    cache = ExternalLookupCache(ttl_seconds=900, max_entries=100)

    cache.put("police", "1101234567", response)
    cached = cache.get("police", "1101234567")

    result = await cache.get_or_fetch("police", key, fetch_async_fn)
    result = await cache.with_session("police", open_session, lookup)
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from .registry.base import SessionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 15 * 60
DEFAULT_SESSION_TTL_SECONDS = 30 * 60
DEFAULT_MAX_ENTRIES = 100


class CacheEntry:
    """Represents a cached value with its insertion time."""

    __slots__ = ("key", "value", "inserted_at", "ttl_seconds")

    def __init__(self, key: str, value: Any, inserted_at: float, ttl_seconds: float):
        self.key = key
        self.value = value
        self.inserted_at = inserted_at
        self.ttl_seconds = ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl_seconds


@dataclass(frozen=True)
class Session:
    """A registry session token and its expiry."""

    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class ExternalLookupCache:
    """
    TTL cache plus session lifecycle for external fraud registries.

    Mutations (insert, evict, session install) run under a single RLock so the
    cache can be shared by analyses running on different threads or event
    loops. Session renewal is serialized per registry with an asyncio lock and
    re-checked after the lock is taken, so concurrent callers that find an
    expired session trigger exactly one renewal.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        session_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Default TTL for cached lookups
            max_entries: Upper bound on cached entries across all registries
            session_ttl_seconds: Default lifetime of a registry session
            clock: Monotonic time source (overridable in tests)
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.session_ttl_seconds = session_ttl_seconds
        self._clock = clock

        self._entries: "OrderedDict[Tuple[str, str], CacheEntry]" = OrderedDict()
        self._sessions: Dict[str, Session] = {}
        self._session_locks: Dict[str, asyncio.Lock] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _make_key(registry: str, key: str) -> Tuple[str, str]:
        return (registry, key)

    def get(self, registry: str, key: str) -> Optional[Any]:
        """
        Get a cached value if present and not expired.

        Returns:
            Cached value, or None if absent or expired (expired entries are evicted)
        """
        full_key = self._make_key(registry, key)
        entry = self._entries.get(full_key)
        if entry is None:
            return None
        if not entry.is_expired(self._clock()):
            return entry.value

        with self._lock:
            # Only drop the entry we saw; a concurrent put may have replaced it.
            if self._entries.get(full_key) is entry:
                del self._entries[full_key]
        logger.debug("Cache expired for %s:%s", registry, entry.key)
        return None

    def put(
        self,
        registry: str,
        key: str,
        value: Any,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        """
        Store a value, evicting the oldest entries when the cache is full.

        None is never cached; it is indistinguishable from a miss.
        """
        if value is None:
            return
        full_key = self._make_key(registry, key)
        entry = CacheEntry(
            key=key,
            value=value,
            inserted_at=self._clock(),
            ttl_seconds=self.ttl_seconds if ttl_seconds is None else ttl_seconds,
        )

        with self._lock:
            self._entries.pop(full_key, None)
            while len(self._entries) >= self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("Cache full, evicted %s:%s", *evicted_key)
            self._entries[full_key] = entry

    def delete(self, registry: str, key: str) -> None:
        """Delete a cached value."""
        with self._lock:
            self._entries.pop(self._make_key(registry, key), None)

    def clear(self, registry: Optional[str] = None) -> None:
        """Clear cached values for one registry, or everything."""
        with self._lock:
            if registry is None:
                self._entries.clear()
                return
            for full_key in [k for k in self._entries if k[0] == registry]:
                del self._entries[full_key]

    async def get_or_fetch(
        self,
        registry: str,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[float] = None,
    ) -> Any:
        """
        Get a cached value or fetch and cache it.

        Exceptions from fetch_fn propagate and nothing is cached, so a
        cancelled or failed lookup never leaves a partial entry behind.
        """
        cached = self.get(registry, key)
        if cached is not None:
            return cached

        value = await fetch_fn()
        self.put(registry, key, value, ttl_seconds)
        return value

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _session_lock(self, registry: str) -> asyncio.Lock:
        with self._lock:
            lock = self._session_locks.get(registry)
            if lock is None:
                lock = asyncio.Lock()
                self._session_locks[registry] = lock
            return lock

    def current_session(self, registry: str) -> Optional[Session]:
        """Return the live session for a registry, if any."""
        session = self._sessions.get(registry)
        if session and session.is_valid(self._clock()):
            return session
        return None

    async def ensure_session(
        self,
        registry: str,
        renew: Callable[[], Awaitable[str]],
        ttl_seconds: Optional[float] = None,
    ) -> str:
        """
        Return a valid session token, renewing it at most once concurrently.

        Raises:
            SessionError: renewal failed or returned an empty token
        """
        session = self.current_session(registry)
        if session:
            return session.token

        async with self._session_lock(registry):
            # Double-check after acquiring lock
            session = self.current_session(registry)
            if session:
                return session.token

            logger.debug("Renewing session for %s", registry)
            try:
                token = await renew()
            except asyncio.CancelledError:
                raise
            except SessionError:
                raise
            except Exception as e:
                raise SessionError(registry, str(e) or type(e).__name__) from e

            if not token:
                raise SessionError(registry, "empty session token")

            ttl = self.session_ttl_seconds if ttl_seconds is None else ttl_seconds
            with self._lock:
                self._sessions[registry] = Session(token=token, expires_at=self._clock() + ttl)
            logger.info("Session established for %s", registry)
            return token

    async def with_session(
        self,
        registry: str,
        renew: Callable[[], Awaitable[str]],
        action: Callable[[str], Awaitable[T]],
        ttl_seconds: Optional[float] = None,
    ) -> T:
        """Run action with a valid session token for the registry."""
        token = await self.ensure_session(registry, renew, ttl_seconds)
        return await action(token)

    def invalidate_session(self, registry: str, token: Optional[str] = None) -> None:
        """
        Drop a registry session so the next caller renews it.

        When token is given, only that session is dropped; a session renewed
        by another caller in the meantime is left alone.
        """
        with self._lock:
            current = self._sessions.get(registry)
            if current is None:
                return
            if token is None or current.token == token:
                del self._sessions[registry]
                logger.debug("Session invalidated for %s", registry)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            per_registry: Dict[str, int] = {}
            for registry, _ in self._entries:
                per_registry[registry] = per_registry.get(registry, 0) + 1
            now = self._clock()
            return {
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "registries": per_registry,
                "sessions": sorted(r for r, s in self._sessions.items() if s.is_valid(now)),
            }
