"""Detection metrics tracking for OnGuard.

Process-local counters for analyses, escalations and registry lookups,
used to tune thresholds and watch registry health.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class RegistryMetrics:
    """Lookup counters for a single registry."""

    lookups: int = 0
    failures: int = 0
    cache_hits: int = 0
    hits: int = 0  # Lookups that confirmed fraud
    last_failure: Optional[datetime] = None

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure = datetime.now()


class DetectionMetrics:
    """Thread-safe metrics collector for scam analysis.

    Tracks verdicts, scam type distribution, LLM escalations and per-registry
    lookup health.
    """

    _instance: Optional["DetectionMetrics"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "DetectionMetrics":
        """Singleton pattern for global metrics access."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._lock = threading.Lock()
        self._registries: dict[str, RegistryMetrics] = defaultdict(RegistryMetrics)
        self._scam_types: dict[str, int] = defaultdict(int)
        self._methods: dict[str, int] = defaultdict(int)
        self._patterns: dict[str, int] = defaultdict(int)
        self._total_analyses = 0
        self._scam_verdicts = 0
        self._short_circuits = 0
        self._escalations = 0
        self._llm_failures = 0
        self._analyzer_errors = 0
        self._started = datetime.now()

    def record_analysis(self, is_scam: bool, scam_type: str, method: str) -> None:
        """Record a completed analysis."""
        with self._lock:
            self._total_analyses += 1
            if is_scam:
                self._scam_verdicts += 1
            self._scam_types[scam_type] += 1
            self._methods[method] += 1

    def record_pattern_hit(self, pattern: str) -> None:
        """Record a regex rule match."""
        with self._lock:
            self._patterns[pattern] += 1

    def record_short_circuit(self) -> None:
        """Record input too short to analyze."""
        with self._lock:
            self._short_circuits += 1

    def record_escalation(self) -> None:
        with self._lock:
            self._escalations += 1

    def record_llm_failure(self) -> None:
        with self._lock:
            self._llm_failures += 1

    def record_analyzer_error(self) -> None:
        with self._lock:
            self._analyzer_errors += 1

    def record_lookup(self, registry: str, *, cached: bool = False, hit: bool = False) -> None:
        """Record a successful registry lookup (fresh or from cache)."""
        with self._lock:
            stats = self._registries[registry]
            stats.lookups += 1
            if cached:
                stats.cache_hits += 1
            if hit:
                stats.hits += 1

    def record_lookup_failure(self, registry: str) -> None:
        with self._lock:
            stats = self._registries[registry]
            stats.lookups += 1
            stats.record_failure()

    def snapshot(self) -> dict:
        """Get a summary of all metrics."""
        with self._lock:
            uptime = datetime.now() - self._started
            return {
                "uptime_seconds": int(uptime.total_seconds()),
                "total_analyses": self._total_analyses,
                "scam_verdicts": self._scam_verdicts,
                "short_circuits": self._short_circuits,
                "escalations": self._escalations,
                "llm_failures": self._llm_failures,
                "analyzer_errors": self._analyzer_errors,
                "scam_types": dict(self._scam_types),
                "detection_methods": dict(self._methods),
                "pattern_hits": dict(self._patterns),
                "registries": {
                    name: {
                        "lookups": stats.lookups,
                        "failures": stats.failures,
                        "cache_hits": stats.cache_hits,
                        "hits": stats.hits,
                        "last_failure": (
                            stats.last_failure.isoformat()
                            if stats.last_failure
                            else None
                        ),
                    }
                    for name, stats in self._registries.items()
                },
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._registries.clear()
            self._scam_types.clear()
            self._methods.clear()
            self._patterns.clear()
            self._total_analyses = 0
            self._scam_verdicts = 0
            self._short_circuits = 0
            self._escalations = 0
            self._llm_failures = 0
            self._analyzer_errors = 0
            self._started = datetime.now()


# Global instance
metrics = DetectionMetrics()
