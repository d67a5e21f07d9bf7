"""Zero-impact in-memory resolution metrics.

All counters are plain Python integers manipulated inside the single-threaded
async event loop without locks or I/O.  One
collector instance is created by the composition root and injected into
the components that report to it.

``time.perf_counter_ns()`` is used for timing (monotonic, nanosecond
resolution, near-zero overhead).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class SourceStats:
    """Accumulated statistics for a single source adapter."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_duration_ns: int = 0

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable summary."""
        avg_ms = (
            round(self.total_duration_ns / self.attempts / 1_000_000, 1)
            if self.attempts
            else 0.0
        )
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "avg_duration_ms": avg_ms,
        }


@dataclass
class ResolutionStats:
    """Accumulated statistics for top-level resolutions."""

    requests: int = 0
    successes: int = 0
    failures: int = 0
    cache_hits: int = 0
    metadata_lookups: int = 0
    metadata_failures: int = 0

    def snapshot(self) -> dict[str, object]:
        return {
            "requests": self.requests,
            "successes": self.successes,
            "failures": self.failures,
            "cache_hits": self.cache_hits,
            "metadata_lookups": self.metadata_lookups,
            "metadata_failures": self.metadata_failures,
        }


@dataclass
class MetricsCollector:
    """Central in-memory metrics collector.

    Thread-safety is not required: the async event loop is
    single-threaded, so plain integer increments are atomic enough.
    """

    _sources: dict[str, SourceStats] = field(default_factory=dict)
    _resolutions: ResolutionStats = field(default_factory=ResolutionStats)
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_source_attempt(
        self,
        source_id: str,
        duration_ns: int,
        *,
        success: bool,
    ) -> None:
        """Record one adapter invocation."""
        stats = self._sources.get(source_id)
        if stats is None:
            stats = SourceStats()
            self._sources[source_id] = stats

        stats.attempts += 1
        stats.total_duration_ns += duration_ns
        if success:
            stats.successes += 1
        else:
            stats.failures += 1

    def record_resolution(self, *, success: bool, cache_hit: bool) -> None:
        """Record one top-level resolution outcome."""
        self._resolutions.requests += 1
        if success:
            self._resolutions.successes += 1
        else:
            self._resolutions.failures += 1
        if cache_hit:
            self._resolutions.cache_hits += 1

    def record_metadata_lookup(self, *, success: bool) -> None:
        self._resolutions.metadata_lookups += 1
        if not success:
            self._resolutions.metadata_failures += 1

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable snapshot of all metrics."""
        uptime_ns = time.perf_counter_ns() - self._start_ns
        uptime_s = round(uptime_ns / 1_000_000_000, 1)

        return {
            "uptime_seconds": uptime_s,
            "resolutions": self._resolutions.snapshot(),
            "sources": {
                name: stats.snapshot() for name, stats in sorted(self._sources.items())
            },
        }
