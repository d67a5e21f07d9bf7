"""Port for recording resolution metrics."""

from __future__ import annotations

from typing import Protocol


class MetricsRecorderPort(Protocol):
    """Records per-source and per-resolution outcomes."""

    def record_source_attempt(
        self,
        source_id: str,
        duration_ns: int,
        *,
        success: bool,
    ) -> None: ...

    def record_resolution(self, *, success: bool, cache_hit: bool) -> None: ...

    def record_metadata_lookup(self, *, success: bool) -> None: ...
