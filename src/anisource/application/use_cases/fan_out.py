"""Fan-out across source adapters: first success wins.

Two policies share one pipeline:

- ``sequential``: adapters in ascending priority, one at a time.
- ``parallel``: every adapter at once; the first success is kept, the
  rest are cancelled and awaited so no failure goes unobserved.

Every adapter call has its own ``asyncio.wait_for`` budget.  Successful
resolutions are memoised in the result cache.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Literal, Protocol

import structlog

from anisource.application.episode_mapper import EpisodeMapper
from anisource.domain.entities import (
    MappingKind,
    MappingMode,
    ResolutionResult,
    TitleQuery,
)
from anisource.domain.errors import (
    ConfigurationError,
    NotFoundError,
    ResolutionError,
    UpstreamError,
)
from anisource.domain.ports.metrics import MetricsRecorderPort
from anisource.domain.ports.source_adapter import SourceAdapterPort

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Protocols: what the fan-out needs from its collaborators.
# Infrastructure components satisfy these via structural subtyping.
# ---------------------------------------------------------------------------


class _ResolverSettings(Protocol):
    """Configuration values consumed by SourceFanOut."""

    policy: Literal["sequential", "parallel"]
    cache_ttl_seconds: int
    preferred_source_mode: Literal["strict", "soft"]


class _SourceRegistry(Protocol):
    def ordered(self) -> list[SourceAdapterPort]: ...

    def get(self, source_id: str) -> SourceAdapterPort: ...


class _ResultCache(Protocol):
    async def get(self, key: str) -> ResolutionResult | None: ...

    async def set(
        self, key: str, value: ResolutionResult, ttl: int | None = None
    ) -> None: ...


class _CacheKeyFn(Protocol):
    def __call__(self, source_id: str | None, title: str, episode: int) -> str: ...


@dataclass
class _Attempt:
    """Outcome of one adapter call."""

    source_id: str
    result: ResolutionResult | None = None
    error: str | None = None
    upstream: bool = False
    exc: ResolutionError | None = None
    cancelled: bool = False


class SourceFanOut:
    """Resolve one (title, episode) across the registered sources."""

    def __init__(
        self,
        *,
        registry: _SourceRegistry,
        mapper: EpisodeMapper,
        cache: _ResultCache,
        cache_key: _CacheKeyFn,
        config: _ResolverSettings,
        metrics: MetricsRecorderPort | None = None,
    ) -> None:
        self._registry = registry
        self._mapper = mapper
        self._flat_mapper = mapper.restricted({MappingKind.EXACT})
        self._cache = cache
        self._cache_key = cache_key
        self._policy = config.policy
        self._cache_ttl = config.cache_ttl_seconds
        self._preferred_mode = config.preferred_source_mode
        self._metrics = metrics

    # ------------------------------------------------------------------
    # Source selection
    # ------------------------------------------------------------------

    def _plan(self, preferred_source: str | None) -> list[SourceAdapterPort]:
        if preferred_source is None:
            return self._registry.ordered()

        preferred = self._registry.get(preferred_source)
        if self._preferred_mode == "strict":
            return [preferred]
        rest = [
            a for a in self._registry.ordered()
            if a.descriptor.id != preferred.descriptor.id
        ]
        return [preferred, *rest]

    def _mapper_for(
        self, adapter: SourceAdapterPort, mode: MappingMode
    ) -> EpisodeMapper | None:
        if not adapter.descriptor.season_aware:
            return None
        if mode == MappingMode.FLAT:
            return self._flat_mapper
        return self._mapper

    # ------------------------------------------------------------------
    # One adapter call
    # ------------------------------------------------------------------

    async def _attempt(
        self,
        adapter: SourceAdapterPort,
        query: TitleQuery,
        episode: int,
        mode: MappingMode,
    ) -> _Attempt:
        source_id = adapter.descriptor.id
        timeout = adapter.descriptor.timeout_seconds
        t0 = time.perf_counter_ns()
        attempt = _Attempt(source_id)
        try:
            attempt.result = await asyncio.wait_for(
                adapter.resolve(query, episode, mapper=self._mapper_for(adapter, mode)),
                timeout=timeout,
            )
        except TimeoutError:
            attempt.error = f"timed out after {timeout:g}s"
            attempt.upstream = True
            attempt.exc = UpstreamError(
                f"{source_id}: {attempt.error}", source=source_id
            )
            log.warning("source_timeout", source=source_id, timeout=timeout)
        except ResolutionError as exc:
            attempt.error = str(exc) or type(exc).__name__
            attempt.upstream = isinstance(exc, UpstreamError)
            attempt.exc = exc
            log.info("source_failed", source=source_id, error=attempt.error)
        except Exception as exc:  # noqa: BLE001
            attempt.error = f"unexpected {type(exc).__name__}: {exc}"
            log.error("source_crashed", source=source_id, exc_info=True)
        except asyncio.CancelledError:
            # Lost the parallel race; neither a success nor a failure.
            attempt.cancelled = True
            raise
        finally:
            if self._metrics is not None and not attempt.cancelled:
                self._metrics.record_source_attempt(
                    source_id,
                    time.perf_counter_ns() - t0,
                    success=attempt.result is not None,
                )
        return attempt

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    async def _sequential(
        self,
        plan: Sequence[SourceAdapterPort],
        query: TitleQuery,
        episode: int,
        mode: MappingMode,
    ) -> tuple[ResolutionResult | None, list[_Attempt]]:
        attempts: list[_Attempt] = []
        for adapter in plan:
            attempt = await self._attempt(adapter, query, episode, mode)
            attempts.append(attempt)
            if attempt.result is not None:
                return attempt.result, attempts
        return None, attempts

    async def _parallel(
        self,
        plan: Sequence[SourceAdapterPort],
        query: TitleQuery,
        episode: int,
        mode: MappingMode,
    ) -> tuple[ResolutionResult | None, list[_Attempt]]:
        tasks = {
            asyncio.ensure_future(self._attempt(adapter, query, episode, mode)): adapter
            for adapter in plan
        }
        finished: dict[str, _Attempt] = {}
        winner: ResolutionResult | None = None
        pending = set(tasks)
        try:
            while pending and winner is None:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                # Ties within one wakeup go to the higher-priority source.
                for task in sorted(done, key=lambda t: plan.index(tasks[t])):
                    attempt = task.result()
                    finished[attempt.source_id] = attempt
                    if winner is None and attempt.result is not None:
                        winner = attempt.result
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                log.debug("parallel_sources_cancelled", count=len(pending))

        attempts = [
            finished.get(adapter.descriptor.id, _Attempt(adapter.descriptor.id))
            for adapter in plan
        ]
        return winner, attempts

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(
        self,
        query: TitleQuery,
        episode: int,
        *,
        preferred_source: str | None = None,
        bypass_cache: bool = False,
        mapping_mode: MappingMode = MappingMode.AUTO,
    ) -> ResolutionResult:
        """Resolve *episode* of *query* using the configured policy.

        Raises:
            ConfigurationError: *preferred_source* is unknown or disabled.
            NotFoundError: every attempted source failed (``.errors`` lists
                one ``"<source>: <message>"`` entry per failure).
            UpstreamError: strict *preferred_source* failed upstream or
                timed out (its own error, re-raised as is).
        """
        key = self._cache_key(preferred_source, query.primary, episode)
        if not bypass_cache:
            cached = await self._cache.get(key)
            if cached is not None:
                log.info("resolution_cache_hit", title=query.primary, episode=episode)
                if self._metrics is not None:
                    self._metrics.record_resolution(success=True, cache_hit=True)
                return replace(cached, from_cache=True)

        try:
            plan = self._plan(preferred_source)
        except ConfigurationError:
            if self._metrics is not None:
                self._metrics.record_resolution(success=False, cache_hit=False)
            raise

        if mapping_mode == MappingMode.SEASON_AWARE:
            log.info("season_aware_mapping_requested", title=query.primary)

        started = time.perf_counter()
        run = self._parallel if self._policy == "parallel" else self._sequential
        winner, attempts = await run(plan, query, episode, mapping_mode)
        elapsed_ms = (time.perf_counter() - started) * 1000

        errors = [f"{a.source_id}: {a.error}" for a in attempts if a.error is not None]

        if winner is None:
            if self._metrics is not None:
                self._metrics.record_resolution(success=False, cache_hit=False)
            failed = [a for a in attempts if a.error is not None]
            if (
                preferred_source is not None
                and self._preferred_mode == "strict"
                and failed
                and failed[0].exc is not None
            ):
                log.warning(
                    "preferred_source_failed",
                    source=preferred_source,
                    title=query.primary,
                    episode=episode,
                    error=failed[0].error,
                )
                raise failed[0].exc
            upstream_only = bool(failed) and all(a.upstream for a in failed)
            log.warning(
                "all_sources_failed",
                title=query.primary,
                episode=episode,
                errors=errors,
                elapsed_ms=round(elapsed_ms, 1),
            )
            raise NotFoundError(
                f"All sources failed for {query.primary!r} episode {episode}: "
                + "; ".join(errors),
                errors=errors,
                upstream_only=upstream_only,
            )

        result = replace(
            winner,
            attempted_sources=tuple(a.source_id for a in attempts),
            errors=tuple(errors),
            elapsed_ms=elapsed_ms,
            from_cache=False,
        )
        if self._metrics is not None:
            self._metrics.record_resolution(success=True, cache_hit=False)
        log.info(
            "resolution_succeeded",
            source=result.source_id,
            title=query.primary,
            episode=episode,
            mapping=result.episode_mapping.kind.value,
            failed_sources=len(errors),
            elapsed_ms=round(elapsed_ms, 1),
        )
        await self._cache.set(key, result, ttl=self._cache_ttl)
        return result
