"""Episode-number mapping for season-aware sources.

Metadata services number long-running series flat (episode 52), while
some sites list them per season (S3E4).  The mapper searches for a
(season, episode) pair the site actually has by running a fixed
waterfall of heuristics against a caller-supplied *probe*:

1. EXACT                 same number in seasons 1..ceiling
2. PATTERN_CALCULATED    common per-season counts (12, 13, 24, ...)
3. BOUNDARY_CALCULATED   every other count in the boundary range
4. PROGRESSIVE_FALLBACK  nearby numbers, nearest first
5. LATEST_AVAILABLE      highest existing episode at or below the target

Each step is fully attempted before the next one starts, and a pair
probed by an earlier step is never probed again.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection, Iterator, Sequence
from typing import Protocol, TypeVar

import structlog

from anisource.domain.entities import EpisodeMapping, MappingKind
from anisource.domain.errors import NotFoundError, ResolutionError

log = structlog.get_logger(__name__)

T = TypeVar("T")

Probe = Callable[[int, int], Awaitable[T | None]]

# (season, episode, explanation)
_Pair = tuple[int, int, str]


class _MappingSettings(Protocol):
    """Configuration values consumed by EpisodeMapper."""

    enabled_kinds: Sequence[MappingKind]
    season_ceiling: int
    pattern_counts: Sequence[int]
    boundary_min_count: int
    boundary_max_count: int
    progressive_window: int
    progressive_season_ceiling: int
    latest_season_ceiling: int
    latest_episode_cap: int
    probe_concurrency: int


WATERFALL: tuple[MappingKind, ...] = (
    MappingKind.EXACT,
    MappingKind.PATTERN_CALCULATED,
    MappingKind.BOUNDARY_CALCULATED,
    MappingKind.PROGRESSIVE_FALLBACK,
    MappingKind.LATEST_AVAILABLE,
)


class EpisodeMapper:
    """Maps a flat episode number to a (season, episode) pair a source has.

    Implements ``EpisodeMapperPort`` from domain.ports.source_adapter.
    """

    def __init__(
        self,
        settings: _MappingSettings,
        *,
        kinds: Collection[MappingKind] | None = None,
    ) -> None:
        self._settings = settings
        allowed = set(settings.enabled_kinds)
        if kinds is not None:
            allowed &= set(kinds)
        self._kinds = frozenset(allowed)

    @property
    def kinds(self) -> frozenset[MappingKind]:
        return self._kinds

    def restricted(self, kinds: Collection[MappingKind]) -> EpisodeMapper:
        """Same settings, waterfall limited to *kinds*."""
        return EpisodeMapper(self._settings, kinds=self._kinds & set(kinds))

    # ------------------------------------------------------------------
    # Candidate generators (deterministic order)
    # ------------------------------------------------------------------

    def _exact(self, target: int) -> Iterator[_Pair]:
        for season in range(1, self._settings.season_ceiling + 1):
            yield season, target, f"episode {target} found as S{season}E{target}"

    def _pattern(self, target: int) -> Iterator[_Pair]:
        for count in self._settings.pattern_counts:
            for season in range(1, self._settings.season_ceiling + 1):
                remainder = target - count * (season - 1)
                if 1 <= remainder <= count:
                    yield (
                        season,
                        remainder,
                        f"episode {target} mapped to S{season}E{remainder} "
                        f"assuming {count} episodes per season",
                    )

    def _boundary(self, target: int) -> Iterator[_Pair]:
        menu = set(self._settings.pattern_counts)
        for count in range(
            self._settings.boundary_min_count, self._settings.boundary_max_count + 1
        ):
            if count in menu:
                continue
            season = (target - 1) // count + 1
            episode = (target - 1) % count + 1
            if 2 <= season <= self._settings.season_ceiling:
                yield (
                    season,
                    episode,
                    f"episode {target} mapped to S{season}E{episode} "
                    f"assuming a {count}-episode season boundary",
                )

    def _progressive(self, target: int) -> Iterator[_Pair]:
        for offset in range(1, self._settings.progressive_window + 1):
            for candidate, signed in ((target - offset, -offset), (target + offset, offset)):
                if candidate < 1:
                    continue
                for season in range(1, self._settings.progressive_season_ceiling + 1):
                    yield (
                        season,
                        candidate,
                        f"requested episode {target}, returning S{season}E{candidate} "
                        f"(offset {signed:+d})",
                    )

    def _latest(self, target: int) -> Iterator[_Pair]:
        top = min(target, self._settings.latest_episode_cap)
        for season in range(1, self._settings.latest_season_ceiling + 1):
            for episode in range(top, 0, -1):
                yield (
                    season,
                    episode,
                    f"could not find requested episode {target}; "
                    f"returning latest available S{season}E{episode}",
                )

    def _candidates(self, kind: MappingKind, target: int) -> Iterator[_Pair]:
        generators = {
            MappingKind.EXACT: self._exact,
            MappingKind.PATTERN_CALCULATED: self._pattern,
            MappingKind.BOUNDARY_CALCULATED: self._boundary,
            MappingKind.PROGRESSIVE_FALLBACK: self._progressive,
            MappingKind.LATEST_AVAILABLE: self._latest,
        }
        return generators[kind](target)

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    @staticmethod
    async def _safe_probe(probe: Probe[T], season: int, episode: int) -> T | None:
        """A probe failure only means the pair is absent."""
        try:
            return await probe(season, episode)
        except ResolutionError as exc:
            log.debug(
                "episode_probe_failed", season=season, episode=episode, error=str(exc)
            )
            return None

    async def _run_step(
        self,
        kind: MappingKind,
        target: int,
        probe: Probe[T],
        probed: set[tuple[int, int]],
    ) -> tuple[_Pair, T] | None:
        batch_size = self._settings.probe_concurrency
        batch: list[_Pair] = []

        async def _flush() -> tuple[_Pair, T] | None:
            results = await asyncio.gather(
                *(self._safe_probe(probe, s, e) for s, e, _ in batch)
            )
            for pair, value in zip(batch, results):
                if value is not None:
                    return pair, value
            return None

        for pair in self._candidates(kind, target):
            key = (pair[0], pair[1])
            if key in probed:
                continue
            probed.add(key)
            batch.append(pair)
            if len(batch) >= batch_size:
                hit = await _flush()
                if hit is not None:
                    return hit
                batch = []

        if batch:
            return await _flush()
        return None

    async def map_episode(
        self,
        target_episode: int,
        probe: Probe[T],
        *,
        kinds: Collection[MappingKind] | None = None,
    ) -> tuple[EpisodeMapping, T]:
        """Run the waterfall until *probe* returns a value.

        Args:
            target_episode: Flat episode number requested by the caller.
            probe: ``probe(season, episode)`` returns the source's handle for
                the pair, or ``None`` when the source does not have it.
                Raising a ``ResolutionError`` counts as ``None``.
            kinds: Further restrict the steps for this call.

        Raises:
            NotFoundError: every enabled step was exhausted.
        """
        if target_episode < 1:
            raise ValueError(f"target_episode must be >= 1, got {target_episode}")

        allowed = self._kinds if kinds is None else self._kinds & set(kinds)
        steps = [k for k in WATERFALL if k in allowed]
        probed: set[tuple[int, int]] = set()

        for kind in steps:
            hit = await self._run_step(kind, target_episode, probe, probed)
            if hit is None:
                log.debug(
                    "episode_mapping_step_exhausted",
                    step=kind.value,
                    target=target_episode,
                    probes=len(probed),
                )
                continue
            (season, episode, explanation), value = hit
            mapping = EpisodeMapping(
                requested_episode=target_episode,
                resolved_season=season,
                resolved_episode=episode,
                kind=kind,
                explanation=explanation,
            )
            log.info(
                "episode_mapped",
                target=target_episode,
                season=season,
                episode=episode,
                kind=kind.value,
                probes=len(probed),
            )
            return mapping, value

        raise NotFoundError(
            f"Episode {target_episode} not found after {len(probed)} probes "
            f"(steps: {', '.join(k.value for k in steps) or 'none'})"
        )
