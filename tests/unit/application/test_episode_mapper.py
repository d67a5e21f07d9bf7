"""Tests for EpisodeMapper (flat episode number -> season/episode waterfall)."""

from __future__ import annotations

import pytest

from anisource.application.episode_mapper import EpisodeMapper
from anisource.domain.entities import MappingKind
from anisource.domain.errors import NotFoundError, UpstreamError
from anisource.infrastructure.config import MappingConfig

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _Site:
    """Probe over a fixed set of (season, episode) pairs, recording calls."""

    def __init__(self, *available: tuple[int, int], failing: set | None = None) -> None:
        self.available = set(available)
        self.failing = failing or set()
        self.calls: list[tuple[int, int]] = []

    async def __call__(self, season: int, episode: int) -> str | None:
        self.calls.append((season, episode))
        if (season, episode) in self.failing:
            raise UpstreamError("listing failed")
        if (season, episode) in self.available:
            return f"S{season}E{episode}"
        return None


def _mapper(**overrides: object) -> EpisodeMapper:
    return EpisodeMapper(MappingConfig(**overrides))


# ---------------------------------------------------------------------------
# Waterfall steps
# ---------------------------------------------------------------------------


class TestExact:
    async def test_first_season_hit(self) -> None:
        site = _Site((1, 5))
        mapping, handle = await _mapper().map_episode(5, site)
        assert mapping.kind is MappingKind.EXACT
        assert (mapping.resolved_season, mapping.resolved_episode) == (1, 5)
        assert handle == "S1E5"
        assert site.calls == [(1, 5)]

    async def test_later_season(self) -> None:
        site = _Site((4, 5))
        mapping, _ = await _mapper().map_episode(5, site)
        assert mapping.kind is MappingKind.EXACT
        assert mapping.resolved_season == 4
        assert site.calls == [(1, 5), (2, 5), (3, 5), (4, 5)]


class TestPattern:
    async def test_only_s3e4_exists(self) -> None:
        site = _Site((3, 4))
        mapping, handle = await _mapper().map_episode(52, site)
        assert mapping.kind is MappingKind.PATTERN_CALCULATED
        assert mapping.requested_episode == 52
        assert (mapping.resolved_season, mapping.resolved_episode) == (3, 4)
        assert handle == "S3E4"

    async def test_exact_step_exhausted_first(self) -> None:
        site = _Site((2, 26))
        mapping, _ = await _mapper().map_episode(52, site)
        assert mapping.kind is MappingKind.PATTERN_CALCULATED
        assert site.calls[:50] == [(s, 52) for s in range(1, 51)]
        # 12/season -> S5E4, 13 -> S4E13, 24 -> S3E4, 25 -> S3E2, 26 -> S2E26
        assert site.calls[50:] == [(5, 4), (4, 13), (3, 4), (3, 2), (2, 26)]
        assert "26 episodes per season" in mapping.explanation


class TestBoundary:
    async def test_unusual_season_length(self) -> None:
        # 11 episodes per season is not in the pattern menu: 52 -> S5E8
        site = _Site((5, 8))
        mapping, _ = await _mapper().map_episode(52, site)
        assert mapping.kind is MappingKind.BOUNDARY_CALCULATED
        assert (mapping.resolved_season, mapping.resolved_episode) == (5, 8)
        assert "11-episode season boundary" in mapping.explanation


class TestProgressive:
    async def test_nearest_lower_first(self) -> None:
        site = _Site((1, 9), (1, 11))
        mapper = _mapper(
            enabled_kinds=[MappingKind.EXACT, MappingKind.PROGRESSIVE_FALLBACK],
            season_ceiling=2,
        )
        mapping, _ = await mapper.map_episode(10, site)
        assert mapping.kind is MappingKind.PROGRESSIVE_FALLBACK
        assert mapping.resolved_episode == 9
        assert "offset -1" in mapping.explanation


class TestLatest:
    async def test_highest_below_target(self) -> None:
        site = _Site((1, 3), (1, 2))
        mapper = _mapper(
            enabled_kinds=[MappingKind.LATEST_AVAILABLE], latest_season_ceiling=1
        )
        mapping, _ = await mapper.map_episode(8, site)
        assert mapping.kind is MappingKind.LATEST_AVAILABLE
        assert (mapping.resolved_season, mapping.resolved_episode) == (1, 3)
        assert site.calls == [(1, 8), (1, 7), (1, 6), (1, 5), (1, 4), (1, 3)]


# ---------------------------------------------------------------------------
# Probing rules
# ---------------------------------------------------------------------------


class TestProbing:
    async def test_pair_never_probed_twice(self) -> None:
        site = _Site()
        mapper = _mapper(season_ceiling=3, progressive_window=2, latest_season_ceiling=2)
        with pytest.raises(NotFoundError):
            await mapper.map_episode(13, site)
        assert len(site.calls) == len(set(site.calls))

    async def test_probe_errors_count_as_absent(self) -> None:
        site = _Site((2, 5), failing={(1, 5)})
        mapping, _ = await _mapper().map_episode(5, site)
        assert mapping.resolved_season == 2

    async def test_concurrent_batches_keep_waterfall_order(self) -> None:
        site = _Site((2, 5), (3, 5))
        mapping, _ = await _mapper(probe_concurrency=4).map_episode(5, site)
        assert mapping.resolved_season == 2
        assert site.calls[:4] == [(1, 5), (2, 5), (3, 5), (4, 5)]

    async def test_exhausted_message(self) -> None:
        mapper = _mapper(enabled_kinds=[MappingKind.EXACT], season_ceiling=2)
        with pytest.raises(NotFoundError, match=r"not found after 2 probes \(steps: EXACT\)"):
            await mapper.map_episode(7, _Site())

    async def test_target_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            await _mapper().map_episode(0, _Site((1, 1)))


class TestRestriction:
    async def test_restricted_to_exact(self) -> None:
        mapper = _mapper().restricted({MappingKind.EXACT})
        assert mapper.kinds == frozenset({MappingKind.EXACT})
        with pytest.raises(NotFoundError):
            await mapper.map_episode(52, _Site((3, 4)))

    async def test_per_call_kinds(self) -> None:
        with pytest.raises(NotFoundError):
            await _mapper().map_episode(52, _Site((3, 4)), kinds={MappingKind.EXACT})

    def test_restriction_never_widens(self) -> None:
        mapper = _mapper(enabled_kinds=[MappingKind.EXACT])
        assert mapper.restricted(set(MappingKind)).kinds == frozenset({MappingKind.EXACT})
