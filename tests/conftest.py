"""Shared test fixtures for the anisource test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from anisource.domain.entities import (
    EpisodeMapping,
    ResolutionResult,
    ServerKind,
    ShowType,
    SourceDescriptor,
    StreamServer,
    TitleQuery,
)
from anisource.domain.errors import ConfigurationError, NotFoundError

# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


def make_server(url: str = "https://mock.test/ep5", name: str = "Mock #1") -> StreamServer:
    return StreamServer(
        display_name=name,
        url=url,
        kind=ServerKind.IFRAME,
        provider_label="Mock",
    )


def make_result(
    source_id: str = "mock",
    *,
    title: str = "One Piece",
    episode: int = 5,
    url: str = "https://mock.test/ep5",
) -> ResolutionResult:
    return ResolutionResult(
        source_id=source_id,
        title_used=title,
        episode_mapping=EpisodeMapping.exact(episode),
        servers=(make_server(url),),
        fetched_at=datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc),
    )


@pytest.fixture()
def title_query() -> TitleQuery:
    """AniList-style query with one alternate title."""
    return TitleQuery(
        raw_identifier="21",
        titles=("One Piece", "ONE PIECE"),
        total_episodes=None,
        show_type=ShowType.TV,
    )


@pytest.fixture()
def resolution_result() -> ResolutionResult:
    return make_result()


# ---------------------------------------------------------------------------
# Fake adapters
# ---------------------------------------------------------------------------


@dataclass
class FakeSource:
    """Scriptable SourceAdapterPort implementation.

    ``outcome`` is either a ResolutionResult to return or an exception
    to raise.  ``delay`` sleeps before answering (for race tests).
    """

    source_id: str
    priority: int = 10
    outcome: Any = None
    delay: float = 0.0
    season_aware: bool = False
    enabled: bool = True
    timeout_seconds: float = 5.0
    calls: list[tuple[str, int, Any]] = field(default_factory=list)
    cancelled: bool = False

    def __post_init__(self) -> None:
        self.descriptor = SourceDescriptor(
            id=self.source_id,
            display_name=self.source_id.title(),
            base_url=f"https://{self.source_id}.test",
            priority=self.priority,
            timeout_seconds=self.timeout_seconds,
            season_aware=self.season_aware,
            enabled=self.enabled,
        )
        if self.outcome is None:
            self.outcome = NotFoundError(f"{self.source_id} has nothing")

    async def search(self, title, episode, season=None, *, expected_type=None):
        raise NotImplementedError

    async def resolve(self, query, episode, *, mapper=None):
        self.calls.append((query.primary, episode, mapper))
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


class FakeRegistry:
    """Minimal registry over FakeSource objects."""

    def __init__(self, *sources: FakeSource) -> None:
        self._sources = {s.descriptor.id: s for s in sources}

    def ordered(self) -> list[FakeSource]:
        return sorted(
            (s for s in self._sources.values() if s.descriptor.enabled),
            key=lambda s: (s.descriptor.priority, s.descriptor.id),
        )

    def get(self, source_id: str) -> FakeSource:
        source = self._sources.get(source_id)
        if source is None or not source.descriptor.enabled:
            raise ConfigurationError(f"Unknown source {source_id!r}")
        return source


# ---------------------------------------------------------------------------
# Mock port fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Mock CachePort."""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.delete = AsyncMock(return_value=True)
    cache.exists = AsyncMock(return_value=False)
    cache.clear = AsyncMock()
    cache.aclose = AsyncMock()
    return cache


@pytest.fixture()
def mock_metadata(title_query: TitleQuery) -> AsyncMock:
    """Mock MetadataResolverPort returning ``title_query``."""
    metadata = AsyncMock()
    metadata.resolve = AsyncMock(return_value=title_query)
    return metadata


# ---------------------------------------------------------------------------
# Factory fixtures (test modules take these instead of importing helpers)
# ---------------------------------------------------------------------------


@pytest.fixture()
def result_factory() -> Callable[..., ResolutionResult]:
    return make_result


@pytest.fixture()
def source_factory() -> type[FakeSource]:
    return FakeSource


@pytest.fixture()
def registry_factory() -> type[FakeRegistry]:
    return FakeRegistry
