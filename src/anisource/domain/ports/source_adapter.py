"""Port for streaming-site adapters and the episode mapper they may use."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection
from typing import Protocol, TypeVar, runtime_checkable

from anisource.domain.entities import (
    EpisodeMapping,
    MappingKind,
    ResolutionResult,
    ShowType,
    SourceDescriptor,
    TitleQuery,
)

T = TypeVar("T")


class EpisodeMapperPort(Protocol):
    """Maps a flat episode number onto a (season, episode) pair via probing."""

    async def map_episode(
        self,
        target_episode: int,
        probe: Callable[[int, int], Awaitable[T | None]],
        *,
        kinds: Collection[MappingKind] | None = None,
    ) -> tuple[EpisodeMapping, T]: ...


@runtime_checkable
class SourceAdapterPort(Protocol):
    """One streaming website integration.

    ``search`` and ``resolve`` never return an empty success: they raise
    ``NotFoundError`` when nothing playable was found and ``UpstreamError``
    on network/response failures.
    """

    descriptor: SourceDescriptor

    async def search(
        self,
        title: str,
        episode: int,
        season: int | None = None,
        *,
        expected_type: ShowType | None = None,
    ) -> ResolutionResult: ...

    async def resolve(
        self,
        query: TitleQuery,
        episode: int,
        *,
        mapper: EpisodeMapperPort | None = None,
    ) -> ResolutionResult: ...
