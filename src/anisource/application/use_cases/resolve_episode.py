"""Top-level resolution: identifier or title + episode -> playable servers."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Protocol

import structlog

from anisource.domain.entities import (
    MappingMode,
    ResolutionResult,
    ResolveOptions,
    TitleQuery,
)
from anisource.domain.errors import NotFoundError
from anisource.domain.ports.metadata import MetadataResolverPort

log = structlog.get_logger(__name__)

_NUMERIC_ID_RE = re.compile(r"^\d+$")


class _FanOut(Protocol):
    async def resolve(
        self,
        query: TitleQuery,
        episode: int,
        *,
        preferred_source: str | None = None,
        bypass_cache: bool = False,
        mapping_mode: MappingMode = MappingMode.AUTO,
    ) -> ResolutionResult: ...


class _TitleCleaner(Protocol):
    def __call__(self, text: str) -> str: ...


class ResolveEpisodeUseCase:
    """Resolve an AniList id or a free-text title to an episode's servers.

    Flow:
        1. Numeric identifier -> metadata lookup (titles + show type);
           anything else is used as the title itself.
        2. Fan out across the sources with the primary title.
        3. On NotFoundError, retry with the next alternate title, up to
           ``max_title_attempts`` titles in total.
    """

    def __init__(
        self,
        *,
        metadata: MetadataResolverPort,
        fan_out: _FanOut,
        clean_title: _TitleCleaner,
        max_title_attempts: int = 2,
    ) -> None:
        self._metadata = metadata
        self._fan_out = fan_out
        self._clean_title = clean_title
        self._max_title_attempts = max(1, max_title_attempts)

    async def _title_query(self, identifier_or_title: str) -> TitleQuery:
        raw = identifier_or_title.strip()
        if _NUMERIC_ID_RE.match(raw):
            return await self._metadata.resolve(raw)

        title = self._clean_title(raw)
        if not title:
            raise NotFoundError(f"{identifier_or_title!r} is not a usable title")
        return TitleQuery(raw_identifier=raw, titles=(title,))

    async def execute(
        self,
        identifier_or_title: str,
        episode: int,
        options: ResolveOptions | None = None,
    ) -> ResolutionResult:
        """Resolve *episode* of the show named by *identifier_or_title*.

        Raises:
            ValueError: ``episode < 1``.
            NotFoundError: unknown id, or no source served the episode.
            UpstreamError: the metadata service failed.
            ConfigurationError: unknown or disabled preferred source.
        """
        if episode < 1:
            raise ValueError(f"episode must be >= 1, got {episode}")
        options = options or ResolveOptions()

        query = await self._title_query(identifier_or_title)
        if options.show_type is not None:
            query = replace(query, show_type=options.show_type)

        attempts = query.titles[: self._max_title_attempts]
        last_error: NotFoundError | None = None
        for index, title in enumerate(attempts):
            # Rotate so the attempted title is primary and the rest stay as alternates.
            candidate = replace(query, titles=query.titles[index:])
            try:
                return await self._fan_out.resolve(
                    candidate,
                    episode,
                    preferred_source=options.preferred_source,
                    bypass_cache=options.bypass_cache,
                    mapping_mode=options.mapping_mode,
                )
            except NotFoundError as exc:
                last_error = exc
                if index + 1 < len(attempts):
                    log.info(
                        "title_attempt_failed",
                        title=title,
                        next_title=attempts[index + 1],
                        episode=episode,
                    )

        assert last_error is not None
        raise last_error
