"""Domain entities for episode resolution.

Pure value objects: no framework dependencies, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class ShowType(str, Enum):
    """Declared media type of a series entry."""

    MOVIE = "MOVIE"
    TV = "TV"

    @classmethod
    def parse(cls, label: str | None) -> ShowType | None:
        """Map a provider label ("TV", "ONA", "Movie", ...) to a ShowType."""
        if not label:
            return None
        norm = label.strip().upper().replace(" ", "_")
        if norm == "MOVIE":
            return cls.MOVIE
        if norm in {"TV", "TV_SHORT", "ONA", "OVA", "SPECIAL", "SERIES"}:
            return cls.TV
        return None


class ServerKind(str, Enum):
    IFRAME = "IFRAME"
    DIRECT_MEDIA = "DIRECT_MEDIA"


class MappingKind(str, Enum):
    """How a requested flat episode number was mapped to (season, episode)."""

    EXACT = "EXACT"
    PATTERN_CALCULATED = "PATTERN_CALCULATED"
    BOUNDARY_CALCULATED = "BOUNDARY_CALCULATED"
    PROGRESSIVE_FALLBACK = "PROGRESSIVE_FALLBACK"
    LATEST_AVAILABLE = "LATEST_AVAILABLE"


class MappingMode(str, Enum):
    """Caller choice between flat numbering and the season-aware waterfall."""

    AUTO = "auto"
    FLAT = "flat"
    SEASON_AWARE = "season_aware"


@dataclass(frozen=True)
class TitleQuery:
    """Canonical titles for one request (primary first, then alternates)."""

    raw_identifier: str
    titles: tuple[str, ...]
    total_episodes: int | None = None
    show_type: ShowType | None = None

    def __post_init__(self) -> None:
        if not self.titles:
            raise ValueError("TitleQuery needs at least one title")

    @property
    def primary(self) -> str:
        return self.titles[0]


@dataclass(frozen=True)
class SourceDescriptor:
    """Static configuration of one streaming site."""

    id: str
    display_name: str
    base_url: str
    priority: int
    timeout_seconds: float = 15.0
    url_patterns: Mapping[str, str] = field(default_factory=dict)
    season_aware: bool = False
    enabled: bool = True


@dataclass(frozen=True)
class SearchCandidate:
    """One search-result row as scraped from a source."""

    name: str
    identifier: str
    declared_type: ShowType | None = None
    url: str | None = None


@dataclass(frozen=True)
class CandidateMatch:
    """The scorer's verdict on the best candidate."""

    source_title: str
    source_identifier: str
    score: float
    declared_type: ShowType | None = None
    url: str | None = None


@dataclass(frozen=True)
class EpisodeMapping:
    """Which (season, episode) pair was actually served for a requested episode."""

    requested_episode: int
    resolved_season: int
    resolved_episode: int
    kind: MappingKind
    explanation: str = ""

    def __post_init__(self) -> None:
        if self.resolved_episode < 1:
            raise ValueError(
                f"resolved_episode must be >= 1, got {self.resolved_episode}"
            )
        if (
            self.kind == MappingKind.EXACT
            and self.resolved_episode != self.requested_episode
        ):
            raise ValueError("EXACT mapping must keep the requested episode number")

    @classmethod
    def exact(cls, episode: int, season: int = 1) -> EpisodeMapping:
        return cls(
            requested_episode=episode,
            resolved_season=season,
            resolved_episode=episode,
            kind=MappingKind.EXACT,
            explanation=f"episode {episode} found as S{season}E{episode}",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "requested_episode": self.requested_episode,
            "resolved_season": self.resolved_season,
            "resolved_episode": self.resolved_episode,
            "kind": self.kind.value,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class StreamServer:
    """A playable address extracted from an episode page."""

    display_name: str
    url: str
    kind: ServerKind
    provider_label: str
    quality_label: str = "auto"

    def __post_init__(self) -> None:
        if not self.url.startswith(("http://", "https://")):
            raise ValueError(f"StreamServer url must be absolute, got {self.url!r}")

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.display_name,
            "url": self.url,
            "type": self.kind.value.lower(),
            "provider": self.provider_label,
            "quality": self.quality_label,
        }


@dataclass(frozen=True)
class SkipRange:
    """Intro/outro marker in seconds."""

    start: float
    end: float


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of a successful resolution, primary server first."""

    source_id: str
    title_used: str
    episode_mapping: EpisodeMapping
    servers: tuple[StreamServer, ...]
    fetched_at: datetime = field(default_factory=_utcnow)

    # Attached by the fan-out for observability.
    attempted_sources: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    elapsed_ms: float = 0.0
    from_cache: bool = False

    intro: SkipRange | None = None
    outro: SkipRange | None = None

    def __post_init__(self) -> None:
        if not self.servers:
            raise ValueError("ResolutionResult requires at least one server")

    @property
    def primary(self) -> StreamServer:
        return self.servers[0]

    def to_dict(self) -> dict[str, Any]:
        """JSON descriptor for presentation layers."""
        data: dict[str, Any] = {
            "source": self.source_id,
            "title": self.title_used,
            "episode": self.episode_mapping.to_dict(),
            "url": self.primary.url,
            "servers": [s.to_dict() for s in self.servers],
            "fetched_at": self.fetched_at.isoformat(),
            "attempted_sources": list(self.attempted_sources),
            "errors": list(self.errors),
            "elapsed_ms": round(self.elapsed_ms, 1),
            "from_cache": self.from_cache,
        }
        if self.intro is not None:
            data["intro"] = {"start": self.intro.start, "end": self.intro.end}
        if self.outro is not None:
            data["outro"] = {"start": self.outro.start, "end": self.outro.end}
        return data


@dataclass(frozen=True)
class ResolveOptions:
    """Caller options for a single resolution."""

    preferred_source: str | None = None
    bypass_cache: bool = False
    mapping_mode: MappingMode = MappingMode.AUTO
    show_type: ShowType | None = None
