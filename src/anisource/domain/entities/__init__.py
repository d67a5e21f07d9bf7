from .resolution import (
    CandidateMatch,
    EpisodeMapping,
    MappingKind,
    MappingMode,
    ResolutionResult,
    ResolveOptions,
    SearchCandidate,
    ServerKind,
    ShowType,
    SkipRange,
    SourceDescriptor,
    StreamServer,
    TitleQuery,
)

__all__ = [
    "CandidateMatch",
    "EpisodeMapping",
    "MappingKind",
    "MappingMode",
    "ResolutionResult",
    "ResolveOptions",
    "SearchCandidate",
    "ServerKind",
    "ShowType",
    "SkipRange",
    "SourceDescriptor",
    "StreamServer",
    "TitleQuery",
]
