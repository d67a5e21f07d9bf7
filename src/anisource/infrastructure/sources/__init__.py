from .animeworld import AnimeWorldSource
from .base import HttpxSourceBase
from .registry import SourceRegistry, build_source_registry
from .satoru import SatoruSource
from .watchanimeworld import WatchAnimeWorldSource

__all__ = [
    "AnimeWorldSource",
    "HttpxSourceBase",
    "SatoruSource",
    "SourceRegistry",
    "WatchAnimeWorldSource",
    "build_source_registry",
]
