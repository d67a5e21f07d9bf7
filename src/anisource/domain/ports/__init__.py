from .cache import CachePort
from .metadata import MetadataResolverPort
from .metrics import MetricsRecorderPort
from .source_adapter import EpisodeMapperPort, SourceAdapterPort

__all__ = [
    "CachePort",
    "EpisodeMapperPort",
    "MetadataResolverPort",
    "MetricsRecorderPort",
    "SourceAdapterPort",
]
