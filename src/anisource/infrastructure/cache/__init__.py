from .memory_adapter import CacheEntry, InMemoryCacheAdapter
from .result_cache import ResultCache, resolution_cache_key

__all__ = [
    "CacheEntry",
    "InMemoryCacheAdapter",
    "ResultCache",
    "resolution_cache_key",
]
