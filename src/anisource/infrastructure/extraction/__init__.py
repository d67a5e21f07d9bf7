from .stream_extractor import ServerCollector, extract_stream_servers
from .url_tools import dedup_key, is_blocked, normalize_url

__all__ = [
    "ServerCollector",
    "dedup_key",
    "extract_stream_servers",
    "is_blocked",
    "normalize_url",
]
