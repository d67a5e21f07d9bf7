from __future__ import annotations

from .load import load_config
from .schema import AppConfig, EnvOverrides, MappingConfig, ResolverConfig

__all__ = ["AppConfig", "EnvOverrides", "MappingConfig", "ResolverConfig", "load_config"]
