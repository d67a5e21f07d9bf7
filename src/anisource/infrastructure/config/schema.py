"""Pydantic configuration models with validation."""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from anisource.domain.entities import MappingKind

from .defaults import RESOLVER_PROFILES

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]
FanOutPolicy = Literal["sequential", "parallel"]
PreferredSourceMode = Literal["strict", "soft"]


class CacheConfig(BaseModel):
    """In-memory result cache configuration."""

    ttl_seconds: int = Field(
        default=900,
        description="Default TTL for cache entries (seconds).",
    )
    max_entries: int = Field(
        default=2048,
        description="Upper bound on cached entries; oldest evicted first. 0 = unbounded.",
    )

    @field_validator("ttl_seconds", "max_entries")
    @classmethod
    def _validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("cache values must be >= 0")
        return v


class MappingConfig(BaseModel):
    """Episode-number mapping waterfall bounds.

    The per-season counts are plausible defaults, not validated constants.
    """

    enabled_kinds: list[MappingKind] = Field(
        default_factory=lambda: list(MappingKind),
        description="Waterfall steps to run, in fixed waterfall order.",
    )
    season_ceiling: int = Field(default=50, description="Highest season probed.")
    pattern_counts: list[int] = Field(
        default_factory=lambda: [12, 13, 24, 25, 26, 50, 52, 100],
        description="Per-season episode counts tried by the pattern step.",
    )
    boundary_min_count: int = Field(default=10)
    boundary_max_count: int = Field(default=130)
    progressive_window: int = Field(
        default=10, description="Max +/- offset probed around the target."
    )
    progressive_season_ceiling: int = Field(default=10)
    latest_season_ceiling: int = Field(default=5)
    latest_episode_cap: int = Field(default=100)
    probe_concurrency: int = Field(
        default=1, description="Probes launched together within one step."
    )

    @field_validator(
        "season_ceiling",
        "boundary_min_count",
        "boundary_max_count",
        "progressive_season_ceiling",
        "latest_season_ceiling",
        "latest_episode_cap",
        "probe_concurrency",
    )
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("mapping bounds must be >= 1")
        return v

    @field_validator("progressive_window")
    @classmethod
    def _validate_window(cls, v: int) -> int:
        if v < 0:
            raise ValueError("progressive_window must be >= 0")
        return v

    @field_validator("pattern_counts")
    @classmethod
    def _validate_counts(cls, v: list[int]) -> list[int]:
        if any(c < 1 for c in v):
            raise ValueError("pattern_counts must be positive")
        return v


class ResolverConfig(BaseModel):
    """Fan-out pipeline tuning.

    ``profile`` selects a preset from ``RESOLVER_PROFILES``; explicitly
    given fields override the preset.
    """

    profile: str = Field(default="default", description="Named preset.")
    policy: FanOutPolicy = Field(
        default="sequential",
        description="sequential = priority order, first success; parallel = race.",
    )
    sources: list[str] = Field(
        default_factory=lambda: ["satoru", "watchanimeworld", "animeworld"],
        description="Enabled source ids (priority decides order).",
    )
    source_timeouts: dict[str, float] = Field(
        default_factory=dict,
        description="Per-source timeout overrides in seconds.",
    )
    source_priorities: dict[str, int] = Field(
        default_factory=dict,
        description="Per-source priority overrides (lower = tried first).",
    )
    cache_ttl_seconds: int = Field(
        default=900,
        description="TTL for cached resolutions. 0 disables result caching.",
    )
    preferred_source_mode: PreferredSourceMode = Field(
        default="strict",
        description="strict = only the preferred source; soft = preferred first, then the rest.",
    )
    max_title_attempts: int = Field(
        default=2,
        description="How many metadata titles (primary, alternates) to try.",
    )
    mapping: MappingConfig = Field(default_factory=MappingConfig)

    @model_validator(mode="before")
    @classmethod
    def _apply_profile(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        name = data.get("profile", "default")
        if name not in RESOLVER_PROFILES:
            raise ValueError(
                f"Unknown resolver profile {name!r}; "
                f"expected one of {sorted(RESOLVER_PROFILES)}"
            )
        merged = deepcopy(RESOLVER_PROFILES[name])
        for key, value in data.items():
            if key == "mapping" and isinstance(value, dict):
                merged["mapping"] = {**merged.get("mapping", {}), **value}
            else:
                merged[key] = value
        merged["profile"] = name
        return merged

    @field_validator("source_timeouts")
    @classmethod
    def _validate_timeouts(cls, v: dict[str, float]) -> dict[str, float]:
        for name, timeout in v.items():
            if timeout <= 0:
                raise ValueError(f"timeout for {name!r} must be > 0")
        return v

    @field_validator("cache_ttl_seconds")
    @classmethod
    def _validate_cache_ttl(cls, v: int) -> int:
        if v < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")
        return v

    @field_validator("max_title_attempts")
    @classmethod
    def _validate_title_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_title_attempts must be >= 1")
        return v


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (http/metadata/logging/cache/resolver).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="anisource", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=15.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Default per-source timeout in seconds.",
    )
    http_user_agent: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent override for outgoing requests.",
    )

    # Metadata (YAML section: metadata.*)
    anilist_url: str = Field(
        default="https://graphql.anilist.co",
        validation_alias=AliasChoices(
            "anilist_url",
            AliasPath("metadata", "anilist_url"),
        ),
        description="AniList GraphQL endpoint.",
    )
    metadata_timeout_seconds: float = Field(
        default=8.0,
        validation_alias=AliasChoices(
            "metadata_timeout_seconds",
            AliasPath("metadata", "timeout_seconds"),
        ),
        description="Timeout for the metadata lookup.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)

    @field_validator("http_timeout_seconds", "metadata_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
            },
            "metadata": {
                "anilist_url": self.anilist_url,
                "timeout_seconds": self.metadata_timeout_seconds,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": self.cache.model_dump(),
            "resolver": self.resolver.model_dump(mode="json"),
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Supported env var examples (flat, explicit):
    - ANISOURCE_HTTP_TIMEOUT_SECONDS
    - ANISOURCE_LOG_LEVEL
    - ANISOURCE_RESOLVER_PROFILE
    - ANISOURCE_RESOLVER_POLICY
    """

    model_config = SettingsConfigDict(
        env_prefix="ANISOURCE_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None

    anilist_url: Optional[str] = None
    metadata_timeout_seconds: Optional[float] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    cache_ttl_seconds: Optional[int] = None
    cache_max_entries: Optional[int] = None

    resolver_profile: Optional[str] = None
    resolver_policy: Optional[FanOutPolicy] = None
    resolver_cache_ttl_seconds: Optional[int] = None
    resolver_preferred_source_mode: Optional[PreferredSourceMode] = None
    resolver_max_title_attempts: Optional[int] = None

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
