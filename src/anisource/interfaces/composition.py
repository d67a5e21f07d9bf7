"""Composition root: builds every component from an ``AppConfig``."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx
import structlog

from anisource.application.episode_mapper import EpisodeMapper
from anisource.application.use_cases import ResolveEpisodeUseCase, SourceFanOut
from anisource.infrastructure.cache import (
    InMemoryCacheAdapter,
    ResultCache,
    resolution_cache_key,
)
from anisource.infrastructure.config import AppConfig
from anisource.infrastructure.matching.titles import clean_search_title
from anisource.infrastructure.metadata import AniListMetadataResolver
from anisource.infrastructure.metrics import MetricsCollector
from anisource.infrastructure.sources import SourceRegistry, build_source_registry
from anisource.infrastructure.sources.constants import DEFAULT_USER_AGENT

log = structlog.get_logger(__name__)


@dataclass
class AppState:
    """Live components for one process."""

    config: AppConfig
    cache: InMemoryCacheAdapter
    http_client: httpx.AsyncClient
    metrics: MetricsCollector
    registry: SourceRegistry
    use_case: ResolveEpisodeUseCase


@asynccontextmanager
async def lifespan(config: AppConfig) -> AsyncIterator[AppState]:
    """Initialize and clean up all resources (DI composition root).

    Order matters:
        1. Cache (shared by metadata lookups and resolution results)
        2. HTTP client for the metadata service
        3. Metrics collector
        4. Source registry (adapters open their own clients per call)
        5. Metadata resolver, mapper, fan-out, use case
    """
    # ========== 1) Cache ==========
    cache = InMemoryCacheAdapter(
        ttl_seconds=config.cache.ttl_seconds,
        max_entries=config.cache.max_entries,
    )
    await cache.__aenter__()

    # ========== 2) HTTP client (metadata only) ==========
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.metadata_timeout_seconds),
        headers={"User-Agent": config.http_user_agent or DEFAULT_USER_AGENT},
        follow_redirects=True,
    )

    try:
        # ========== 3) Metrics ==========
        metrics = MetricsCollector()

        # ========== 4) Source registry ==========
        resolver_cfg = config.resolver
        registry = build_source_registry(
            resolver_cfg,
            default_timeout=config.http_timeout_seconds,
            user_agent=config.http_user_agent,
        )
        log.info(
            "sources_registered",
            enabled=[a.descriptor.id for a in registry.ordered()],
            policy=resolver_cfg.policy,
            profile=resolver_cfg.profile,
        )

        # ========== 5) Pipeline ==========
        metadata = AniListMetadataResolver(
            http_client=http_client,
            cache=cache,
            metrics=metrics,
            url=config.anilist_url,
            timeout_seconds=config.metadata_timeout_seconds,
        )
        fan_out = SourceFanOut(
            registry=registry,
            mapper=EpisodeMapper(resolver_cfg.mapping),
            cache=ResultCache(cache, default_ttl=resolver_cfg.cache_ttl_seconds),
            cache_key=resolution_cache_key,
            config=resolver_cfg,
            metrics=metrics,
        )
        use_case = ResolveEpisodeUseCase(
            metadata=metadata,
            fan_out=fan_out,
            clean_title=clean_search_title,
            max_title_attempts=resolver_cfg.max_title_attempts,
        )

        yield AppState(
            config=config,
            cache=cache,
            http_client=http_client,
            metrics=metrics,
            registry=registry,
            use_case=use_case,
        )
    finally:
        await http_client.aclose()
        await cache.aclose()
        log.debug("resources_closed")
