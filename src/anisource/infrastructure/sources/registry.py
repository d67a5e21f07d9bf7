"""Source registry: the fixed set of adapters, ordered by priority."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

import structlog

from anisource.domain.errors import ConfigurationError
from anisource.domain.ports.source_adapter import SourceAdapterPort
from anisource.infrastructure.config.schema import ResolverConfig

from .animeworld import AnimeWorldSource
from .base import HttpxSourceBase
from .satoru import SatoruSource
from .watchanimeworld import WatchAnimeWorldSource

log = structlog.get_logger(__name__)

ADAPTER_CLASSES: tuple[type[HttpxSourceBase], ...] = (
    SatoruSource,
    WatchAnimeWorldSource,
    AnimeWorldSource,
)


class SourceRegistry:
    """Immutable collection of source adapters keyed by descriptor id.

    ``ordered()`` yields enabled adapters by ascending priority (ties by id);
    ``get()`` looks up one adapter for an explicit caller preference.
    """

    def __init__(self, adapters: Iterable[SourceAdapterPort]) -> None:
        self._adapters: dict[str, SourceAdapterPort] = {}
        for adapter in adapters:
            source_id = adapter.descriptor.id
            if source_id in self._adapters:
                raise ConfigurationError(f"Duplicate source id {source_id!r}")
            self._adapters[source_id] = adapter

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._adapters

    def all(self) -> list[SourceAdapterPort]:
        """Every adapter (enabled or not), in priority order."""
        return sorted(
            self._adapters.values(),
            key=lambda a: (a.descriptor.priority, a.descriptor.id),
        )

    def ordered(self) -> list[SourceAdapterPort]:
        """Enabled adapters in priority order."""
        return [a for a in self.all() if a.descriptor.enabled]

    def get(self, source_id: str) -> SourceAdapterPort:
        """Return the enabled adapter *source_id*.

        Raises:
            ConfigurationError: unknown or disabled id.
        """
        adapter = self._adapters.get(source_id)
        if adapter is None:
            raise ConfigurationError(
                f"Unknown source {source_id!r}; known: {sorted(self._adapters)}"
            )
        if not adapter.descriptor.enabled:
            raise ConfigurationError(f"Source {source_id!r} is disabled")
        return adapter


def build_source_registry(
    config: ResolverConfig,
    *,
    default_timeout: float,
    user_agent: str | None = None,
) -> SourceRegistry:
    """Instantiate every known adapter with config overrides applied.

    ``config.sources`` lists the enabled ids; known adapters missing from
    it stay registered but disabled.
    """
    known = {cls.DEFAULT_DESCRIPTOR.id for cls in ADAPTER_CLASSES}
    unknown = sorted(set(config.sources) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown source id(s) in resolver.sources: {unknown}; known: {sorted(known)}"
        )

    adapters: list[SourceAdapterPort] = []
    for cls in ADAPTER_CLASSES:
        base = cls.DEFAULT_DESCRIPTOR
        descriptor = replace(
            base,
            priority=config.source_priorities.get(base.id, base.priority),
            timeout_seconds=config.source_timeouts.get(base.id, default_timeout),
            enabled=base.id in config.sources,
        )
        adapters.append(cls(descriptor, user_agent=user_agent))

    registry = SourceRegistry(adapters)
    log.debug(
        "source_registry_built",
        enabled=[a.descriptor.id for a in registry.ordered()],
    )
    return registry
