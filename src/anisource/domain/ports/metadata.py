"""Port for metadata lookups (external id -> canonical titles)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from anisource.domain.entities import TitleQuery


@runtime_checkable
class MetadataResolverPort(Protocol):
    """Async interface for title metadata lookups."""

    async def resolve(self, identifier: str) -> TitleQuery:
        """Fetch display titles for *identifier*.

        Raises:
            NotFoundError: the service has no entry for the identifier.
            UpstreamError: network failure, timeout or invalid response.
        """
        ...
