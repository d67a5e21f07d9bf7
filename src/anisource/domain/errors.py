"""Resolution pipeline exceptions."""

from __future__ import annotations


class ResolutionError(Exception):
    """Base class for all resolution-related errors."""


class NotFoundError(ResolutionError):
    """Raised when a title, candidate, episode or playable server cannot be located.

    ``errors`` carries one ``"<source>: <message>"`` entry per failed
    source when raised by the fan-out after exhausting every source.
    ``upstream_only`` is ``True`` when every recorded failure was a
    network/upstream problem, so retrying later may help.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[str] | None = None,
        upstream_only: bool = False,
    ) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors or [])
        self.upstream_only = upstream_only


class UpstreamError(ResolutionError):
    """Raised when a dependency failed: transport error, timeout, non-2xx, bad payload."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.status = status


class ConfigurationError(ResolutionError):
    """Raised when an unknown or disabled source id was explicitly requested."""
