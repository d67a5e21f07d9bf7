from .fan_out import SourceFanOut
from .resolve_episode import ResolveEpisodeUseCase

__all__ = ["ResolveEpisodeUseCase", "SourceFanOut"]
