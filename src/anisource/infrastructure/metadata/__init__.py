from .anilist import AniListMetadataResolver

__all__ = ["AniListMetadataResolver"]
