"""Library index construction and album photo caching."""

from .builder import LibraryIndexBuilder, month_key, month_title
from .cache import AlbumPhotoCache, PhotoLoader

__all__ = ["AlbumPhotoCache", "LibraryIndexBuilder", "PhotoLoader", "month_key", "month_title"]
