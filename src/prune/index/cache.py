"""Memoized per-album photo listings."""

from __future__ import annotations

import threading
from typing import Callable, Dict, Optional, Sequence, Tuple

from prune.library.models import PhotoRef

PhotoLoader = Callable[[str], Sequence[PhotoRef]]


class AlbumPhotoCache:
    """Ordered photo lists keyed by album id.

    Entries are point-in-time snapshots. The whole cache is dropped by
    :meth:`invalidate`; each invalidation bumps :attr:`generation` so results
    fetched before the drop can be recognized and discarded.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[PhotoRef, ...]] = {}
        self._generation = 0
        self.hits = 0
        self.misses = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, album_id: object) -> bool:
        with self._lock:
            return album_id in self._entries

    def get(self, album_id: str) -> Optional[Tuple[PhotoRef, ...]]:
        """Return cached photos for ``album_id`` and record a hit or miss."""
        with self._lock:
            photos = self._entries.get(album_id)
            if photos is None:
                self.misses += 1
            else:
                self.hits += 1
            return photos

    def store(self, album_id: str, photos: Sequence[PhotoRef], generation: int) -> bool:
        """Cache ``photos`` unless the cache was invalidated since ``generation``.

        Returns:
            bool: ``True`` when the entry was stored.
        """
        with self._lock:
            if generation != self._generation:
                return False
            self._entries[album_id] = tuple(photos)
            return True

    def invalidate(self) -> int:
        """Drop every entry and return the new generation."""
        with self._lock:
            self._entries = {}
            self._generation += 1
            return self._generation

    def photos_for(self, album_id: str, loader: PhotoLoader) -> Tuple[PhotoRef, ...]:
        """Return cached photos, loading and storing them on a miss."""
        cached = self.get(album_id)
        if cached is not None:
            return cached
        generation = self.generation
        photos = tuple(loader(album_id))
        self.store(album_id, photos, generation)
        return photos


__all__ = ["AlbumPhotoCache", "PhotoLoader"]
