"""Tests for the album photo cache."""

from __future__ import annotations

from datetime import datetime

from fakes import InMemoryPhotoLibrary
from prune.index import AlbumPhotoCache
from prune.library import PhotoRef


def _loader(library: InMemoryPhotoLibrary):
    return lambda album_id: library.fetch_in_collection(album_id)


def test_second_lookup_is_served_from_cache() -> None:
    library = InMemoryPhotoLibrary()
    library.add_photo("old", datetime(2024, 1, 1))
    library.add_photo("new", datetime(2024, 3, 1))
    library.add_collection("trip", "Trip", photo_ids=["old", "new"])
    cache = AlbumPhotoCache()

    first = cache.photos_for("trip", _loader(library))
    second = cache.photos_for("trip", _loader(library))

    assert [photo.id for photo in first] == ["new", "old"]
    assert second == first
    assert library.query_counts["fetch_in_collection"] == 1
    assert (cache.hits, cache.misses) == (1, 1)


def test_invalidate_drops_entries_and_bumps_generation() -> None:
    library = InMemoryPhotoLibrary()
    library.add_collection("trip", "Trip")
    cache = AlbumPhotoCache()
    cache.photos_for("trip", _loader(library))

    generation = cache.invalidate()

    assert generation == 1
    assert "trip" not in cache
    cache.photos_for("trip", _loader(library))
    assert library.query_counts["fetch_in_collection"] == 2


def test_store_refuses_results_from_an_older_generation() -> None:
    cache = AlbumPhotoCache()
    stale_generation = cache.generation
    cache.invalidate()

    stored = cache.store("trip", [PhotoRef(id="p1")], stale_generation)

    assert stored is False
    assert len(cache) == 0
