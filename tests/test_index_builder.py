"""Tests for month bucketing and collection filtering."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fakes import InMemoryPhotoLibrary
from prune.index import LibraryIndexBuilder, month_key
from prune.library import AlbumKind, AuthorizationStatus, MediaKind


def test_month_key_is_zero_padded() -> None:
    assert month_key(2024, 3) == "2024-03"


def test_photos_are_bucketed_by_month_newest_first() -> None:
    library = InMemoryPhotoLibrary()
    library.add_photo("jan-05", datetime(2024, 1, 5, 9, 0))
    library.add_photo("jan-31", datetime(2024, 1, 31, 23, 0))
    library.add_photo("feb-01", datetime(2024, 2, 1, 0, 30))

    index = LibraryIndexBuilder(library).rebuild_index()

    assert [album.id for album in index.month_albums] == ["2024-02", "2024-01"]
    january = index.album("2024-01")
    assert january is not None
    assert january.title == "January 2024"
    assert january.kind is AlbumKind.TIME_BUCKET
    assert january.sort_key == datetime(2024, 1, 1)
    assert january.ordered_photo_ids == ("jan-31", "jan-05")
    assert [photo.id for photo in index.month_photos["2024-01"]] == ["jan-31", "jan-05"]


def test_every_dated_image_lands_in_exactly_one_bucket() -> None:
    library = InMemoryPhotoLibrary()
    start = datetime(2023, 11, 20)
    for offset in range(40):
        library.add_photo(f"p{offset}", start + timedelta(days=offset * 3))
    library.add_photo("undated")
    library.add_photo("clip", datetime(2024, 1, 2), media_kind=MediaKind.VIDEO)

    index = LibraryIndexBuilder(library).rebuild_index()

    bucketed = [pid for album in index.month_albums for pid in album.ordered_photo_ids]
    assert sorted(bucketed) == sorted(f"p{offset}" for offset in range(40))
    assert all(album.photo_count > 0 for album in index.month_albums)


def test_aware_timestamps_use_the_configured_zone() -> None:
    library = InMemoryPhotoLibrary()
    library.add_photo("late", datetime(2024, 1, 31, 23, 30, tzinfo=timezone.utc))

    tz = timezone(timedelta(hours=2))
    index = LibraryIndexBuilder(library, tz=tz).rebuild_index()

    assert [album.id for album in index.month_albums] == ["2024-02"]


def test_empty_and_shared_collections_are_excluded() -> None:
    library = InMemoryPhotoLibrary()
    library.add_photo("p1", datetime(2024, 5, 1))
    library.add_photo("clip", datetime(2024, 5, 2), media_kind=MediaKind.VIDEO)
    library.add_collection("fav", "Favorites", kind=AlbumKind.SYSTEM_COLLECTION, photo_ids=["p1"])
    library.add_collection("vids", "Videos", kind=AlbumKind.SYSTEM_COLLECTION, photo_ids=["clip"])
    library.add_collection("trip", "Trip", photo_ids=["p1"])
    library.add_collection("empty", "Empty")
    library.add_collection("family", "Family", shared=True, photo_ids=["p1"])

    index = LibraryIndexBuilder(library).rebuild_index()

    assert [album.id for album in index.system_albums] == ["fav"]
    assert [album.id for album in index.user_albums] == ["trip"]


def test_unreadable_library_yields_empty_index() -> None:
    library = InMemoryPhotoLibrary(status=AuthorizationStatus.DENIED)
    library.add_photo("p1", datetime(2024, 5, 1))

    index = LibraryIndexBuilder(library).rebuild_index()

    assert index.is_empty
    assert library.total_queries == 0
