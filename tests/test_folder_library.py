"""Tests for the filesystem-backed photo library."""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime
from pathlib import Path

import pytest
from PIL import Image

from prune.library import (
    AlbumKind,
    AssetChangeRequest,
    AuthorizationStatus,
    DeliveryMode,
    FolderPhotoLibrary,
    ImageRequestOptions,
    ImageResult,
    MediaKind,
)
from prune.library.folder import (
    FAVORITES_ID,
    RECENTS_ID,
    SCREENSHOTS_ID,
    VIDEOS_ID,
    parse_exif_datetime,
)

_EXIF_DATETIME = 0x0132


def _write_image(path: Path, taken: str | None = None, size: tuple[int, int] = (64, 48)) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, (200, 40, 40))
    if taken is None:
        image.save(path, format="JPEG")
        return
    exif = Image.Exif()
    exif[_EXIF_DATETIME] = taken
    image.save(path, format="JPEG", exif=exif)


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    _write_image(root / "loose.jpg", "2024:01:05 10:00:00")
    _write_image(root / "Trip" / "beach.jpg", "2024:02:10 12:30:00")
    _write_image(root / "Trip" / "Screenshot 2024.jpg", "2024:02:11 08:00:00")
    _write_image(root / "Family" / "dinner.jpg", "2023:12:24 19:00:00")
    (root / "Family" / ".shared").write_text("", encoding="utf-8")
    (root / "Trip" / "clip.mov").write_bytes(b"\x00" * 16)
    (root / "notes.txt").write_text("not a photo", encoding="utf-8")
    return root


@pytest.fixture
def library(library_root: Path):
    library = FolderPhotoLibrary(library_root)
    yield library
    library.close()


def test_parse_exif_datetime() -> None:
    assert parse_exif_datetime("2024:02:10 12:30:00") == datetime(2024, 2, 10, 12, 30)
    assert parse_exif_datetime(b"2024:02:10 12:30:00\x00") == datetime(2024, 2, 10, 12, 30)
    assert parse_exif_datetime("garbage") is None
    assert parse_exif_datetime(None) is None


def test_authorization_reflects_filesystem(tmp_path: Path, library: FolderPhotoLibrary) -> None:
    assert library.authorization_status() is AuthorizationStatus.AUTHORIZED
    missing = FolderPhotoLibrary(tmp_path / "missing")
    try:
        assert missing.authorization_status() is AuthorizationStatus.NOT_DETERMINED
        assert missing.fetch_all() == []
    finally:
        missing.close()


def test_fetch_all_returns_images_newest_first(library: FolderPhotoLibrary) -> None:
    photos = library.fetch_all()

    assert [photo.id for photo in photos] == [
        "Trip/Screenshot 2024.jpg",
        "Trip/beach.jpg",
        "loose.jpg",
        "Family/dinner.jpg",
    ]
    assert photos[1].creation_timestamp == datetime(2024, 2, 10, 12, 30)
    assert all(photo.media_kind is MediaKind.IMAGE for photo in photos)


def test_fetch_by_ids_skips_missing_and_unsafe_ids(library: FolderPhotoLibrary) -> None:
    photos = library.fetch_by_ids(["loose.jpg", "gone.jpg", "../outside.jpg", "notes.txt"])

    assert [photo.id for photo in photos] == ["loose.jpg"]


def test_user_albums_mark_shared_directories(library: FolderPhotoLibrary) -> None:
    albums = {album.id: album for album in library.fetch_collections(AlbumKind.USER_ALBUM)}

    assert set(albums) == {"album:Family", "album:Trip"}
    assert albums["album:Family"].shared is True
    assert albums["album:Trip"].shared is False
    assert library.count_in_collection("album:Trip") == 2
    assert library.count_in_collection("album:Trip", media_kind=MediaKind.VIDEO) == 1


def test_system_collections(library: FolderPhotoLibrary) -> None:
    ids = [album.id for album in library.fetch_collections(AlbumKind.SYSTEM_COLLECTION)]

    assert ids == [RECENTS_ID, FAVORITES_ID, SCREENSHOTS_ID, VIDEOS_ID]
    assert library.count_in_collection(RECENTS_ID) == 4
    assert library.count_in_collection(FAVORITES_ID) == 0
    assert [p.id for p in library.fetch_in_collection(SCREENSHOTS_ID)] == [
        "Trip/Screenshot 2024.jpg"
    ]
    assert library.count_in_collection(VIDEOS_ID, media_kind=MediaKind.VIDEO) == 1


def test_recents_excludes_old_files(library_root: Path) -> None:
    old = library_root / "loose.jpg"
    stamp = datetime(2020, 1, 1).timestamp()
    os.utime(old, (stamp, stamp))
    library = FolderPhotoLibrary(library_root, recents_days=30)
    try:
        ids = [photo.id for photo in library.fetch_in_collection(RECENTS_ID)]
    finally:
        library.close()

    assert "loose.jpg" not in ids
    assert "Trip/beach.jpg" in ids


def test_file_times_are_used_without_exif(tmp_path: Path) -> None:
    root = tmp_path / "library"
    _write_image(root / "plain.jpg")
    stamp = datetime(2022, 6, 15, 8, 0).timestamp()
    os.utime(root / "plain.jpg", (stamp, stamp))

    with_times = FolderPhotoLibrary(root)
    without_times = FolderPhotoLibrary(root, use_file_times=False)
    try:
        assert with_times.fetch_all()[0].creation_timestamp == datetime(2022, 6, 15, 8, 0)
        assert without_times.fetch_all()[0].creation_timestamp is None
    finally:
        with_times.close()
        without_times.close()


def test_resource_value_reports_file_size(library_root: Path, library: FolderPhotoLibrary) -> None:
    expected = (library_root / "loose.jpg").stat().st_size

    assert library.resource_value("loose.jpg", "fileSize") == expected
    assert library.resource_value("gone.jpg", "fileSize") is None


def test_favorite_changes_persist_in_state_dir(
    library_root: Path, library: FolderPhotoLibrary
) -> None:
    assert library.perform_changes([AssetChangeRequest(photo_id="loose.jpg", favorite=True)])

    stored = json.loads((library_root / ".prune" / "favorites.json").read_text(encoding="utf-8"))
    assert stored == ["loose.jpg"]
    assert library.fetch_by_ids(["loose.jpg"])[0].favorite is True
    assert [photo.id for photo in library.fetch_in_collection(FAVORITES_ID)] == ["loose.jpg"]


def test_delete_sends_files_to_trash(
    monkeypatch: pytest.MonkeyPatch, library_root: Path, library: FolderPhotoLibrary
) -> None:
    trashed: list[str] = []

    def fake_send2trash(path: str) -> None:
        trashed.append(path)
        os.remove(path)

    monkeypatch.setattr("prune.library.folder.send2trash", fake_send2trash)
    changes: list[object] = []
    library.register_change_observer(changes.append)

    ok = library.perform_changes([AssetChangeRequest(photo_id="Trip/beach.jpg", delete=True)])

    assert ok is True
    assert trashed == [str(library_root / "Trip" / "beach.jpg")]
    assert library.fetch_by_ids(["Trip/beach.jpg"]) == []
    assert changes


def test_change_request_with_unknown_asset_is_rejected(library: FolderPhotoLibrary) -> None:
    requests = [
        AssetChangeRequest(photo_id="loose.jpg", favorite=True),
        AssetChangeRequest(photo_id="gone.jpg", delete=True),
    ]

    assert library.perform_changes(requests) is False
    assert library.fetch_by_ids(["loose.jpg"])[0].favorite is False


def _collect(library: FolderPhotoLibrary, photo_id: str, options: ImageRequestOptions):
    received: list[ImageResult] = []
    done = threading.Event()

    def handler(result: ImageResult) -> None:
        received.append(result)
        if result.is_final:
            done.set()

    library.request_image(photo_id, options, handler)
    assert done.wait(5)
    return received


def test_opportunistic_request_delivers_preview_then_final(library: FolderPhotoLibrary) -> None:
    options = ImageRequestOptions(target_size=(32, 32))

    received = _collect(library, "loose.jpg", options)

    assert [result.degraded for result in received] == [True, False]
    assert received[-1].image.size == (32, 32)


def test_high_quality_request_fits_without_preview(library: FolderPhotoLibrary) -> None:
    options = ImageRequestOptions(
        target_size=(32, 32),
        delivery_mode=DeliveryMode.HIGH_QUALITY,
        content_mode="aspect_fit",
    )

    received = _collect(library, "loose.jpg", options)

    assert len(received) == 1
    assert received[0].image.size == (32, 24)


def test_image_request_for_unknown_asset_fails(library: FolderPhotoLibrary) -> None:
    received = _collect(library, "gone.jpg", ImageRequestOptions())

    assert received[0].error is not None


def test_filesystem_changes_notify_observers(library_root: Path) -> None:
    library = FolderPhotoLibrary(library_root, debounce_seconds=0.1)
    notified = threading.Event()
    library.register_change_observer(lambda change: notified.set())
    try:
        _write_image(library_root / "new.jpg", "2024:03:01 09:00:00")
        assert notified.wait(5)
        assert "new.jpg" in [photo.id for photo in library.fetch_all()]
    finally:
        library.close()
