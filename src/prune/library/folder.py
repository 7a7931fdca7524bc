"""Filesystem-backed photo library.

A directory tree is treated as the photo library: every image or video below
the root is an asset identified by its root-relative POSIX path, each
top-level subdirectory is a user album, and a handful of system collections
(Recents, Favorites, Screenshots, Videos) are derived from file metadata.
Library-owned state such as favorites lives in ``<root>/<state_dirname>``.
"""

from __future__ import annotations

import json
import logging
import os
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Sequence

from PIL import Image, ImageOps
from send2trash import send2trash
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .interfaces import ChangeObserver, ImageHandler
from .models import (
    AlbumKind,
    AlbumRef,
    AssetChangeRequest,
    AuthorizationStatus,
    ContentMode,
    DeliveryMode,
    ImageRequestOptions,
    ImageResult,
    LibraryChange,
    MediaKind,
    PhotoRef,
    sort_by_creation,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_STATE_DIRNAME = ".prune"
SHARED_MARKER = ".shared"
FAVORITES_FILENAME = "favorites.json"

IMAGE_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff", ".webp", ".heic", ".heif", ".dng"}
)
VIDEO_EXTENSIONS = frozenset({".mov", ".mp4", ".m4v", ".avi", ".mkv", ".3gp"})

RECENTS_ID = "system:recents"
FAVORITES_ID = "system:favorites"
SCREENSHOTS_ID = "system:screenshots"
VIDEOS_ID = "system:videos"
USER_ALBUM_PREFIX = "album:"

SYSTEM_COLLECTIONS = {
    RECENTS_ID: "Recents",
    FAVORITES_ID: "Favorites",
    SCREENSHOTS_ID: "Screenshots",
    VIDEOS_ID: "Videos",
}

_EXIF_IFD = 0x8769
_EXIF_DATETIME_ORIGINAL = 0x9003
_EXIF_DATETIME = 0x0132
_SCREENSHOT_PREFIXES = ("screenshot", "screen shot")
_DECODE_ERRORS = (OSError, ValueError, Image.DecompressionBombError)


def media_kind_for(path: Path) -> MediaKind:
    """Classify a file by extension."""
    suffix = path.suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if suffix in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.UNKNOWN


def parse_exif_datetime(raw: Any) -> Optional[datetime]:
    """Parse an EXIF ``YYYY:MM:DD HH:MM:SS`` value into a naive local datetime."""
    if isinstance(raw, bytes):
        raw = raw.decode("ascii", errors="ignore")
    if not isinstance(raw, str):
        return None
    text = raw.strip().strip("\x00")
    try:
        return datetime.strptime(text[:19], "%Y:%m:%d %H:%M:%S")
    except ValueError:
        return None


def read_capture_time(path: Path) -> Optional[datetime]:
    """Return the EXIF capture time of an image file, if present."""
    try:
        with Image.open(path) as img:
            exif = img.getexif()
            raw = exif.get_ifd(_EXIF_IFD).get(_EXIF_DATETIME_ORIGINAL) or exif.get(_EXIF_DATETIME)
    except _DECODE_ERRORS:
        return None
    return parse_exif_datetime(raw)


@dataclass(slots=True)
class _Entry:
    """Scanned asset with the filesystem facts collection rules need."""

    photo: PhotoRef
    path: Path
    size_bytes: int
    modified_at: datetime
    album: Optional[str]


class FolderPhotoLibrary:
    """Photo library backed by a directory tree."""

    def __init__(
        self,
        root: Path,
        *,
        state_dirname: str = DEFAULT_STATE_DIRNAME,
        use_file_times: bool = True,
        recents_days: int = 30,
        debounce_seconds: float = 0.5,
        follow_symlinks: bool = False,
        image_workers: int = 2,
    ) -> None:
        """Initialize the library.

        Args:
            root: Directory treated as the library root.
            state_dirname: Name of the directory holding library-owned state.
            use_file_times: Fall back to modification times when EXIF has no date.
            recents_days: Window, in days, used for the Recents collection.
            debounce_seconds: Quiet period before filesystem events are reported.
            follow_symlinks: Whether to descend into symlinked directories.
            image_workers: Thread count used for image decoding.
        """
        self._root = root.expanduser()
        self._state_dirname = state_dirname
        self._use_file_times = use_file_times
        self._recents_days = max(0, recents_days)
        self._debounce_seconds = max(0.05, debounce_seconds)
        self._follow_symlinks = follow_symlinks
        self._lock = threading.RLock()
        self._capture_times: dict[Path, tuple[int, int, Optional[datetime]]] = {}
        self._snapshot: Optional[list[_Entry]] = None
        self._observers: list[ChangeObserver] = []
        self._watcher: Any = None
        self._events: queue.Queue[Optional[str]] = queue.Queue()
        self._relay: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._image_pool = ThreadPoolExecutor(
            max_workers=max(1, image_workers), thread_name_prefix="prune-images"
        )
        self._request_counter = 0

    @property
    def root(self) -> Path:
        return self._root

    @property
    def state_dir(self) -> Path:
        return self._root / self._state_dirname

    def close(self) -> None:
        """Stop the filesystem watcher and the image decoding pool."""
        with self._lock:
            self._observers.clear()
        self._stop_watching()
        self._image_pool.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------ #
    # Authorization                                                      #
    # ------------------------------------------------------------------ #

    def authorization_status(self) -> AuthorizationStatus:
        root = self._root
        if not root.exists():
            return AuthorizationStatus.NOT_DETERMINED
        if not root.is_dir() or not os.access(root, os.R_OK | os.X_OK):
            return AuthorizationStatus.DENIED
        if not os.access(root, os.W_OK):
            return AuthorizationStatus.LIMITED
        return AuthorizationStatus.AUTHORIZED

    def request_authorization(self) -> AuthorizationStatus:
        """Re-check filesystem permissions; there is nobody to prompt."""
        return self.authorization_status()

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def fetch_all(
        self, *, media_kind: MediaKind = MediaKind.IMAGE, descending: bool = True
    ) -> Sequence[PhotoRef]:
        photos = [entry.photo for entry in self._entries() if entry.photo.media_kind is media_kind]
        return sort_by_creation(photos, descending=descending)

    def fetch_by_ids(self, photo_ids: Iterable[str]) -> Sequence[PhotoRef]:
        favorites = self._load_favorites()
        photos: list[PhotoRef] = []
        for photo_id in set(photo_ids):
            path = self._path_for(photo_id)
            if path is None:
                continue
            entry = self._entry_for(path, favorites)
            if entry is not None:
                photos.append(entry.photo)
        return sort_by_creation(photos)

    def fetch_collections(self, kind: AlbumKind) -> Sequence[AlbumRef]:
        if kind is AlbumKind.SYSTEM_COLLECTION:
            return [
                AlbumRef(id=album_id, title=title, kind=AlbumKind.SYSTEM_COLLECTION)
                for album_id, title in SYSTEM_COLLECTIONS.items()
            ]
        if kind is AlbumKind.USER_ALBUM:
            return list(self._user_albums())
        return []

    def count_in_collection(
        self, album_id: str, *, media_kind: MediaKind = MediaKind.IMAGE
    ) -> int:
        return len(self._collection_entries(album_id, media_kind))

    def fetch_in_collection(
        self,
        album_id: str,
        *,
        media_kind: MediaKind = MediaKind.IMAGE,
        descending: bool = True,
    ) -> Sequence[PhotoRef]:
        photos = [entry.photo for entry in self._collection_entries(album_id, media_kind)]
        return sort_by_creation(photos, descending=descending)

    def resource_value(self, photo_id: str, key: str) -> Optional[Any]:
        path = self._path_for(photo_id)
        if path is None:
            return None
        try:
            if key == "fileSize":
                return path.stat().st_size
        except OSError:
            return None
        if key == "filename":
            return path.name
        if key == "path":
            return str(path)
        return None

    # ------------------------------------------------------------------ #
    # Mutations                                                          #
    # ------------------------------------------------------------------ #

    def perform_changes(self, requests: Sequence[AssetChangeRequest]) -> bool:
        """Apply favorites and deletions; all targets must resolve first."""
        if self.authorization_status() is not AuthorizationStatus.AUTHORIZED:
            LOGGER.error("Library at %s is not writable; change request rejected.", self._root)
            return False

        resolved: list[tuple[AssetChangeRequest, Path]] = []
        for request in requests:
            path = self._path_for(request.photo_id)
            if path is None:
                LOGGER.error("Change request references unknown asset %s.", request.photo_id)
                return False
            resolved.append((request, path))

        favorite_updates = {
            req.photo_id: req.favorite for req, _ in resolved if req.favorite is not None
        }
        try:
            with self._lock:
                if favorite_updates:
                    favorites = self._load_favorites()
                    for photo_id, flag in favorite_updates.items():
                        if flag:
                            favorites.add(photo_id)
                        else:
                            favorites.discard(photo_id)
                    self._save_favorites(favorites)
                for request, path in resolved:
                    if request.delete:
                        send2trash(str(path))
                self._snapshot = None
        except OSError as exc:
            LOGGER.error("Failed to apply change request: %s", exc)
            with self._lock:
                self._snapshot = None
            return False

        self._dispatch(LibraryChange(photo_ids=tuple(req.photo_id for req in requests)))
        return True

    # ------------------------------------------------------------------ #
    # Images                                                             #
    # ------------------------------------------------------------------ #

    def request_image(
        self, photo_id: str, options: ImageRequestOptions, handler: ImageHandler
    ) -> int:
        with self._lock:
            self._request_counter += 1
            request_id = self._request_counter
        self._image_pool.submit(self._deliver_image, photo_id, options, handler)
        return request_id

    def _deliver_image(
        self, photo_id: str, options: ImageRequestOptions, handler: ImageHandler
    ) -> None:
        path = self._path_for(photo_id)
        if path is None or media_kind_for(path) is not MediaKind.IMAGE:
            handler(ImageResult(error=f"No image asset with identifier {photo_id}"))
            return
        width, height = (max(1, value) for value in options.target_size)
        try:
            if options.delivery_mode is DeliveryMode.OPPORTUNISTIC:
                preview_size = (max(1, width // 4), max(1, height // 4))
                preview = self._decode(path, preview_size, options.content_mode, fast=True)
                handler(ImageResult(image=preview, degraded=True))
            image = self._decode(path, (width, height), options.content_mode, fast=False)
        except _DECODE_ERRORS as exc:
            LOGGER.error("Error loading image %s: %s", photo_id, exc)
            handler(ImageResult(error=str(exc)))
            return
        handler(ImageResult(image=image))

    @staticmethod
    def _decode(
        path: Path, size: tuple[int, int], content_mode: ContentMode, *, fast: bool
    ) -> Image.Image:
        resample = Image.Resampling.NEAREST if fast else Image.Resampling.LANCZOS
        with Image.open(path) as img:
            if fast:
                img.draft("RGB", size)
            oriented = ImageOps.exif_transpose(img)
            if oriented.mode not in ("RGB", "RGBA", "L"):
                oriented = oriented.convert("RGB")
            if content_mode is ContentMode.ASPECT_FILL:
                return ImageOps.fit(oriented, size, method=resample)
            result = oriented.copy()
            result.thumbnail(size, resample)
            return result

    # ------------------------------------------------------------------ #
    # Change observation                                                 #
    # ------------------------------------------------------------------ #

    def register_change_observer(self, observer: ChangeObserver) -> None:
        with self._lock:
            if observer in self._observers:
                return
            self._observers.append(observer)
            start = len(self._observers) == 1
        if start:
            self._start_watching()

    def unregister_change_observer(self, observer: ChangeObserver) -> None:
        with self._lock:
            if observer not in self._observers:
                return
            self._observers.remove(observer)
            stop = not self._observers
        if stop:
            self._stop_watching()

    def _start_watching(self) -> None:
        if not self._root.is_dir():
            LOGGER.warning(
                "Library root %s does not exist; changes will not be observed.", self._root
            )
            return
        self._stop_event.clear()
        self._events = queue.Queue()
        self._relay = threading.Thread(target=self._relay_loop, name="prune-watch", daemon=True)
        self._relay.start()
        watcher = Observer()
        watcher.schedule(
            _LibraryEventHandler(self._events, self._state_dirname), str(self._root), recursive=True
        )
        watcher.start()
        self._watcher = watcher

    def _stop_watching(self) -> None:
        if self._watcher is None and self._relay is None:
            return
        self._stop_event.set()
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher.join(timeout=5)
            self._watcher = None
        # Unblock the relay so it can exit.
        self._events.put(None)
        if self._relay is not None:
            self._relay.join(timeout=5)
            self._relay = None

    def _relay_loop(self) -> None:
        """Coalesce filesystem events and report them after a quiet period."""
        pending: set[str] = set()
        deadline: Optional[float] = None
        while not self._stop_event.is_set():
            timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                path = self._events.get(timeout=timeout)
            except queue.Empty:
                if pending:
                    self._dispatch(LibraryChange(paths=tuple(sorted(pending))))
                    pending = set()
                deadline = None
                continue
            if path is None:
                break
            with self._lock:
                self._snapshot = None
            pending.add(path)
            deadline = time.monotonic() + self._debounce_seconds

    def _dispatch(self, change: LibraryChange) -> None:
        with self._lock:
            self._snapshot = None
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(change)
            except Exception:  # pragma: no cover
                LOGGER.exception("Library change observer failed.")

    # ------------------------------------------------------------------ #
    # Scanning                                                           #
    # ------------------------------------------------------------------ #

    def _entries(self) -> list[_Entry]:
        """Return scanned assets; the scan is reused only while being watched."""
        with self._lock:
            if self._snapshot is not None and self._watcher is not None:
                return self._snapshot
        favorites = self._load_favorites()
        entries = [
            entry
            for entry in (self._entry_for(path, favorites) for path in self._iter_files())
            if entry is not None
        ]
        with self._lock:
            self._snapshot = entries
        return entries

    def _iter_files(self) -> Iterator[Path]:
        if not self._root.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(self._root, followlinks=self._follow_symlinks):
            dirnames[:] = sorted(
                name
                for name in dirnames
                if not name.startswith(".") and name != self._state_dirname
            )
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                path = Path(dirpath) / name
                if media_kind_for(path) is not MediaKind.UNKNOWN:
                    yield path

    def _entry_for(self, path: Path, favorites: set[str]) -> Optional[_Entry]:
        media_kind = media_kind_for(path)
        if media_kind is MediaKind.UNKNOWN:
            return None
        try:
            stat = path.stat()
        except OSError:
            return None
        relative = path.relative_to(self._root)
        photo_id = relative.as_posix()
        modified_at = datetime.fromtimestamp(stat.st_mtime)
        photo = PhotoRef(
            id=photo_id,
            creation_timestamp=self._creation_time(path, stat, media_kind, modified_at),
            media_kind=media_kind,
            favorite=photo_id in favorites,
        )
        album = relative.parts[0] if len(relative.parts) > 1 else None
        return _Entry(
            photo=photo,
            path=path,
            size_bytes=stat.st_size,
            modified_at=modified_at,
            album=album,
        )

    def _creation_time(
        self, path: Path, stat: os.stat_result, media_kind: MediaKind, modified_at: datetime
    ) -> Optional[datetime]:
        fallback = modified_at if self._use_file_times else None
        if media_kind is not MediaKind.IMAGE:
            return fallback
        key = (stat.st_mtime_ns, stat.st_size)
        with self._lock:
            cached = self._capture_times.get(path)
        if cached is not None and cached[:2] == key:
            captured = cached[2]
        else:
            captured = read_capture_time(path)
            with self._lock:
                self._capture_times[path] = (key[0], key[1], captured)
        return captured or fallback

    def _path_for(self, photo_id: str) -> Optional[Path]:
        """Map an identifier back to a file inside the root, or ``None``."""
        if not photo_id or photo_id.startswith("/"):
            return None
        relative = Path(photo_id)
        if any(part in ("..", "") or part.startswith(".") for part in relative.parts):
            return None
        path = self._root / relative
        if not path.is_file() or media_kind_for(path) is MediaKind.UNKNOWN:
            return None
        return path

    def _user_albums(self) -> Iterator[AlbumRef]:
        if not self._root.is_dir():
            return
        for child in sorted(self._root.iterdir()):
            if not child.is_dir() or child.name.startswith("."):
                continue
            if child.name == self._state_dirname:
                continue
            yield AlbumRef(
                id=f"{USER_ALBUM_PREFIX}{child.name}",
                title=child.name,
                kind=AlbumKind.USER_ALBUM,
                shared=(child / SHARED_MARKER).exists(),
            )

    def _collection_entries(self, album_id: str, media_kind: MediaKind) -> list[_Entry]:
        entries = [entry for entry in self._entries() if entry.photo.media_kind is media_kind]
        if album_id.startswith(USER_ALBUM_PREFIX):
            name = album_id[len(USER_ALBUM_PREFIX) :]
            return [entry for entry in entries if entry.album == name]
        if album_id == RECENTS_ID:
            cutoff = datetime.now() - timedelta(days=self._recents_days)
            return [entry for entry in entries if entry.modified_at >= cutoff]
        if album_id == FAVORITES_ID:
            return [entry for entry in entries if entry.photo.favorite]
        if album_id == SCREENSHOTS_ID:
            return [
                entry
                for entry in entries
                if entry.path.name.lower().startswith(_SCREENSHOT_PREFIXES)
            ]
        if album_id == VIDEOS_ID:
            return [entry for entry in entries if entry.photo.media_kind is MediaKind.VIDEO]
        return []

    # ------------------------------------------------------------------ #
    # Favorites                                                          #
    # ------------------------------------------------------------------ #

    def _load_favorites(self) -> set[str]:
        path = self.state_dir / FAVORITES_FILENAME
        if not path.exists():
            return set()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable favorites file %s: %s", path, exc)
            return set()
        if not isinstance(data, list):
            return set()
        return {str(item) for item in data}

    def _save_favorites(self, favorites: set[str]) -> None:
        directory = self.state_dir
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / FAVORITES_FILENAME
        temp = target.with_suffix(".json.tmp")
        temp.write_text(json.dumps(sorted(favorites), indent=2), encoding="utf-8")
        os.replace(temp, target)


class _LibraryEventHandler(FileSystemEventHandler):
    """Forward filesystem events into the library's relay queue."""

    def __init__(self, queue_handle: queue.Queue[Optional[str]], state_dirname: str) -> None:
        self._queue = queue_handle
        self._state_dirname = state_dirname

    def on_created(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._enqueue(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:  # pragma: no cover - watchdog-specific
        self._enqueue(event.src_path)
        self._enqueue(getattr(event, "dest_path", ""))

    def _enqueue(self, raw_path: Any) -> None:
        if not raw_path:
            return
        if isinstance(raw_path, bytes):
            raw_path = os.fsdecode(raw_path)
        path = Path(raw_path)
        if self._state_dirname in path.parts:
            return
        self._queue.put(str(path))


__all__ = [
    "DEFAULT_STATE_DIRNAME",
    "FAVORITES_ID",
    "FolderPhotoLibrary",
    "IMAGE_EXTENSIONS",
    "RECENTS_ID",
    "SCREENSHOTS_ID",
    "SHARED_MARKER",
    "SYSTEM_COLLECTIONS",
    "USER_ALBUM_PREFIX",
    "VIDEO_EXTENSIONS",
    "VIDEOS_ID",
    "media_kind_for",
    "parse_exif_datetime",
    "read_capture_time",
]
