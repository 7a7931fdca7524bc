"""Reconcile the published index, album cache, and decisions with the live library."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from prune.decisions import DecisionState, DecisionStore, ReviewState
from prune.index import AlbumPhotoCache, LibraryIndexBuilder
from prune.library.errors import AuthorizationError
from prune.library.fields import decode_file_size
from prune.library.interfaces import PhotoLibrary
from prune.library.models import (
    AlbumKind,
    AlbumRef,
    AssetChangeRequest,
    AuthorizationStatus,
    EmptyTrashResult,
    LibraryChange,
    LibraryIndex,
    MediaKind,
    PhotoRef,
    Resolution,
)

from .owner import OwnerLoop

LOGGER = logging.getLogger(__name__)

_RebuildOutcome = Tuple[LibraryIndex, Optional[Resolution]]


class ControllerState(str, Enum):
    """Lifecycle of the published index."""

    IDLE = "idle"
    REBUILDING = "rebuilding"


class ReconciliationController:
    """Own the library index, album cache, and decision store.

    Index, cache, and decision mutations happen on a single :class:`OwnerLoop`
    thread. Library queries run on a worker pool and their results are applied
    back on the owner. While a rebuild is in flight, queries are answered from
    the last published index; a change notification received mid-rebuild
    schedules exactly one follow-up rebuild.
    """

    def __init__(
        self,
        library: PhotoLibrary,
        decisions: DecisionStore,
        *,
        builder: Optional[LibraryIndexBuilder] = None,
        cache: Optional[AlbumPhotoCache] = None,
        owner: Optional[OwnerLoop] = None,
        worker_threads: int = 2,
        prune_after_rebuild: bool = False,
    ) -> None:
        """Initialize the controller.

        Args:
            library: Live photo library.
            decisions: Decision store reconciled against the library.
            builder: Index builder; defaults to one over ``library``.
            cache: Album photo cache; a fresh one by default.
            owner: Owner loop; a fresh one by default.
            worker_threads: Size of the pool running library queries.
            prune_after_rebuild: Resolve decisions and prune orphans as part
                of every rebuild.
        """
        self._library = library
        self._decisions = decisions
        self._builder = builder or LibraryIndexBuilder(library)
        self._cache = cache or AlbumPhotoCache()
        self._owner = owner or OwnerLoop()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, worker_threads), thread_name_prefix="prune-query"
        )
        self._prune_after_rebuild = prune_after_rebuild

        self._index = LibraryIndex()
        self._status = AuthorizationStatus.NOT_DETERMINED
        self._state = ControllerState.IDLE
        self._follow_up = False
        self._waiters: List["Future[LibraryIndex]"] = []
        self._active_waiters: List["Future[LibraryIndex]"] = []
        self._inflight: dict[str, "Future[Tuple[PhotoRef, ...]]"] = {}
        self._pending_lock = threading.Lock()
        self._pending = 0
        self._idle = threading.Event()
        self._idle.set()
        self._started = False
        self.rebuild_count = 0

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Start the owner loop, subscribe to changes, and build the index."""
        if self._started:
            raise RuntimeError("ReconciliationController is already running.")
        self._owner.start()
        self._started = True
        self._library.register_change_observer(self._on_library_change)
        self._status = self._library.authorization_status()
        if self._status.allows_reading:
            self.refresh()
        else:
            LOGGER.info("Photo library access is %s; index left empty.", self._status.value)

    def stop(self) -> None:
        """Unsubscribe, drain outstanding work, and flush decisions.

        Raises:
            DecisionPersistenceError: If pending decisions could not be written.
        """
        if not self._started:
            return
        self._started = False
        self._library.unregister_change_observer(self._on_library_change)
        self._owner.stop()
        self._executor.shutdown(wait=True, cancel_futures=True)
        for waiter in (*self._waiters, *self._active_waiters):
            if not waiter.done():
                waiter.set_exception(RuntimeError("Controller stopped before rebuilding."))
        self._waiters = []
        self._active_waiters = []
        self._state = ControllerState.IDLE
        self._idle.set()
        self._decisions.close()

    def __enter__(self) -> "ReconciliationController":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # ------------------------------------------------------------------ #
    # Published state                                                    #
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def index(self) -> LibraryIndex:
        return self._index

    @property
    def month_albums(self) -> Tuple[AlbumRef, ...]:
        return self._index.month_albums

    @property
    def system_albums(self) -> Tuple[AlbumRef, ...]:
        return self._index.system_albums

    @property
    def user_albums(self) -> Tuple[AlbumRef, ...]:
        return self._index.user_albums

    @property
    def authorization_status(self) -> AuthorizationStatus:
        return self._status

    @property
    def cache(self) -> AlbumPhotoCache:
        return self._cache

    @property
    def decisions(self) -> DecisionStore:
        return self._decisions

    def request_authorization(self) -> AuthorizationStatus:
        """Ask the library for access and rebuild when it is granted."""
        self._status = self._library.request_authorization()
        if self._status.allows_reading:
            self.refresh()
        return self._status

    # ------------------------------------------------------------------ #
    # Rebuilds                                                           #
    # ------------------------------------------------------------------ #

    def refresh(self) -> "Future[LibraryIndex]":
        """Schedule a rebuild; the future resolves with the resulting index."""
        waiter: Future[LibraryIndex] = Future()
        self._mark_busy()
        submitted = self._owner.submit(self._request_rebuild, waiter)
        if submitted.done() and submitted.exception() is not None:
            self._mark_settled()
            waiter.set_exception(submitted.exception())  # type: ignore[arg-type]
        return waiter

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no rebuild is running or queued."""
        return self._idle.wait(timeout)

    def _on_library_change(self, change: LibraryChange) -> None:
        if not self._started:
            return
        LOGGER.debug(
            "Library change reported (%d path(s), %d photo(s)).",
            len(change.paths),
            len(change.photo_ids),
        )
        self._mark_busy()
        submitted = self._owner.submit(self._request_rebuild, None)
        if submitted.done() and submitted.exception() is not None:
            self._mark_settled()

    def _request_rebuild(self, waiter: Optional["Future[LibraryIndex]"]) -> None:
        if waiter is not None:
            self._waiters.append(waiter)
        if self._state is ControllerState.REBUILDING:
            self._follow_up = True
        else:
            self._start_rebuild()
        self._mark_settled()

    def _start_rebuild(self) -> None:
        self._state = ControllerState.REBUILDING
        self._follow_up = False
        waiters, self._waiters = self._waiters, []
        self._active_waiters = waiters
        job = self._executor.submit(self._rebuild_job)
        job.add_done_callback(
            lambda done: self._owner.submit(self._finish_rebuild, done, waiters)
        )

    def _rebuild_job(self) -> _RebuildOutcome:
        """Build the index and, when enabled, resolve decided ids (worker thread)."""
        index = self._builder.rebuild_index()
        resolution = None
        if self._prune_after_rebuild and self._library.authorization_status().allows_reading:
            resolution = self.resolve(self._decisions.photo_ids())
        return index, resolution

    def _finish_rebuild(
        self, done: "Future[_RebuildOutcome]", waiters: Sequence["Future[LibraryIndex]"]
    ) -> None:
        self._active_waiters = []
        try:
            index, resolution = done.result()
        except Exception as exc:
            LOGGER.error("Library index rebuild failed: %s", exc)
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(exc)
        else:
            self._index = index
            self._cache.invalidate()
            self._inflight = {}
            self._status = self._library.authorization_status()
            self.rebuild_count += 1
            if resolution is not None and resolution.orphaned:
                self._decisions.prune_orphans(resolution.found, scope=resolution.requested)
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(index)

        self._state = ControllerState.IDLE
        if self._follow_up:
            self._start_rebuild()
            return
        self._settle_if_idle()

    def _mark_busy(self) -> None:
        with self._pending_lock:
            self._pending += 1
            self._idle.clear()

    def _mark_settled(self) -> None:
        with self._pending_lock:
            self._pending -= 1
        self._settle_if_idle()

    def _settle_if_idle(self) -> None:
        with self._pending_lock:
            if self._pending == 0 and self._state is ControllerState.IDLE:
                self._idle.set()

    # ------------------------------------------------------------------ #
    # Album photos                                                       #
    # ------------------------------------------------------------------ #

    def photos_for(self, album_id: str, *, timeout: Optional[float] = None) -> Tuple[PhotoRef, ...]:
        """Return the album's photos, newest first, from the cache when possible."""
        if self._owner.is_owner_thread():
            return self._cache.photos_for(album_id, self._load_album)
        pending = self._owner.call(self._lookup, album_id, timeout=timeout)
        return pending.result(timeout=timeout)

    def photo_ids_for(self, album_id: str) -> Tuple[str, ...]:
        return tuple(photo.id for photo in self.photos_for(album_id))

    def _lookup(self, album_id: str) -> "Future[Tuple[PhotoRef, ...]]":
        cached = self._cache.get(album_id)
        if cached is not None:
            ready: Future[Tuple[PhotoRef, ...]] = Future()
            ready.set_result(cached)
            return ready
        inflight = self._inflight.get(album_id)
        if inflight is not None:
            return inflight

        result: Future[Tuple[PhotoRef, ...]] = Future()
        self._inflight[album_id] = result
        generation = self._cache.generation
        load = self._executor.submit(self._load_album, album_id)
        load.add_done_callback(
            lambda done: self._owner.submit(self._complete_load, album_id, generation, done, result)
        )
        return result

    def _complete_load(
        self,
        album_id: str,
        generation: int,
        done: "Future[Sequence[PhotoRef]]",
        result: "Future[Tuple[PhotoRef, ...]]",
    ) -> None:
        if self._inflight.get(album_id) is result:
            del self._inflight[album_id]
        try:
            photos = tuple(done.result())
        except Exception as exc:
            LOGGER.warning("Photos for album %s are unavailable: %s", album_id, exc)
            result.set_result(())
            return
        if not self._cache.store(album_id, photos, generation):
            LOGGER.debug("Discarded stale photo list for album %s.", album_id)
        result.set_result(photos)

    def _load_album(self, album_id: str) -> Sequence[PhotoRef]:
        index = self._index
        if album_id in index.month_photos:
            return index.month_photos[album_id]
        if not self._status.allows_reading:
            return ()
        return self._library.fetch_in_collection(
            album_id, media_kind=MediaKind.IMAGE, descending=True
        )

    # ------------------------------------------------------------------ #
    # Orphan resolution                                                  #
    # ------------------------------------------------------------------ #

    def resolve(self, photo_ids: Iterable[str]) -> Resolution:
        """Split ``photo_ids`` into those the library still resolves and orphans."""
        requested = frozenset(photo_ids)
        if not requested:
            return Resolution()
        photos = tuple(
            photo for photo in self._library.fetch_by_ids(requested) if photo.id in requested
        )
        return Resolution(
            requested=requested,
            found=frozenset(photo.id for photo in photos),
            photos=photos,
        )

    def reconcile_decisions(self) -> int:
        """Prune decisions whose photos no longer resolve; return how many."""
        if not self._status.allows_reading:
            LOGGER.info(
                "Skipping decision reconciliation; library access is %s.", self._status.value
            )
            return 0
        resolution = self.resolve(self._owner.call(self._decisions.photo_ids))
        if not resolution.orphaned:
            return 0
        return self._owner.call(
            lambda: self._decisions.prune_orphans(resolution.found, scope=resolution.requested)
        )

    # ------------------------------------------------------------------ #
    # Decisions                                                          #
    # ------------------------------------------------------------------ #

    def decide(self, photo_id: str, state: DecisionState | str) -> bool:
        return self._owner.call(self._decisions.decide, photo_id, state)

    def toggle(self, photo_id: str, state: DecisionState | str) -> ReviewState:
        return self._owner.call(self._decisions.toggle, photo_id, state)

    def clear(self, photo_id: str) -> bool:
        return self._owner.call(self._decisions.clear, photo_id)

    def restore_all(self, from_state: DecisionState | str) -> int:
        return self._owner.call(self._decisions.restore_all, from_state)

    def state_of(self, photo_id: str) -> ReviewState:
        return self._owner.call(self._decisions.state_of, photo_id)

    def is_reviewed(self, photo_id: str) -> bool:
        return self._owner.call(self._decisions.is_reviewed, photo_id)

    def unreviewed_photos(self, album_id: str) -> Tuple[PhotoRef, ...]:
        """Return the album's photos that have no decision yet."""
        photos = self.photos_for(album_id)
        return self._owner.call(
            lambda: tuple(photo for photo in photos if not self._decisions.is_reviewed(photo.id))
        )

    def unreviewed_count(self, album_id: str) -> int:
        return len(self.unreviewed_photos(album_id))

    def albums(self, kind: AlbumKind, *, hide_reviewed: bool = False) -> Tuple[AlbumRef, ...]:
        """Return published albums of ``kind``, optionally without fully reviewed ones."""
        albums = self._index.albums_of_kind(kind)
        if not hide_reviewed:
            return albums
        return tuple(album for album in albums if self.unreviewed_count(album.id) > 0)

    def cover_photo(self, album_id: str) -> Optional[PhotoRef]:
        photos = self.photos_for(album_id)
        return photos[0] if photos else None

    def unarchive_album(self, album_id: str) -> int:
        """Clear archived decisions for every photo in the album."""
        photo_ids = self.photo_ids_for(album_id)
        return self._owner.call(
            lambda: self._decisions.restore(photo_ids, from_state=DecisionState.ARCHIVED)
        )

    # ------------------------------------------------------------------ #
    # Library mutations and metadata                                     #
    # ------------------------------------------------------------------ #

    def file_size(self, photo_id: str) -> Optional[int]:
        """Return the photo's file size in bytes, or ``None`` when unknown."""
        return decode_file_size(self._library.resource_value(photo_id, "fileSize"))

    def toggle_favorite(self, photo_id: str) -> bool:
        """Flip the favorite flag through a library change request."""
        self._require_access()
        photos = self._library.fetch_by_ids([photo_id])
        if not photos:
            LOGGER.warning("Cannot toggle favorite; photo %s no longer exists.", photo_id)
            return False
        request = AssetChangeRequest(photo_id=photo_id, favorite=not photos[0].favorite)
        success = self._library.perform_changes([request])
        if not success:
            LOGGER.error("Failed to toggle favorite for %s.", photo_id)
        return success

    def empty_trash(self) -> EmptyTrashResult:
        """Ask the library to delete every trashed photo, then clear those decisions."""
        self._require_access()
        trashed = self._owner.call(self._decisions.photo_ids, DecisionState.TRASHED)
        if not trashed:
            return EmptyTrashResult()

        resolution = self.resolve(trashed)
        if resolution.orphaned:
            self._owner.call(
                lambda: self._decisions.prune_orphans(resolution.found, scope=resolution.requested)
            )
        live = sorted(resolution.found)
        if not live:
            return EmptyTrashResult(requested=len(trashed))

        requests = [AssetChangeRequest(photo_id=photo_id, delete=True) for photo_id in live]
        if not self._library.perform_changes(requests):
            LOGGER.error("Library rejected deletion of %d trashed photo(s).", len(live))
            return EmptyTrashResult(
                requested=len(trashed),
                success=False,
                error="The photo library rejected the deletion request.",
            )
        self._owner.call(
            lambda: self._decisions.restore(live, from_state=DecisionState.TRASHED)
        )
        LOGGER.info("Deleted %d trashed photo(s).", len(live))
        return EmptyTrashResult(requested=len(trashed), deleted=live)

    def _require_access(self) -> None:
        status = self._library.authorization_status()
        self._status = status
        if not status.allows_reading:
            raise AuthorizationError(f"Photo library access is {status.value}.")


__all__ = ["ControllerState", "ReconciliationController"]
