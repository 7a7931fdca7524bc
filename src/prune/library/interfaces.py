"""Protocol describing the external photo library consumed by the engine."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Protocol, Sequence

from .models import (
    AlbumKind,
    AlbumRef,
    AssetChangeRequest,
    AuthorizationStatus,
    ImageRequestOptions,
    ImageResult,
    LibraryChange,
    MediaKind,
    PhotoRef,
)

ChangeObserver = Callable[[LibraryChange], None]
ImageHandler = Callable[[ImageResult], None]


class PhotoLibrary(Protocol):
    """Query and mutation surface of a photo library the engine does not own.

    Implementations must be safe to call from worker threads and must tolerate
    concurrent external mutation. Transient failures are reported as empty
    results rather than raised.
    """

    def authorization_status(self) -> AuthorizationStatus:
        """Return the current access level."""
        ...

    def request_authorization(self) -> AuthorizationStatus:
        """Ask for access and return the resulting status."""
        ...

    def fetch_all(
        self, *, media_kind: MediaKind = MediaKind.IMAGE, descending: bool = True
    ) -> Sequence[PhotoRef]:
        """Return every asset of ``media_kind`` sorted by creation time."""
        ...

    def fetch_by_ids(self, photo_ids: Iterable[str]) -> Sequence[PhotoRef]:
        """Return the subset of ``photo_ids`` that still resolves."""
        ...

    def fetch_collections(self, kind: AlbumKind) -> Sequence[AlbumRef]:
        """Return system collections or user albums."""
        ...

    def count_in_collection(
        self, album_id: str, *, media_kind: MediaKind = MediaKind.IMAGE
    ) -> int:
        """Return how many assets of ``media_kind`` the collection holds."""
        ...

    def fetch_in_collection(
        self,
        album_id: str,
        *,
        media_kind: MediaKind = MediaKind.IMAGE,
        descending: bool = True,
    ) -> Sequence[PhotoRef]:
        """Return the collection's assets sorted by creation time."""
        ...

    def resource_value(self, photo_id: str, key: str) -> Optional[Any]:
        """Return a raw resource attribute (e.g. ``fileSize``) for an asset."""
        ...

    def perform_changes(self, requests: Sequence[AssetChangeRequest]) -> bool:
        """Apply change requests as one transaction; return success."""
        ...

    def request_image(
        self, photo_id: str, options: ImageRequestOptions, handler: ImageHandler
    ) -> int:
        """Start an asynchronous image request and return its request id."""
        ...

    def register_change_observer(self, observer: ChangeObserver) -> None:
        ...

    def unregister_change_observer(self, observer: ChangeObserver) -> None:
        ...


__all__ = ["ChangeObserver", "ImageHandler", "PhotoLibrary"]
