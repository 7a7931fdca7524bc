"""Identifier and metadata models for photos and albums."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class MediaKind(str, Enum):
    """Media kind reported by the photo library for an asset."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    UNKNOWN = "unknown"


class AlbumKind(str, Enum):
    """Origin of an album in the index."""

    TIME_BUCKET = "time_bucket"
    SYSTEM_COLLECTION = "system_collection"
    USER_ALBUM = "user_album"


class AuthorizationStatus(str, Enum):
    """Access level granted to the photo library."""

    NOT_DETERMINED = "not_determined"
    RESTRICTED = "restricted"
    DENIED = "denied"
    AUTHORIZED = "authorized"
    LIMITED = "limited"

    @property
    def allows_reading(self) -> bool:
        """Return whether the status permits library queries."""
        return self in (AuthorizationStatus.AUTHORIZED, AuthorizationStatus.LIMITED)


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class PhotoRef(_FrozenModel):
    """Reference to a photo in the external library.

    Attributes:
        id: Stable opaque identifier that survives restarts.
        creation_timestamp: Capture time, if the library knows it.
        media_kind: Kind of asset; the engine only surfaces still images.
        favorite: Favorite flag as reported by the library.
    """

    id: str
    creation_timestamp: Optional[datetime] = None
    media_kind: MediaKind = MediaKind.IMAGE
    favorite: bool = False


class AlbumRef(_FrozenModel):
    """Reference to a time bucket or a real library collection.

    Attributes:
        id: Opaque identifier; time buckets use ``YYYY-MM``.
        title: Human-readable title.
        kind: Album origin.
        shared: Whether the collection is cloud-shared rather than local.
        sort_key: First day of the month for time buckets.
        ordered_photo_ids: Snapshot of photo ids, newest first, when known.
    """

    id: str
    title: str
    kind: AlbumKind
    shared: bool = False
    sort_key: Optional[datetime] = None
    ordered_photo_ids: Tuple[str, ...] = ()

    @property
    def photo_count(self) -> int:
        return len(self.ordered_photo_ids)


class LibraryIndex(_FrozenModel):
    """Published month and collection index produced by a rebuild."""

    month_albums: Tuple[AlbumRef, ...] = ()
    system_albums: Tuple[AlbumRef, ...] = ()
    user_albums: Tuple[AlbumRef, ...] = ()
    month_photos: Dict[str, Tuple[PhotoRef, ...]] = Field(default_factory=dict)
    built_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def album(self, album_id: str) -> Optional[AlbumRef]:
        """Return the album with ``album_id`` from any of the three lists."""
        for album in (*self.month_albums, *self.system_albums, *self.user_albums):
            if album.id == album_id:
                return album
        return None

    def albums_of_kind(self, kind: AlbumKind) -> Tuple[AlbumRef, ...]:
        if kind is AlbumKind.TIME_BUCKET:
            return self.month_albums
        if kind is AlbumKind.SYSTEM_COLLECTION:
            return self.system_albums
        return self.user_albums

    @property
    def is_empty(self) -> bool:
        return not (self.month_albums or self.system_albums or self.user_albums)


class LibraryChange(_FrozenModel):
    """Notification payload delivered to change observers.

    The payload is informational only; observers rebuild the whole index.
    """

    paths: Tuple[str, ...] = ()
    photo_ids: Tuple[str, ...] = ()
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AssetChangeRequest(_FrozenModel):
    """A single change applied transactionally through ``perform_changes``.

    Attributes:
        photo_id: Target asset identifier.
        favorite: New favorite flag, or ``None`` to leave it untouched.
        delete: Whether the asset should be deleted by the library.
    """

    photo_id: str
    favorite: Optional[bool] = None
    delete: bool = False


class DeliveryMode(str, Enum):
    """How many results an image request may produce."""

    OPPORTUNISTIC = "opportunistic"
    HIGH_QUALITY = "high_quality"


class ContentMode(str, Enum):
    """Scaling behavior applied to the requested image."""

    ASPECT_FILL = "aspect_fill"
    ASPECT_FIT = "aspect_fit"


class ImageRequestOptions(_FrozenModel):
    """Options passed to ``PhotoLibrary.request_image``."""

    target_size: Tuple[int, int] = (320, 320)
    delivery_mode: DeliveryMode = DeliveryMode.OPPORTUNISTIC
    content_mode: ContentMode = ContentMode.ASPECT_FILL
    network_access_allowed: bool = False


class ImageResult(BaseModel):
    """One delivery produced by an image request.

    Attributes:
        image: Decoded image object, or ``None`` when unavailable.
        degraded: Whether this is a low-fidelity placeholder.
        error: Failure reported by the library, if any.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    image: Any = None
    degraded: bool = False
    error: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.error is not None or self.image is None or not self.degraded


class Resolution(_FrozenModel):
    """Outcome of resolving photo identifiers against the live library."""

    requested: frozenset[str] = frozenset()
    found: frozenset[str] = frozenset()
    photos: Tuple[PhotoRef, ...] = ()

    @property
    def orphaned(self) -> frozenset[str]:
        return self.requested - self.found


class EmptyTrashResult(_FrozenModel):
    """Outcome of deleting every trashed photo through the library."""

    requested: int = 0
    deleted: List[str] = Field(default_factory=list)
    success: bool = True
    error: Optional[str] = None


def sort_by_creation(photos: Iterable[PhotoRef], *, descending: bool = True) -> List[PhotoRef]:
    """Return photos ordered by creation time; undated photos always sort last."""
    photos = list(photos)
    dated = [photo for photo in photos if photo.creation_timestamp is not None]
    undated = [photo for photo in photos if photo.creation_timestamp is None]
    dated.sort(
        key=lambda photo: photo.creation_timestamp.timestamp(),  # type: ignore[union-attr]
        reverse=descending,
    )
    return [*dated, *undated]


__all__ = [
    "sort_by_creation",
    "AlbumKind",
    "AlbumRef",
    "AssetChangeRequest",
    "AuthorizationStatus",
    "ContentMode",
    "DeliveryMode",
    "EmptyTrashResult",
    "ImageRequestOptions",
    "ImageResult",
    "LibraryChange",
    "LibraryIndex",
    "MediaKind",
    "PhotoRef",
    "Resolution",
]
