"""Photo library models and backends."""

from .errors import AuthorizationError, LibraryError
from .fields import decode_file_size
from .folder import FolderPhotoLibrary
from .interfaces import ChangeObserver, ImageHandler, PhotoLibrary
from .models import (
    AlbumKind,
    AlbumRef,
    AssetChangeRequest,
    AuthorizationStatus,
    ContentMode,
    DeliveryMode,
    EmptyTrashResult,
    ImageRequestOptions,
    ImageResult,
    LibraryChange,
    LibraryIndex,
    MediaKind,
    PhotoRef,
    Resolution,
    sort_by_creation,
)

__all__ = [
    "AlbumKind",
    "AlbumRef",
    "AssetChangeRequest",
    "AuthorizationError",
    "AuthorizationStatus",
    "ChangeObserver",
    "ContentMode",
    "DeliveryMode",
    "EmptyTrashResult",
    "FolderPhotoLibrary",
    "ImageHandler",
    "ImageRequestOptions",
    "ImageResult",
    "LibraryChange",
    "LibraryError",
    "LibraryIndex",
    "MediaKind",
    "PhotoLibrary",
    "PhotoRef",
    "Resolution",
    "decode_file_size",
    "sort_by_creation",
]
