"""Month and collection index construction."""

from __future__ import annotations

import logging
import time
from datetime import datetime, tzinfo
from typing import Dict, List, Optional, Tuple

from prune.library.interfaces import PhotoLibrary
from prune.library.models import AlbumKind, AlbumRef, LibraryIndex, MediaKind, PhotoRef

LOGGER = logging.getLogger(__name__)

MONTH_TITLE_FORMAT = "%B %Y"


def month_key(year: int, month: int) -> str:
    """Return the ``YYYY-MM`` identifier used for a month bucket."""
    return f"{year}-{month:02d}"


def month_title(sort_key: datetime) -> str:
    """Return the localized ``Month Year`` title for a bucket."""
    return sort_key.strftime(MONTH_TITLE_FORMAT)


class LibraryIndexBuilder:
    """Query the library once and partition it into month buckets and collections."""

    def __init__(self, library: PhotoLibrary, *, tz: Optional[tzinfo] = None) -> None:
        """Initialize the builder.

        Args:
            library: Photo library to index.
            tz: Timezone used to assign aware timestamps to months. ``None``
                uses the local timezone. Naive timestamps are taken as-is.
        """
        self._library = library
        self._tz = tz

    def rebuild_index(self) -> LibraryIndex:
        """Build a fresh index of the library.

        Returns:
            LibraryIndex: Month buckets (newest first) and the non-empty system
            and user collections. Empty when the library is not readable.
        """
        status = self._library.authorization_status()
        if not status.allows_reading:
            LOGGER.info("Library access is %s; returning an empty index.", status.value)
            return LibraryIndex()

        started = time.monotonic()
        month_albums, month_photos = self._build_months()
        system_albums = self._collections(AlbumKind.SYSTEM_COLLECTION)
        user_albums = self._collections(AlbumKind.USER_ALBUM)
        LOGGER.debug(
            "Indexed %d month(s), %d system and %d user collection(s) in %.3fs.",
            len(month_albums),
            len(system_albums),
            len(user_albums),
            time.monotonic() - started,
        )
        return LibraryIndex(
            month_albums=month_albums,
            system_albums=system_albums,
            user_albums=user_albums,
            month_photos=month_photos,
        )

    def _build_months(self) -> Tuple[Tuple[AlbumRef, ...], Dict[str, Tuple[PhotoRef, ...]]]:
        photos = self._library.fetch_all(media_kind=MediaKind.IMAGE, descending=True)

        buckets: Dict[str, Tuple[datetime, List[Tuple[datetime, PhotoRef]]]] = {}
        undated = 0
        for photo in photos:
            if photo.media_kind is not MediaKind.IMAGE:
                continue
            created = photo.creation_timestamp
            if created is None:
                undated += 1
                continue
            local = created
            if local.tzinfo is not None:
                local = local.astimezone(self._tz).replace(tzinfo=None)
            key = month_key(local.year, local.month)
            if key not in buckets:
                buckets[key] = (datetime(local.year, local.month, 1), [])
            buckets[key][1].append((local, photo))

        if undated:
            LOGGER.debug("Skipped %d photo(s) without a creation date.", undated)

        albums: List[AlbumRef] = []
        month_photos: Dict[str, Tuple[PhotoRef, ...]] = {}
        for key, (sort_key, members) in buckets.items():
            # Stable sort keeps the library's order for equal timestamps.
            members.sort(key=lambda item: item[0], reverse=True)
            ordered = tuple(photo for _, photo in members)
            month_photos[key] = ordered
            albums.append(
                AlbumRef(
                    id=key,
                    title=month_title(sort_key),
                    kind=AlbumKind.TIME_BUCKET,
                    sort_key=sort_key,
                    ordered_photo_ids=tuple(photo.id for photo in ordered),
                )
            )
        albums.sort(
            key=lambda album: album.sort_key,  # type: ignore[arg-type,return-value]
            reverse=True,
        )
        return tuple(albums), month_photos

    def _collections(self, kind: AlbumKind) -> Tuple[AlbumRef, ...]:
        kept: List[AlbumRef] = []
        for album in self._library.fetch_collections(kind):
            if kind is AlbumKind.USER_ALBUM and album.shared:
                continue
            count = self._library.count_in_collection(album.id, media_kind=MediaKind.IMAGE)
            if count > 0:
                kept.append(album)
        return tuple(kept)


__all__ = ["LibraryIndexBuilder", "MONTH_TITLE_FORMAT", "month_key", "month_title"]
