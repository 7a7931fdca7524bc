"""Thumbnail and full-resolution image requests on top of the photo library."""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Dict, Optional, Tuple

from prune.library.interfaces import ImageHandler, PhotoLibrary
from prune.library.models import (
    ContentMode,
    DeliveryMode,
    ImageRequestOptions,
    ImageResult,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_THUMBNAIL_SIZE: Tuple[int, int] = (320, 320)
DEFAULT_HIGH_QUALITY_SIZE: Tuple[int, int] = (2000, 2000)


class ImageDeliveryFacade:
    """Issue image requests with the delivery guarantees each view expects.

    Thumbnail requests are opportunistic: the handler may run several times as
    better images arrive. High-quality requests suppress degraded frames and
    call the handler exactly once with either the final image or a failure.

    Requests may name a ``slot`` (for example a grid cell). A newer request for
    the same slot supersedes the older one, and anything the superseded
    request delivers afterwards is dropped.
    """

    def __init__(
        self,
        library: PhotoLibrary,
        *,
        thumbnail_size: Tuple[int, int] = DEFAULT_THUMBNAIL_SIZE,
        high_quality_size: Tuple[int, int] = DEFAULT_HIGH_QUALITY_SIZE,
    ) -> None:
        self._library = library
        self._thumbnail_size = thumbnail_size
        self._high_quality_size = high_quality_size
        self._lock = threading.Lock()
        self._slots: Dict[str, int] = {}
        self._tokens = itertools.count(1)

    def request_thumbnail(
        self,
        photo_id: str,
        target_size: Optional[Tuple[int, int]],
        handler: ImageHandler,
        *,
        slot: Optional[str] = None,
        content_mode: ContentMode = ContentMode.ASPECT_FILL,
    ) -> int:
        """Request a thumbnail; ``handler`` may be called more than once.

        Args:
            photo_id: Photo to render.
            target_size: Pixel size to fill; ``None`` uses the configured size.
            handler: Receives every delivery in order.
            slot: Optional display slot the request belongs to.
            content_mode: Scaling applied by the library.

        Returns:
            int: Request id assigned by the library.
        """
        options = ImageRequestOptions(
            target_size=target_size or self._thumbnail_size,
            delivery_mode=DeliveryMode.OPPORTUNISTIC,
            content_mode=content_mode,
            network_access_allowed=False,
        )
        token = self._claim(slot)

        def deliver(result: ImageResult) -> None:
            if not self._is_current(slot, token):
                return
            if result.error is not None:
                LOGGER.debug("Thumbnail for %s unavailable: %s", photo_id, result.error)
            handler(result)

        return self._library.request_image(photo_id, options, deliver)

    def request_high_quality(
        self,
        photo_id: str,
        handler: ImageHandler,
        *,
        slot: Optional[str] = None,
        target_size: Optional[Tuple[int, int]] = None,
    ) -> int:
        """Request a full-quality image delivered exactly once.

        Degraded frames are dropped. The first final image or failure is passed
        to ``handler``; every later delivery for the request is ignored.

        Returns:
            int: Request id assigned by the library.
        """
        options = ImageRequestOptions(
            target_size=target_size or self._high_quality_size,
            delivery_mode=DeliveryMode.HIGH_QUALITY,
            content_mode=ContentMode.ASPECT_FIT,
            network_access_allowed=True,
        )
        token = self._claim(slot)
        terminal = threading.Lock()
        delivered = False

        def deliver(result: ImageResult) -> None:
            nonlocal delivered
            if not result.is_final:
                return
            with terminal:
                if delivered:
                    return
                delivered = True
            if not self._is_current(slot, token):
                return
            if result.error is not None:
                LOGGER.warning("High-quality image for %s failed: %s", photo_id, result.error)
            elif result.image is None:
                result = ImageResult(error=f"No image data returned for {photo_id}")
            handler(result)

        return self._library.request_image(photo_id, options, deliver)

    def cancel(self, slot: str) -> bool:
        """Drop whatever the current request for ``slot`` delivers from now on."""
        with self._lock:
            return self._slots.pop(slot, None) is not None

    def _claim(self, slot: Optional[str]) -> int:
        token = next(self._tokens)
        if slot is not None:
            with self._lock:
                self._slots[slot] = token
        return token

    def _is_current(self, slot: Optional[str], token: int) -> bool:
        if slot is None:
            return True
        with self._lock:
            return self._slots.get(slot) == token


__all__ = ["DEFAULT_HIGH_QUALITY_SIZE", "DEFAULT_THUMBNAIL_SIZE", "ImageDeliveryFacade"]
