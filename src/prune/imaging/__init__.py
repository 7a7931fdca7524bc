"""Image delivery for thumbnails and the full-screen viewer."""

from .delivery import DEFAULT_HIGH_QUALITY_SIZE, DEFAULT_THUMBNAIL_SIZE, ImageDeliveryFacade

__all__ = ["DEFAULT_HIGH_QUALITY_SIZE", "DEFAULT_THUMBNAIL_SIZE", "ImageDeliveryFacade"]
