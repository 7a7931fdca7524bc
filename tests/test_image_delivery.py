"""Tests for the image delivery facade."""

from __future__ import annotations

from datetime import datetime

from PIL import Image

from fakes import InMemoryPhotoLibrary
from prune.imaging import ImageDeliveryFacade
from prune.library import ImageResult


def _library() -> InMemoryPhotoLibrary:
    library = InMemoryPhotoLibrary()
    library.add_photo("a", datetime(2024, 1, 1))
    library.add_photo("b", datetime(2024, 1, 2))
    return library


def test_thumbnail_passes_every_delivery_through() -> None:
    facade = ImageDeliveryFacade(_library())
    received: list[ImageResult] = []

    facade.request_thumbnail("a", (64, 64), received.append)

    assert [result.degraded for result in received] == [True, False]
    assert received[-1].image.size == (64, 64)


def test_thumbnail_uses_configured_default_size() -> None:
    facade = ImageDeliveryFacade(_library(), thumbnail_size=(48, 48))
    received: list[ImageResult] = []

    facade.request_thumbnail("a", None, received.append)

    assert received[-1].image.size == (48, 48)


def test_high_quality_delivers_exactly_one_final_image() -> None:
    facade = ImageDeliveryFacade(_library())
    received: list[ImageResult] = []

    facade.request_high_quality("a", received.append, target_size=(120, 80))

    assert len(received) == 1
    assert not received[0].degraded
    assert received[0].image.size == (120, 80)


def test_high_quality_stops_after_first_terminal_delivery() -> None:
    library = _library()
    placeholder = Image.new("RGB", (4, 4))
    library.script_image(
        "a",
        [
            ImageResult(image=placeholder, degraded=True),
            ImageResult(error="network unavailable"),
            ImageResult(image=Image.new("RGB", (10, 10))),
        ],
    )
    facade = ImageDeliveryFacade(library)
    received: list[ImageResult] = []

    facade.request_high_quality("a", received.append)

    assert len(received) == 1
    assert received[0].error == "network unavailable"


def test_high_quality_reports_missing_photo_once() -> None:
    facade = ImageDeliveryFacade(_library())
    received: list[ImageResult] = []

    facade.request_high_quality("missing", received.append)

    assert len(received) == 1
    assert received[0].error is not None


def test_high_quality_converts_empty_result_to_failure() -> None:
    library = _library()
    library.script_image("a", [ImageResult()])
    facade = ImageDeliveryFacade(library)
    received: list[ImageResult] = []

    facade.request_high_quality("a", received.append)

    assert len(received) == 1
    assert received[0].error is not None


def test_newer_request_supersedes_slot() -> None:
    library = _library()
    library.defer_images = True
    facade = ImageDeliveryFacade(library)
    first: list[ImageResult] = []
    second: list[ImageResult] = []

    facade.request_thumbnail("a", (32, 32), first.append, slot="cell-1")
    facade.request_thumbnail("b", (32, 32), second.append, slot="cell-1")
    library.flush_images()

    assert first == []
    assert len(second) == 2


def test_cancel_discards_late_results() -> None:
    library = _library()
    library.defer_images = True
    facade = ImageDeliveryFacade(library)
    received: list[ImageResult] = []

    facade.request_high_quality("a", received.append, slot="viewer")

    assert facade.cancel("viewer") is True
    assert facade.cancel("viewer") is False
    library.flush_images()

    assert received == []


def test_requests_without_slot_are_independent() -> None:
    library = _library()
    library.defer_images = True
    facade = ImageDeliveryFacade(library)
    received: list[str] = []

    facade.request_high_quality("a", lambda result: received.append("a"))
    facade.request_high_quality("b", lambda result: received.append("b"))
    library.flush_images()

    assert sorted(received) == ["a", "b"]
