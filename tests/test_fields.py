"""Tests for multi-representation metadata decoding."""

from __future__ import annotations

from decimal import Decimal

import pytest

from prune.library import decode_file_size
from prune.library.fields import decode_field


class _Indexable:
    def __init__(self, value: int) -> None:
        self._value = value

    def __index__(self) -> int:
        return self._value


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (1024, 1024),
        (1024.0, 1024),
        (Decimal("2048"), 2048),
        ("4096", 4096),
        (" 1_000 ", 1000),
        (b"512", 512),
        ("3.0", 3),
        (_Indexable(77), 77),
    ],
)
def test_decode_file_size_accepts_known_representations(raw: object, expected: int) -> None:
    assert decode_file_size(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [None, True, 10.5, "ten", "", float("nan"), -1, 2**64, b"\xff", ["12"]],
)
def test_decode_file_size_falls_back_to_unknown(raw: object) -> None:
    assert decode_file_size(raw) is None


def test_decode_field_uses_first_accepting_decoder() -> None:
    calls: list[str] = []

    def first(value: object) -> None:
        calls.append("first")
        return None

    def second(value: object) -> int:
        calls.append("second")
        return 5

    def third(value: object) -> int:  # pragma: no cover - never reached
        calls.append("third")
        return 9

    assert decode_field("anything", [first, second, third]) == 5
    assert calls == ["first", "second"]


def test_decimal_fractions_are_rejected() -> None:
    assert decode_file_size(Decimal("12.5")) is None
    assert decode_file_size("12.5") is None
