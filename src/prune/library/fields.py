"""Decoders for loosely typed metadata values reported by photo libraries.

Libraries report the same attribute in different representations depending on
platform, asset origin, and file format. A field is decoded by trying an
ordered list of typed decoders; the first decoder that accepts the value wins
and anything no decoder accepts decodes to ``None`` ("unknown").
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Sequence

LOGGER = logging.getLogger(__name__)

Decoder = Callable[[Any], Optional[int]]

_INT64_MAX = 2**63 - 1


def _from_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _from_float(value: Any) -> Optional[int]:
    if not isinstance(value, float) or value != value or value in (float("inf"), float("-inf")):
        return None
    if not value.is_integer():
        return None
    return int(value)


def _from_decimal(value: Any) -> Optional[int]:
    if not isinstance(value, Decimal) or not value.is_finite():
        return None
    if value != value.to_integral_value():
        return None
    return int(value)


def _from_text(value: Any) -> Optional[int]:
    if isinstance(value, (bytes, bytearray)):
        try:
            value = bytes(value).decode("ascii")
        except UnicodeDecodeError:
            return None
    if not isinstance(value, str):
        return None
    text = value.strip().replace("_", "")
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    return _from_decimal(number)


def _from_index(value: Any) -> Optional[int]:
    index = getattr(value, "__index__", None)
    if index is None or isinstance(value, bool):
        return None
    try:
        return int(index())
    except (TypeError, ValueError):
        return None


FILE_SIZE_DECODERS: Sequence[Decoder] = (
    _from_int,
    _from_float,
    _from_decimal,
    _from_text,
    _from_index,
)


def decode_field(value: Any, decoders: Sequence[Decoder]) -> Optional[int]:
    """Return the first successful decoding of ``value`` or ``None``.

    Args:
        value: Raw value reported by the library.
        decoders: Decoders attempted in order.

    Returns:
        Optional[int]: Decoded integer, or ``None`` when no decoder applies.
    """
    if value is None:
        return None
    for decoder in decoders:
        decoded = decoder(value)
        if decoded is not None:
            return decoded
    LOGGER.debug("No decoder accepted value of type %s", type(value).__name__)
    return None


def decode_file_size(value: Any) -> Optional[int]:
    """Decode a file size in bytes, rejecting negative or out-of-range values."""
    size = decode_field(value, FILE_SIZE_DECODERS)
    if size is None or size < 0 or size > _INT64_MAX:
        return None
    return size


__all__ = ["FILE_SIZE_DECODERS", "Decoder", "decode_field", "decode_file_size"]
