"""Encoded polyline codec.

Implements the Google "Encoded Polyline Algorithm Format" used by Strava for
``map.summary_polyline`` and ``map.polyline``. Each coordinate is scaled by
``10 ** precision``, delta-encoded against the previous point, zigzag-encoded
so the sign lives in the lowest bit, then emitted as 5-bit groups (least
significant first) offset by 63 with ``0x20`` as the continuation flag.

See https://developers.google.com/maps/documentation/utilities/polylinealgorithm
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import POLYLINE_PRECISION
from .errors import PolylineDecodeError

Coordinate = Tuple[float, float]

_OFFSET = 63
_CHUNK_MASK = 0x1F
_CONTINUATION = 0x20

__all__ = ["Coordinate", "decode", "encode"]


def _read_value(encoded: str, index: int, strict: bool) -> Tuple[int, int]:
    """Read one zigzag-encoded signed value starting at ``index``.

    Returns the decoded value and the index of the next unread character.
    Past the end of the string a missing character contributes no bits and
    terminates the group, unless ``strict`` is set.
    """

    length = len(encoded)
    result = 0
    shift = 0
    while True:
        if index < length:
            byte = ord(encoded[index]) - _OFFSET
            if strict and not 0 <= byte <= 0x3F:
                raise PolylineDecodeError(
                    f"Invalid polyline character {encoded[index]!r} at index {index}"
                )
        elif strict:
            raise PolylineDecodeError(
                f"Truncated polyline: value starting before index {index} is incomplete"
            )
        else:
            byte = 0
        index += 1
        result |= (byte & _CHUNK_MASK) << shift
        shift += 5
        if byte < _CONTINUATION:
            break
    delta = ~(result >> 1) if result & 1 else result >> 1
    return delta, index


def decode(
    encoded: Optional[str],
    precision: int = POLYLINE_PRECISION,
    *,
    strict: bool = False,
) -> List[Coordinate]:
    """Decode an encoded polyline into ``(lat, lng)`` tuples.

    Args:
        encoded: Encoded polyline. Empty or non-string values yield ``[]``.
        precision: Number of decimal places the string was encoded with.
        strict: Raise :class:`PolylineDecodeError` on truncated groups or
            characters outside the encoding alphabet instead of decoding
            permissively.

    Returns:
        List of coordinate tuples in string order.
    """
    if not encoded or not isinstance(encoded, str):
        return []

    factor = 10**precision
    coordinates: List[Coordinate] = []
    index = 0
    lat = 0
    lng = 0
    while index < len(encoded):
        delta_lat, index = _read_value(encoded, index, strict)
        lat += delta_lat
        delta_lng, index = _read_value(encoded, index, strict)
        lng += delta_lng
        coordinates.append((lat / factor, lng / factor))
    return coordinates


def _round_half_away(value: float) -> int:
    # Decimal(value) is the exact binary value, so only true halves round up.
    return int(Decimal(value).to_integral_value(rounding=ROUND_HALF_UP))


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks: List[str] = []
    while value >= _CONTINUATION:
        chunks.append(chr((_CONTINUATION | (value & _CHUNK_MASK)) + _OFFSET))
        value >>= 5
    chunks.append(chr(value + _OFFSET))
    return "".join(chunks)


def encode(
    coordinates: Iterable[Sequence[float]],
    precision: int = POLYLINE_PRECISION,
) -> str:
    """Encode ``(lat, lng)`` pairs into a polyline string.

    Values are rounded half away from zero at ``precision`` decimal places, so
    ``decode(encode(xs, p), p)`` matches ``xs`` to within ``10 ** -p``.
    """
    if not coordinates:
        return ""

    factor = 10**precision
    parts: List[str] = []
    prev_lat = 0
    prev_lng = 0
    for lat, lng in coordinates:
        rounded_lat = _round_half_away(lat * factor)
        rounded_lng = _round_half_away(lng * factor)
        parts.append(_encode_value(rounded_lat - prev_lat))
        parts.append(_encode_value(rounded_lng - prev_lng))
        prev_lat = rounded_lat
        prev_lng = rounded_lng
    return "".join(parts)
