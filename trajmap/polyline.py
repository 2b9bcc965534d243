#!/usr/bin/env python3
# trajmap/polyline.py
"""
Encoded polyline codec (zig-zag delta varint, 1e-5 degree precision).

Each coordinate is quantised to an integer of 1e-5 degrees, delta-encoded
against the previous point, zig-zagged, split into 5-bit chunks (0x20 marks
continuation) and offset by 63 into printable ASCII.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Tuple

from trajmap.errors import InputError
from trajmap.models import GeoPoint

__all__ = ["decode", "encode", "is_valid"]

PRECISION = 1e5
_OFFSET = 63


def _quantise(v: float) -> int:
    # Round half up, matching the reference encoders.
    return int(math.floor(v * PRECISION + 0.5))


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else (value << 1)
    out = []
    while value >= 0x20:
        out.append(chr((0x20 | (value & 0x1F)) + _OFFSET))
        value >>= 5
    out.append(chr(value + _OFFSET))
    return "".join(out)


def _decode_value(s: str, index: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if index >= len(s):
            raise InputError(f"truncated polyline at offset {index}")
        b = ord(s[index]) - _OFFSET
        index += 1
        if b < 0 or b > 0x3F:
            raise InputError(f"invalid polyline character {s[index - 1]!r} at offset {index - 1}")
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break
    delta = ~(result >> 1) if result & 1 else (result >> 1)
    return delta, index


def decode(polyline: str) -> List[GeoPoint]:
    """Decode an encoded polyline into ordered GeoPoints."""
    if not isinstance(polyline, str):
        raise InputError(f"polyline must be a string, got {type(polyline).__name__}")
    points: List[GeoPoint] = []
    index = 0
    lat = 0
    lng = 0
    while index < len(polyline):
        dlat, index = _decode_value(polyline, index)
        dlng, index = _decode_value(polyline, index)
        lat += dlat
        lng += dlng
        points.append(GeoPoint(lat / PRECISION, lng / PRECISION))
    return points


def encode(points: Iterable[GeoPoint]) -> str:
    """Encode GeoPoints into a polyline string."""
    out = []
    prev_lat = 0
    prev_lng = 0
    for p in points:
        lat = _quantise(p.lat)
        lng = _quantise(p.lng)
        out.append(_encode_value(lat - prev_lat))
        out.append(_encode_value(lng - prev_lng))
        prev_lat, prev_lng = lat, lng
    return "".join(out)


def is_valid(polyline: str) -> bool:
    """True if polyline decodes to at least one point."""
    if not polyline or not isinstance(polyline, str):
        return False
    try:
        return len(decode(polyline)) > 0
    except InputError:
        return False
