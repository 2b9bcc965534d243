#!/usr/bin/env python3
# trajmap/errors.py
"""
Exception hierarchy for TrajMap.

InputError and GeometryError abort a render before or during geometry work.
FetchError is recovered per tile by the fetch fan-out and never surfaces as a
render failure. Everything fatal reaches the caller wrapped in RenderError.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "TrajmapError",
    "InputError",
    "EmptyTrajectory",
    "GeometryError",
    "InvalidBounds",
    "CropOutOfRange",
    "FetchError",
    "RenderError",
]


class TrajmapError(Exception):
    """Base class for all TrajMap errors."""


class InputError(TrajmapError, ValueError):
    """Caller supplied unusable input (points, track region, expansion, style)."""


class EmptyTrajectory(InputError):
    """No GPS points to render."""


class GeometryError(TrajmapError):
    """Bounds or zoom cannot be turned into a valid tile grid."""


class InvalidBounds(GeometryError):
    """Zero-area or out-of-range geographic bounds."""


class CropOutOfRange(TrajmapError):
    """Crop rectangle does not fit inside the composited canvas."""


class FetchError(TrajmapError):
    """A single tile could not be fetched."""


class RenderError(TrajmapError):
    """A render call failed; `cause` holds the originating error."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
