#!/usr/bin/env python3
# trajmap/models.py
"""
Value types threaded through the render pipeline.

Every stage consumes the previous stage's value and returns a fresh one;
nothing here is mutated after construction.
"""

from __future__ import annotations

import base64
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from PIL import Image

from trajmap.errors import GeometryError, InputError, InvalidBounds

__all__ = [
    "GeoPoint",
    "GeoBounds",
    "TrackRegion",
    "ExpansionRegion",
    "TileCoord",
    "TileImage",
    "TileGrid",
    "PixelBounds",
    "PixelPoint",
    "BoundaryResult",
    "StitchResult",
    "MarkerStyle",
    "ProjectionResult",
    "RenderRequest",
    "RenderResult",
    "MARKER_GLYPHS",
]

MARKER_GLYPHS = ("circle", "square", "triangle")


# -------------------------
# Geographic values
# -------------------------

@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class GeoBounds:
    """Axis-aligned lat/lng rectangle. May be degenerate until validated."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def lat_range(self) -> float:
        return self.max_lat - self.min_lat

    @property
    def lng_range(self) -> float:
        return self.max_lng - self.min_lng

    @property
    def has_area(self) -> bool:
        return self.max_lat > self.min_lat and self.max_lng > self.min_lng

    def center(self) -> GeoPoint:
        return GeoPoint((self.min_lat + self.max_lat) / 2.0, (self.min_lng + self.max_lng) / 2.0)

    def contains(self, point: GeoPoint) -> bool:
        return (self.min_lat <= point.lat <= self.max_lat
                and self.min_lng <= point.lng <= self.max_lng)

    def contains_bounds(self, other: "GeoBounds") -> bool:
        return (self.min_lat <= other.min_lat and other.max_lat <= self.max_lat
                and self.min_lng <= other.min_lng and other.max_lng <= self.max_lng)

    def require_valid(self, stage: str = "bounds") -> "GeoBounds":
        """Return self, or raise InvalidBounds naming the offending stage."""
        if not self.has_area:
            raise InvalidBounds(f"{stage} has zero area: {self}")
        if self.min_lat < -90.0 or self.max_lat > 90.0:
            raise InvalidBounds(f"{stage} latitude outside [-90, 90]: {self}")
        if self.min_lng < -180.0 or self.max_lng > 180.0:
            raise InvalidBounds(f"{stage} longitude outside [-180, 180]: {self}")
        return self


# -------------------------
# Caller-supplied regions
# -------------------------

@dataclass(frozen=True)
class TrackRegion:
    """Output size in pixels that the track itself should occupy."""

    width: int
    height: int

    def __post_init__(self):
        for name in ("width", "height"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
                raise InputError(f"TrackRegion.{name} must be a positive integer, got {v!r}")

    @property
    def aspect(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class ExpansionRegion:
    """Extra margin per direction as a fraction of the track bounds (0..1)."""

    up: Optional[float] = None
    down: Optional[float] = None
    left: Optional[float] = None
    right: Optional[float] = None

    def __post_init__(self):
        for name in ("up", "down", "left", "right"):
            v = getattr(self, name)
            if v is None:
                continue
            if isinstance(v, bool) or not isinstance(v, (int, float)) or not (0.0 <= v <= 1.0):
                raise InputError(f"ExpansionRegion.{name} must be a number in [0, 1], got {v!r}")

    def pct(self, name: str) -> float:
        v = getattr(self, name)
        return float(v) if v is not None else 0.0

    @property
    def directions_set(self) -> Tuple[str, ...]:
        return tuple(n for n in ("up", "down", "left", "right") if getattr(self, n) is not None)

    @property
    def horizontal_factor(self) -> float:
        return 1.0 + self.pct("left") + self.pct("right")

    @property
    def vertical_factor(self) -> float:
        return 1.0 + self.pct("up") + self.pct("down")


# -------------------------
# Tiles
# -------------------------

@dataclass(frozen=True)
class TileCoord:
    x: int
    y: int
    z: int

    def __post_init__(self):
        if self.z < 0:
            raise GeometryError(f"negative zoom in tile {self}")
        n = 2 ** self.z
        if not (0 <= self.x < n and 0 <= self.y < n):
            raise GeometryError(f"tile {self.z}/{self.x}/{self.y} outside pyramid (n={n})")

    def __str__(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


@dataclass(frozen=True)
class TileImage:
    coord: TileCoord
    bounds: GeoBounds
    data: Optional[bytes] = None


@dataclass(frozen=True)
class TileGrid:
    """Rectangular tile set covering target_bounds; tile_bounds is its own extent."""

    tiles: Tuple[TileImage, ...]
    target_bounds: GeoBounds
    tile_bounds: GeoBounds
    zoom: int

    @property
    def min_x(self) -> int:
        return min(t.coord.x for t in self.tiles)

    @property
    def max_x(self) -> int:
        return max(t.coord.x for t in self.tiles)

    @property
    def min_y(self) -> int:
        return min(t.coord.y for t in self.tiles)

    @property
    def max_y(self) -> int:
        return max(t.coord.y for t in self.tiles)

    @property
    def cols(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def rows(self) -> int:
        return self.max_y - self.min_y + 1


# -------------------------
# Pixel space
# -------------------------

@dataclass(frozen=True)
class PixelPoint:
    x: float
    y: float


@dataclass(frozen=True)
class PixelBounds:
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def as_box(self) -> Tuple[int, int, int, int]:
        """Pillow crop box (left, top, right, bottom)."""
        return int(self.min_x), int(self.min_y), int(self.max_x), int(self.max_y)


# -------------------------
# Stage results
# -------------------------

@dataclass(frozen=True)
class BoundaryResult:
    bound0: GeoBounds
    bound1: GeoBounds
    bound2: GeoBounds
    bound3: GeoBounds

    @property
    def bounds(self) -> GeoBounds:
        return self.bound3


@dataclass(frozen=True)
class StitchResult:
    image: Image.Image
    bounds: GeoBounds
    pixel_bounds: PixelBounds
    zoom: int
    tile_size: int
    full_size: Tuple[int, int]


@dataclass(frozen=True)
class MarkerStyle:
    start: Optional[str] = None
    end: Optional[str] = None
    start_color: str = "#00CC00"
    end_color: str = "#CC0000"
    size: int = 12

    def __post_init__(self):
        for name in ("start", "end"):
            v = getattr(self, name)
            if v is not None and v not in MARKER_GLYPHS:
                raise InputError(f"MarkerStyle.{name} must be one of {MARKER_GLYPHS}, got {v!r}")
        if self.size <= 0:
            raise InputError(f"MarkerStyle.size must be positive, got {self.size!r}")


@dataclass(frozen=True)
class ProjectionResult:
    image: Image.Image
    points: Tuple[GeoPoint, ...]
    bounds: GeoBounds
    pixel_points: Tuple[PixelPoint, ...]
    pixel_bounds: PixelBounds


@dataclass(frozen=True)
class RenderRequest:
    """Everything a single render call needs. Unset style fields fall back to config."""

    points: Tuple[GeoPoint, ...]
    track_region: TrackRegion
    expansion_region: Optional[ExpansionRegion] = None
    line_color: Optional[str] = None
    line_width: Optional[int] = None
    retina: Optional[bool] = None
    marker: Optional[MarkerStyle] = None
    zoom: Optional[int] = None

    def __post_init__(self):
        # Accept any sequence but store an immutable tuple.
        object.__setattr__(self, "points", tuple(self.points))
        if self.line_width is not None and (not isinstance(self.line_width, int) or self.line_width <= 0):
            raise InputError(f"line_width must be a positive integer, got {self.line_width!r}")
        for p in self.points:
            if not (math.isfinite(p.lat) and math.isfinite(p.lng)):
                raise InputError(f"non-finite GPS point {p}")


@dataclass(frozen=True)
class RenderResult:
    image_bytes: bytes
    pixel_points: Tuple[PixelPoint, ...]
    width: int
    height: int
    zoom: int
    boundary: Optional[BoundaryResult] = field(default=None, compare=False)

    def to_base64(self) -> str:
        return base64.b64encode(self.image_bytes).decode("ascii")
