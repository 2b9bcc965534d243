#!/usr/bin/env python3
# trajmap/geodesy.py
"""
Geodesy utilities for TrajMap.

Single place for every conversion between WGS84 degrees, Web Mercator meters,
XYZ tile indices and raster pixels. Drawing and cropping code must go through
project_points / geo_bounds_to_pixel_bounds so all of them agree on one frame.
"""

import math
from typing import Iterable, Sequence, Tuple

import numpy as np

from trajmap.errors import InvalidBounds
from trajmap.models import GeoBounds, GeoPoint, PixelBounds, PixelPoint, TileCoord

__all__ = [
    "MAX_LAT",
    "EARTH_RADIUS_M",
    "clamp_lat",
    "tile_size_for",
    "degrees_to_tile_index",
    "tile_index_to_bounds",
    "lnglat_to_meters",
    "meters_to_lnglat",
    "project_points",
    "project_to_pixel",
    "geo_bounds_to_pixel_bounds",
    "haversine_m",
    "track_length_m",
]

# Web Mercator valid latitude limit: the north edge of tile row 0
MAX_LAT = math.degrees(math.atan(math.sinh(math.pi)))
# EPSG:3857 sphere radius
EARTH_RADIUS_M = 6378137.0
# Mean radius for great-circle distances
MEAN_EARTH_RADIUS_M = 6371000.0

# Pixel edges closer than this to an integer are treated as that integer.
_EDGE_SNAP_PX = 1e-6


def clamp_lat(lat: float) -> float:
    """Clamp latitude to Web Mercator valid range."""
    return max(min(lat, MAX_LAT), -MAX_LAT)


def tile_size_for(retina: bool) -> int:
    return 512 if retina else 256


# -------------------------
# Tile pyramid
# -------------------------

def degrees_to_tile_index(lat: float, lng: float, zoom: int) -> TileCoord:
    """
    Return the tile containing (lat, lng) at zoom. y=0 is the north edge.
    Points on the east/south world edge land in the last tile.
    """
    n = 2 ** zoom
    lat_rad = math.radians(clamp_lat(lat))
    x = math.floor((lng + 180.0) / 360.0 * n)
    y = math.floor((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
    return TileCoord(min(max(x, 0), n - 1), min(max(y, 0), n - 1), zoom)


def _tile_edge_lng(x: int, n: int) -> float:
    return x / n * 360.0 - 180.0


def _tile_edge_lat(y: int, n: int) -> float:
    return math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n))))


def tile_index_to_bounds(x: int, y: int, zoom: int) -> GeoBounds:
    """
    Geographic extent of tile (x, y, zoom).
    Edges are pure functions of the integer index, so neighbours share them exactly.
    """
    n = 2 ** zoom
    return GeoBounds(
        min_lat=_tile_edge_lat(y + 1, n),
        max_lat=_tile_edge_lat(y, n),
        min_lng=_tile_edge_lng(x, n),
        max_lng=_tile_edge_lng(x + 1, n),
    )


# -------------------------
# Mercator meters
# -------------------------

def lnglat_to_meters(lng: float, lat: float) -> Tuple[float, float]:
    """WGS84 degrees to EPSG:3857 meters."""
    x = EARTH_RADIUS_M * math.radians(lng)
    y = EARTH_RADIUS_M * math.asinh(math.tan(math.radians(clamp_lat(lat))))
    return x, y


def meters_to_lnglat(x: float, y: float) -> Tuple[float, float]:
    """EPSG:3857 meters to WGS84 degrees."""
    lng = math.degrees(x / EARTH_RADIUS_M)
    lat = math.degrees(math.atan(math.sinh(y / EARTH_RADIUS_M)))
    return lng, lat


# -------------------------
# Raster projection
# -------------------------

def _world_px(lats, lngs, zoom: int, tile_size: int):
    """Absolute Mercator pixel coordinates at zoom (arrays in, arrays out)."""
    lats = np.clip(np.asarray(lats, dtype=np.float64), -MAX_LAT, MAX_LAT)
    lngs = np.asarray(lngs, dtype=np.float64)
    size = float(tile_size) * (2.0 ** zoom)
    px = (lngs + 180.0) / 360.0 * size
    py = (1.0 - np.arcsinh(np.tan(np.radians(lats))) / np.pi) / 2.0 * size
    return px, py


def _frame(reference: GeoBounds, zoom: int, tile_size: int) -> Tuple[float, float, float, float]:
    """World-pixel rectangle (left, top, right, bottom) of the reference bounds."""
    xs, ys = _world_px(
        [reference.max_lat, reference.min_lat],
        [reference.min_lng, reference.max_lng],
        zoom,
        tile_size,
    )
    left, right = float(xs[0]), float(xs[1])
    top, bottom = float(ys[0]), float(ys[1])
    if not (right > left and bottom > top):
        raise InvalidBounds(f"reference bounds have zero pixel area: {reference}")
    return left, top, right, bottom


def _to_frame(lats, lngs, reference: GeoBounds, width: float, height: float, zoom: int, tile_size: int):
    left, top, right, bottom = _frame(reference, zoom, tile_size)
    px, py = _world_px(lats, lngs, zoom, tile_size)
    x = (px - left) * width / (right - left)
    y = (py - top) * height / (bottom - top)
    return x, y


def project_points(
    points: Sequence[GeoPoint],
    reference: GeoBounds,
    width: float,
    height: float,
    zoom: int,
    tile_size: int = 256,
) -> np.ndarray:
    """
    Project GPS points into a raster whose extent is `reference`.
    Returns an (N, 2) float array of (x, y); reference maps onto [0,width]x[0,height].
    """
    if not points:
        return np.zeros((0, 2), dtype=np.float64)
    lats = [p.lat for p in points]
    lngs = [p.lng for p in points]
    x, y = _to_frame(lats, lngs, reference, width, height, zoom, tile_size)
    return np.column_stack([x, y])


def project_to_pixel(
    point: GeoPoint,
    reference: GeoBounds,
    width: float,
    height: float,
    zoom: int,
    tile_size: int = 256,
) -> PixelPoint:
    """Single-point form of project_points."""
    xy = project_points([point], reference, width, height, zoom, tile_size)
    return PixelPoint(float(xy[0, 0]), float(xy[0, 1]))


def _snap_floor(v: float) -> int:
    r = round(v)
    return int(r) if abs(v - r) < _EDGE_SNAP_PX else math.floor(v)


def _snap_ceil(v: float) -> int:
    r = round(v)
    return int(r) if abs(v - r) < _EDGE_SNAP_PX else math.ceil(v)


def geo_bounds_to_pixel_bounds(
    target: GeoBounds,
    reference: GeoBounds,
    width: int,
    height: int,
    zoom: int,
    tile_size: int = 256,
) -> PixelBounds:
    """
    Pixel rectangle of `target` inside a raster whose extent is `reference`.
    Min edges are floored and max edges ceiled so the rectangle contains target.
    """
    if not target.has_area:
        raise InvalidBounds(f"target bounds have zero area: {target}")
    if not reference.has_area:
        raise InvalidBounds(f"reference bounds have zero area: {reference}")
    x, y = _to_frame(
        [target.max_lat, target.min_lat],
        [target.min_lng, target.max_lng],
        reference,
        width,
        height,
        zoom,
        tile_size,
    )
    return PixelBounds(
        min_x=_snap_floor(float(x[0])),
        max_x=_snap_ceil(float(x[1])),
        min_y=_snap_floor(float(y[0])),
        max_y=_snap_ceil(float(y[1])),
    )


# -------------------------
# Distances
# -------------------------

def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlmb = math.radians(b.lng - a.lng)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * MEAN_EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def track_length_m(points: Iterable[GeoPoint]) -> float:
    total = 0.0
    prev = None
    for p in points:
        if prev is not None:
            total += haversine_m(prev, p)
        prev = p
    return total
