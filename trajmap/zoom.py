#!/usr/bin/env python3
# trajmap/zoom.py
"""
Zoom selection: the largest integral zoom at which bounds fit a viewport.
"""

from __future__ import annotations

import math
from typing import Tuple

from trajmap.errors import GeometryError
from trajmap.geodesy import clamp_lat
from trajmap.models import GeoBounds

__all__ = ["DEFAULT_VIEWPORT", "MIN_ZOOM", "MAX_ZOOM", "select_zoom", "validate_zoom"]

DEFAULT_VIEWPORT: Tuple[int, int] = (1024, 768)
MIN_ZOOM = 1
MAX_ZOOM = 18
# Zoom 0 world size the pixels-per-degree relation is anchored to.
WORLD_PX = 256


def _merc_y(lat: float) -> float:
    return math.asinh(math.tan(math.radians(clamp_lat(lat))))


def _candidate(viewport_px: int, fraction: float) -> float:
    if fraction <= 0:
        return math.inf
    return math.log2(viewport_px / WORLD_PX / fraction)


def select_zoom(
    bounds: GeoBounds,
    viewport: Tuple[int, int] = DEFAULT_VIEWPORT,
    min_zoom: int = MIN_ZOOM,
    max_zoom: int = MAX_ZOOM,
) -> int:
    """
    Pixels per degree double with every zoom step, so each axis gives
    log2(viewport / 256 / fraction-of-world). Take the floor of the smaller
    one so the bounds always fit, then clamp.
    """
    width, height = viewport
    lng_fraction = bounds.lng_range / 360.0
    lat_fraction = (_merc_y(bounds.max_lat) - _merc_y(bounds.min_lat)) / (2.0 * math.pi)

    best = min(_candidate(width, lng_fraction), _candidate(height, lat_fraction))
    if not math.isfinite(best):
        raise GeometryError(f"cannot select a zoom for bounds {bounds}")
    return max(min_zoom, min(max_zoom, int(math.floor(best))))


def validate_zoom(zoom: int, min_zoom: int = MIN_ZOOM, max_zoom: int = MAX_ZOOM) -> int:
    """Check an explicitly requested zoom."""
    if isinstance(zoom, bool) or not isinstance(zoom, int) or not (min_zoom <= zoom <= max_zoom):
        raise GeometryError(f"zoom must be an integer in [{min_zoom}, {max_zoom}], got {zoom!r}")
    return zoom
