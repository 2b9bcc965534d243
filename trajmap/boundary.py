#!/usr/bin/env python3
# trajmap/boundary.py
"""
Boundary calculation: raw GPS points to the final geographic bounds.

    bound0  tight min/max box over the points
    bound1  bound0 padded by a buffer (10% of the mean degree span)
    bound2  bound1 grown on its deficient axis to the track region aspect,
            measured in Web Mercator meters
    bound3  bound2 grown per ExpansionRegion (additive in every direction)

Each step is a pure function returning a new GeoBounds.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from trajmap.errors import EmptyTrajectory, InputError
from trajmap.geodesy import MAX_LAT, lnglat_to_meters, meters_to_lnglat
from trajmap.models import BoundaryResult, ExpansionRegion, GeoBounds, GeoPoint, TrackRegion

__all__ = [
    "DEFAULT_BUFFER_PERCENT",
    "EXPANSION_POLICIES",
    "tight_bounds",
    "buffer_bounds",
    "meter_ratio",
    "fit_aspect",
    "apply_expansion",
    "check_expansion_policy",
    "calculate_bounds",
]

log = logging.getLogger(__name__)

DEFAULT_BUFFER_PERCENT = 10.0
EXPANSION_POLICIES = ("additive", "single")


def _clamp_to_world(b: GeoBounds) -> GeoBounds:
    return GeoBounds(
        min_lat=max(b.min_lat, -MAX_LAT),
        max_lat=min(b.max_lat, MAX_LAT),
        min_lng=max(b.min_lng, -180.0),
        max_lng=min(b.max_lng, 180.0),
    )


def tight_bounds(points: Sequence[GeoPoint]) -> GeoBounds:
    """bound0. May be degenerate on one axis (a due east-west track)."""
    if not points:
        raise EmptyTrajectory("cannot calculate bounds from an empty point list")
    lats = [p.lat for p in points]
    lngs = [p.lng for p in points]
    return GeoBounds(min(lats), max(lats), min(lngs), max(lngs))


def buffer_bounds(b: GeoBounds, percent: float = DEFAULT_BUFFER_PERCENT) -> GeoBounds:
    """bound1. Degree-space approximation, not meter accurate."""
    pad = (b.lat_range + b.lng_range) / 2.0 * percent / 100.0
    out = GeoBounds(b.min_lat - pad, b.max_lat + pad, b.min_lng - pad, b.max_lng + pad)
    return _clamp_to_world(out).require_valid("buffered bounds")


def meter_ratio(b: GeoBounds) -> float:
    """Width/height of b measured in Web Mercator meters."""
    x0, y0 = lnglat_to_meters(b.min_lng, b.min_lat)
    x1, y1 = lnglat_to_meters(b.max_lng, b.max_lat)
    return (x1 - x0) / (y1 - y0)


def fit_aspect(b: GeoBounds, track_region: TrackRegion) -> GeoBounds:
    """bound2. Only the deficient axis grows; the other keeps its exact values."""
    x0, y0 = lnglat_to_meters(b.min_lng, b.min_lat)
    x1, y1 = lnglat_to_meters(b.max_lng, b.max_lat)
    width_m = x1 - x0
    height_m = y1 - y0
    target = track_region.aspect

    if width_m / height_m < target:
        cx = (x0 + x1) / 2.0
        half = height_m * target / 2.0
        min_lng, _ = meters_to_lnglat(cx - half, 0.0)
        max_lng, _ = meters_to_lnglat(cx + half, 0.0)
        out = GeoBounds(b.min_lat, b.max_lat, min_lng, max_lng)
    elif width_m / height_m > target:
        cy = (y0 + y1) / 2.0
        half = width_m / target / 2.0
        _, min_lat = meters_to_lnglat(0.0, cy - half)
        _, max_lat = meters_to_lnglat(0.0, cy + half)
        out = GeoBounds(min_lat, max_lat, b.min_lng, b.max_lng)
    else:
        out = b

    clamped = _clamp_to_world(out)
    if clamped != out:
        log.warning("aspect-fitted bounds clipped to the Mercator world; aspect is no longer exact")
    return clamped.require_valid("aspect-fitted bounds")


def check_expansion_policy(expansion: Optional[ExpansionRegion], policy: str = "additive") -> None:
    """Raise InputError if expansion is not allowed under policy."""
    if policy not in EXPANSION_POLICIES:
        raise InputError(f"unknown expansion policy {policy!r}")
    if expansion is None or policy == "additive":
        return
    if len(expansion.directions_set) > 1:
        raise InputError(
            "expansion may set at most one direction under the 'single' policy, got "
            + ", ".join(expansion.directions_set)
        )


def apply_expansion(b: GeoBounds, expansion: Optional[ExpansionRegion]) -> GeoBounds:
    """bound3. Percentages are fractions of b's own ranges."""
    if expansion is None:
        return b
    lat_range = b.lat_range
    lng_range = b.lng_range
    out = GeoBounds(
        min_lat=b.min_lat - lat_range * expansion.pct("down"),
        max_lat=b.max_lat + lat_range * expansion.pct("up"),
        min_lng=b.min_lng - lng_range * expansion.pct("left"),
        max_lng=b.max_lng + lng_range * expansion.pct("right"),
    )
    return _clamp_to_world(out).require_valid("expanded bounds")


def calculate_bounds(
    points: Sequence[GeoPoint],
    track_region: TrackRegion,
    expansion: Optional[ExpansionRegion] = None,
    policy: str = "additive",
    buffer_percent: float = DEFAULT_BUFFER_PERCENT,
) -> BoundaryResult:
    """Run all four boundary steps and keep every intermediate."""
    check_expansion_policy(expansion, policy)
    bound0 = tight_bounds(points)
    bound1 = buffer_bounds(bound0, buffer_percent)
    bound2 = fit_aspect(bound1, track_region)
    bound3 = apply_expansion(bound2, expansion)
    log.debug("bound0=%s bound1=%s bound2=%s bound3=%s", bound0, bound1, bound2, bound3)
    return BoundaryResult(bound0, bound1, bound2, bound3)
