#!/usr/bin/env python3
# trajmap/rendering/projector.py
"""
Trajectory projection and drawing.

The reference frame is the cropped map itself: its pixel size plus the
target bounds it was cropped to. This is a different frame from the
compositor's full tile canvas and the two must never be mixed.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
from PIL import ImageColor, ImageDraw

from trajmap.errors import InputError
from trajmap.geodesy import project_points
from trajmap.models import GeoPoint, MarkerStyle, PixelBounds, PixelPoint, ProjectionResult, StitchResult

__all__ = ["DEFAULT_LINE_COLOR", "DEFAULT_LINE_WIDTH", "parse_color", "draw_marker", "project_trajectory"]

log = logging.getLogger(__name__)

DEFAULT_LINE_COLOR = "#FF5500"
DEFAULT_LINE_WIDTH = 3


def parse_color(color: str) -> Tuple[int, int, int]:
    try:
        return ImageColor.getrgb(color)[:3]
    except (ValueError, AttributeError) as exc:
        raise InputError(f"unrecognised colour {color!r}") from exc


def draw_marker(draw: ImageDraw.ImageDraw, x: float, y: float, glyph: str, color: str, size: int) -> None:
    """Filled glyph of `size` pixels centred on (x, y)."""
    h = size / 2.0
    fill = parse_color(color)
    if glyph == "circle":
        draw.ellipse((x - h, y - h, x + h, y + h), fill=fill)
    elif glyph == "square":
        draw.rectangle((x - h, y - h, x + h, y + h), fill=fill)
    elif glyph == "triangle":
        draw.polygon([(x, y - h), (x - h, y + h), (x + h, y + h)], fill=fill)
    else:
        raise InputError(f"unknown marker glyph {glyph!r}")


def _draw_path(draw: ImageDraw.ImageDraw, xy: np.ndarray, color: Tuple[int, int, int], width: int) -> None:
    pts = [(float(x), float(y)) for x, y in xy]
    if len(pts) >= 2:
        draw.line(pts, fill=color, width=width, joint="curve")
    # round caps; a lone point becomes a dot
    if width > 2 or len(pts) == 1:
        r = width / 2.0
        for x, y in (pts[0], pts[-1]):
            draw.ellipse((x - r, y - r, x + r, y + r), fill=color)


def project_trajectory(
    points: Sequence[GeoPoint],
    stitch: StitchResult,
    line_color: str = DEFAULT_LINE_COLOR,
    line_width: int = DEFAULT_LINE_WIDTH,
    marker: Optional[MarkerStyle] = None,
) -> ProjectionResult:
    """
    Project every point into the cropped map and draw the path in input order.
    Consecutive duplicates are kept; they produce zero-length segments.
    """
    if not points:
        raise InputError("no GPS points to project")
    color = parse_color(line_color)

    width, height = stitch.image.size
    xy = project_points(points, stitch.bounds, width, height, stitch.zoom, stitch.tile_size)

    outside = int(np.count_nonzero(
        (xy[:, 0] < 0) | (xy[:, 0] > width) | (xy[:, 1] < 0) | (xy[:, 1] > height)
    ))
    if outside:
        log.warning("%d of %d points fall outside the %dx%d map", outside, len(points), width, height)

    img = stitch.image.copy()
    draw = ImageDraw.Draw(img)
    _draw_path(draw, xy, color, line_width)

    if marker is not None:
        if marker.start:
            draw_marker(draw, xy[0, 0], xy[0, 1], marker.start, marker.start_color, marker.size)
        if marker.end:
            draw_marker(draw, xy[-1, 0], xy[-1, 1], marker.end, marker.end_color, marker.size)

    pixel_points = tuple(PixelPoint(float(x), float(y)) for x, y in xy)
    pixel_bounds = PixelBounds(
        min_x=float(xy[:, 0].min()),
        max_x=float(xy[:, 0].max()),
        min_y=float(xy[:, 1].min()),
        max_y=float(xy[:, 1].max()),
    )
    return ProjectionResult(
        image=img,
        points=tuple(points),
        bounds=stitch.bounds,
        pixel_points=pixel_points,
        pixel_bounds=pixel_bounds,
    )
