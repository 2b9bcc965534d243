#!/usr/bin/env python3
# trajmap/rendering/output.py
"""
Final output formatting: rescale the drawn map to the caller's size and
remap the trajectory pixels into that size.

The resample is a plain bitmap stretch. Pixel points are scaled with the same
factors rather than re-projected, so markers stay on top of the stretched
track.
"""

from __future__ import annotations

import io
import math
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from trajmap.models import BoundaryResult, ExpansionRegion, PixelPoint, ProjectionResult, RenderResult, TrackRegion

__all__ = ["output_size", "format_output"]


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def output_size(track_region: TrackRegion, expansion: Optional[ExpansionRegion] = None) -> Tuple[int, int]:
    """Track region grown by the horizontal and vertical expansion factors."""
    if expansion is None:
        return track_region.width, track_region.height
    return (
        _round_half_up(track_region.width * expansion.horizontal_factor),
        _round_half_up(track_region.height * expansion.vertical_factor),
    )


def format_output(
    projection: ProjectionResult,
    track_region: TrackRegion,
    expansion: Optional[ExpansionRegion] = None,
    zoom: int = 0,
    boundary: Optional[BoundaryResult] = None,
) -> RenderResult:
    final_w, final_h = output_size(track_region, expansion)
    src_w, src_h = projection.image.size

    img = projection.image
    if (src_w, src_h) != (final_w, final_h):
        img = img.resize((final_w, final_h), Image.LANCZOS)

    xy = np.array([(p.x, p.y) for p in projection.pixel_points], dtype=np.float64).reshape(-1, 2)
    xy *= np.array([final_w / src_w, final_h / src_h])

    buf = io.BytesIO()
    img.save(buf, "PNG")

    return RenderResult(
        image_bytes=buf.getvalue(),
        pixel_points=tuple(PixelPoint(float(x), float(y)) for x, y in xy),
        width=final_w,
        height=final_h,
        zoom=zoom,
        boundary=boundary,
    )
