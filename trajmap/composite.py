#!/usr/bin/env python3
# trajmap/composite.py
"""
Tile compositing engine for TrajMap.

Responsible for assembling a fetched TileGrid into a single RGB image and
cropping it to the grid's target bounds. The full canvas covers
grid.tile_bounds; the crop rectangle is target_bounds expressed in that
canvas' pixel frame.

Tiles without usable bytes are replaced by a uniform placeholder of the same
size so the canvas stays rectangular.
"""

from __future__ import annotations

import io
import logging
from typing import Optional, Tuple, Union

from PIL import Image, ImageColor, ImageEnhance, UnidentifiedImageError

from trajmap.errors import CropOutOfRange
from trajmap.geodesy import geo_bounds_to_pixel_bounds
from trajmap.models import PixelBounds, StitchResult, TileGrid, TileImage

__all__ = [
    "DEFAULT_PLACEHOLDER_COLOR",
    "stitch_and_crop",
    "validate_pixel_bounds",
    "enhance_background",
]

log = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_COLOR = "#E0E0E0"

Color = Union[str, Tuple[int, int, int]]


def _rgb(color: Color) -> Tuple[int, int, int]:
    if isinstance(color, str):
        return ImageColor.getrgb(color)[:3]
    return tuple(color)[:3]


def _decode_tile(tile: TileImage, tile_size: int) -> Optional[Image.Image]:
    """Decode tile bytes to an RGB image of tile_size, or None if unusable."""
    if not tile.data:
        return None
    try:
        img = Image.open(io.BytesIO(tile.data))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        log.warning("tile %s is not a readable image, using placeholder: %s", tile.coord, exc)
        return None
    img = img.convert("RGB")
    if img.size != (tile_size, tile_size):
        img = img.resize((tile_size, tile_size), Image.LANCZOS)
    return img


def validate_pixel_bounds(pb: PixelBounds, width: int, height: int) -> None:
    """Crop rectangle must be non-empty and lie inside [0,width]x[0,height]."""
    if not (0 <= pb.min_x < pb.max_x <= width):
        raise CropOutOfRange(f"crop x {pb.min_x}..{pb.max_x} outside canvas width {width}")
    if not (0 <= pb.min_y < pb.max_y <= height):
        raise CropOutOfRange(f"crop y {pb.min_y}..{pb.max_y} outside canvas height {height}")


def stitch_and_crop(
    grid: TileGrid,
    tile_size: int = 256,
    placeholder_color: Color = DEFAULT_PLACEHOLDER_COLOR,
) -> StitchResult:
    """
    Paste every tile at ((x - min_x) * tile_size, (y - min_y) * tile_size),
    then crop the canvas to grid.target_bounds.
    """
    if not grid.tiles:
        raise CropOutOfRange("tile grid is empty")

    fill = _rgb(placeholder_color)
    min_x, min_y = grid.min_x, grid.min_y
    full_w = grid.cols * tile_size
    full_h = grid.rows * tile_size

    # --- Crop rectangle first; no point compositing an unusable grid ---
    pixel_bounds = geo_bounds_to_pixel_bounds(
        grid.target_bounds, grid.tile_bounds, full_w, full_h, grid.zoom, tile_size
    )
    validate_pixel_bounds(pixel_bounds, full_w, full_h)

    # --- Composite buffer ---
    base = Image.new("RGB", (full_w, full_h), fill)
    placeholder = Image.new("RGB", (tile_size, tile_size), fill)

    missing = 0
    for tile in grid.tiles:
        img = _decode_tile(tile, tile_size)
        if img is None:
            img = placeholder
            missing += 1
        base.paste(img, ((tile.coord.x - min_x) * tile_size, (tile.coord.y - min_y) * tile_size))
    if missing:
        log.info("%d of %d tiles drawn as placeholders", missing, len(grid.tiles))

    # --- Crop to target view ---
    cropped = base.crop(pixel_bounds.as_box())
    log.debug("canvas %dx%d cropped to %s", full_w, full_h, pixel_bounds)

    return StitchResult(
        image=cropped,
        bounds=grid.target_bounds,
        pixel_bounds=pixel_bounds,
        zoom=grid.zoom,
        tile_size=tile_size,
        full_size=(full_w, full_h),
    )


def enhance_background(
    img: Image.Image,
    contrast: float = 1.0,
    brightness: float = 1.0,
    saturation: float = 1.0,
) -> Image.Image:
    """Basemap styling applied before the track is drawn. Identity at 1.0."""
    if contrast != 1.0:
        img = ImageEnhance.Contrast(img).enhance(contrast)
    if brightness != 1.0:
        img = ImageEnhance.Brightness(img).enhance(brightness)
    if saturation != 1.0:
        img = ImageEnhance.Color(img).enhance(saturation)
    return img
