#!/usr/bin/env python3
# trajmap/pipeline.py
"""
Render call surface.

    points -> bounds -> zoom -> tile grid -> fetch -> composite/crop
           -> project/draw -> format

Every stage consumes exactly the previous stage's value. Input and geometry
problems abort before any tile is requested; a failing tile never does.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Optional

from trajmap import polyline
from trajmap.boundary import calculate_bounds
from trajmap.cache import SubdomainChooser, TileCache
from trajmap.composite import enhance_background, stitch_and_crop
from trajmap.config import Config
from trajmap.errors import CropOutOfRange, GeometryError, InputError, RenderError
from trajmap.geodesy import tile_size_for, track_length_m
from trajmap.models import ExpansionRegion, MarkerStyle, RenderRequest, RenderResult, TrackRegion
from trajmap.rendering.output import format_output
from trajmap.rendering.projector import parse_color, project_trajectory
from trajmap.tiles import TileFetcher, build_tile_grid, fetch_tiles
from trajmap.zoom import select_zoom, validate_zoom

__all__ = ["tile_cache_from_config", "marker_from_config", "render_trajectory", "render_polyline"]

log = logging.getLogger(__name__)


def tile_cache_from_config(cfg: Config) -> TileCache:
    n = cfg["network"]
    cache_dir = cfg.cache_dir
    return TileCache(
        n["tile_url"],
        Path(cache_dir) if cache_dir else None,
        n["user_agent"],
        chooser=SubdomainChooser(n["subdomains"], n["seed"]),
        connect_timeout=n["connect_timeout_s"],
        read_timeout=n["read_timeout_s"],
        retries=n["retries"],
        pool_size=n["parallel_downloads"],
    )


def marker_from_config(cfg: Config, start: Optional[str] = None, end: Optional[str] = None) -> Optional[MarkerStyle]:
    """MarkerStyle for the given glyphs using configured colours and size."""
    if start is None and end is None:
        return None
    r = cfg["render"]
    return MarkerStyle(
        start=start,
        end=end,
        start_color=r["start_marker_color"],
        end_color=r["end_marker_color"],
        size=r["marker_size"],
    )


def _render(request: RenderRequest, fetch: Optional[TileFetcher], cfg: Config) -> RenderResult:
    r = cfg["render"]
    line_color = request.line_color or r["line_color"]
    line_width = request.line_width or r["line_width"]
    retina = r["retina"] if request.retina is None else bool(request.retina)
    parse_color(line_color)
    tile_size = tile_size_for(retina)

    # --- Geometry; nothing fetched yet ---
    boundary = calculate_bounds(
        request.points,
        request.track_region,
        request.expansion_region,
        policy=r["expansion_policy"],
    )
    bounds = boundary.bounds
    if request.zoom is not None:
        zoom = validate_zoom(request.zoom, r["min_zoom"], r["max_zoom"])
    else:
        zoom = select_zoom(bounds, cfg.viewport, r["min_zoom"], r["max_zoom"])
    grid = build_tile_grid(bounds, zoom)
    log.info("rendering %d points (%.0f m) at z=%d with %dx%d tiles",
             len(request.points), track_length_m(request.points), zoom, grid.cols, grid.rows)

    # --- Fan-out / fan-in ---
    if fetch is None:
        fetch = tile_cache_from_config(cfg)
    t0 = time.time()
    grid = fetch_tiles(grid, fetch, retina=retina, parallel=cfg["network"]["parallel_downloads"])
    log.debug("fetched %d tiles in %.1f ms", len(grid.tiles), (time.time() - t0) * 1000.0)

    # --- Raster stages ---
    stitch = stitch_and_crop(grid, tile_size, r["placeholder_color"])
    styled = enhance_background(stitch.image, r["contrast"], r["brightness"], r["saturation"])
    if styled is not stitch.image:
        stitch = replace(stitch, image=styled)
    projection = project_trajectory(request.points, stitch, line_color, line_width, request.marker)
    return format_output(projection, request.track_region, request.expansion_region, zoom, boundary)


def render_trajectory(
    request: RenderRequest,
    fetch: Optional[TileFetcher] = None,
    cfg: Optional[Config] = None,
) -> RenderResult:
    """
    Render request into a PNG with the track drawn on a map background.

    fetch(coord, retina) -> bytes supplies tiles; defaults to a TileCache built
    from cfg. Fatal errors, I/O failures included, are raised as RenderError
    with the original in .cause.
    """
    cfg = cfg or Config()
    try:
        return _render(request, fetch, cfg)
    except (InputError, GeometryError, CropOutOfRange, OSError) as exc:
        log.error("render failed: %s", exc)
        raise RenderError(f"render failed: {exc}", cause=exc) from exc


def render_polyline(
    encoded: str,
    track_region: TrackRegion,
    expansion_region: Optional[ExpansionRegion] = None,
    fetch: Optional[TileFetcher] = None,
    cfg: Optional[Config] = None,
    **style,
) -> RenderResult:
    """Decode an encoded polyline and render it; style kwargs go to RenderRequest."""
    try:
        points = polyline.decode(encoded)
        request = RenderRequest(points, track_region, expansion_region, **style)
    except InputError as exc:
        log.error("render failed: %s", exc)
        raise RenderError(f"render failed: {exc}", cause=exc) from exc
    return render_trajectory(request, fetch, cfg)
