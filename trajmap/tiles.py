#!/usr/bin/env python3
# trajmap/tiles.py
"""
Tile grid derivation and parallel tile fetching.

build_tile_grid() enumerates the rectangle of XYZ tiles covering the target
bounds. fetch_tiles() fans the grid out over a pool of worker threads and
blocks until every tile has settled; a failed tile keeps data=None and the
compositor substitutes a placeholder for it.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import replace
from typing import Callable, List, Optional

from trajmap.errors import FetchError
from trajmap.geodesy import degrees_to_tile_index, tile_index_to_bounds
from trajmap.models import GeoBounds, TileCoord, TileGrid, TileImage

__all__ = ["TileFetcher", "build_tile_grid", "fetch_tiles"]

log = logging.getLogger(__name__)

# fetch(coord, retina) -> PNG/JPEG bytes; raises on failure.
TileFetcher = Callable[[TileCoord, bool], bytes]


def build_tile_grid(target_bounds: GeoBounds, zoom: int) -> TileGrid:
    """
    Every tile between the top-left (north-west) and bottom-right (south-east)
    corner tiles. tile_bounds is the grid's own extent and contains target_bounds.
    """
    top_left = degrees_to_tile_index(target_bounds.max_lat, target_bounds.min_lng, zoom)
    bottom_right = degrees_to_tile_index(target_bounds.min_lat, target_bounds.max_lng, zoom)

    tiles: List[TileImage] = []
    for x in range(top_left.x, bottom_right.x + 1):
        for y in range(top_left.y, bottom_right.y + 1):
            coord = TileCoord(x, y, zoom)
            tiles.append(TileImage(coord=coord, bounds=tile_index_to_bounds(x, y, zoom)))

    nw = tile_index_to_bounds(top_left.x, top_left.y, zoom)
    se = tile_index_to_bounds(bottom_right.x, bottom_right.y, zoom)
    tile_bounds = GeoBounds(
        min_lat=se.min_lat,
        max_lat=nw.max_lat,
        min_lng=nw.min_lng,
        max_lng=se.max_lng,
    )
    grid = TileGrid(tuple(tiles), target_bounds, tile_bounds, zoom)
    log.debug("tile grid z=%d x=%d..%d y=%d..%d (%d tiles)",
              zoom, top_left.x, bottom_right.x, top_left.y, bottom_right.y, len(tiles))
    return grid


def _fetch_one(fetch: TileFetcher, tile: TileImage, retina: bool) -> Optional[bytes]:
    try:
        data = fetch(tile.coord, retina)
        if not data:
            raise FetchError(f"empty response for tile {tile.coord}")
        return data
    except Exception as exc:
        # One tile never fails the grid; the compositor fills the gap.
        log.warning("tile %s fetch failed, using placeholder: %s", tile.coord, exc)
        return None


def fetch_tiles(
    grid: TileGrid,
    fetch: TileFetcher,
    retina: bool = False,
    parallel: int = 8,
) -> TileGrid:
    """
    Fetch all tiles of grid concurrently and return a new grid with data filled.

    Workers drain a shared queue; each tile writes only its own result slot.
    queue.join() is the barrier: it returns once every tile has settled.
    """
    tasks: queue.Queue = queue.Queue()
    results: List[Optional[bytes]] = [None] * len(grid.tiles)
    for i, tile in enumerate(grid.tiles):
        tasks.put((i, tile))

    def work() -> None:
        while True:
            try:
                i, tile = tasks.get(block=False)
            except queue.Empty:
                return
            try:
                results[i] = _fetch_one(fetch, tile, retina)
            finally:
                tasks.task_done()

    n_workers = max(1, min(int(parallel), len(grid.tiles)))
    workers = [
        threading.Thread(target=work, name=f"trajmap-tile-{i}", daemon=True)
        for i in range(n_workers)
    ]
    for t in workers:
        t.start()
    tasks.join()
    # queue drained; each worker returns on its next get
    for t in workers:
        t.join()

    failed = sum(1 for r in results if r is None)
    if failed:
        log.warning("%d of %d tiles unavailable", failed, len(results))
    tiles = tuple(replace(t, data=r) for t, r in zip(grid.tiles, results))
    return replace(grid, tiles=tiles)
