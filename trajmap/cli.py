#!/usr/bin/env python3
# trajmap/cli.py
"""
Entry point for TrajMap.
Loads configuration, renders one polyline and writes the PNG.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from trajmap.config import Config, overrides
from trajmap.errors import RenderError
from trajmap.logging_conf import setup_logging
from trajmap.models import MARKER_GLYPHS, ExpansionRegion, TrackRegion
from trajmap.pipeline import marker_from_config, render_polyline, tile_cache_from_config
from trajmap.version import version_info

log = logging.getLogger("trajmap.cli")


def _pct(raw: str) -> float:
    v = float(raw)
    if not 0.0 <= v <= 1.0:
        raise argparse.ArgumentTypeError(f"expected a fraction in [0, 1], got {raw}")
    return v


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="trajmap",
        description="Render an encoded polyline as a PNG on a map tile background.",
    )
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("-p", "--polyline", help="encoded polyline string")
    src.add_argument("--polyline-file", help="file containing an encoded polyline")
    p.add_argument("-o", "--output", required=True, help="output PNG path")
    p.add_argument("-W", "--width", type=int, default=800, help="track region width in px")
    p.add_argument("-H", "--height", type=int, default=600, help="track region height in px")
    for side in ("up", "down", "left", "right"):
        p.add_argument(f"--{side}", type=_pct, default=None, help=f"expand {side} by a fraction of the bounds")
    p.add_argument("-c", "--line-color", help="track colour, e.g. '#FF5500'")
    p.add_argument("-t", "--line-width", type=int, help="track width in px")
    p.add_argument("-z", "--zoom", type=int, help="force a zoom level instead of fitting")
    p.add_argument("--retina", action="store_true", default=None, help="use 512px @2x tiles")
    p.add_argument("--start-marker", choices=MARKER_GLYPHS, help="glyph at the first point")
    p.add_argument("--end-marker", choices=MARKER_GLYPHS, help="glyph at the last point")
    p.add_argument("--points-json", help="write final pixel points to this JSON file")
    p.add_argument("--config", help="config file path (default: per-user config)")
    p.add_argument("--seed", type=int, help="seed for tile subdomain selection")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.add_argument("--version", action="version", version=version_info())
    return p


def _write_outputs(args: argparse.Namespace, result) -> None:
    out_dir = os.path.dirname(args.output)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    with open(args.output, "wb") as f:
        f.write(result.image_bytes)
    if args.points_json:
        with open(args.points_json, "w", encoding="utf-8") as f:
            json.dump([{"x": p.x, "y": p.y} for p in result.pixel_points], f, indent=2)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    cfg = Config.load(args.config)
    if args.seed is not None:
        cfg.update({"network": {"seed": args.seed}})
    setup_logging(cfg, "DEBUG" if args.verbose else None)
    log.debug("config %s overrides: %s", cfg.path, overrides(cfg))

    try:
        if args.polyline_file:
            with open(args.polyline_file, "r", encoding="utf-8") as f:
                encoded = f.read().strip()
        else:
            encoded = args.polyline
        track = TrackRegion(args.width, args.height)
        expansion = None
        if any(getattr(args, s) is not None for s in ("up", "down", "left", "right")):
            expansion = ExpansionRegion(args.up, args.down, args.left, args.right)
        cache = tile_cache_from_config(cfg)
        result = render_polyline(
            encoded,
            track,
            expansion,
            fetch=cache,
            cfg=cfg,
            line_color=args.line_color,
            line_width=args.line_width,
            retina=args.retina,
            marker=marker_from_config(cfg, args.start_marker, args.end_marker),
            zoom=args.zoom,
        )
        _write_outputs(args, result)
    except (RenderError, ValueError) as exc:
        print(f"Rendering failed: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        log.error("i/o failure: %s", exc)
        print(f"Rendering failed: {exc}", file=sys.stderr)
        return 1

    if cfg["cache"]["enabled"]:
        cache.prune(cfg["cache"]["max_bytes"], cfg["cache"]["prune_watermark"])

    print(f"Saved {result.width}x{result.height} image with {len(result.pixel_points)} points to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
