#!/usr/bin/env python3
# tests/conftest.py
"""
Shared fixtures: a deterministic in-memory tile source and small helpers.
"""

import io
import threading

import numpy as np
import pytest
from PIL import Image

from trajmap.config import Config
from trajmap.errors import FetchError
from trajmap.models import TileCoord


def solid_png(color, size=256):
    buf = io.BytesIO()
    Image.new("RGB", (size, size), color).save(buf, "PNG")
    return buf.getvalue()


def tile_color(coord: TileCoord):
    return ((coord.x * 53) % 200 + 20, (coord.y * 97) % 200 + 20, (coord.z * 11) % 200 + 20)


def decode_png(data: bytes) -> np.ndarray:
    return np.asarray(Image.open(io.BytesIO(data)).convert("RGB"))


class FakeTiles:
    """Tile fetcher returning one solid colour per coordinate; records every call."""

    def __init__(self, fail=None):
        self.calls = []
        self.fail = fail or (lambda coord: False)
        self._lock = threading.Lock()

    def __call__(self, coord: TileCoord, retina: bool = False) -> bytes:
        with self._lock:
            self.calls.append((coord, retina))
        if self.fail(coord):
            raise FetchError(f"offline: {coord}")
        return solid_png(tile_color(coord), 512 if retina else 256)

    def prune(self, max_bytes, watermark=0.85):
        return 0

    @property
    def coords(self):
        return sorted((c.x, c.y, c.z) for c, _ in self.calls)


@pytest.fixture
def fake_tiles():
    return FakeTiles()


@pytest.fixture
def failing_tiles():
    return FakeTiles(fail=lambda coord: True)


@pytest.fixture
def cfg(tmp_path, monkeypatch):
    """Default config that keeps every path under tmp_path."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("TRAJMAP_CONFIG", str(tmp_path / "trajmap.json"))
    c = Config()
    c.update({"cache": {"enabled": False}})
    return c
