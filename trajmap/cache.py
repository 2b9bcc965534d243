#!/usr/bin/env python3
# trajmap/cache.py
"""
HTTP tile fetcher with an optional on-disk cache.

Features:
- URL templates with {s} subdomain, {z}/{x}/{y} and {r} retina suffix.
- Subdomain picked by one seedable SubdomainChooser.
- SHA1-namespaced cache directories per URL template.
- Thread-safe, atomic disk read/write; corrupt cached tiles are dropped and re-fetched.
- Automatic retry using urllib3 Retry.
- Size-based pruning.

TileCache.fetch has the tile fetch signature used by trajmap.tiles.fetch_tiles.
"""

from __future__ import annotations

import hashlib
import io
import logging
import os
import random
import struct
import tempfile
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import requests
from PIL import Image, UnidentifiedImageError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from trajmap.errors import FetchError
from trajmap.models import TileCoord

__all__ = ["DEFAULT_TILE_URL", "DEFAULT_SUBDOMAINS", "SubdomainChooser", "TileCache"]

log = logging.getLogger(__name__)

DEFAULT_TILE_URL = "https://{s}.basemaps.cartocdn.com/rastertiles/voyager/{z}/{x}/{y}{r}.png"
DEFAULT_SUBDOMAINS = ("a", "b", "c", "d")

# -------------------------
# Internal helpers
# -------------------------

def _style_cache_root(base_dir: Path, url_template: str) -> Path:
    """One cache subdirectory per tile source, keyed by a hash of its template."""
    h = hashlib.sha1(url_template.encode("utf-8")).hexdigest()[:10]
    return base_dir / h


def _is_image(data: bytes) -> bool:
    """True if Pillow recognises data as a complete image file."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, struct.error):
        return False
    return True


# -------------------------
# Subdomain selection
# -------------------------

class SubdomainChooser:
    """Uniform subdomain picker. Pass a seed to make the sequence repeatable."""

    def __init__(self, subdomains: Sequence[str] = DEFAULT_SUBDOMAINS, seed: Optional[int] = None):
        if not subdomains:
            raise ValueError("at least one subdomain is required")
        self.subdomains = tuple(subdomains)
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            return self._rng.choice(self.subdomains)


# -------------------------
# TileCache
# -------------------------

class TileCache:
    """
    Tile fetcher with persistent cache.
    Thread-safe. One instance is shared by all fetch workers of a render.
    """

    def __init__(
        self,
        url_template: str = DEFAULT_TILE_URL,
        cache_dir: Optional[Path] = None,
        user_agent: str = "trajmap/1.0",
        chooser: Optional[SubdomainChooser] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 15.0,
        retries: int = 3,
        pool_size: int = 8,
    ):
        self.url_template = url_template
        self.chooser = chooser or SubdomainChooser()
        self.timeout = (connect_timeout, read_timeout)
        self.root_dir: Optional[Path] = None
        if cache_dir is not None:
            self.root_dir = _style_cache_root(Path(cache_dir), url_template)
            self.root_dir.mkdir(parents=True, exist_ok=True)

        # Shared session, retried on 429 and 5xx
        self.session = requests.Session()
        self.session.headers["User-Agent"] = user_agent
        retry = Retry(
            total=retries,
            connect=retries,
            read=retries,
            backoff_factor=0.3,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self._lock = threading.Lock()

    # -------------
    # Path helpers
    # -------------

    def _tile_path(self, coord: TileCoord, retina: bool) -> Optional[Path]:
        """Return full path for tile image, or None when disk caching is off."""
        if self.root_dir is None:
            return None
        p = self.root_dir / str(coord.z) / str(coord.x)
        p.mkdir(parents=True, exist_ok=True)
        suffix = "@2x" if retina else ""
        return p / f"{coord.y}{suffix}.png"

    def url_for(self, coord: TileCoord, retina: bool = False) -> str:
        return self.url_template.format(
            s=self.chooser(),
            z=coord.z,
            x=coord.x,
            y=coord.y,
            r="@2x" if retina else "",
        )

    # -------------
    # Fetch logic
    # -------------

    def _read_cached(self, p: Path) -> Optional[bytes]:
        """Cached bytes if they still decode as an image; broken files are removed."""
        try:
            with self._lock:
                data = p.read_bytes()
        except OSError as exc:
            log.debug("unreadable cached tile %s: %s", p, exc)
            return None
        if _is_image(data):
            return data
        log.warning("discarding corrupt cached tile %s", p)
        try:
            with self._lock:
                p.unlink()
        except OSError as exc:
            log.warning("could not remove corrupt tile %s: %s", p, exc)
        return None

    def _write_cached(self, p: Path, data: bytes) -> None:
        """Atomic write: temp file in the same directory, then os.replace."""
        fd, tmp = tempfile.mkstemp(prefix=".tile_", suffix=".part", dir=str(p.parent))
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            with self._lock:
                os.replace(tmp, p)
        except OSError as exc:
            log.warning("could not cache tile %s: %s", p, exc)
            if os.path.exists(tmp):
                os.remove(tmp)

    def fetch(self, coord: TileCoord, retina: bool = False) -> bytes:
        """
        Get tile bytes from cache or network.
        Raises FetchError if the tile cannot be retrieved or is not an image.
        """
        p = self._tile_path(coord, retina)
        if p is not None and p.exists():
            data = self._read_cached(p)
            if data is not None:
                return data

        url = self.url_for(coord, retina)
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(f"GET {url} failed: {exc}") from exc
        if r.status_code != 200 or not r.content:
            raise FetchError(f"GET {url} returned HTTP {r.status_code} ({len(r.content or b'')} bytes)")
        if not _is_image(r.content):
            raise FetchError(f"GET {url} returned {len(r.content)} bytes that are not an image")

        if p is not None:
            self._write_cached(p, r.content)
        return r.content

    __call__ = fetch

    # ----------------------
    # Prune logic
    # ----------------------

    def prune(self, max_bytes: int, watermark: float = 0.85) -> int:
        """
        Delete oldest files if cache exceeds max_bytes.
        Returns the number of files removed.
        """
        if self.root_dir is None:
            return 0
        total = 0
        files: List[Tuple[float, int, Path]] = []
        for root, _, names in os.walk(self.root_dir):
            for n in names:
                if n.endswith(".png"):
                    p = Path(root) / n
                    st = p.stat()
                    total += st.st_size
                    files.append((st.st_mtime, st.st_size, p))
        if total <= max_bytes:
            return 0
        files.sort()
        target = int(max_bytes * watermark)
        removed = 0
        for _mtime, size, f in files:
            if total <= target:
                break
            try:
                f.unlink()
            except OSError as exc:
                log.warning("could not prune %s: %s", f, exc)
                continue
            total -= size
            removed += 1
        log.info("pruned %d cached tiles", removed)
        return removed
