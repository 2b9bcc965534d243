#!/usr/bin/env python3
# trajmap/config.py
"""
Configuration for TrajMap.

One JSON document per user holds render defaults, tile-server settings, the
tile cache and logging. User values are merged over DEFAULT_CONFIG and then
coerced key by key; anything unusable falls back to its default so a
hand-edited file can never stop a render.

    cfg = Config.load()                 # reads or creates the per-user file
    cfg["render"]["line_color"]         # "#FF5500"
    cfg.update({"network": {"seed": 1}})
    cfg.save()

Config() with no arguments is the validated defaults and does no I/O.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import platform
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from PIL import ImageColor

log = logging.getLogger(__name__)

ENV_CONFIG_PATH = "TRAJMAP_CONFIG"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")

# ----------------------------
# Defaults
# ----------------------------

DEFAULT_CONFIG: Dict[str, Any] = {
    "render": {
        "line_color": "#FF5500",
        "line_width": 3,
        "retina": False,
        "viewport_width": 1024,           # zoom is fitted to this viewport
        "viewport_height": 768,
        "min_zoom": 1,
        "max_zoom": 18,
        "placeholder_color": "#E0E0E0",
        "marker_size": 12,
        "start_marker_color": "#00CC00",
        "end_marker_color": "#CC0000",
        "expansion_policy": "additive",   # or "single"
        "contrast": 1.0,
        "brightness": 1.0,
        "saturation": 1.0,
    },
    "network": {
        "tile_url": "https://{s}.basemaps.cartocdn.com/rastertiles/voyager/{z}/{x}/{y}{r}.png",
        "subdomains": ["a", "b", "c", "d"],
        "seed": None,
        "user_agent": "trajmap/1.0 (+https://example.invalid)",
        "connect_timeout_s": 5.0,
        "read_timeout_s": 15.0,
        "retries": 3,
        "parallel_downloads": 8,
    },
    "cache": {
        "enabled": True,
        "dir": None,                      # None: <user cache dir>/tiles
        "max_bytes": 256 * 1024 * 1024,
        "prune_watermark": 0.85,
    },
    "logging": {
        "level": "INFO",
        "http_debug": False,
        "file": None,
        "rotate_bytes": 5 * 1024 * 1024,
        "rotate_keep": 3,
    },
}

# ----------------------------
# Paths and I/O
# ----------------------------

def _user_dir(kind: str) -> str:
    """Per-OS base directory for 'config' or 'cache' data."""
    system = platform.system()
    if system == "Windows":
        env = "APPDATA" if kind == "config" else "LOCALAPPDATA"
        fallback = "~\\AppData\\Roaming" if kind == "config" else "~\\AppData\\Local"
        base = os.path.join(os.environ.get(env) or os.path.expanduser(fallback), "TrajMap")
        return base if kind == "config" else os.path.join(base, "Cache")
    if system == "Darwin":
        sub = "~/Library/Application Support" if kind == "config" else "~/Library/Caches"
        return os.path.join(os.path.expanduser(sub), "TrajMap")
    sub = "~/.config" if kind == "config" else "~/.cache"
    return os.path.join(os.path.expanduser(sub), "trajmap")


def _default_tile_dir() -> str:
    return os.path.join(_user_dir("cache"), "tiles")


def _default_config_path() -> str:
    env = os.environ.get(ENV_CONFIG_PATH)
    if env:
        return os.path.expanduser(env)
    return os.path.join(_user_dir("config"), "trajmap.json")


def _merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
    """Recursive merge into a fresh dict; `over` wins on conflicts."""
    out = copy.deepcopy(base)
    for key, val in over.items():
        if isinstance(val, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], val)
        else:
            out[key] = copy.deepcopy(val)
    return out


def _write_json_atomic(path: str, data: Dict[str, Any]) -> None:
    folder = os.path.dirname(path) or "."
    os.makedirs(folder, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".trajmap_", suffix=".json", dir=folder)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
            fh.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise

# ----------------------------
# Coercion rules
# ----------------------------

Rule = Callable[[Any, Any], Any]


def _number(lo: float, hi: float) -> Rule:
    def rule(value: Any, default: Any) -> float:
        try:
            x = float(value)
        except (TypeError, ValueError):
            return float(default)
        return min(max(x, lo), hi)
    return rule


def _integer(lo: Optional[int] = None, hi: Optional[int] = None) -> Rule:
    def rule(value: Any, default: Any) -> int:
        try:
            x = int(value)
        except (TypeError, ValueError):
            return int(default)
        if lo is not None:
            x = max(x, lo)
        if hi is not None:
            x = min(x, hi)
        return x
    return rule


def _flag(value: Any, default: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in ("1", "true", "yes", "on"):
            return True
        if word in ("0", "false", "no", "off"):
            return False
    return default


def _color(value: Any, default: Any) -> str:
    if isinstance(value, str):
        try:
            ImageColor.getrgb(value)
        except ValueError:
            return default
        return value
    return default


def _one_of(*choices: Any) -> Rule:
    def rule(value: Any, default: Any) -> Any:
        return value if value in choices else default
    return rule


def _text(value: Any, default: Any) -> Any:
    return str(value) if value else default


def _optional_int(value: Any, default: Any) -> Optional[int]:
    return None if value is None else _integer()(value, 0)


def _optional_text(value: Any, default: Any) -> Optional[str]:
    return str(value) if value else None


def _text_list(value: Any, default: Any) -> list:
    if isinstance(value, list) and value:
        return [str(v) for v in value]
    return list(default)


RULES: Dict[str, Dict[str, Rule]] = {
    "render": {
        "line_color": _color,
        "line_width": _integer(1, 64),
        "retina": _flag,
        "viewport_width": _integer(64, 16384),
        "viewport_height": _integer(64, 16384),
        "min_zoom": _integer(1, 18),
        "max_zoom": _integer(1, 18),
        "placeholder_color": _color,
        "marker_size": _integer(1, 128),
        "start_marker_color": _color,
        "end_marker_color": _color,
        "expansion_policy": _one_of("additive", "single"),
        "contrast": _number(0.0, 3.0),
        "brightness": _number(0.0, 3.0),
        "saturation": _number(0.0, 3.0),
    },
    "network": {
        "tile_url": _text,
        "subdomains": _text_list,
        "seed": _optional_int,
        "user_agent": _text,
        "connect_timeout_s": _number(0.2, 60.0),
        "read_timeout_s": _number(0.5, 120.0),
        "retries": _integer(0, 10),
        "parallel_downloads": _integer(1, 64),
    },
    "cache": {
        "enabled": _flag,
        "dir": _text,
        "max_bytes": _integer(8 * 1024 * 1024),
        "prune_watermark": _number(0.5, 0.99),
    },
    "logging": {
        "level": _one_of(*LOG_LEVELS),
        "http_debug": _flag,
        "file": _optional_text,
        "rotate_bytes": _integer(256 * 1024, 50 * 1024 * 1024),
        "rotate_keep": _integer(0, 50),
    },
}


def _validate(user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Defaults merged with `user`, every known key coerced by its rule."""
    merged = _merge(DEFAULT_CONFIG, user or {})
    for section, rules in RULES.items():
        if not isinstance(merged.get(section), dict):
            merged[section] = copy.deepcopy(DEFAULT_CONFIG[section])
        values = merged[section]
        defaults = DEFAULT_CONFIG[section]
        for key, rule in rules.items():
            values[key] = rule(values.get(key), defaults[key])

    r = merged["render"]
    r["max_zoom"] = max(r["max_zoom"], r["min_zoom"])
    if merged["cache"]["dir"] is None:
        merged["cache"]["dir"] = _default_tile_dir()
    return merged

# ----------------------------
# Public API
# ----------------------------

@dataclass
class Config:
    """Validated settings dict plus the file it belongs to."""
    data: Dict[str, Any] = field(default_factory=lambda: _validate(None))
    path: str = field(default_factory=_default_config_path)

    def __getitem__(self, section: str) -> Any:
        return self.data[section]

    def __setitem__(self, section: str, value: Any) -> None:
        self.data[section] = value

    def get(self, section: str, default: Any = None) -> Any:
        return self.data.get(section, default)

    @classmethod
    def load(cls, path: Optional[str] = None, create_if_missing: bool = True) -> "Config":
        """
        Read the config at `path` (default: TRAJMAP_CONFIG or the per-user file).
        A missing file yields defaults, written out when create_if_missing.
        An unparsable file is copied to <path>.corrupt.bak and replaced by defaults.
        """
        cfg_path = os.path.expanduser(path) if path else _default_config_path()
        if not os.path.exists(cfg_path):
            data = _validate(None)
            if create_if_missing:
                _write_json_atomic(cfg_path, data)
            return cls(data, cfg_path)

        try:
            with open(cfg_path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, ValueError) as exc:
            backup = cfg_path + ".corrupt.bak"
            log.warning("config %s unreadable (%s); moved aside to %s", cfg_path, exc, backup)
            shutil.copyfile(cfg_path, backup)
            raw = {}

        data = _validate(raw if isinstance(raw, dict) else {})
        if data["cache"]["enabled"]:
            try:
                os.makedirs(data["cache"]["dir"], exist_ok=True)
            except OSError as exc:
                log.warning("cache dir %s unusable (%s); using default", data["cache"]["dir"], exc)
                data["cache"]["dir"] = _default_tile_dir()
                os.makedirs(data["cache"]["dir"], exist_ok=True)
        return cls(data, cfg_path)

    def save(self) -> None:
        self.data = _validate(self.data)
        _write_json_atomic(self.path, self.data)

    def update(self, partial: Dict[str, Any]) -> None:
        self.data = _validate(_merge(self.data, partial))

    @property
    def cache_dir(self) -> Optional[str]:
        c = self.data["cache"]
        return c["dir"] if c["enabled"] else None

    @property
    def tile_url(self) -> str:
        return self.data["network"]["tile_url"]

    @property
    def viewport(self) -> Tuple[int, int]:
        r = self.data["render"]
        return r["viewport_width"], r["viewport_height"]


def _changed(base: Dict[str, Any], cur: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, val in cur.items():
        if key not in base:
            out[key] = val
        elif isinstance(val, dict) and isinstance(base[key], dict):
            sub = _changed(base[key], val)
            if sub:
                out[key] = sub
        elif base[key] != val:
            out[key] = val
    return out


def overrides(cfg: Config) -> Dict[str, Any]:
    """Settings in cfg that differ from the validated defaults."""
    return _changed(_validate(None), cfg.data)


__all__ = ["Config", "DEFAULT_CONFIG", "RULES", "overrides"]
