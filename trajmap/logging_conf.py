#!/usr/bin/env python3
# trajmap/logging_conf.py
"""
Logging setup for TrajMap: console always, rotating file when configured.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from trajmap.config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(cfg: Config, level_override: Optional[str] = None) -> None:
    """Configure the root logger from cfg["logging"]; level_override wins over the file."""
    opts = cfg["logging"]
    level = logging.getLevelName((level_override or opts["level"]).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)

    if opts["file"]:
        fh = RotatingFileHandler(
            opts["file"],
            maxBytes=opts["rotate_bytes"],
            backupCount=opts["rotate_keep"],
            encoding="utf-8",
        )
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(fh)

    # Tile traffic is noisy; only surface it on request.
    http_level = logging.DEBUG if opts["http_debug"] else logging.WARNING
    for name in ("urllib3", "requests"):
        logging.getLogger(name).setLevel(http_level)
