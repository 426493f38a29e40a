"""Raw provider frame capture for offline inspection."""

from __future__ import annotations

import logging
import os

RAW_FRAME_LOGGER = "toolloop.raw_frames"


def configure_raw_frame_log(path: str | None = None) -> logging.Logger | None:
    """Attach a file handler to the raw frame logger.

    *path* defaults to ``RAW_FRAME_LOG``; an empty value leaves capture
    disabled and returns ``None``.
    """
    target = path if path is not None else (os.getenv("RAW_FRAME_LOG", "") or "").strip()
    if not target:
        return None
    raw_logger = logging.getLogger(RAW_FRAME_LOGGER)
    raw_logger.setLevel(logging.DEBUG)
    raw_logger.propagate = False
    for handler in raw_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(target):
            return raw_logger
    handler = logging.FileHandler(target, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    raw_logger.addHandler(handler)
    return raw_logger


def record_raw_frame(raw: str) -> None:
    logging.getLogger(RAW_FRAME_LOGGER).debug("%s", raw)
