"""Logging helpers for gnss_raim."""

from __future__ import annotations

import logging

_ROOT = "gnss_raim"


def get_logger(name: str = _ROOT, level: int | None = None) -> logging.Logger:
    """Return a package logger, attaching the stream handler to the package root once."""

    root = logging.getLogger(_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("[%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger


def set_level(level: int | str) -> None:
    """Set the level of every gnss_raim logger, e.g. ``set_level("DEBUG")``."""

    get_logger().setLevel(level)
