"""Shared utility helpers."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging for the application."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if json_format:
        fmt = (
            '{"time":"%(asctime)s","level":"%(levelname)s",'
            '"logger":"%(name)s","message":"%(message)s"}'
        )
    else:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s"

    logging.basicConfig(
        level=numeric_level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )

    # Silence noisy third-party loggers
    for name in ("web3", "asyncpg", "aiohttp", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def short_address(address: str, head: int = 10) -> str:
    """Shorten a 0x address for log lines."""
    if len(address) <= head + 4:
        return address
    return f"{address[:head]}...{address[-4:]}"
