# log.py
"""Logging setup using loguru."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(
    level: str = "INFO", log_dir: Optional[Union[str, Path]] = None
) -> None:
    """Replace loguru's default sink with a console sink and an optional rotating file."""
    logger.remove()
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, colorize=True)
    if log_dir is not None:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(
            path / "vehicle_tracking_{time}.log",
            rotation="20 MB",
            retention="7 days",
            level="DEBUG",
            format=_FILE_FORMAT,
            enqueue=True,  # Thread-safe logging
        )
