"""
Console logging for the plan compiler.

Every component logs to stdout with colored, pipe-separated output. The level
comes from ``shared.config`` unless a caller asks for a specific one.

Usage:
    from shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Compiled plan %s", name)
"""

import logging
import sys
from typing import Dict, Optional

from shared.config import config

_loggers: Dict[str, logging.Logger] = {}


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _resolve_level(level: Optional[int]) -> int:
    if level is not None:
        return level
    configured = logging.getLevelName(config.log_level)
    return configured if isinstance(configured, int) else logging.INFO


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get a logger that outputs colored logs to console.

    Args:
        name: Logger name (typically __name__)
        level: Logging level; defaults to ``config.log_level``

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    resolved = _resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(resolved)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved)
    console_handler.setFormatter(
        ColoredFormatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        )
    )
    logger.addHandler(console_handler)

    _loggers[name] = logger
    return logger


def set_level(level: int) -> None:
    """Change the level of every logger created so far (used by ``--verbose``)."""
    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
