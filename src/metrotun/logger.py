"""
Logging setup built on loguru.

Modules obtain a logger with ``get_logger(__name__)``; the server and CLI
call ``setup_logging`` once at startup.
"""

import sys
from typing import Optional

from loguru import logger as _logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Replace loguru's default sink with a console sink (and optional file)."""
    _logger.remove()
    _logger.configure(extra={"name": "metrotun"})
    _logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT, colorize=True)

    if log_file:
        _logger.add(
            log_file,
            level=level.upper(),
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=2,
            colorize=False,
        )


def get_logger(name: str):
    """Return a loguru logger bound to a module name."""
    return _logger.bind(name=name)
