"""
Logging setup for the backend.

Modules grab a logger with ``get_logger(__name__)``; handlers and format are
configured once by ``setup_logging()`` from the application entry point.
"""
import logging
import sys

from superhuman.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_configured = False


def setup_logging(level: str = None) -> None:
    """
    Configure the root logger.

    Safe to call more than once; only the first call installs a handler.

    Args:
        level: Optional level name, defaults to settings.log_level
               (DEBUG when settings.debug is on)
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    if level is None:
        level = "DEBUG" if settings.debug else settings.log_level

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level.upper())

    # httpx logs every request URL at INFO, too noisy next to our own lines
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)
