"""Logging configuration for the docchat CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the entry point.
"""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

_PACKAGE_LOGGER = "docchat"
_ENV_LEVEL = "DOCCHAT_LOG_LEVEL"


def resolve_level(verbose: bool = False) -> int:
    """Return DEBUG when *verbose*, else the level named by DOCCHAT_LOG_LEVEL (default WARNING)."""
    if verbose:
        return logging.DEBUG
    name = os.environ.get(_ENV_LEVEL, "warning").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(level: int = logging.WARNING, console: Console | None = None) -> logging.Logger:
    """Attach a RichHandler to the ``docchat`` logger. Safe to call repeatedly."""
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=level <= logging.DEBUG,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
