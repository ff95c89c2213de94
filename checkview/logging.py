"""Logging setup for checkview.

Modules log through ``logging.getLogger(__name__)``; the CLI decides where
records go by calling configure_logging() once at startup.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "checkview"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Send checkview log records to stderr through rich.

    Args:
        verbose: Log at DEBUG instead of WARNING.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    # Replace handlers so repeated calls (tests, nested CLI runs) don't stack
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False
    return logger
