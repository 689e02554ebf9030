"""Console logging for the command-line interface."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s | %(message)s"


def configure_logging(
    verbose: bool = False,
    console: Console | None = None,
    force: bool = False,
) -> logging.Logger:
    """Send ``conceptforge`` log records to a rich console handler."""
    logger = logging.getLogger("conceptforge")
    if logger.handlers and not force:
        return logger

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return logger
