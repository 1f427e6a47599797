"""Logging setup shared by Cutover CLI commands."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
STAGE_RULE = "━" * 34


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the root ``cutover`` logger.

    Args:
        verbose: Emit DEBUG messages
        quiet: Only emit warnings and errors
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger("cutover")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False

    # Keep third-party HTTP/Docker chatter out of the stage trail
    for noisy in ("urllib3", "docker"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)


def log_stage(logger: logging.Logger, title: str) -> None:
    """Log a section banner marking the start of a deployment stage."""
    logger.info(STAGE_RULE)
    logger.info(title)
    logger.info(STAGE_RULE)
