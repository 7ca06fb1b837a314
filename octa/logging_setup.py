"""Logging configuration for the command-line tools."""

from __future__ import annotations

import logging
import os
import sys


LOG_LEVEL_ENV = "LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(default_level: str = "WARNING", verbose: bool = False) -> int:
    """Configure process-wide logging and return the resolved level.

    ``LOG_LEVEL`` wins over ``default_level``; ``verbose`` forces INFO when
    the resolved level is quieter.  Log lines go to stderr so tool output on
    stdout stays parseable.
    """
    level_name = os.environ.get(LOG_LEVEL_ENV, default_level).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = getattr(logging, default_level.upper(), logging.WARNING)
        invalid_level = level_name
    else:
        invalid_level = None
    if verbose:
        level = min(level, logging.INFO)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    if invalid_level is not None:
        logging.getLogger(__name__).warning(
            "Invalid %s '%s'; using %s", LOG_LEVEL_ENV, invalid_level, logging.getLevelName(level)
        )

    return level
