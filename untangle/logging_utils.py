"""
Logging helpers for untangle.

Only the ``untangle`` logger hierarchy follows the requested verbosity;
third-party loggers stay at WARNING so DEBUG output is about the
analysis and not about its libraries.
"""

from __future__ import annotations

import logging

_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def configure_logging(verbosity: int) -> None:
    """
    Configure logging based on a verbosity count.

    verbosity == 0 -> WARNING
    verbosity == 1 -> INFO
    verbosity >= 2 -> DEBUG
    """

    level = _LEVELS[min(max(verbosity, 0), len(_LEVELS) - 1)]

    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("untangle").setLevel(level)
