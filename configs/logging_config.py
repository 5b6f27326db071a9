"""
logging_config.py - Configure logging for command-line and batch use.
"""
from __future__ import annotations

import logging


DEFAULT_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'


def configure_logging(level: int | str = logging.INFO, fmt: str = DEFAULT_FORMAT) -> None:
    """
    Configure root logging for the statics tools.

    This should be called once by entry points (CLI, scripts), never by
    library code.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=fmt)

    # Third-party libraries are noisy at debug level
    logging.getLogger('pylinkage').setLevel(max(level, logging.WARNING))


def get_level_names() -> list[str]:
    """Return level names accepted by configure_logging."""
    return ['DEBUG', 'INFO', 'WARNING', 'ERROR']
