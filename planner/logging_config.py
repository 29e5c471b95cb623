"""
planner/logging_config.py  —  Centralised logging setup
"""

import logging
from typing import Optional

from rich.logging import RichHandler

from planner import config


def setup_logging(level: Optional[str] = None) -> None:
    """
    Route every module logger through rich.

    The root level comes from PLANNER_LOG_LEVEL unless `level` is given.
    Chatty third-party loggers stay at WARNING.
    """
    level_name = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(
        format="%(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, level_name, logging.WARNING),
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )

    for name in ("yfinance", "urllib3", "peewee"):
        logging.getLogger(name).setLevel(logging.WARNING)
