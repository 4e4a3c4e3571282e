"""Logging configuration for the fleetwork CLI."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logging(
    verbosity: int = 0, log_file: str | None = None, console: bool = True
) -> None:
    """Log to stdout, and to ``log_file`` as well when given.

    ``console=False`` keeps stdout free for the TUI dashboard.
    """
    level = logging.DEBUG if verbosity > 0 else logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)] if console else []
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, handlers=handlers, force=True
    )
    # asyncssh is chatty at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING if verbosity < 2 else logging.DEBUG)
