"""Process-wide logging setup for the user service."""

from __future__ import annotations

import logging


def configure_logging(level: str | int = logging.INFO, *, force: bool = False) -> None:
    """Initialise the root logger once at startup.

    ``level`` accepts either a ``logging`` constant or its name (``"DEBUG"``),
    matching the ``LOG_LEVEL`` setting. Pass ``force=True`` to reconfigure in
    tests.
    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        force=force,
    )
