from __future__ import annotations

import os
import sys

from loguru import logger

from .app import run

LOG_LEVEL_ENV = "GUESS_IT_LOG_LEVEL"


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=os.environ.get(LOG_LEVEL_ENV, "WARNING").upper())


def main() -> int:
    """Entry point for running the game from the command line."""
    configure_logging()
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
