"""Logging configuration."""
import logging
import sys

from support_bridge.core.config import settings

NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")


def setup_logging() -> None:
    """Send application logs to stdout at the configured level."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Per-request client and driver chatter
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
