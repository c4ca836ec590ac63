"""Logging configuration for edgeprobe."""

import logging
import os
import sys

LOG_LEVEL_ENV = "EDGEPROBE_LOG_LEVEL"

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_log_level(value: str | None) -> int:
    """Map a level name to a logging constant, falling back to INFO."""
    return _LOG_LEVELS.get((value or "INFO").strip().upper(), logging.INFO)


def configure_logging() -> None:
    """Configure application-wide logging.

    Respects the EDGEPROBE_LOG_LEVEL environment variable (default: INFO).
    Logs go to stderr with timestamp, logger name, level and message.

    Examples:
        # Per-probe timings and rejections
        $ EDGEPROBE_LOG_LEVEL=DEBUG python -m edgeprobe
    """
    log_level = resolve_log_level(os.environ.get(LOG_LEVEL_ENV))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    # urllib3 logs every connection attempt at DEBUG
    logging.getLogger("urllib3").setLevel(max(log_level, logging.INFO))

    logger = logging.getLogger(__name__)
    logger.info("Logging configured: level=%s", logging.getLevelName(log_level))
