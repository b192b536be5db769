"""Logging setup for the CLI."""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# HTTP client libraries that log every request at DEBUG
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "openai")


def setup_logger(log_level: str = "INFO", name: str = "issue_labeler") -> logging.Logger:
    """
    Configure root logging for one CLI run and return the application logger.

    Library modules log through `logging.getLogger(__name__)` and inherit the
    stdout handler installed here. HTTP client libraries are held at INFO or
    above so that --verbose output shows labeler activity, not connections.

    Args:
        log_level: Level name, case-insensitive; unknown names fall back to INFO
        name: Application logger name (default: issue_labeler)

    Returns:
        logging.Logger: The application logger at the requested level
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stdout,
        force=True,  # replace handlers from an earlier call
    )

    for library in NOISY_LOGGERS:
        logging.getLogger(library).setLevel(max(level, logging.INFO))

    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger
