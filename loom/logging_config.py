"""Logging setup for applications embedding loom."""

import logging
import os
import sys


def configure_logging() -> None:
    """Configure logging based on environment variables.

    Environment variables:
        LOG_LEVEL: Set the logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
        LOG_FORMAT: Set the log format (simple, detailed). Default: detailed
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("LOG_FORMAT", "detailed")

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    level = level_map.get(log_level, logging.INFO)

    if log_format == "simple":
        format_str = "%(levelname)s: %(message)s"
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        stream=sys.stdout,
    )

    logging.getLogger("loom").setLevel(level)

    # Checkpoint publishing goes through httpx; keep its request logs out of INFO
    if level > logging.DEBUG:
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
