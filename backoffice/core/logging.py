"""
Logging utilities for the FastAPI admin application and maintenance scripts.

Provides a consistent logging format and configuration.
"""

import logging
import sys

# httpx logs full request URLs at INFO, which include OAuth query parameters.
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging and keep HTTP client chatter at WARNING."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
