"""
Core Module - Logging Setup.

Configures the root logger once for CLI entry points.
Library modules only create loggers; they never configure handlers.
"""

import logging


LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("aiohttp.access", "sqlalchemy.engine")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for an entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
