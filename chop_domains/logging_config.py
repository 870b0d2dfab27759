"""
Logging setup for Chop Domains.
"""

import logging
import sys

FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s"

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("aiohttp.access", "sqlalchemy.engine", "uvicorn.access", "asyncio")


def setup_logging(level: str = "INFO") -> None:
    """Configure application-wide logging."""
    root = logging.getLogger()
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
