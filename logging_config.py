"""
Logging setup for the API process.

``setup_logging`` attaches a console handler to the root logger.  It is a
no-op when handlers are already present, so calling it from tests or from
repeated app construction is safe.
"""

import logging


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a console handler at ``level``."""
    logger = logging.getLogger()
    if logger.handlers:
        return

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
