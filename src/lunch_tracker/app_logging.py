"""Logging configuration helpers."""

import logging

LOGGER_NAME = "lunch_tracker"


def configure_logging(level: str = "INFO", environment: str | None = None) -> None:
    """Configure the lunch_tracker logger with a single stream handler.

    Repeated calls only adjust the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if logger.handlers:
        return
    prefix = f"[{environment}] " if environment else ""
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(f"{prefix}%(levelname)s: %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = False
