"""Logging configuration helpers."""

import logging

_LOGGER_NAME = "media_request_bot"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure the package logger with a single stream handler.

    Safe to call repeatedly: a second call only adjusts the level.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
