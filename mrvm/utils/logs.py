"""Logging setup for scripts using MRVM."""

import logging
import sys


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a stderr handler to the ``mrvm`` logger.

    The library itself never configures handlers; call this from scripts
    that want to see training progress.

    Parameters:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger
    """
    logger = logging.getLogger("mrvm")
    logger.setLevel(getattr(logging, level.upper()))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(getattr(logging, level.upper()))
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
