"""The package logger."""

from __future__ import annotations

import logging
import threading
from typing import Optional

LOGGER_NAME = "schedcore"

_setup_lock = threading.Lock()


def get_logger() -> logging.Logger:
    """Return the package logger.

    If the embedding application already configured logging, that setup is
    reused; otherwise a verbose stderr handler at debug level is attached.
    """
    logger = logging.getLogger(LOGGER_NAME)
    with _setup_lock:
        if not logger.hasHandlers():
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter("%(asctime)s\t%(levelname)s\t%(name)s\t%(message)s")
            )
            logger.addHandler(handler)
            logger.setLevel(logging.DEBUG)
    return logger


def is_debug_enabled(logger: Optional[logging.Logger] = None) -> bool:
    """Check whether debug messages would be emitted by the logger."""
    if logger is None:
        logger = get_logger()
    return logger.isEnabledFor(logging.DEBUG)