"""Centralized logging configuration.

Records carry ``case_id`` and ``correlation_id`` attributes so lines from the
API, the worker and activities can be joined per case. Callers pass them via
``extra={...}``; missing values render as ``-``.
"""

import logging
import os
import sys
from typing import Optional

CONTEXT_FIELDS = ("case_id", "correlation_id")

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[case=%(case_id)s corr=%(correlation_id)s] - %(message)s"
)


class CaseContextFilter(logging.Filter):
    """Fill in case context attributes the caller did not supply."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CONTEXT_FIELDS:
            if getattr(record, field, None) is None:
                setattr(record, field, "-")
        return True


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)
        level: Optional level override; falls back to ``LOG_LEVEL`` then INFO

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    log_level = getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logger.setLevel(log_level)

    # The workflow sandbox re-imports modules; keep one handler per logger
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
        handler.addFilter(CaseContextFilter())
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    return logger
