"""A shared logger that never emits anything."""

from __future__ import annotations

import logging
from typing import Union

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

_NULL_LOGGER_NAME = "pgtmp.null"


def _build_null_logger() -> logging.Logger:
    log = logging.getLogger(_NULL_LOGGER_NAME)
    log.addHandler(logging.NullHandler())
    log.propagate = False
    log.disabled = True
    return log


_null_logger = _build_null_logger()


def null_logger() -> logging.Logger:
    """Return the disabled logger used when callers pass none."""
    return _null_logger


def logger_or_null(logger: LoggerLike | None) -> LoggerLike:
    """Return *logger* if given, otherwise the shared null logger."""
    if logger is not None:
        return logger
    return _null_logger
