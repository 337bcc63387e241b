"""Logging for the ``ledger_pipeline`` package.

Pipeline modules log ``<stage>:<event> key=value`` lines (``cycle:claimed``,
``reconcile:applied``, ``drain:stopped`` ...) through
``get_logger("ledger_pipeline.<module>")`` and never attach handlers of their
own. The CLI calls :func:`configure_logging` once at startup with the level
taken from ``LEDGER_PIPELINE_LOG_LEVEL``; until then the package logger
carries a ``NullHandler`` so embedding the pipeline as a library stays quiet.
"""

from __future__ import annotations

import logging
import sys

LOG_LEVEL_ENV = "LEDGER_PIPELINE_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_PKG_LOGGER_NAME = "ledger_pipeline"
_handler: logging.Handler | None = None


def parse_level(name: str) -> int:
    """Map a level name such as ``"debug"`` to its number.

    Raises ``ValueError`` for names the ``logging`` module does not know.
    """

    level = logging.getLevelNamesMapping().get(name.strip().upper())
    if level is None:
        raise ValueError(f"unknown log level {name!r}")
    return level


def configure_logging(level: int = logging.INFO) -> None:
    """Send package records to stderr at ``level``.

    The handler is attached once; later calls only change the level.
    """

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None:
        for h in list(logger.handlers):
            if isinstance(h, logging.NullHandler):
                logger.removeHandler(h)
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(_handler)
        # Avoid double emission via the root logger.
        logger.propagate = False

    _handler.setLevel(level)
    logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
