"""Logging for the engine process, built on loguru.

Every record carries a ``request_id`` and the calling ``principal`` in its
``extra`` dict.  Outside a request both read ``-``; inside one they are bound
by :func:`request_context`, so engine code logs plain messages and the sink
attributes them.

Stdlib loggers (uvicorn, sqlalchemy, alembic) are forwarded into loguru so
the process writes one stream in one format.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger

NO_CONTEXT = "-"

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[request_id]}</magenta> <blue>{extra[principal]}</blue> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Chatty below WARNING; their useful output is covered by our own records.
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "alembic.runtime.migration")


class _StdlibForwarder(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with the engine's.  Call once at startup."""
    level = level.upper()

    logger.remove()
    logger.configure(extra={"request_id": NO_CONTEXT, "principal": NO_CONTEXT})
    logger.add(sys.stderr, level=level, format=_FORMAT)

    logging.basicConfig(handlers=[_StdlibForwarder()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={})", level)


@contextmanager
def request_context(request_id: str, principal_id: str | None) -> Iterator[None]:
    """Attribute every record logged inside the block to one request."""
    with logger.contextualize(request_id=request_id, principal=principal_id or NO_CONTEXT):
        yield
