"""Logger hierarchy shared by the indexer, mirror and CLI.

Each stage logs through a child of ``distindex`` (``distindex.release``,
``distindex.discovery``, ...). Archives may be processed on worker threads,
so the file sink records the thread alongside the stage name.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "distindex"
_CONSOLE_FORMAT = "[distindex] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"

logging.getLogger(_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the stage logger ``distindex.<name>``, or the root one."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Route distindex records to stderr and, optionally, to ``log_file``.

    ``verbose`` lowers the threshold to DEBUG, which also enables the
    per-archive failure tracebacks logged by the run loop.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # One set of handlers per process, however often main() runs.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        sink = logging.FileHandler(log_file, encoding="utf-8", errors="backslashreplace")
        sink.setLevel(level)
        sink.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(sink)

    return logger


__all__ = ["configure_logging", "get_logger"]
