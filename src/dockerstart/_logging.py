"""Logging configuration for dockerstart.

Lifecycle events go through the standard ``logging`` tree under the
``dockerstart`` namespace. The timestamped lines a user reads on stderr
(mappings, dry-run commands, fatal errors) are printed by
:mod:`dockerstart._console` and do not depend on the log level.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

LOG_LEVEL_ENV = "DOCKERSTART_LOG_LEVEL"
LOG_FILE_ENV = "DOCKERSTART_LOG_FILE"

_HANDLER_ATTR = "_dockerstart_handler_id"
_STREAM_HANDLER_ID = "stream"
_FILE_HANDLER_ID = "file"
_FORMAT = "ts=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s"


def _level_from_env() -> int:
    name = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    level = logging.getLevelName(name) if name else None
    if isinstance(level, int):
        return level
    return logging.WARNING


def _find_handler(logger: logging.Logger, handler_id: str) -> logging.Handler | None:
    for handler in logger.handlers:
        if getattr(handler, _HANDLER_ATTR, None) == handler_id:
            return handler
    return None


def _install_handler(
    logger: logging.Logger,
    handler_id: str,
    factory: Callable[[], logging.Handler],
) -> logging.Handler:
    handler = factory()
    setattr(handler, _HANDLER_ATTR, handler_id)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    return handler


def _drop_handler(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.removeHandler(handler)
    handler.close()


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``dockerstart`` namespace."""
    return logging.getLogger(f"dockerstart.{name}")


def setup_logging(*, level: int | None = None) -> None:
    """Attach the stream handler (and optional file handler) once.

    ``level`` wins over ``DOCKERSTART_LOG_LEVEL``; the default is WARNING.
    When ``DOCKERSTART_LOG_FILE`` names a path, events of INFO and above are
    also appended there. Calling this repeatedly is safe.
    """
    stream_level = level if level is not None else _level_from_env()
    root = logging.getLogger("dockerstart")

    stream = _find_handler(root, _STREAM_HANDLER_ID)
    if stream is None:
        stream = _install_handler(root, _STREAM_HANDLER_ID, logging.StreamHandler)
    stream.setLevel(stream_level)

    effective = stream_level
    current_file = _find_handler(root, _FILE_HANDLER_ID)
    log_file = os.environ.get(LOG_FILE_ENV, "").strip()
    if not log_file:
        if current_file is not None:
            _drop_handler(root, current_file)
        root.setLevel(effective)
        return

    path = Path(log_file).expanduser().resolve()
    if isinstance(current_file, logging.FileHandler) and Path(
        current_file.baseFilename
    ).resolve() == path:
        file_handler: logging.Handler = current_file
    else:
        if current_file is not None:
            _drop_handler(root, current_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _install_handler(
            root,
            _FILE_HANDLER_ID,
            lambda: logging.FileHandler(path, encoding="utf-8"),
        )
    file_level = min(stream_level, logging.INFO)
    file_handler.setLevel(file_level)
    root.setLevel(min(effective, file_level))
