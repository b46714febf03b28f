from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from comprehension_gate.config.models import LoggingSettings

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_HANDLER_MARKER = "_comprehension_gate_handler"


def _mark(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_MARKER, True)
    return handler


def init_logging(settings: LoggingSettings) -> None:
    """
    Configure the root logger from settings.

    Safe to call more than once: handlers installed by a previous call are replaced,
    handlers installed by anything else are left alone.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)
            handler.close()

    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {settings.level}")
    root.setLevel(level)

    formatter = logging.Formatter(_FORMAT)

    console = _mark(logging.StreamHandler(sys.stderr))
    console.setFormatter(formatter)
    root.addHandler(console)

    if settings.file.enabled:
        log_path = Path(settings.file.path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _mark(
            TimedRotatingFileHandler(
                log_path,
                when="midnight",
                backupCount=settings.file.rotation.backup_count,
                encoding="utf-8",
            )
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
