"""Process-wide logging for the frame shop order service.

Every installed handler formats through ``OverrideMaskingFormatter``, so the
management override code never reaches stderr or the log file even when it
turns up inside an exception traceback.
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from frameshop.config import Settings, load_settings
from frameshop.utils.masking import mask_secret

_logging_configured = False
_logging_lock = threading.Lock()

_logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Client and server libraries that log every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class OverrideMaskingFormatter(logging.Formatter):
    def __init__(self, override_code: str | None) -> None:
        super().__init__(_LOG_FORMAT, datefmt=_DATE_FORMAT)
        self._override_code = override_code

    def format(self, record: logging.LogRecord) -> str:
        return mask_secret(super().format(record), self._override_code)


def _override_code(settings: Settings) -> str | None:
    code = settings.ordering.override_code
    return code.get_secret_value() if code is not None else None


def configure_logging(settings: Settings | None = None) -> None:
    """Install stderr (and optional file) handlers at the configured level."""
    global _logging_configured

    settings = settings or load_settings()
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    formatter = OverrideMaskingFormatter(_override_code(settings))

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.logging.file:
        try:
            Path(settings.logging.file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(settings.logging.file))
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", settings.logging.file, exc)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    library_level = level if level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    if not _logging_configured:
        with _logging_lock:
            if not _logging_configured:
                configure_logging()
    return logging.getLogger(name)
