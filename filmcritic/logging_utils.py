"""Logging setup shared by the library and the CLI.

Everything logs under the ``filmcritic`` logger. ``configure_logging`` gives it
a terse console handler and a debug-level file handler, and makes sure Gemini
API keys never reach either of them.
"""

from __future__ import annotations

import logging
import os
import re
import sys
import traceback
from datetime import datetime
from pathlib import Path

_LOGGER = logging.getLogger("filmcritic.logging")
_ROOT_LOGGER_NAME = "filmcritic"
LOG_DIR_ENV = "FILMCRITIC_LOG_DIR"
DEBUG_ENV = "FILMCRITIC_DEBUG"
_LOG_FILE = "filmcritic.log"
_CONSOLE_FORMAT = "%(level_tag)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVEL_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[fatal]",
}
# Google API keys: "AIza" followed by 35 url-safe characters.
_API_KEY_PATTERN = re.compile(r"AIza[0-9A-Za-z_\-]{35}")
_configured = False


def mask_api_key(value: str) -> str:
    cleaned = value.strip()
    keep = 1 if len(cleaned) <= 8 else 4
    return f"{cleaned[:keep]}...{cleaned[-keep:] if cleaned else ''}"


def redact(text: str) -> str:
    return _API_KEY_PATTERN.sub(lambda match: mask_api_key(match.group(0)), text)


class _RedactingFormatter(logging.Formatter):
    """Masks keys in the whole rendered record, traceback and stack included."""

    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


class _TaggedFormatter(_RedactingFormatter):
    def format(self, record: logging.LogRecord) -> str:
        record.level_tag = _LEVEL_TAGS.get(record.levelno, "")
        return super().format(record)


def get_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "filmcritic" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.__stderr__)
    handler.setLevel(logging.DEBUG if os.environ.get(DEBUG_ENV) else logging.WARNING)
    handler.setFormatter(_TaggedFormatter(_CONSOLE_FORMAT))
    return handler


def _file_handler() -> logging.Handler:
    path = get_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_RedactingFormatter(_FILE_FORMAT, datefmt=_FILE_DATE_FORMAT))
    return handler


def configure_logging(*, force: bool = False) -> None:
    """Attach filmcritic's handlers once; ``force=True`` rebuilds them."""
    global _configured
    if _configured and not force:
        return

    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    if force:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    # An application that configured the root logger already prints for us.
    if force or not logging.getLogger().handlers:
        logger.addHandler(_console_handler())

    try:
        logger.addHandler(_file_handler())
    except OSError as exc:
        _LOGGER.warning("File logging disabled: %s", exc, exc_info=True)

    logger.propagate = True
    _configured = True


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Append ``exc`` with its traceback to the log file; returns the file or ``None``."""
    path = get_log_path()
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    entry = (
        f"[{datetime.now().isoformat(timespec='seconds')}] {context} failed: "
        f"{type(exc).__name__}: {exc}\n{trace}\n"
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(redact(entry))
    except OSError as log_exc:
        _LOGGER.warning("Could not write %s: %s", path, log_exc, exc_info=True)
        return None
    return path
