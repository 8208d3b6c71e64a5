# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Structured JSON logger for shipwright.

Every log entry is a single JSON line: timestamped, leveled, tagged with the
source module. Subsystems attach context through the `extra` kwarg and it
gets merged into the JSON object.

Release runs handle registry and hosting tokens, so every handler also gets
a RedactingFilter. Any value registered with `register_secret` is masked
wherever it shows up (message text or extra fields), and extra fields whose
key looks like a credential are masked unconditionally.

The JSON structure looks like:
  {"ts": "2026-...", "level": "INFO", "module": "shipwright.release.matrix.resolver",
   "msg": "Matrix resolved", "platforms": 2}
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

REDACTED = "***"

_STANDARD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "relativeCreated",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "pathname",
        "filename",
        "module",
        "levelno",
        "levelname",
        "processName",
        "process",
        "threadName",
        "thread",
        "message",
        "msecs",
        "taskName",
    }
)

_SENSITIVE_KEY_PARTS: tuple[str, ...] = ("token", "secret", "password")

_secrets: set[str] = set()
_secrets_lock = threading.Lock()


def register_secret(value: Optional[str]) -> None:
    """Mark a value as sensitive so it never appears in emitted log lines."""
    if not value:
        return
    with _secrets_lock:
        _secrets.add(value)


def clear_secrets() -> None:
    with _secrets_lock:
        _secrets.clear()


def redact(text: str) -> str:
    """Replace every registered secret inside `text` with a fixed mask."""
    with _secrets_lock:
        known = sorted(_secrets, key=len, reverse=True)
    for secret in known:
        if secret in text:
            text = text.replace(secret, REDACTED)
    return text


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in _SENSITIVE_KEY_PARTS)


class RedactingFilter(logging.Filter):
    """
    Scrubs secrets out of a record before any formatter sees it.

    The message is rendered once (args merged in) and redacted, then the
    record's args are dropped so the handler doesn't re-interpolate them.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        for key, value in list(record.__dict__.items()):
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            if _is_sensitive_key(key):
                setattr(record, key, REDACTED)
            elif isinstance(value, str):
                setattr(record, key, redact(value))
        return True


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Mandatory fields:
      ts     : ISO 8601 UTC timestamp
      level  : log level name
      module : the logger name (usually the Python module path)
      msg    : the formatted message string

    Anything passed through `extra` is merged in as additional context.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exc"] = redact(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _resolve_log_level(level_name: str) -> int:
    """Turn a level name string into the corresponding logging constant."""
    upper = level_name.upper()
    if upper not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level '{level_name}'. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    return getattr(logging, upper)


def get_logger(
    name: str,
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Create a structured JSON logger.

    Every module calls this once at the top and keeps the returned instance.

    Args:
        name: Logger name, typically __name__ of the calling module.
        log_level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
        log_file: Optional path to a log file. If provided, logs go to both
                  stdout and the file.

    Returns:
        A configured logging.Logger that outputs redacted, structured JSON.
    """
    logger = logging.getLogger(name)
    level = _resolve_log_level(log_level)
    logger.setLevel(level)

    # Avoid stacking handlers if get_logger is called multiple times for the
    # same name (happens in tests).
    if logger.handlers:
        return logger

    formatter = JsonFormatter()
    redactor = RedactingFilter()

    stdout_handler = logging.StreamHandler(stream=sys.stdout)
    stdout_handler.setLevel(level)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(redactor)
    logger.addHandler(stdout_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(redactor)
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger


def set_log_level(log_level: str, prefix: str = "shipwright") -> None:
    """Re-level every already-created logger under `prefix` (CLI --log-level)."""
    level = _resolve_log_level(log_level)
    for name in list(logging.Logger.manager.loggerDict):
        if name == prefix or name.startswith(prefix + "."):
            logger = logging.getLogger(name)
            logger.setLevel(level)
            for handler in logger.handlers:
                handler.setLevel(level)
