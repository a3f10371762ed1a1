"""Structured logging helpers for Ralph components."""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
from collections.abc import Callable, Mapping
from contextlib import ContextDecorator
from logging import Handler, LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

_DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_DEFAULT_BACKUP_COUNT = 3
_LOGGER_NAME = "ralph"
_LOCK = threading.RLock()
_CONFIGURED = False
_FILE_HANDLER: Optional[Handler] = None

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",  # cyan
    "INFO": "\033[32m",  # green
    "WARNING": "\033[33m",  # yellow
    "ERROR": "\033[31m",  # red
    "CRITICAL": "\033[41m",  # red background
}
_RESET_COLOR = "\033[0m"


class RalphJsonFormatter(logging.Formatter):
    """JSON lines formatter used for the persistent log sink."""

    default_time_format = "%Y-%m-%dT%H:%M:%S"

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.default_time_format),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        metadata = getattr(record, "metadata", None)
        if isinstance(metadata, Mapping) and metadata:
            payload["metadata"] = dict(metadata)
        return json.dumps(payload, default=str, ensure_ascii=False)


class RalphConsoleFormatter(logging.Formatter):
    """Human-friendly console formatter with colour support."""

    default_time_format = "%H:%M:%S"

    def format(self, record: LogRecord) -> str:  # noqa: D401 - inherited docs
        record.__dict__.setdefault("component", record.name)
        base = super().format(record)
        metadata = getattr(record, "metadata", None)
        if isinstance(metadata, Mapping) and metadata:
            pairs = " ".join(f"{key}={value}" for key, value in metadata.items())
            base = f"{base} [{pairs}]"
        colour = _LEVEL_COLORS.get(record.levelname)
        if not colour or not sys.stderr.isatty():
            return base
        return f"{colour}{base}{_RESET_COLOR}"


def _coerce_level(value: Union[str, int, None]) -> int:
    if value is None or value == "":
        return logging.INFO
    if isinstance(value, int):
        return value
    value = str(value).strip()
    if value.isdigit():
        return int(value)
    mapped = getattr(logging, value.upper(), None)
    if isinstance(mapped, int):
        return mapped
    return logging.INFO


def configure_logging(
    level: Union[str, int, None] = None,
    *,
    log_file: Optional[Union[Path, str]] = None,
) -> None:
    """Initialise Ralph logging and optionally attach a rotating JSON file sink.

    ``RALPH_LOG_LEVEL`` and ``RALPH_LOG_FILE`` are consulted when the caller
    does not pass explicit values. Calling this repeatedly is safe; the
    console handler is installed once and the file sink is swapped only when
    the target path changes.
    """

    global _CONFIGURED, _FILE_HANDLER

    with _LOCK:
        resolved_level = _coerce_level(level or os.getenv("RALPH_LOG_LEVEL"))
        logger = logging.getLogger(_LOGGER_NAME)

        if not _CONFIGURED:
            logger.handlers.clear()
            logger.setLevel(resolved_level)
            logger.propagate = False

            console_handler = logging.StreamHandler()
            console_handler.setFormatter(
                RalphConsoleFormatter(
                    fmt="%(asctime)s %(levelname)s %(component)s %(message)s",
                    datefmt="%H:%M:%S",
                )
            )
            logger.addHandler(console_handler)
            _CONFIGURED = True
        elif level is not None:
            logger.setLevel(resolved_level)

        target = log_file or os.getenv("RALPH_LOG_FILE")
        if not target:
            return

        target_file = Path(target).resolve()
        if _FILE_HANDLER and getattr(_FILE_HANDLER, "baseFilename", None) == str(target_file):
            return

        try:
            target_file.parent.mkdir(parents=True, exist_ok=True)
            rotation_handler = RotatingFileHandler(
                target_file,
                maxBytes=_DEFAULT_MAX_BYTES,
                backupCount=_DEFAULT_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as exc:
            # Console logging still works without the file sink.
            logger.warning("Unable to open log file %s: %s", target_file, exc)
            return

        if _FILE_HANDLER is not None:
            logger.removeHandler(_FILE_HANDLER)
            try:
                _FILE_HANDLER.close()
            finally:
                _FILE_HANDLER = None

        rotation_handler.setFormatter(RalphJsonFormatter())
        logger.addHandler(rotation_handler)
        _FILE_HANDLER = rotation_handler


def get_logger(
    name: str, *, metadata: Optional[Mapping[str, Any]] = None
) -> Union[logging.Logger, "RalphLoggerAdapter"]:
    """Return a logger scoped under the Ralph namespace."""

    configure_logging()
    qualified = name if name.startswith(f"{_LOGGER_NAME}.") else f"{_LOGGER_NAME}.{name}"
    logger = logging.getLogger(qualified)
    if metadata:
        return RalphLoggerAdapter(logger, dict(metadata))
    return logger


class RalphLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects metadata for structured logging."""

    def process(self, msg: str, kwargs: Any) -> tuple[str, Any]:
        extra = dict(kwargs.get("extra") or {})
        metadata = dict(self.extra)
        metadata.update(extra.get("metadata") or {})
        extra["metadata"] = metadata
        kwargs["extra"] = extra
        return msg, kwargs


class log_exceptions(ContextDecorator):
    """Context manager/decorator that logs uncaught exceptions."""

    def __init__(self, logger: Any, *, message: str = "Unhandled error") -> None:
        self.logger = logger
        self.message = message

    def __enter__(self) -> "log_exceptions":  # noqa: D401 - context protocol
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback) -> bool:
        if exc_type is not None and not issubclass(exc_type, KeyboardInterrupt):
            self.logger.error(
                self.message,
                exc_info=(exc_type, exc_value, exc_traceback),
            )
        return False


def log_action(
    action: str,
    *,
    start_level: int = logging.DEBUG,
    success_level: int = logging.INFO,
    failure_level: int = logging.ERROR,
    logger_factory: Callable[[], Any] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that emits structured entry/exit logs around a callable."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            func_logger = logger_factory() if logger_factory else get_logger(func.__module__)
            start_time = time.perf_counter()
            func_logger.log(
                start_level,
                "%s:start",
                action,
                extra={"metadata": {"action": action, "event": "start"}},
            )
            try:
                result = func(*args, **kwargs)
            except Exception:
                func_logger.log(
                    failure_level,
                    "%s:error",
                    action,
                    extra={"metadata": {"action": action, "event": "error"}},
                    exc_info=True,
                )
                raise
            duration = time.perf_counter() - start_time
            func_logger.log(
                success_level,
                "%s:success",
                action,
                extra={"metadata": {"action": action, "event": "success", "duration": duration}},
            )
            return result

        wrapper.__name__ = getattr(func, "__name__", action)
        wrapper.__doc__ = func.__doc__
        return wrapper

    return decorator


__all__ = [
    "RalphConsoleFormatter",
    "RalphJsonFormatter",
    "RalphLoggerAdapter",
    "configure_logging",
    "get_logger",
    "log_action",
    "log_exceptions",
]
