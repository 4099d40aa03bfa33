"""Logging configuration and prefixed loggers."""

from __future__ import annotations

import logging
import os
import sys
import traceback
from typing import Any, Mapping, Optional, Union

LOGGER_NAME = "lmd"
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

CONTEXT_KEYS = ("peer", "client", "request")

_LOG_FORMAT = "[%(severity)s][pid:" + str(os.getpid()) + "][%(filename)s:%(lineno)d] %(message)s"
_DATE_TIME_FORMAT = "[%(asctime)s.%(msecs)03d]"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_SEVERITY_NAMES = {
    TRACE: "TRACE",
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "FATAL",
}

_LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}

_COLOR_YELLOW = "\x1b[33m"
_COLOR_RED = "\x1b[31m"
_COLOR_RESET = "\x1b[0m"

_logger = logging.getLogger(LOGGER_NAME)


class _SeverityFormatter(logging.Formatter):
    """Formatter exposing short severity names, optionally coloured."""

    def __init__(self, fmt: str, colored: bool = False) -> None:
        super().__init__(fmt, datefmt=_DATE_FORMAT)
        self._colored = colored

    def format(self, record: logging.LogRecord) -> str:
        record.severity = _SEVERITY_NAMES.get(record.levelno, record.levelname)
        text = super().format(record)
        if not self._colored:
            return text
        color = ""
        if record.levelno == logging.WARNING:
            color = _COLOR_YELLOW
        elif record.levelno >= logging.ERROR:
            color = _COLOR_RED
        return f"{color}{text}{_COLOR_RESET}"


def _level_for(name: str) -> int:
    try:
        return _LEVELS[name.lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {name}") from None


def init_logging(log_file: str = "", log_level: str = "") -> None:
    """Configure the package logger for the given target and level."""
    target = log_file or ""
    if target in ("", "stdout"):
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        formatter = _SeverityFormatter(_DATE_TIME_FORMAT + _LOG_FORMAT, colored=True)
    elif target.lower() == "stderr":
        handler = logging.StreamHandler(sys.stderr)
        formatter = _SeverityFormatter(_DATE_TIME_FORMAT + _LOG_FORMAT, colored=True)
    elif target == "stdout-journal":
        handler = logging.StreamHandler(sys.stdout)
        formatter = _SeverityFormatter(_LOG_FORMAT)
    else:
        handler = logging.FileHandler(target, mode="a", encoding="utf-8")
        formatter = _SeverityFormatter(_DATE_TIME_FORMAT + _LOG_FORMAT)
    handler.setFormatter(formatter)

    level_name = log_level or "Warn"
    level = logging.CRITICAL if level_name.lower() == "off" else _level_for(level_name)

    for old in list(_logger.handlers):
        _logger.removeHandler(old)
        old.close()
    _logger.addHandler(handler)
    _logger.setLevel(level)
    _logger.propagate = False


class LogWriter:
    """File-like object logging everything written to it at a fixed level."""

    def __init__(self, level: str) -> None:
        self.level = level

    def write(self, data: Union[str, bytes]) -> int:
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        msg = text.strip()
        level = self.level.lower()
        if level == "error":
            _logger.error(msg)
        elif level == "warn":
            _logger.warning(msg)
        elif level == "info":
            _logger.info(msg)
        return len(data)

    def flush(self) -> None:
        """Flush the handlers of the package logger."""
        for handler in _logger.handlers:
            handler.flush()


def _prefix_of(item: Any) -> str:
    if isinstance(item, str):
        return f"[{item}]"
    if item is None:
        return "[nil]"
    if isinstance(item, Mapping):
        return "".join(f"[{item[key]}]" for key in CONTEXT_KEYS if item.get(key) is not None)
    if hasattr(item, "remote_addr") and hasattr(item, "local_addr"):
        return f"[{item.remote_addr}->{item.local_addr}]"
    if hasattr(item, "peer_name"):
        return f"[{item.peer_name}]"
    if hasattr(item, "name"):
        return f"[{item.name}]"
    raise TypeError(f"unsupported prefix type: {item!r} ({type(item).__name__})")


class LogPrefixer:
    """Logger which prefixes every message with tags derived from objects."""

    def __init__(self, *prefixes: Any) -> None:
        self.prefixes = prefixes

    def prefix(self) -> str:
        return "".join(_prefix_of(item) for item in self.prefixes)

    def _emit(self, level: int, message: str, args: tuple) -> None:
        if not _logger.isEnabledFor(level):
            return
        text = message % args if args else message
        _logger.log(level, f"{self.prefix()} {text}", stacklevel=3)

    def error(self, message: str, *args: Any) -> None:
        self._emit(logging.ERROR, message, args)

    def warning(self, message: str, *args: Any) -> None:
        self._emit(logging.WARNING, message, args)

    def info(self, message: str, *args: Any) -> None:
        self._emit(logging.INFO, message, args)

    def debug(self, message: str, *args: Any) -> None:
        self._emit(logging.DEBUG, message, args)

    def trace(self, message: str, *args: Any) -> None:
        self._emit(TRACE, message, args)

    def log_errors(self, *args: Any) -> None:
        """Log every exception among the arguments at debug level."""
        if not _logger.isEnabledFor(logging.DEBUG):
            return
        for item in args:
            if not isinstance(item, BaseException):
                continue
            self._emit(logging.DEBUG, "got error: %s", (item,))
            tb: Optional[Any] = item.__traceback__
            stack = "".join(traceback.format_tb(tb)) if tb else "".join(traceback.format_stack())
            self._emit(logging.DEBUG, "Stacktrace:\n%s", (stack,))


def log_with(*args: Any) -> LogPrefixer:
    """Return a logger prefixed with tags from the given objects."""
    return LogPrefixer(*args)