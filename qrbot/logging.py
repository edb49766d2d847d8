"""qrbot structured logging: AUDIT events, JSON lines and call tracing."""

import functools
import json
import logging
import sys
import time
import traceback
from datetime import datetime, timezone

# Ledger and render events sit above WARNING so they survive a quiet console.
AUDIT = 35
logging.addLevelName(AUDIT, "AUDIT")

ROOT_NAME = "qrbot"


def _truncate(value: object, max_len: int = 80) -> str:
    s = str(value)
    if len(s) > max_len:
        return s[:max_len] + "..."
    return s


def _summarize(value: object) -> str:
    """Short, log-safe description of an argument or return value."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<{len(value)} bytes>"
    if "Image" in type(value).__name__:
        size = getattr(value, "size", None)
        return f"<{type(value).__name__} {size[0]}x{size[1]}>" if size else f"<{type(value).__name__}>"
    if isinstance(value, (str, int, float, bool)) or value is None:
        return _truncate(repr(value))
    if isinstance(value, (list, tuple)):
        return f"{type(value).__name__}[{len(value)}]"
    if isinstance(value, dict):
        return f"dict[{len(value)} keys]"
    text = repr(value)
    return text if len(text) <= 100 else f"<{type(value).__name__}>"


def _timestamp(record: logging.LogRecord, fmt: str) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(fmt)[:-3]


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record):
        entry = {
            "ts": _timestamp(record, "%Y-%m-%dT%H:%M:%S.%f") + "Z",
            "level": record.levelname,
            "src": record.name,
        }
        event = getattr(record, "event", None)
        if event:
            entry["event"] = event
        else:
            entry["msg"] = record.getMessage()
        if hasattr(record, "duration_ms"):
            entry["duration_ms"] = round(record.duration_ms, 2)
        if getattr(record, "ctx", None):
            entry["ctx"] = record.ctx
        if record.exc_info and record.exc_info[1]:
            entry["traceback"] = traceback.format_exception(*record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Coloured single-line console output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "AUDIT": "\033[35m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[31m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname, "")
        parts = [
            _timestamp(record, "%H:%M:%S.%f"),
            f"{color}{record.levelname:5s}{self.RESET}",
            f"[{record.name}]",
        ]

        event = getattr(record, "event", None)
        if event:
            parts.append(event)
        if hasattr(record, "duration_ms"):
            parts.append(f"({record.duration_ms:.1f}ms)")

        ctx = getattr(record, "ctx", None)
        if ctx:
            parts.append(" ".join(f"{k}={_truncate(v)}" for k, v in ctx.items()))
        elif not event:
            parts.append(record.getMessage())

        if record.exc_info and record.exc_info[1]:
            parts.append("\n" + "".join(traceback.format_exception(*record.exc_info)))
        return " ".join(parts)


def setup_logging(level: str = "INFO", log_file: str | None = None, json_format: bool = False):
    """Configure the ``qrbot`` logger tree.

    Args:
        level: DEBUG, INFO, AUDIT, WARNING or ERROR.
        log_file: Optional path; always written as JSON lines.
        json_format: Emit JSON on the console as well.
    """
    root = logging.getLogger(ROOT_NAME)
    name = level.upper()
    root.setLevel(AUDIT if name == "AUDIT" else getattr(logging, name, logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter() if json_format else ConsoleFormatter())
    root.addHandler(console)

    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setFormatter(JsonFormatter())
        root.addHandler(fh)
    return root


def get_logger(module_name: str) -> logging.Logger:
    """Logger under the ``qrbot`` namespace."""
    return logging.getLogger(f"{ROOT_NAME}.{module_name}")


def _emit(log, level, event, ctx, duration_ms=None, exc_info=None):
    if not log.isEnabledFor(level):
        return
    record = log.makeRecord(log.name, level, "", 0, "", (), exc_info)
    record.event = event
    record.ctx = ctx
    if duration_ms is not None:
        record.duration_ms = duration_ms
    log.handle(record)


def audit(event: str, logger: logging.Logger | None = None, **context):
    """Emit an AUDIT record, e.g. ``audit("ledger.consumed", user_id=1)``."""
    _emit(logger or logging.getLogger(ROOT_NAME), AUDIT, event, context)


def trace(func=None, *, logger_name: str | None = None):
    """Log entry (DEBUG), exit with timing (INFO) and failures (ERROR)."""

    def decorator(fn):
        log = get_logger(logger_name or fn.__module__.removeprefix(f"{ROOT_NAME}."))

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            name = fn.__name__
            if log.isEnabledFor(logging.DEBUG):
                _emit(log, logging.DEBUG, f"{name}.enter", {
                    "args": [_summarize(a) for a in args],
                    "kwargs": {k: _summarize(v) for k, v in kwargs.items()},
                })

            start = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception:
                elapsed = (time.perf_counter() - start) * 1000
                _emit(log, logging.ERROR, f"{name}.error", {"function": name},
                      duration_ms=elapsed, exc_info=sys.exc_info())
                raise
            elapsed = (time.perf_counter() - start) * 1000
            _emit(log, logging.INFO, f"{name}.done", {"result": _summarize(result)},
                  duration_ms=elapsed)
            return result

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
