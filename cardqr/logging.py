"""cardqr structured logging: console/JSON formatters, audit events and call tracing."""

import functools
import json
import logging
import sys
import time
import traceback
from datetime import datetime, timezone

# AUDIT sits between WARNING and ERROR so pipeline events survive a WARNING threshold
AUDIT = 35
logging.addLevelName(AUDIT, "AUDIT")

ROOT_LOGGER = "cardqr"


def _truncate(value: object, max_len: int = 80) -> str:
    """str() of *value*, cut to *max_len* characters."""
    s = str(value)
    if len(s) > max_len:
        return s[:max_len] + "..."
    return s


def _summarize(value: object) -> str:
    """Short description of an argument or return value.

    Raw image bytes and PIL images are never dumped into the log.
    """
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes[{len(value)}]>"
    if "Image" in type(value).__name__:
        return f"<{type(value).__name__}>"
    if isinstance(value, (str, int, float, bool)) or value is None:
        return _truncate(repr(value), 80)
    if isinstance(value, (list, tuple)):
        return f"{type(value).__name__}[{len(value)}]"
    if isinstance(value, dict):
        return f"dict[{len(value)} keys]"
    return type(value).__name__


def _fields(record: logging.LogRecord) -> dict:
    """Structured parts of a record: event tag, timing, context, free text, traceback."""
    event = getattr(record, "event", None)
    out = {
        "event": event,
        "duration_ms": getattr(record, "duration_ms", None),
        "ctx": getattr(record, "ctx", None) or None,
        "msg": None if event else (record.getMessage() or None),
        "exc": None,
    }
    if record.exc_info and record.exc_info[1]:
        out["exc"] = traceback.format_exception(*record.exc_info)
    return out


def _clock(created: float, fmt: str) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).strftime(fmt)[:-3]


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers and the --log-file sink."""

    def format(self, record):
        f = _fields(record)
        entry = {"ts": _clock(record.created, "%Y-%m-%dT%H:%M:%S.%f") + "Z",
                 "level": record.levelname, "src": record.name}
        for key in ("event", "duration_ms", "ctx", "msg"):
            if f[key] is not None:
                entry[key] = round(f[key], 2) if key == "duration_ms" else f[key]
        if f["exc"]:
            entry["traceback"] = f["exc"]
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line console output, ANSI-coloured by level when attached to a tty."""

    PALETTE = {
        "DEBUG": "36",
        "INFO": "32",
        "AUDIT": "35",
        "WARNING": "33",
        "ERROR": "31",
        "CRITICAL": "31;1",
    }

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def _level(self, name: str) -> str:
        label = f"{name:7s}"
        code = self.PALETTE.get(name)
        return f"\033[{code}m{label}\033[0m" if self.color and code else label

    def format(self, record):
        f = _fields(record)
        line = [_clock(record.created, "%H:%M:%S.%f"), self._level(record.levelname), record.name]
        if f["event"]:
            line.append(f["event"])
        if f["duration_ms"] is not None:
            line.append(f"{f['duration_ms']:.1f}ms")
        if f["ctx"]:
            line.extend(f"{k}={_truncate(v)}" for k, v in f["ctx"].items())
        elif f["msg"]:
            line.append(f["msg"])
        text = " ".join(line)
        if f["exc"]:
            text += "\n" + "".join(f["exc"])
        return text


def setup_logging(level: str = "INFO", log_file: str | None = None, json_format: bool = False):
    """(Re)configure the ``cardqr`` logger tree.

    *level* accepts any standard level name plus ``AUDIT``; unknown names
    fall back to INFO. The console gets JSON when *json_format* is set
    (server deployments); *log_file* always receives JSON lines.
    """
    root = logging.getLogger(ROOT_LOGGER)
    resolved = logging.getLevelName(level.upper())
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    handlers[0].setFormatter(JsonFormatter() if json_format else ConsoleFormatter(color=sys.stderr.isatty()))
    if log_file:
        handlers.append(logging.FileHandler(log_file))
        handlers[-1].setFormatter(JsonFormatter())
    for handler in handlers:
        root.addHandler(handler)


def get_logger(module_name: str) -> logging.Logger:
    """``cardqr.<module_name>``"""
    return logging.getLogger(f"{ROOT_LOGGER}.{module_name}")


def _emit(log: logging.Logger, level: int, event: str, ctx: dict,
          duration_ms: float | None = None, exc_info=None):
    record = log.makeRecord(
        name=log.name, level=level, fn="", lno=0,
        msg="", args=(), exc_info=exc_info,
    )
    record.event = event
    record.ctx = ctx
    if duration_ms is not None:
        record.duration_ms = duration_ms
    log.handle(record)


def audit(event: str, logger: logging.Logger | None = None, **context):
    """Emit an AUDIT-level structured log entry.

    Args:
        event: Machine-readable event tag (e.g., "artifact.published").
        logger: Logger to use. Defaults to the cardqr root.
        **context: Key-value pairs for the event context.
    """
    log = logger or logging.getLogger(ROOT_LOGGER)
    if log.isEnabledFor(AUDIT):
        _emit(log, AUDIT, event, context)


def trace(func=None, *, logger_name: str | None = None):
    """Decorator that auto-logs function entry/exit with timing.

    - DEBUG on entry with (summarized) arguments
    - INFO on exit with duration
    - ERROR on exception with traceback and duration, then re-raises
    """
    def decorator(fn):
        _logger_name = logger_name or fn.__module__.replace(f"{ROOT_LOGGER}.", "")
        log = get_logger(_logger_name)

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            fn_name = fn.__qualname__

            if log.isEnabledFor(logging.DEBUG):
                _emit(log, logging.DEBUG, f"{fn_name}.enter", {
                    "args": [_summarize(a) for a in args],
                    "kwargs": {k: _summarize(v) for k, v in kwargs.items()},
                })

            start = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception:
                elapsed = (time.perf_counter() - start) * 1000
                _emit(log, logging.ERROR, f"{fn_name}.error", {"function": fn_name},
                      duration_ms=elapsed, exc_info=sys.exc_info())
                raise

            elapsed = (time.perf_counter() - start) * 1000
            if log.isEnabledFor(logging.INFO):
                _emit(log, logging.INFO, f"{fn_name}.done", {"result": _summarize(result)},
                      duration_ms=elapsed)
            return result

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
