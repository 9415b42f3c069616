"""
Structured local diagnostics for vault-warden.

Each call produces one payload dict (``ts``, ``level``, ``component``,
``message`` plus caller fields) which is handed to the active writer.
The default writer emits one JSON line per payload to stderr using orjson,
or ``key=value`` text when configured. Writing never raises.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import Any, Callable, Literal

import orjson

Writer = Callable[[dict[str, Any]], None]
LogFormat = Literal["json", "text"]

_LEVELS: dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}
_ALIASES = {"WARNING": "WARN"}

_threshold: int = _LEVELS["INFO"]
_format: LogFormat = "json"


def _render(payload: dict[str, Any]) -> bytes:
    if _format == "text":
        head = f"{payload['ts']} {payload['level']:<5} [{payload['component']}] "
        head += str(payload["message"])
        extras = " ".join(
            f"{k}={v}"
            for k, v in payload.items()
            if k not in {"ts", "level", "component", "message"}
        )
        return (head + (" " + extras if extras else "")).encode("utf-8")
    return orjson.dumps(payload, default=str)


def _stderr_writer(payload: dict[str, Any]) -> None:
    buf = sys.stderr.buffer if hasattr(sys.stderr, "buffer") else None
    line = _render(payload)
    if buf is not None:
        buf.write(line + b"\n")
        buf.flush()
    else:  # pragma: no cover - replaced stderr without a buffer
        sys.stderr.write(line.decode("utf-8") + "\n")
        sys.stderr.flush()


_writer: Writer = _stderr_writer


def configure(level: str = "INFO", fmt: LogFormat = "json") -> None:
    """Set the minimum level and output format for the default writer."""
    global _threshold, _format
    name = _ALIASES.get(level.upper(), level.upper())
    _threshold = _LEVELS.get(name, _LEVELS["INFO"])
    _format = fmt


def set_writer_for_tests(writer: Writer) -> None:
    global _writer
    _writer = writer


def _reset_for_tests() -> None:
    global _writer, _threshold, _format
    _writer = _stderr_writer
    _threshold = _LEVELS["INFO"]
    _format = "json"


def _emit(level: str, component: str, message: str, fields: dict[str, Any]) -> None:
    if _LEVELS[level] < _threshold:
        return
    payload: dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "component": component,
        "message": message,
    }
    payload.update(fields)
    try:
        _writer(payload)
    except Exception:
        # Diagnostics must never interrupt the caller
        pass


def debug(component: str, message: str, **fields: Any) -> None:
    _emit("DEBUG", component, message, fields)


def info(component: str, message: str, **fields: Any) -> None:
    _emit("INFO", component, message, fields)


def warn(component: str, message: str, **fields: Any) -> None:
    _emit("WARN", component, message, fields)


def error(component: str, message: str, **fields: Any) -> None:
    _emit("ERROR", component, message, fields)
