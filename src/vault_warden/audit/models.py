"""Parsed audit log records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import orjson


@dataclass(frozen=True)
class AuditRecord:
    """The fields of one audit line the classifier looks at."""

    request_path: str = ""
    auth_display_name: str = ""
    error_text: str = ""

    @property
    def succeeded(self) -> bool:
        return self.error_text == ""


def _section(data: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = data.get(key)
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    return None


def _text(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return None


def parse_audit_line(line: str | bytes) -> AuditRecord | None:
    """Parse one newline-delimited JSON audit entry.

    Returns None for anything that is not a JSON object with the expected
    shape; such lines are skipped by the monitor. Missing fields read as
    empty strings.
    """
    try:
        data = orjson.loads(line)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    request = _section(data, "request")
    auth = _section(data, "auth")
    if request is None or auth is None:
        return None

    path = _text(request, "path")
    display_name = _text(auth, "display_name")
    error_text = _text(data, "error")
    if path is None or display_name is None or error_text is None:
        return None

    return AuditRecord(
        request_path=path,
        auth_display_name=display_name,
        error_text=error_text,
    )
