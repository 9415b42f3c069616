"""
Async-first counters for vault-warden.

In-memory counters are always tracked for quick assertions in tests.
Prometheus counters on an isolated registry are added when enabled; they
can be exported with `write_textfile` for the node-exporter textfile
collector since the tool does not run an HTTP server.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry, Counter, write_to_textfile


@dataclass
class WardenMetrics:
    """Captured runtime counters."""

    lines_read: int = 0
    lines_dropped: int = 0
    intents: dict[str, int] = field(default_factory=dict)
    notifications_sent: int = 0
    notifications_failed: int = 0
    keys_submitted: int = 0


class MetricsCollector:
    """Process-scoped metrics collector; safe no-op exporter when disabled."""

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = asyncio.Lock()
        self._state = WardenMetrics()

        self._c_lines: Any | None = None
        self._c_dropped: Any | None = None
        self._c_intents: Any | None = None
        self._c_notifications: Any | None = None
        self._c_keys: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            self._registry = CollectorRegistry()
            self._c_lines = Counter(
                "vault_warden_audit_lines_total",
                "Audit log lines read by the monitor",
                registry=self._registry,
            )
            self._c_dropped = Counter(
                "vault_warden_audit_lines_dropped_total",
                "Audit log lines skipped because they did not parse",
                registry=self._registry,
            )
            self._c_intents = Counter(
                "vault_warden_alerts_total",
                "Notification intents raised by the classifier",
                ["severity"],
                registry=self._registry,
            )
            self._c_notifications = Counter(
                "vault_warden_notifications_total",
                "Webhook notification attempts",
                ["outcome"],
                registry=self._registry,
            )
            self._c_keys = Counter(
                "vault_warden_unseal_keys_submitted_total",
                "Unseal keys submitted to the server",
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        return self._registry

    async def record_line(self, *, parsed: bool) -> None:
        async with self._lock:
            self._state.lines_read += 1
            if not parsed:
                self._state.lines_dropped += 1
        if self._c_lines is not None:
            self._c_lines.inc()
        if not parsed and self._c_dropped is not None:
            self._c_dropped.inc()

    async def record_intent(self, severity: str) -> None:
        async with self._lock:
            self._state.intents[severity] = self._state.intents.get(severity, 0) + 1
        if self._c_intents is not None:
            self._c_intents.labels(severity=severity).inc()

    async def record_notification(self, *, delivered: bool) -> None:
        async with self._lock:
            if delivered:
                self._state.notifications_sent += 1
            else:
                self._state.notifications_failed += 1
        if self._c_notifications is not None:
            outcome = "delivered" if delivered else "failed"
            self._c_notifications.labels(outcome=outcome).inc()

    async def record_key_submitted(self) -> None:
        async with self._lock:
            self._state.keys_submitted += 1
        if self._c_keys is not None:
            self._c_keys.inc()

    async def snapshot(self) -> WardenMetrics:
        async with self._lock:
            return WardenMetrics(
                lines_read=self._state.lines_read,
                lines_dropped=self._state.lines_dropped,
                intents=dict(self._state.intents),
                notifications_sent=self._state.notifications_sent,
                notifications_failed=self._state.notifications_failed,
                keys_submitted=self._state.keys_submitted,
            )

    def write_textfile(self, path: str) -> bool:
        """Export the registry to ``path``; returns False when disabled."""
        if self._registry is None:
            return False
        write_to_textfile(path, self._registry)
        return True
