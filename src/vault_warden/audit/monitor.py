"""
Audit monitor loop: follower -> parse -> classify -> notify.

The loop has a single suspension point (waiting for the next line) and
wakes up as soon as a stop is requested. A stop never interrupts a line
that is already being handled, and no new line is started afterwards.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Protocol, Sequence

from ..core import diagnostics
from ..core.events import NotificationIntent, Severity
from ..metrics.metrics import MetricsCollector
from .follower import LogFollower
from .models import parse_audit_line
from .rules import Rule, classify, default_rules


class IntentNotifier(Protocol):
    async def notify(
        self, title: str, description: str, severity: Severity = ...
    ) -> bool: ...

    async def notify_intent(self, intent: NotificationIntent) -> bool: ...


class MonitorState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class AuditMonitor:
    """Long-running watcher of the Vault audit log."""

    def __init__(
        self,
        follower: LogFollower,
        notifier: IntentNotifier,
        rules: Sequence[Rule] | None = None,
        *,
        metrics: MetricsCollector | None = None,
        name: str = "Vault Warden",
    ) -> None:
        self._follower = follower
        self._notifier = notifier
        self._rules = tuple(rules) if rules is not None else default_rules()
        self._metrics = metrics
        self._name = name
        self._stop = asyncio.Event()
        self._state = MonitorState.IDLE

    @property
    def state(self) -> MonitorState:
        return self._state

    def request_stop(self) -> None:
        """Ask the loop to shut down; safe to call from a signal handler."""
        if not self._stop.is_set():
            diagnostics.info("monitor", "shutdown requested")
        self._stop.set()

    async def run(self) -> None:
        """Run until `request_stop` is called or the task is cancelled.

        Raises:
            AuditLogUnavailableError: the audit log is missing at startup.
        """
        self._state = MonitorState.STARTING
        diagnostics.info("monitor", "starting", path=self._follower.path)
        await self._notifier.notify(
            f"🛡️ {self._name} Active",
            f"Monitoring audit log `{self._follower.path}`...",
            Severity.INFO,
        )
        try:
            self._follower.open()
        except Exception:
            self._state = MonitorState.STOPPED
            raise

        self._state = MonitorState.RUNNING
        try:
            while not self._stop.is_set():
                line = await self._follower.next_line(self._stop)
                if line is None:
                    break
                await self.handle_line(line)
        finally:
            await self._shutdown()

    async def handle_line(self, line: str) -> list[NotificationIntent]:
        """Parse, classify and notify one raw audit line."""
        record = parse_audit_line(line)
        if self._metrics is not None:
            await self._metrics.record_line(parsed=record is not None)
        if record is None:
            return []
        intents = classify(record, self._rules)
        for intent in intents:
            diagnostics.info(
                "monitor",
                "audit rule matched",
                title=intent.title,
                severity=intent.severity.value,
                path=record.request_path,
            )
            if self._metrics is not None:
                await self._metrics.record_intent(intent.severity.value)
            await self._notifier.notify_intent(intent)
        return intents

    async def _shutdown(self) -> None:
        self._state = MonitorState.SHUTTING_DOWN
        try:
            await self._notifier.notify(
                f"🛑 {self._name} Stopped",
                "Audit log monitoring has stopped.",
                Severity.INFO,
            )
        finally:
            self._follower.close()
            self._state = MonitorState.STOPPED
            diagnostics.info("monitor", "stopped")
