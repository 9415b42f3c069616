"""
Webhook notifier.

POSTs a single Discord-style embed to the configured webhook. Delivery is
best-effort: failures are reported through diagnostics and the call
returns False, it never raises to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..core import diagnostics
from ..core.events import SEVERITY_COLORS, NotificationIntent, Severity, utcnow
from ..core.resources import HttpClientPool
from ..metrics.metrics import MetricsCollector

__all__ = ["WebhookNotifier", "WebhookNotifierConfig", "build_payload"]

_SUCCESS_CODES = frozenset({200, 204})


class WebhookNotifierConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    endpoint: str
    timeout_seconds: float = Field(default=10.0, gt=0.0)


def _rfc3339(ts: datetime) -> str:
    if ts.tzinfo is None:
        return ts.isoformat() + "Z"
    return ts.isoformat()


def build_payload(
    title: str,
    description: str,
    color: int,
    timestamp: datetime,
) -> dict[str, Any]:
    return {
        "embeds": [
            {
                "title": title,
                "description": description,
                "color": color,
                "timestamp": _rfc3339(timestamp),
            }
        ]
    }


class WebhookNotifier:
    """Best-effort sender of titled, colored, timestamped messages."""

    name = "webhook"

    def __init__(
        self,
        config: WebhookNotifierConfig | dict[str, Any],
        *,
        metrics: MetricsCollector | None = None,
        pool: HttpClientPool | None = None,
    ) -> None:
        cfg = (
            config
            if isinstance(config, WebhookNotifierConfig)
            else WebhookNotifierConfig(**config)
        )
        self._config = cfg
        self._metrics = metrics
        self._pool = pool or HttpClientPool(
            name="webhook",
            max_size=2,
            timeout=cfg.timeout_seconds,
        )
        self._last_status: int | None = None
        self._last_error: str | None = None

    async def start(self) -> None:
        await self._pool.start()

    async def stop(self) -> None:
        await self._pool.stop()

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        async with self._pool.acquire() as client:
            return await client.post(self._config.endpoint, json=payload)

    async def notify(
        self,
        title: str,
        description: str,
        severity: Severity = Severity.INFO,
        timestamp: datetime | None = None,
        *,
        color: int | None = None,
    ) -> bool:
        """Send one message; returns whether the webhook accepted it."""
        payload = build_payload(
            title,
            description,
            color if color is not None else SEVERITY_COLORS[severity],
            timestamp or utcnow(),
        )
        delivered = False
        try:
            resp = await self._post(payload)
            self._last_status = resp.status_code
            self._last_error = None
            if resp.status_code in _SUCCESS_CODES:
                delivered = True
            else:
                snippet = None
                try:
                    snippet = resp.text[:256]
                except Exception:
                    snippet = None
                diagnostics.warn(
                    "notifier",
                    "webhook rejected notification",
                    status_code=resp.status_code,
                    title=title,
                    body=snippet,
                )
        except Exception as exc:
            self._last_status = None
            self._last_error = str(exc)
            diagnostics.warn(
                "notifier",
                "exception while delivering notification",
                title=title,
                error=f"{type(exc).__name__}: {exc}",
            )
        if self._metrics is not None:
            await self._metrics.record_notification(delivered=delivered)
        return delivered

    async def notify_intent(self, intent: NotificationIntent) -> bool:
        return await self.notify(
            intent.title,
            intent.description,
            intent.severity,
            intent.occurred_at,
            color=intent.resolved_color(),
        )

    async def health_check(self) -> bool:
        return (
            self._last_error is None
            and self._last_status is not None
            and self._last_status in _SUCCESS_CODES
        )
