"""
Notification events shared by the audit pipeline and the unseal reconciler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Severity(str, Enum):
    """Notification severity; drives the embed color."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


# Embed colors as RGB integers
SEVERITY_COLORS: dict[Severity, int] = {
    Severity.INFO: 0x3498DB,
    Severity.WARNING: 0xF1C40F,
    Severity.CRITICAL: 0xE74C3C,
}
SUCCESS_COLOR = 0x2ECC71


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NotificationIntent:
    """A message the classifier wants delivered; never queued or persisted."""

    title: str
    description: str
    severity: Severity
    occurred_at: datetime = field(default_factory=utcnow)
    color: int | None = None

    def resolved_color(self) -> int:
        if self.color is not None:
            return self.color
        return SEVERITY_COLORS[self.severity]
