"""
Audit event classification.

Rules are plain data: a matcher predicate plus an intent template. Every
rule is evaluated against every record, so one record may raise several
intents. Matching is case-sensitive substring matching on the raw request
path; paths are never normalized.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Sequence

from ..core.events import SUCCESS_COLOR, NotificationIntent, Severity, utcnow
from ..core.settings import DEFAULT_PRIVILEGED_PATHS
from .models import AuditRecord

Matcher = Callable[[AuditRecord], bool]
IntentTemplate = Callable[[AuditRecord, datetime], NotificationIntent]

PRIVILEGED_ACCESS_TITLE = "🚨 SECURITY ALERT: Privileged Access"
UNSEALED_TITLE = "🔓 Vault Unsealed"
UNSEALED_DESCRIPTION = "Vault has been successfully unsealed."


@dataclass(frozen=True)
class Rule:
    name: str
    matcher: Matcher
    intent: IntentTemplate

    def evaluate(
        self, record: AuditRecord, occurred_at: datetime
    ) -> NotificationIntent | None:
        if not self.matcher(record):
            return None
        return self.intent(record, occurred_at)


def path_contains_any(patterns: Iterable[str]) -> Matcher:
    frozen = tuple(p for p in patterns if p)

    def _match(record: AuditRecord) -> bool:
        return any(p in record.request_path for p in frozen)

    return _match


def privileged_access_rule(
    patterns: Sequence[str] = DEFAULT_PRIVILEGED_PATHS,
) -> Rule:
    def _intent(record: AuditRecord, occurred_at: datetime) -> NotificationIntent:
        return NotificationIntent(
            title=PRIVILEGED_ACCESS_TITLE,
            description=(
                f"**User:** {record.auth_display_name}\n"
                f"**Resource:** `{record.request_path}`"
            ),
            severity=Severity.CRITICAL,
            occurred_at=occurred_at,
        )

    return Rule("privileged-access", path_contains_any(patterns), _intent)


def unseal_success_rule() -> Rule:
    def _match(record: AuditRecord) -> bool:
        return "sys/unseal" in record.request_path and record.succeeded

    def _intent(record: AuditRecord, occurred_at: datetime) -> NotificationIntent:
        return NotificationIntent(
            title=UNSEALED_TITLE,
            description=UNSEALED_DESCRIPTION,
            severity=Severity.INFO,
            occurred_at=occurred_at,
            color=SUCCESS_COLOR,
        )

    return Rule("unseal-success", _match, _intent)


def default_rules(
    privileged_paths: Sequence[str] = DEFAULT_PRIVILEGED_PATHS,
) -> tuple[Rule, ...]:
    """Built-in rule set in priority order."""
    return (privileged_access_rule(privileged_paths), unseal_success_rule())


def classify(
    record: AuditRecord,
    rules: Sequence[Rule],
    *,
    occurred_at: datetime | None = None,
) -> list[NotificationIntent]:
    when = occurred_at or utcnow()
    intents: list[NotificationIntent] = []
    for rule in rules:
        intent = rule.evaluate(record, when)
        if intent is not None:
            intents.append(intent)
    return intents
