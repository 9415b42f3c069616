"""
One-shot unseal reconciliation.

Checks seal state and, when sealed, submits the configured keys in order
until the server reports unsealed. Keys are neither deduplicated nor
validated, and keys already submitted in a failed pass stay submitted.
Retrying is left to the next scheduled invocation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Sequence

from ..core import diagnostics
from ..core.errors import UnsealExhaustedError
from ..core.events import Severity
from ..metrics.metrics import MetricsCollector
from .client import SealStatus

UNSEALED_TITLE = "🔓 Vault Unsealed"


class SealClient(Protocol):
    async def check_health(self) -> SealStatus: ...

    async def submit_key(self, key: str) -> SealStatus: ...


class Notifier(Protocol):
    async def notify(
        self, title: str, description: str, severity: Severity = ...
    ) -> bool: ...


class UnsealOutcome(str, Enum):
    ALREADY_UNSEALED = "already_unsealed"
    UNSEALED = "unsealed"


@dataclass(frozen=True)
class UnsealResult:
    outcome: UnsealOutcome
    keys_submitted: int
    status: SealStatus


class UnsealReconciler:
    """Bring a sealed server to unsealed using the configured key shares."""

    def __init__(
        self,
        client: SealClient,
        notifier: Notifier,
        keys: Sequence[str],
        *,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._client = client
        self._notifier = notifier
        self._keys = list(keys)
        self._metrics = metrics

    async def reconcile(self) -> UnsealResult:
        """Run a single pass.

        Raises:
            SealStateError: a health or unseal call failed.
            UnsealExhaustedError: all keys were submitted and the server
                is still sealed.
        """
        status = await self._client.check_health()
        if not status.sealed:
            diagnostics.info("unseal", "vault is already unsealed, skipping")
            return UnsealResult(UnsealOutcome.ALREADY_UNSEALED, 0, status)

        diagnostics.info(
            "unseal", "vault is sealed, submitting keys", key_count=len(self._keys)
        )
        submitted = 0
        for key in self._keys:
            status = await self._client.submit_key(key)
            submitted += 1
            if self._metrics is not None:
                await self._metrics.record_key_submitted()
            diagnostics.info(
                "unseal",
                "key submitted",
                index=submitted,
                progress=status.progress,
                threshold=status.threshold,
                sealed=status.sealed,
            )
            if not status.sealed:
                await self._notifier.notify(
                    UNSEALED_TITLE,
                    f"Vault at threshold after {submitted} key(s); "
                    "storage is unsealed and serving requests.",
                    Severity.CRITICAL,
                )
                return UnsealResult(UnsealOutcome.UNSEALED, submitted, status)

        raise UnsealExhaustedError(
            submitted, progress=status.progress, threshold=status.threshold
        )
