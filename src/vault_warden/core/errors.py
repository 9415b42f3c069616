"""
Structured error types for vault-warden.

Every component raises a subclass of `WardenError` to its direct caller.
Only the CLI entry points decide whether an error is fatal.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Where an error originated."""

    CONFIG = "config"
    NETWORK = "network"
    PROTOCOL = "protocol"
    FILESYSTEM = "filesystem"
    UNSEAL = "unseal"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WardenError(Exception):
    """Base error carrying a category, severity and optional cause."""

    default_category = ErrorCategory.PROTOCOL
    default_severity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        severity: ErrorSeverity | None = None,
        cause: BaseException | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.cause = cause
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "error": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
        }
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        data.update(self.context)
        return data


class ConfigurationError(WardenError):
    """Configuration is missing, unreadable or invalid."""

    default_category = ErrorCategory.CONFIG
    default_severity = ErrorSeverity.CRITICAL


class SealStateError(WardenError):
    """A health or unseal call failed at the transport or protocol level."""

    default_category = ErrorCategory.NETWORK
    default_severity = ErrorSeverity.HIGH


class UnsealExhaustedError(WardenError):
    """Every configured key was submitted and the server is still sealed."""

    default_category = ErrorCategory.UNSEAL
    default_severity = ErrorSeverity.HIGH

    def __init__(
        self,
        keys_submitted: int,
        *,
        progress: int | None = None,
        threshold: int | None = None,
    ) -> None:
        super().__init__(
            f"Vault still sealed after {keys_submitted} keys",
            keys_submitted=keys_submitted,
            progress=progress,
            threshold=threshold,
        )
        self.keys_submitted = keys_submitted
        self.progress = progress
        self.threshold = threshold


class AuditLogUnavailableError(WardenError):
    """The audit log path does not exist when monitoring starts."""

    default_category = ErrorCategory.FILESYSTEM
    default_severity = ErrorSeverity.CRITICAL


__all__ = [
    "AuditLogUnavailableError",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorSeverity",
    "SealStateError",
    "UnsealExhaustedError",
    "WardenError",
]
