"""
vault-warden: keeps a Vault server unsealed and reports privileged
operations from its audit log to a webhook.
"""

from ._version import __version__
from .audit.follower import LogFollower
from .audit.monitor import AuditMonitor, MonitorState
from .audit.rules import Rule, classify, default_rules
from .core.events import NotificationIntent, Severity
from .core.settings import Settings, load_settings
from .notify.webhook import WebhookNotifier
from .vault.client import SealStateClient, SealStatus
from .vault.unseal import UnsealReconciler, UnsealResult

__all__ = [
    "AuditMonitor",
    "LogFollower",
    "MonitorState",
    "NotificationIntent",
    "Rule",
    "SealStateClient",
    "SealStatus",
    "Settings",
    "Severity",
    "UnsealReconciler",
    "UnsealResult",
    "WebhookNotifier",
    "__version__",
    "classify",
    "default_rules",
    "load_settings",
]
