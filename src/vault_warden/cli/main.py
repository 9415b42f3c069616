"""
Command-line entry point for vault-warden.

Two modes:

- ``unlock``: one reconciliation pass, meant to be run by a timer.
- ``audit``: follow the audit log until SIGINT/SIGTERM.

Exit status is 0 on success or graceful stop, 1 when the requested
operation failed, 2 for usage or configuration errors.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Sequence

from ..audit.follower import LogFollower
from ..audit.monitor import AuditMonitor
from ..audit.rules import default_rules
from ..core import diagnostics
from ..core.errors import (
    AuditLogUnavailableError,
    ConfigurationError,
    SealStateError,
    UnsealExhaustedError,
)
from ..core.settings import DEFAULT_CONFIG_PATH, Settings, load_settings
from ..metrics.metrics import MetricsCollector
from ..notify.webhook import WebhookNotifier, WebhookNotifierConfig
from ..vault.client import SealStateClient
from ..vault.unseal import UnsealReconciler

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-warden",
        description="Auto-unseal a Vault server and alert on privileged audit events",
    )
    parser.add_argument(
        "-config",
        "--config",
        dest="config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the YAML config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "command",
        choices=("unlock", "audit"),
        help="unlock: one unseal pass; audit: follow the audit log",
    )
    return parser


def build_notifier(
    settings: Settings, metrics: MetricsCollector | None = None
) -> WebhookNotifier:
    return WebhookNotifier(
        WebhookNotifierConfig(
            endpoint=settings.webhook_url,
            timeout_seconds=settings.http.timeout_seconds,
        ),
        metrics=metrics,
    )


def _export_metrics(settings: Settings, metrics: MetricsCollector) -> None:
    path = settings.observability.metrics_textfile
    if not path:
        return
    try:
        metrics.write_textfile(path)
    except OSError as exc:
        diagnostics.warn(
            "cli", "failed to write metrics textfile", path=path, error=str(exc)
        )


async def run_unlock(settings: Settings) -> int:
    metrics = MetricsCollector(enabled=settings.observability.metrics_enabled)
    notifier = build_notifier(settings, metrics)
    client = SealStateClient(
        settings.address,
        timeout_seconds=settings.http.timeout_seconds,
        verify_tls=settings.http.verify_tls,
    )
    reconciler = UnsealReconciler(
        client, notifier, settings.unseal_keys, metrics=metrics
    )
    try:
        result = await reconciler.reconcile()
    except UnsealExhaustedError as exc:
        diagnostics.error("cli", exc.message, error=exc.to_dict())
        return EXIT_FAILURE
    except SealStateError as exc:
        diagnostics.error("cli", "unseal pass failed", error=exc.to_dict())
        return EXIT_FAILURE
    finally:
        await client.stop()
        await notifier.stop()
        _export_metrics(settings, metrics)
    diagnostics.info(
        "cli",
        "unseal pass complete",
        outcome=result.outcome.value,
        keys_submitted=result.keys_submitted,
    )
    return EXIT_OK


def _install_signal_handlers(monitor: AuditMonitor) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.request_stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            continue
        installed.append(sig)
    return installed


async def run_audit(settings: Settings) -> int:
    metrics = MetricsCollector(enabled=settings.observability.metrics_enabled)
    notifier = build_notifier(settings, metrics)
    follower = LogFollower(
        settings.audit_log,
        poll_interval=settings.audit.poll_interval_seconds,
    )
    monitor = AuditMonitor(
        follower,
        notifier,
        default_rules(settings.audit.privileged_paths),
        metrics=metrics,
        name=settings.audit.monitor_name,
    )
    installed = _install_signal_handlers(monitor)
    try:
        await monitor.run()
    except AuditLogUnavailableError as exc:
        diagnostics.error("cli", exc.message, error=exc.to_dict())
        return EXIT_FAILURE
    finally:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)
        await notifier.stop()
        _export_metrics(settings, metrics)
    return EXIT_OK


async def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, load configuration and run the selected mode."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        # argparse already printed usage
        return EXIT_OK if exc.code in (0, None) else EXIT_USAGE

    try:
        settings = load_settings(args.config)
    except ConfigurationError as exc:
        print(f"Config error: {exc.message}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    diagnostics.configure(
        settings.observability.log_level, settings.observability.log_format
    )
    diagnostics.debug("cli", "configuration loaded", **settings.redacted())

    if args.command == "unlock":
        return await run_unlock(settings)
    return await run_audit(settings)


def cli_main() -> int:
    """CLI main function for non-async entry."""
    return asyncio.run(main())


if __name__ == "__main__":
    sys.exit(cli_main())
