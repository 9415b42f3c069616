"""
Root pytest configuration.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "critical: Tests that must never fail - core functionality",
    )
    config.addinivalue_line(
        "markers",
        "security: Security-critical tests (alert rules, key handling)",
    )
    config.addinivalue_line(
        "markers",
        "slow: Tests that take >1 second",
    )


@pytest.fixture(autouse=True)
def reset_diagnostics() -> Generator[None, None, None]:
    """Restore the default diagnostics writer and level around each test."""
    import vault_warden.core.diagnostics as diag

    diag._reset_for_tests()
    yield
    diag._reset_for_tests()


@pytest.fixture
def captured_diagnostics() -> Generator[list[dict[str, Any]], None, None]:
    """Collect diagnostics payloads instead of writing them to stderr."""
    import vault_warden.core.diagnostics as diag

    captured: list[dict[str, Any]] = []
    diag.configure("DEBUG")
    diag.set_writer_for_tests(captured.append)
    yield captured
