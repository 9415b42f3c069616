"""
Unit tests for the rotation-aware log follower.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

import pytest

from vault_warden.audit.follower import LogFollower
from vault_warden.core.errors import AuditLogUnavailableError


def _append(path: Path, text: str) -> None:
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(text)


def _drain(follower: LogFollower, idle_polls: int = 3) -> list[str]:
    """Poll until several consecutive polls produce nothing."""
    lines: list[str] = []
    idle = 0
    while idle < idle_polls:
        line = follower.poll()
        if line is None:
            idle += 1
            continue
        idle = 0
        lines.append(line)
    return lines


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    path = tmp_path / "audit.log"
    path.write_text('{"old": 1}\n{"old": 2}\n', encoding="utf-8")
    return path


@pytest.mark.critical
def test_existing_lines_are_never_replayed(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        assert _drain(follower) == []
        _append(log_path, '{"new": 1}\n')
        assert _drain(follower) == ['{"new": 1}']
    finally:
        follower.close()


def test_cursor_starts_at_end_of_file(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        assert follower.cursor is not None
        assert follower.cursor.offset == log_path.stat().st_size
    finally:
        follower.close()


def test_partial_line_is_held_until_complete(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        _append(log_path, '{"slow":')
        assert _drain(follower) == []
        _append(log_path, ' "writer"}\n')
        assert _drain(follower) == ['{"slow": "writer"}']
    finally:
        follower.close()


def test_offset_tracks_end_of_last_delivered_line(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        start = follower.cursor.offset  # type: ignore[union-attr]
        _append(log_path, "a\nbb\ncc")
        assert follower.poll() == "a"
        assert follower.cursor.offset == start + 2  # type: ignore[union-attr]
        assert follower.poll() == "bb"
        assert follower.cursor.offset == start + 5  # type: ignore[union-attr]
        assert follower.poll() is None
        assert follower.cursor.offset == start + 5  # type: ignore[union-attr]
    finally:
        follower.close()


def test_crlf_line_endings_are_stripped(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        with open(log_path, "ab") as fh:
            fh.write(b'{"a": 1}\r\n')
        assert _drain(follower) == ['{"a": 1}']
    finally:
        follower.close()


@pytest.mark.critical
def test_rename_rotation_keeps_lines_on_both_sides(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        _append(log_path, "before-1\nbefore-2\n")
        os.rename(log_path, str(log_path) + ".1")
        log_path.write_text("after-1\nafter-2\n", encoding="utf-8")

        assert _drain(follower) == ["before-1", "before-2", "after-1", "after-2"]
    finally:
        follower.close()


def test_writes_to_retired_file_after_rename_are_not_lost(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    writer = open(log_path, "a", encoding="utf-8")
    try:
        writer.write("early\n")
        writer.flush()
        assert follower.poll() == "early"

        os.rename(log_path, str(log_path) + ".1")
        writer.write("late\n")
        writer.flush()
        log_path.write_text("fresh\n", encoding="utf-8")

        assert _drain(follower) == ["late", "fresh"]
    finally:
        writer.close()
        follower.close()


def test_partial_tail_of_retired_file_is_delivered(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        _append(log_path, "complete\nunterminated")
        assert follower.poll() == "complete"
        os.rename(log_path, str(log_path) + ".1")
        log_path.write_text("next\n", encoding="utf-8")

        assert _drain(follower) == ["unterminated", "next"]
    finally:
        follower.close()


def test_truncate_in_place_restarts_from_zero(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        _append(log_path, "one\n")
        assert _drain(follower) == ["one"]
        inode = log_path.stat().st_ino

        with open(log_path, "w", encoding="utf-8") as fh:
            fh.write("two\n")
        assert log_path.stat().st_ino == inode

        assert _drain(follower) == ["two"]
        assert follower.cursor is not None
        assert follower.cursor.offset == 4
    finally:
        follower.close()


def test_missing_file_is_retried_until_recreated(
    log_path: Path, captured_diagnostics: list[dict[str, Any]]
) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        os.remove(log_path)
        assert _drain(follower, idle_polls=5) == []
        assert follower.cursor is None

        warnings = [p for p in captured_diagnostics if p["level"] == "WARN"]
        assert len(warnings) == 1
        assert warnings[0]["component"] == "follower"

        log_path.write_text("back\n", encoding="utf-8")
        assert _drain(follower) == ["back"]
    finally:
        follower.close()


@pytest.mark.critical
def test_rewrite_past_old_offset_restarts_from_zero(tmp_path: Path) -> None:
    path = tmp_path / "audit.log"
    path.write_text('{"old": 1}\n', encoding="utf-8")
    follower = LogFollower(str(path))
    follower.open()
    try:
        inode = path.stat().st_ino
        with open(path, "w", encoding="utf-8") as fh:
            fh.write('{"after": 1}\n{"after": 2}\n')
        assert path.stat().st_ino == inode

        assert _drain(follower) == ['{"after": 1}', '{"after": 2}']
    finally:
        follower.close()


@pytest.mark.critical
def test_same_file_returning_after_rename_is_not_replayed(
    log_path: Path, captured_diagnostics: list[dict[str, Any]]
) -> None:
    parked = str(log_path) + ".parked"
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        _append(log_path, '{"new": 1}\n')
        assert _drain(follower) == ['{"new": 1}']

        os.rename(log_path, parked)
        assert _drain(follower) == []
        assert follower.cursor is None

        os.rename(parked, log_path)
        assert _drain(follower) == []
        _append(log_path, '{"new": 2}\n')
        assert _drain(follower) == ['{"new": 2}']
    finally:
        follower.close()

    messages = [p["message"] for p in captured_diagnostics]
    assert "audit log came back unchanged, resuming" in messages


def test_partial_line_survives_file_briefly_missing(log_path: Path) -> None:
    parked = str(log_path) + ".parked"
    follower = LogFollower(str(log_path))
    follower.open()
    try:
        _append(log_path, '{"half":')
        assert _drain(follower) == []

        os.rename(log_path, parked)
        assert _drain(follower) == []
        os.rename(parked, log_path)
        _append(log_path, ' "done"}\n')

        assert _drain(follower) == ['{"half": "done"}']
    finally:
        follower.close()


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() == 0,
    reason="permission bits are not enforced for root",
)
def test_unreadable_directory_is_retried_without_replay(tmp_path: Path) -> None:
    logs = tmp_path / "logs"
    logs.mkdir()
    path = logs / "audit.log"
    path.write_text('{"old": 1}\n', encoding="utf-8")
    follower = LogFollower(str(path))
    follower.open()
    try:
        logs.chmod(0)
        try:
            assert _drain(follower) == []
            assert follower.cursor is None
        finally:
            logs.chmod(0o755)

        assert _drain(follower) == []
        _append(path, '{"new": 1}\n')
        assert _drain(follower) == ['{"new": 1}']
    finally:
        follower.close()


def test_missing_at_start_is_fatal(tmp_path: Path) -> None:
    follower = LogFollower(str(tmp_path / "nope.log"))

    with pytest.raises(AuditLogUnavailableError):
        follower.open()


def test_rejects_non_positive_poll_interval(log_path: Path) -> None:
    with pytest.raises(ValueError):
        LogFollower(str(log_path), poll_interval=0)


def test_close_releases_handle(log_path: Path) -> None:
    follower = LogFollower(str(log_path))
    follower.open()
    handle = follower.cursor.handle  # type: ignore[union-attr]

    follower.close()

    assert handle.closed
    assert follower.cursor is None
    assert follower.closed
    assert follower.poll() is None


@pytest.mark.asyncio
async def test_next_line_waits_for_appended_line(log_path: Path) -> None:
    follower = LogFollower(str(log_path), poll_interval=0.01)
    follower.open()

    async def _writer() -> None:
        await asyncio.sleep(0.05)
        _append(log_path, "later\n")

    task = asyncio.create_task(_writer())
    try:
        line = await asyncio.wait_for(follower.next_line(), timeout=2.0)
        assert line == "later"
    finally:
        await task
        follower.close()


@pytest.mark.asyncio
async def test_next_line_returns_none_when_stop_is_set(log_path: Path) -> None:
    follower = LogFollower(str(log_path), poll_interval=30.0)
    follower.open()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.call_later(0.05, stop.set)
    try:
        line = await asyncio.wait_for(follower.next_line(stop), timeout=2.0)
        assert line is None
    finally:
        follower.close()


@pytest.mark.asyncio
async def test_async_iteration_yields_lines_in_order(log_path: Path) -> None:
    follower = LogFollower(str(log_path), poll_interval=0.01)
    follower.open()
    _append(log_path, "a\nb\nc\n")
    seen: list[str] = []
    try:
        async for line in follower:
            seen.append(line)
            if len(seen) == 3:
                break
    finally:
        follower.close()

    assert seen == ["a", "b", "c"]
