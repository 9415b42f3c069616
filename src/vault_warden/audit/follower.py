"""
Rotation-aware, poll-based tail of an append-only log file.

The follower starts at the current end of file so history is never
replayed, then yields every complete line appended afterwards. Partial
lines are held back until their line break arrives. When the file at the
path is replaced (rename + recreate), removed, or truncated in place, the
old handle is drained and released and the path is reopened from offset 0.
An inaccessible path is retried at the poll interval indefinitely; if the
same file comes back, reading resumes where it stopped.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import BinaryIO

from ..core import diagnostics
from ..core.errors import AuditLogUnavailableError

_READ_CHUNK = 64 * 1024
# Bytes kept from just before the read position to detect in-place rewrites
_TAIL_BYTES = 64


@dataclass
class FollowerCursor:
    """Open handle on one incarnation of the followed file.

    ``offset`` is the byte position just past the last delivered line;
    ``pending`` holds bytes read beyond it that do not yet form a line.
    ``tail`` holds the last bytes read, ending at ``position``.
    """

    handle: BinaryIO
    identity: tuple[int, int]
    offset: int = 0
    pending: bytes = field(default=b"", repr=False)
    tail: bytes = field(default=b"", repr=False)

    @property
    def position(self) -> int:
        return self.offset + len(self.pending)

    def consume(self, chunk: bytes) -> None:
        self.pending += chunk
        self.tail = (self.tail + chunk)[-_TAIL_BYTES:]

    def close(self) -> None:
        try:
            self.handle.close()
        except OSError:
            pass


def _identity(st: os.stat_result) -> tuple[int, int]:
    return (st.st_dev, st.st_ino)


def _matches_tail(handle: BinaryIO, end: int, tail: bytes) -> bool:
    """Whether ``tail`` is still what the file holds just before ``end``."""
    if not tail:
        return True
    handle.seek(end - len(tail))
    return handle.read(len(tail)) == tail


def _decode(raw: bytes) -> str:
    return raw.rstrip(b"\r\n").decode("utf-8", errors="replace")


class LogFollower:
    """Lazy, infinite sequence of lines appended to ``path``."""

    def __init__(self, path: str, *, poll_interval: float = 1.0) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self.path = path
        self.poll_interval = poll_interval
        self._cursor: FollowerCursor | None = None
        # Last cursor released by a rotation, kept until the path reopens
        self._retired: FollowerCursor | None = None
        self._carry: str | None = None
        self._opened = False
        self._closed = False
        # Until the first successful open, open at end of file
        self._seek_end_on_open = True
        self._reopen_failures = 0

    @property
    def cursor(self) -> FollowerCursor | None:
        return self._cursor

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """Position the follower at the current end of file.

        Raises:
            AuditLogUnavailableError: nothing exists at ``path``.
        """
        if not os.path.exists(self.path):
            raise AuditLogUnavailableError(
                f"Audit log {self.path} does not exist", path=self.path
            )
        self._opened = True
        self._closed = False
        if self._try_open() is None:
            diagnostics.warn(
                "follower",
                "audit log exists but cannot be opened yet, will keep retrying",
                path=self.path,
            )

    def close(self) -> None:
        self._closed = True
        self._retired = None
        self._carry = None
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None

    def _open_failed(self, exc: OSError) -> None:
        self._reopen_failures += 1
        log = diagnostics.warn if self._reopen_failures == 1 else diagnostics.debug
        log("follower", "cannot open audit log", path=self.path, error=str(exc))

    def _try_open(self) -> FollowerCursor | None:
        try:
            handle = open(self.path, "rb")
        except OSError as exc:
            self._open_failed(exc)
            return None
        try:
            st = os.fstat(handle.fileno())
            cursor = FollowerCursor(handle=handle, identity=_identity(st))
            if self._seek_end_on_open:
                end = handle.seek(0, os.SEEK_END)
                start = max(0, end - _TAIL_BYTES)
                handle.seek(start)
                cursor.tail = handle.read(end - start)
                cursor.offset = start + len(cursor.tail)
            else:
                self._resume(cursor, st.st_size)
        except OSError as exc:
            handle.close()
            self._open_failed(exc)
            return None
        self._cursor = cursor
        self._retired = None
        self._seek_end_on_open = False
        if self._reopen_failures:
            diagnostics.info(
                "follower",
                "audit log reopened",
                path=self.path,
                attempts=self._reopen_failures,
            )
        self._reopen_failures = 0
        return cursor

    def _resume(self, cursor: FollowerCursor, size: int) -> None:
        """Place a reopened cursor: back where it was for the same file, else 0."""
        retired = self._retired
        if retired is not None and retired.identity == cursor.identity:
            end = retired.position
            if size >= end and _matches_tail(cursor.handle, end, retired.tail):
                cursor.offset = retired.offset
                cursor.pending = retired.pending
                cursor.tail = retired.tail
                cursor.handle.seek(end)
                diagnostics.info(
                    "follower",
                    "audit log came back unchanged, resuming",
                    path=self.path,
                    offset=end,
                )
                return
        elif retired is not None and retired.pending:
            # The retired file will not complete this line; deliver it as is
            self._carry = _decode(retired.pending)
        cursor.handle.seek(0)

    def _take_line(self) -> str | None:
        if self._carry is not None:
            line, self._carry = self._carry, None
            return line
        cursor = self._cursor
        if cursor is None:
            return None
        idx = cursor.pending.find(b"\n")
        if idx < 0:
            return None
        raw = cursor.pending[: idx + 1]
        cursor.pending = cursor.pending[idx + 1 :]
        cursor.offset += len(raw)
        return _decode(raw)

    def _rotation_kind(self, cursor: FollowerCursor) -> str | None:
        """Return "missing", "replaced", "truncated" or None when unchanged."""
        try:
            st = os.stat(self.path)
        except OSError:
            return "missing"
        if _identity(st) != cursor.identity:
            return "replaced"
        if st.st_size < cursor.position:
            return "truncated"
        return None

    def _rewritten(self, cursor: FollowerCursor) -> bool:
        """Whether the bytes already read were replaced since the last read."""
        handle = cursor.handle
        try:
            here = handle.tell()
            same = _matches_tail(handle, cursor.position, cursor.tail)
            handle.seek(here)
        except OSError as exc:
            diagnostics.debug(
                "follower", "rewrite check failed", path=self.path, error=str(exc)
            )
            return False
        return not same

    def _rotate(self, cursor: FollowerCursor, kind: str) -> None:
        diagnostics.info(
            "follower",
            "audit log rotated",
            path=self.path,
            kind=kind,
            offset=cursor.offset,
        )
        cursor.close()
        self._cursor = None
        # A truncated file's unfinished line was overwritten, drop it
        self._retired = None if kind == "truncated" else cursor
        self._try_open()

    def _read(self, cursor: FollowerCursor, size: int) -> bytes:
        try:
            return cursor.handle.read(size)
        except OSError as exc:
            # Reported as EOF; the stat check then decides whether to reopen
            diagnostics.debug(
                "follower", "read failed", path=self.path, error=str(exc)
            )
            return b""

    def poll(self) -> str | None:
        """One non-blocking step; returns the next complete line if any."""
        if self._closed:
            return None
        cursor = self._cursor or self._try_open()
        if cursor is None:
            return None

        line = self._take_line()
        if line is not None:
            return line

        chunk = self._read(cursor, _READ_CHUNK)
        if chunk:
            if self._rewritten(cursor):
                self._rotate(cursor, "truncated")
                return self._take_line()
            cursor.consume(chunk)
            return self._take_line()

        kind = self._rotation_kind(cursor)
        if kind is None:
            return None
        if kind != "truncated":
            # Writers holding the old descriptor may have appended since EOF
            chunk = self._read(cursor, -1)
            if chunk:
                cursor.consume(chunk)
                return self._take_line()
        self._rotate(cursor, kind)
        return self._take_line()

    async def next_line(self, stop: asyncio.Event | None = None) -> str | None:
        """Wait for the next line.

        Returns None only when ``stop`` is set or the follower is closed;
        waiting between polls wakes up as soon as ``stop`` is set.
        """
        if not self._opened:
            self.open()
        while not self._closed:
            if stop is not None and stop.is_set():
                return None
            line = self.poll()
            if line is not None:
                return line
            if stop is None:
                await asyncio.sleep(self.poll_interval)
                continue
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        return None

    def __aiter__(self) -> LogFollower:
        return self

    async def __anext__(self) -> str:
        line = await self.next_line()
        if line is None:
            raise StopAsyncIteration
        return line
