"""
Pooled ``httpx.AsyncClient`` instances for outbound calls.

The pool is bounded; ``acquire()`` waits up to ``acquire_timeout_seconds``
for a free client before raising ``TimeoutError``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx


class HttpClientPool:
    """Bounded pool of lazily created async HTTP clients."""

    def __init__(
        self,
        *,
        name: str,
        max_size: int = 2,
        timeout: float = 10.0,
        verify: bool = True,
        acquire_timeout_seconds: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self.name = name
        self._max_size = max_size
        self._timeout = timeout
        self._verify = verify
        self._acquire_timeout = acquire_timeout_seconds
        self._transport = transport
        self._idle: asyncio.Queue[httpx.AsyncClient] = asyncio.Queue()
        self._created: list[httpx.AsyncClient] = []
        self._started = False

    @property
    def size(self) -> int:
        return len(self._created)

    async def start(self) -> None:
        self._started = True

    async def stop(self) -> None:
        self._started = False
        clients, self._created = self._created, []
        while not self._idle.empty():
            self._idle.get_nowait()
        for client in clients:
            await client.aclose()

    def _new_client(self) -> httpx.AsyncClient:
        client = httpx.AsyncClient(
            timeout=self._timeout,
            verify=self._verify,
            transport=self._transport,
        )
        self._created.append(client)
        return client

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[httpx.AsyncClient]:
        if not self._started:
            await self.start()
        if self._idle.empty() and len(self._created) < self._max_size:
            client = self._new_client()
        else:
            client = await asyncio.wait_for(
                self._idle.get(), timeout=self._acquire_timeout
            )
        try:
            yield client
        finally:
            if client in self._created:
                self._idle.put_nowait(client)
