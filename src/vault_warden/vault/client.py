"""
Seal-state client for the Vault HTTP API.

Wraps ``GET /v1/sys/health`` and ``PUT /v1/sys/unseal``. Vault answers
the health endpoint with a different status code per state (200 active,
429 standby, 472/473 DR/performance standby, 501 uninitialized, 503
sealed); all of them carry a readable body and count as successful reads.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core import diagnostics
from ..core.errors import ErrorCategory, SealStateError
from ..core.resources import HttpClientPool

HEALTH_PATH = "/v1/sys/health"
UNSEAL_PATH = "/v1/sys/unseal"

READABLE_HEALTH_CODES = frozenset({200, 429, 472, 473, 501, 503})


class SealStatus(BaseModel):
    """Seal state as reported by one health or unseal response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    sealed: bool
    initialized: bool = True
    progress: int = 0
    threshold: int = Field(default=0, alias="t")


class SealStateClient:
    """Two-call client: health check and key submission."""

    def __init__(
        self,
        address: str,
        *,
        pool: HttpClientPool | None = None,
        timeout_seconds: float = 10.0,
        verify_tls: bool = True,
    ) -> None:
        self._address = address.rstrip("/")
        self._pool = pool or HttpClientPool(
            name="vault",
            max_size=1,
            timeout=timeout_seconds,
            verify=verify_tls,
        )

    async def start(self) -> None:
        await self._pool.start()

    async def stop(self) -> None:
        await self._pool.stop()

    async def check_health(self) -> SealStatus:
        resp = await self._request("GET", HEALTH_PATH)
        if resp.status_code not in READABLE_HEALTH_CODES:
            raise SealStateError(
                f"Unexpected health status {resp.status_code}",
                category=ErrorCategory.PROTOCOL,
                status_code=resp.status_code,
            )
        return self._parse(resp)

    async def submit_key(self, key: str) -> SealStatus:
        resp = await self._request("PUT", UNSEAL_PATH, json={"key": key})
        if resp.status_code != 200:
            raise SealStateError(
                f"Unseal request rejected with status {resp.status_code}",
                category=ErrorCategory.PROTOCOL,
                status_code=resp.status_code,
            )
        return self._parse(resp)

    async def _request(
        self, method: str, path: str, *, json: Any | None = None
    ) -> httpx.Response:
        url = f"{self._address}{path}"
        try:
            async with self._pool.acquire() as client:
                resp = await client.request(method, url, json=json)
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            raise SealStateError(
                f"{method} {path} failed: {type(exc).__name__}",
                cause=exc,
                url=url,
            ) from exc
        diagnostics.debug(
            "seal-client",
            "vault response",
            method=method,
            path=path,
            status_code=resp.status_code,
        )
        return resp

    @staticmethod
    def _parse(resp: httpx.Response) -> SealStatus:
        try:
            return SealStatus.model_validate_json(resp.content)
        except ValidationError as exc:
            raise SealStateError(
                "Unparseable seal status body",
                category=ErrorCategory.PROTOCOL,
                cause=exc,
                status_code=resp.status_code,
            ) from exc
