"""Upstash adapter implementing :class:`~groovetask.adapters.base.KeyValueBackend`.

Upstash exposes Redis over a small REST API: a command is a JSON array
POSTed to the database URL and a transaction is an array of such arrays
POSTed to ``/multi-exec``. Talking to it with :mod:`httpx` keeps the
adapter fully asynchronous without pulling in a Redis driver.
"""

from __future__ import annotations

from typing import Any

import httpx

from ..errors import BackendError
from .base import Command, KeyValueBackend


def _wire(command: Command) -> list[Any]:
    return [arg if isinstance(arg, str) else str(arg) for arg in command]


class UpstashBackend(KeyValueBackend):
    """Backend that sends commands to the Upstash REST API."""

    def __init__(
        self,
        url: str,
        token: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Store the database ``url``, auth ``token`` and optional ``client``."""
        self.url = url.rstrip("/")
        self.token = token
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def _post(self, url: str, payload: Any) -> Any:
        try:
            response = await self.client.post(url, json=payload, headers=self.headers)
        except httpx.HTTPError as exc:
            raise BackendError(f"KV request failed: {exc}") from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise BackendError(
                f"KV returned a non-JSON response ({response.status_code})"
            ) from exc
        if isinstance(data, dict) and "error" in data:
            raise BackendError(f"KV error: {data['error']}")
        if response.is_error:
            raise BackendError(f"KV request failed with status {response.status_code}")
        return data

    # ------------------------------------------------------------------
    async def execute(self, *command: Any) -> Any:
        """Run one command.

        Parameters
        ----------
        command:
            Redis command name followed by its arguments.

        """
        data = await self._post(self.url, _wire(list(command)))
        return data.get("result")

    async def execute_many(self, commands: list[Command]) -> list[Any]:
        """Run ``commands`` inside a MULTI/EXEC transaction.

        Returns the replies in command order; the first per-command error
        aborts with :class:`BackendError`.
        """
        data = await self._post(
            f"{self.url}/multi-exec", [_wire(c) for c in commands]
        )
        results: list[Any] = []
        for item in data:
            if "error" in item:
                raise BackendError(f"KV error: {item['error']}")
            results.append(item.get("result"))
        return results

    async def close(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`."""
        await self.client.aclose()
