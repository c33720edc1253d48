"""Asynchronous client for the GrooveTask HTTP API.

Every route the server exposes has a coroutine here. Responses are returned
as decoded JSON; anything other than a 2xx answer, a timeout or a transport
failure raises :class:`SyncError` so callers handle all failures the same
way.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from ..core.models import DailyStat, Task


class SyncError(Exception):
    """A request that did not succeed.

    ``status`` is the HTTP status, or ``0`` when no response arrived.
    """

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}" if status else message)


class GrooveTaskClient:
    """Thin wrapper keeping the session cookie between calls."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Store ``base_url`` and an optional preconfigured ``client``."""
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self.client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise SyncError(0, f"Request failed: {exc}") from exc
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error:
            message = data.get("error") if isinstance(data, dict) else None
            raise SyncError(response.status_code, message or response.reason_phrase)
        return data

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    async def register(
        self, email: str, password: str, language: str | None = None
    ) -> dict[str, Any]:
        payload = {"email": email, "password": password, "language": language}
        return (await self._request("POST", "/api/auth/register", payload))["user"]

    async def login(self, identifier: str, password: str) -> dict[str, Any]:
        payload = {"identifier": identifier, "password": password}
        return (await self._request("POST", "/api/auth/login", payload))["user"]

    async def logout(self) -> None:
        await self._request("POST", "/api/auth/logout")

    async def me(self) -> dict[str, Any]:
        return (await self._request("GET", "/api/auth/me"))["user"]

    async def check_username(self, username: str) -> dict[str, Any]:
        return await self._request(
            "GET", "/api/auth/check-username", params={"username": username}
        )

    # ------------------------------------------------------------------
    # Personal data
    # ------------------------------------------------------------------
    async def update_settings(self, **changes: Any) -> dict[str, Any]:
        """Send settings changes, e.g. ``themeId="neon-pink"``."""
        payload = {k: v for k, v in changes.items() if v is not None}
        return await self._request("POST", "/api/user/settings", payload)

    async def sync_data(
        self,
        tasks: Sequence[Task] | None = None,
        history: Sequence[DailyStat] | None = None,
        order: Sequence[str] | None = None,
        force_empty: bool = False,
        known_ids: Sequence[str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"forceEmpty": force_empty}
        if tasks is not None:
            payload["tasks"] = [t.dump() for t in tasks]
        if history is not None:
            payload["history"] = [s.dump() for s in history]
        if order is not None:
            payload["order"] = list(order)
        if known_ids is not None:
            payload["knownIds"] = list(known_ids)
        await self._request("POST", "/api/user/data", payload)

    async def put_task(self, task: Task) -> None:
        await self._request("PUT", f"/api/user/tasks/{task.id}", task.dump())

    async def delete_task(self, task_id: str) -> bool:
        return (await self._request("DELETE", f"/api/user/tasks/{task_id}"))["success"]

    # ------------------------------------------------------------------
    # Groups and invites
    # ------------------------------------------------------------------
    async def list_groups(self) -> list[dict[str, Any]]:
        return (await self._request("GET", "/api/groups"))["groups"]

    async def create_group(self, name: str) -> dict[str, Any]:
        return (await self._request("POST", "/api/groups", {"name": name}))["group"]

    async def delete_group(self, gid: str) -> None:
        await self._request("DELETE", f"/api/groups/{gid}")

    async def get_members(self, gid: str) -> list[dict[str, Any]]:
        return (await self._request("GET", f"/api/groups/{gid}/members"))["members"]

    async def invite(self, gid: str, username: str) -> None:
        await self._request("POST", f"/api/groups/{gid}/invite", {"username": username})

    async def kick(self, gid: str, user_id: str) -> None:
        await self._request("POST", f"/api/groups/{gid}/kick", {"userId": user_id})

    async def leave(self, gid: str) -> None:
        await self._request("POST", f"/api/groups/{gid}/leave")

    async def list_invites(self) -> list[dict[str, Any]]:
        return (await self._request("GET", "/api/invites"))["invites"]

    async def accept_invite(self, gid: str) -> dict[str, Any]:
        return (await self._request("POST", f"/api/invites/{gid}/accept"))["group"]

    async def decline_invite(self, gid: str) -> None:
        await self._request("POST", f"/api/invites/{gid}/decline")

    # ------------------------------------------------------------------
    # Group tasks and chat
    # ------------------------------------------------------------------
    async def get_group_tasks(self, gid: str) -> list[Task]:
        data = await self._request("GET", f"/api/groups/{gid}/tasks")
        return [Task.model_validate(t) for t in data["tasks"]]

    async def save_group_tasks(
        self,
        gid: str,
        tasks: Sequence[Task],
        force_empty: bool = False,
        known_ids: Sequence[str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "tasks": [t.dump() for t in tasks],
            "forceEmpty": force_empty,
        }
        if known_ids is not None:
            payload["knownIds"] = list(known_ids)
        await self._request("POST", f"/api/groups/{gid}/tasks", payload)

    async def save_group_order(self, gid: str, order: Sequence[str]) -> None:
        await self._request("POST", f"/api/groups/{gid}/order", {"order": list(order)})

    async def put_group_task(self, gid: str, task: Task) -> None:
        await self._request("PUT", f"/api/groups/{gid}/tasks/{task.id}", task.dump())

    async def delete_group_task(self, gid: str, task_id: str) -> bool:
        data = await self._request("DELETE", f"/api/groups/{gid}/tasks/{task_id}")
        return data["success"]

    async def get_chat(self, gid: str, limit: int | None = None) -> list[dict[str, Any]]:
        params = {"limit": limit} if limit is not None else None
        data = await self._request("GET", f"/api/groups/{gid}/chat", params=params)
        return data["messages"]

    async def post_chat(self, gid: str, text: str) -> dict[str, Any]:
        data = await self._request("POST", f"/api/groups/{gid}/chat", {"text": text})
        return data["message"]

    async def close(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`."""
        await self.client.aclose()
