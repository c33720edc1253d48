"""Base interface for key-value backends.

Backends speak Redis command arrays (``["SET", "k", "v", "NX"]``). Only
:meth:`KeyValueBackend.execute` and :meth:`KeyValueBackend.execute_many`
are backend specific; the typed helpers used by the stores are built on
top of them here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

Command = list[Any]


def _pairs(flat: list[Any] | None) -> dict[str, str]:
    """Turn a flat ``[field, value, field, value]`` reply into a dict."""
    if not flat:
        return {}
    if isinstance(flat, dict):
        return dict(flat)
    return {str(flat[i]): flat[i + 1] for i in range(0, len(flat), 2)}


def _hset_command(key: str, mapping: Mapping[str, str]) -> Command:
    command: Command = ["HSET", key]
    for field, value in mapping.items():
        command.extend([field, value])
    return command


class KeyValueBackend(ABC):
    """Abstract key-value store with Redis semantics."""

    @abstractmethod
    async def execute(self, *command: Any) -> Any:
        """Run a single command and return its raw reply."""

    @abstractmethod
    async def execute_many(self, commands: list[Command]) -> list[Any]:
        """Run ``commands`` as one atomic unit and return their replies."""

    async def close(self) -> None:
        """Release any resources held by the backend."""

    def pipeline(self) -> Pipeline:
        return Pipeline(self)

    # ------------------------------------------------------------------
    # Strings
    async def get(self, key: str) -> str | None:
        return await self.execute("GET", key)

    async def mget(self, *keys: str) -> list[str | None]:
        if not keys:
            return []
        return list(await self.execute("MGET", *keys))

    async def set(self, key: str, value: str, *, nx: bool = False) -> bool:
        """Store ``value`` under ``key``.

        With ``nx`` the write only happens when ``key`` has no value; the
        return value tells whether this call performed the write. This is
        the claim primitive every uniqueness guarantee relies on.
        """
        command: Command = ["SET", key, value]
        if nx:
            command.append("NX")
        return await self.execute(*command) == "OK"

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.execute("DEL", *keys))

    async def exists(self, key: str) -> bool:
        return int(await self.execute("EXISTS", key)) > 0

    async def type(self, key: str) -> str:
        return str(await self.execute("TYPE", key))

    # ------------------------------------------------------------------
    # Hashes
    async def hgetall(self, key: str) -> dict[str, str]:
        return _pairs(await self.execute("HGETALL", key))

    async def hkeys(self, key: str) -> list[str]:
        return list(await self.execute("HKEYS", key) or [])

    async def hset(self, key: str, mapping: Mapping[str, str]) -> int:
        if not mapping:
            return 0
        return int(await self.execute(*_hset_command(key, mapping)))

    async def hdel(self, key: str, *fields: str) -> int:
        if not fields:
            return 0
        return int(await self.execute("HDEL", key, *fields))

    # ------------------------------------------------------------------
    # Sets
    async def sadd(self, key: str, *members: str) -> int:
        return int(await self.execute("SADD", key, *members))

    async def srem(self, key: str, *members: str) -> int:
        return int(await self.execute("SREM", key, *members))

    async def smembers(self, key: str) -> set[str]:
        return set(await self.execute("SMEMBERS", key) or [])

    async def sismember(self, key: str, member: str) -> bool:
        return int(await self.execute("SISMEMBER", key, member)) == 1

    # ------------------------------------------------------------------
    # Lists
    async def rpush(self, key: str, *values: str) -> int:
        return int(await self.execute("RPUSH", key, *values))

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        await self.execute("LTRIM", key, start, stop)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return list(await self.execute("LRANGE", key, start, stop) or [])


class Pipeline:
    """Queue of write commands sent to the backend as one batch."""

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend
        self.commands: list[Command] = []

    def __len__(self) -> int:
        return len(self.commands)

    def set(self, key: str, value: str) -> Pipeline:
        self.commands.append(["SET", key, value])
        return self

    def delete(self, *keys: str) -> Pipeline:
        if keys:
            self.commands.append(["DEL", *keys])
        return self

    def hset(self, key: str, mapping: Mapping[str, str]) -> Pipeline:
        if mapping:
            self.commands.append(_hset_command(key, mapping))
        return self

    def hdel(self, key: str, *fields: str) -> Pipeline:
        if fields:
            self.commands.append(["HDEL", key, *fields])
        return self

    def sadd(self, key: str, *members: str) -> Pipeline:
        if members:
            self.commands.append(["SADD", key, *members])
        return self

    def srem(self, key: str, *members: str) -> Pipeline:
        if members:
            self.commands.append(["SREM", key, *members])
        return self

    def rpush(self, key: str, *values: str) -> Pipeline:
        if values:
            self.commands.append(["RPUSH", key, *values])
        return self

    def ltrim(self, key: str, start: int, stop: int) -> Pipeline:
        self.commands.append(["LTRIM", key, start, stop])
        return self

    async def execute(self) -> list[Any]:
        if not self.commands:
            return []
        commands, self.commands = self.commands, []
        return await self.backend.execute_many(commands)
