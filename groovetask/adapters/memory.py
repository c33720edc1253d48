"""In-process backend with Redis semantics.

Used for development and by the test-suite. Commands never yield to the
event loop, so a single command and a whole :meth:`execute_many` batch
are atomic with respect to other coroutines, which is what ``SET NX``
claims and batched writes rely on.
"""

from __future__ import annotations

from typing import Any

from ..errors import BackendError
from .base import Command, KeyValueBackend

WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"


def _list_slice(items: list[str], start: int, stop: int) -> list[str]:
    size = len(items)
    if start < 0:
        start = max(size + start, 0)
    if stop < 0:
        stop = size + stop
    if start > stop or start >= size:
        return []
    return items[start : stop + 1]


class MemoryBackend(KeyValueBackend):
    """Dictionary backed store understanding the commands the stores use."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    def _typed(self, key: str, kind: type) -> Any:
        value = self.data.get(key)
        if value is not None and not isinstance(value, kind):
            raise BackendError(WRONGTYPE)
        return value

    def _prune(self, key: str) -> None:
        # Redis removes containers once they become empty
        if key in self.data and not isinstance(self.data[key], str) and not self.data[key]:
            del self.data[key]

    def _run(self, command: Command) -> Any:
        if not command:
            raise BackendError("ERR empty command")
        name, *args = command
        handler = getattr(self, f"_cmd_{str(name).lower()}", None)
        if handler is None:
            raise BackendError(f"ERR unknown command '{name}'")
        return handler(*[a if isinstance(a, str) else str(a) for a in args])

    # ------------------------------------------------------------------
    async def execute(self, *command: Any) -> Any:
        return self._run(list(command))

    async def execute_many(self, commands: list[Command]) -> list[Any]:
        return [self._run(list(c)) for c in commands]

    # ------------------------------------------------------------------
    # Keys and strings
    def _cmd_type(self, key: str) -> str:
        value = self.data.get(key)
        if value is None:
            return "none"
        return {str: "string", dict: "hash", set: "set", list: "list"}[type(value)]

    def _cmd_exists(self, *keys: str) -> int:
        return sum(1 for k in keys if k in self.data)

    def _cmd_del(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def _cmd_get(self, key: str) -> str | None:
        return self._typed(key, str)

    def _cmd_mget(self, *keys: str) -> list[str | None]:
        return [v if isinstance(v, str) else None for v in map(self.data.get, keys)]

    def _cmd_set(self, key: str, value: str, *flags: str) -> str | None:
        if "NX" in (f.upper() for f in flags) and key in self.data:
            return None
        self.data[key] = value
        return "OK"

    # ------------------------------------------------------------------
    # Hashes
    def _cmd_hset(self, key: str, *pairs: str) -> int:
        if not pairs or len(pairs) % 2:
            raise BackendError("ERR wrong number of arguments for 'hset' command")
        mapping = self._typed(key, dict)
        if mapping is None:
            mapping = self.data[key] = {}
        added = 0
        for i in range(0, len(pairs), 2):
            if pairs[i] not in mapping:
                added += 1
            mapping[pairs[i]] = pairs[i + 1]
        return added

    def _cmd_hgetall(self, key: str) -> list[str]:
        flat: list[str] = []
        for field, value in (self._typed(key, dict) or {}).items():
            flat.extend([field, value])
        return flat

    def _cmd_hkeys(self, key: str) -> list[str]:
        return list(self._typed(key, dict) or {})

    def _cmd_hdel(self, key: str, *fields: str) -> int:
        mapping = self._typed(key, dict) or {}
        removed = sum(1 for f in fields if mapping.pop(f, None) is not None)
        self._prune(key)
        return removed

    # ------------------------------------------------------------------
    # Sets
    def _cmd_sadd(self, key: str, *members: str) -> int:
        current = self._typed(key, set)
        if current is None:
            current = self.data[key] = set()
        before = len(current)
        current.update(members)
        return len(current) - before

    def _cmd_srem(self, key: str, *members: str) -> int:
        current = self._typed(key, set) or set()
        before = len(current)
        current.difference_update(members)
        removed = before - len(current)
        self._prune(key)
        return removed

    def _cmd_smembers(self, key: str) -> list[str]:
        return sorted(self._typed(key, set) or set())

    def _cmd_sismember(self, key: str, member: str) -> int:
        return int(member in (self._typed(key, set) or set()))

    # ------------------------------------------------------------------
    # Lists
    def _cmd_rpush(self, key: str, *values: str) -> int:
        items = self._typed(key, list)
        if items is None:
            items = self.data[key] = []
        items.extend(values)
        return len(items)

    def _cmd_ltrim(self, key: str, start: str, stop: str) -> str:
        items = self._typed(key, list)
        if items is not None:
            self.data[key] = _list_slice(items, int(start), int(stop))
            self._prune(key)
        return "OK"

    def _cmd_lrange(self, key: str, start: str, stop: str) -> list[str]:
        return _list_slice(self._typed(key, list) or [], int(start), int(stop))
