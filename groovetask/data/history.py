"""Per-user daily completion history."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence

from pydantic import TypeAdapter, ValidationError

from ..adapters.base import KeyValueBackend
from ..core.models import DailyStat
from . import keys

log = logging.getLogger("groovetask.history")

_HISTORY = TypeAdapter(list[DailyStat])


def parse_history(items: Iterable[dict]) -> list[DailyStat]:
    """Validate raw history entries, dropping the list if it is unreadable."""
    try:
        return _HISTORY.validate_python(list(items))
    except ValidationError:
        log.warning("Discarding unreadable history")
        return []


def dump_history(history: Sequence[DailyStat]) -> str:
    return json.dumps([s.dump() for s in history])


class HistoryStore:
    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend

    async def get_history(self, uid: str) -> list[DailyStat]:
        raw = await self.backend.get(keys.history(uid))
        if not raw:
            return []
        try:
            return _HISTORY.validate_json(raw)
        except ValidationError:
            log.warning("Unreadable history for %s; returning empty", uid)
            return []

    async def save_history(self, uid: str, history: Sequence[DailyStat]) -> None:
        await self.backend.set(keys.history(uid), dump_history(history))
