"""Task collections stored as id-keyed hashes plus a separate order list.

Each owner (a user's personal workspace or a group) has

* ``data:tasks:{owner}``: a hash mapping task id to the task's JSON, and
* ``data:tasks:order:{owner}``: a JSON array of task ids in display order.

Older deployments stored the whole collection as one JSON array under
``data:tasks:{owner}``. Such a blob is converted to the hash form the first
time the collection is read or written.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Collection, Sequence

from pydantic import ValidationError

from ..adapters.base import KeyValueBackend
from ..core.models import Task
from ..core.tracks import materialize_order, normalize_legacy_task
from ..errors import BackendError, InvalidInput
from . import keys

log = logging.getLogger("groovetask.tasks")


def _parse_order(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        order = json.loads(raw)
    except ValueError:
        log.warning("Discarding unreadable order list")
        return []
    if not isinstance(order, list):
        return []
    return [str(i) for i in order]


def _parse_task(task_id: str, raw: str) -> Task | None:
    try:
        return Task.model_validate_json(raw)
    except ValidationError:
        log.warning("Skipping unreadable task %s", task_id)
        return None


class TaskCollectionStore:
    """Read and write task collections for any owner key."""

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_tasks(self, owner: str) -> list[Task]:
        """Return the owner's tasks in display order.

        Tasks referenced by the order list come first, in that order; tasks
        the order list does not mention follow, oldest first. Ids in the
        order list whose task is gone are ignored.
        """
        key = keys.tasks(owner)
        shape = await self.backend.type(key)
        if shape == "string":
            return await self._migrate_legacy(owner)
        if shape != "hash":
            return []

        raw_map, raw_order = await asyncio.gather(
            self.backend.hgetall(key),
            self.backend.get(keys.task_order(owner)),
        )
        tasks = [
            task
            for task_id, raw in raw_map.items()
            if (task := _parse_task(task_id, raw)) is not None
        ]
        return materialize_order(tasks, _parse_order(raw_order))

    async def _migrate_legacy(self, owner: str) -> list[Task]:
        key = keys.tasks(owner)
        try:
            raw = await self.backend.get(key)
        except BackendError:
            # another request converted the blob between TYPE and GET
            return await self.get_tasks(owner)
        if raw is None:
            return await self.get_tasks(owner)

        try:
            items = json.loads(raw)
        except ValueError:
            log.warning("Legacy task blob for %s is not JSON; dropping it", owner)
            items = []
        tasks: list[Task] = []
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            try:
                tasks.append(normalize_legacy_task(item))
            except ValidationError:
                log.warning("Skipping unreadable legacy task in %s", owner)

        pipe = self.backend.pipeline()
        pipe.delete(key)
        if tasks:
            pipe.hset(key, {t.id: t.to_json() for t in tasks})
            pipe.set(keys.task_order(owner), json.dumps([t.id for t in tasks]))
        await pipe.execute()
        log.info("Migrated %d legacy tasks for %s", len(tasks), owner)
        return tasks

    async def _ensure_current(self, owner: str) -> None:
        if await self.backend.type(keys.tasks(owner)) == "string":
            await self._migrate_legacy(owner)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def save_tasks(
        self,
        owner: str,
        tasks: Sequence[Task],
        force_empty: bool = False,
        known_ids: Collection[str] | None = None,
    ) -> None:
        """Make the stored collection match ``tasks``.

        Stored tasks missing from ``tasks`` are deleted and every submitted
        task is written, all in one batch. An empty submission is ignored
        unless ``force_empty`` is set. When ``known_ids`` is given only those
        ids may be deleted, so tasks added by someone else since the caller
        last read the collection are kept.
        """
        key = keys.tasks(owner)
        if not tasks:
            if not force_empty:
                log.warning(
                    "[Data Safety] Ignored empty task sync for %s without forceEmpty flag.",
                    owner,
                )
            elif known_ids is None:
                await self.backend.delete(key, keys.task_order(owner))
                log.info("Cleared task collection for %s", owner)
            else:
                await self._clear_known(owner, known_ids)
            return

        pipe = self.backend.pipeline()
        if await self.backend.type(key) == "string":
            pipe.delete(key)
            current: list[str] = []
        else:
            current = await self.backend.hkeys(key)

        submitted = {t.id for t in tasks}
        stale = [
            task_id
            for task_id in current
            if task_id not in submitted and (known_ids is None or task_id in known_ids)
        ]
        pipe.hdel(key, *stale)
        pipe.hset(key, {t.id: t.to_json() for t in tasks})
        await pipe.execute()

    async def _clear_known(self, owner: str, known_ids: Collection[str]) -> None:
        """Delete the caller's known tasks; the order list goes once none remain."""
        await self._ensure_current(owner)
        key = keys.tasks(owner)
        await self.backend.hdel(key, *known_ids)
        remaining = await self.backend.hkeys(key)
        if remaining:
            log.info("Kept %d tasks of %s the client had not seen", len(remaining), owner)
        else:
            await self.backend.delete(keys.task_order(owner))
            log.info("Cleared task collection for %s", owner)

    async def save_order(self, owner: str, ordered_ids: Sequence[str]) -> None:
        """Replace only the display order; task bodies are not touched."""
        if not all(isinstance(i, str) for i in ordered_ids):
            raise InvalidInput("Order must be a list of task ids")
        await self.backend.set(keys.task_order(owner), json.dumps(list(ordered_ids)))

    async def put_task(self, owner: str, task: Task) -> None:
        """Insert or overwrite a single task."""
        await self._ensure_current(owner)
        await self.backend.hset(keys.tasks(owner), {task.id: task.to_json()})

    async def delete_task(self, owner: str, task_id: str) -> bool:
        """Remove one task. The order list may keep the stale id."""
        await self._ensure_current(owner)
        return await self.backend.hdel(keys.tasks(owner), task_id) > 0

    @staticmethod
    def collection_keys(owner: str) -> list[str]:
        """Keys holding the owner's collection, for cascading deletes."""
        return [keys.tasks(owner), keys.task_order(owner)]
