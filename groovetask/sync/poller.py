"""Fixed-interval refresh of shared group state."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from .client import SyncError
from .state import ClientState

log = logging.getLogger("groovetask.sync")

DEFAULT_INTERVAL = 5.0


class Poller:
    """Refresh group tasks and chat every ``interval`` seconds.

    Call :meth:`suspend` while the view is hidden and :meth:`resume` when
    it becomes visible again; resuming refreshes at once and restarts the
    interval.
    """

    def __init__(
        self,
        state: ClientState,
        interval: float = DEFAULT_INTERVAL,
        refreshers: list[Callable[[], Awaitable[None]]] | None = None,
    ) -> None:
        self.state = state
        self.interval = interval
        self.refreshers = refreshers or [state.refresh_group_tasks, state.refresh_chat]
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> None:
        for refresher in self.refreshers:
            try:
                await refresher()
            except SyncError as exc:
                log.warning("Background refresh failed: %s", exc)
            except Exception:
                # e.g. a payload that no longer validates; the next tick retries
                name = getattr(refresher, "__name__", refresher)
                log.exception("Background refresh %s crashed", name)

    async def _loop(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._loop())

    async def suspend(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def resume(self) -> None:
        await self.suspend()
        self.start()
