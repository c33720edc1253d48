"""Client-side state with optimistic updates.

State is split into slices (session, personal tasks, history, active group
tasks, chat and invites). A mutation is applied locally first, then sent
to the server. When the request fails the touched slices are restored from
the snapshot taken before the change, every other mutation started since
then is applied again on top, and a notice is queued for the user.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ..core import tracks
from ..core.models import ChatMessage, DailyStat, Task, TaskKind
from .client import GrooveTaskClient, SyncError

log = logging.getLogger("groovetask.sync")

T = TypeVar("T")


class Slice(Generic[T]):
    """One independently refreshed piece of client state."""

    def __init__(self, name: str, value: T) -> None:
        self.name = name
        self.value = value

    def snapshot(self) -> T:
        return copy.deepcopy(self.value)

    def __repr__(self) -> str:
        return f"Slice({self.name!r})"


@dataclass(eq=False)
class OptimisticMutation:
    """A local change and the touched slices as they were before it."""

    label: str
    apply: Callable[[], None]
    snapshots: dict[Slice, Any] = field(default_factory=dict)
    settled: bool = False
    failed: bool = False

    @classmethod
    def capture(
        cls, label: str, apply: Callable[[], None], *slices: Slice
    ) -> OptimisticMutation:
        return cls(label, apply, {s: s.snapshot() for s in slices})

    def overlaps(self, other: OptimisticMutation) -> bool:
        return not self.snapshots.keys().isdisjoint(other.snapshots)

    def rollback(self, later: Iterable[OptimisticMutation] = ()) -> None:
        """Restore the snapshots, then redo ``later`` changes that still stand."""
        for slice_, value in self.snapshots.items():
            slice_.value = value
        for other in later:
            if not other.failed and self.overlaps(other):
                other.apply()


class ClientState:
    def __init__(self, client: GrooveTaskClient) -> None:
        self.client = client
        self.session: Slice[dict | None] = Slice("session", None)
        self.tasks: Slice[list[Task]] = Slice("tasks", [])
        self.history: Slice[list[DailyStat]] = Slice("history", [])
        self.group_tasks: Slice[list[Task]] = Slice("group_tasks", [])
        self.chat: Slice[list[ChatMessage]] = Slice("chat", [])
        self.invites: Slice[list[dict]] = Slice("invites", [])
        self.active_group: str | None = None
        # oldest first; settled entries stay while an older one is in flight
        self.pending: list[OptimisticMutation] = []
        self.notices: list[str] = []

    def notify(self, text: str) -> None:
        self.notices.append(text)

    def _settle(self, mutation: OptimisticMutation) -> None:
        mutation.settled = True
        while self.pending and self.pending[0].settled:
            self.pending.pop(0)

    async def mutate(
        self,
        label: str,
        slices: Sequence[Slice],
        apply: Callable[[], None],
        request: Callable[[], Awaitable[Any]],
        refetch: Callable[[], Awaitable[None]] | None = None,
    ) -> bool:
        """Apply a change locally, send it and reconcile.

        Returns ``True`` when the server accepted the change. On failure the
        slices are restored, changes made after this one are applied again
        and a notice is queued.
        """
        mutation = OptimisticMutation.capture(label, apply, *slices)
        self.pending.append(mutation)
        apply()
        try:
            await request()
        except SyncError as exc:
            mutation.failed = True
            later = self.pending[self.pending.index(mutation) + 1 :]
            mutation.rollback(later)
            log.warning("%s failed, rolled back: %s", label, exc)
            self.notify(f"{label} failed: {exc.message}")
            return False
        finally:
            self._settle(mutation)
        if refetch is not None:
            try:
                await refetch()
            except SyncError as exc:
                # the write went through; keep the optimistic value
                log.warning("Refresh after %s failed: %s", label, exc)
        return True

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    def _load_user(self, user: dict) -> None:
        data = user.get("data") or {}
        self.session.value = {k: v for k, v in user.items() if k != "data"}
        # completions from an earlier day do not carry over
        self.tasks.value = tracks.reset_stale_completions(
            Task.model_validate(t) for t in data.get("tasks", [])
        )
        self.history.value = [
            DailyStat.model_validate(s) for s in data.get("history", [])
        ]

    async def register(self, email: str, password: str, language: str | None = None) -> None:
        self._load_user(await self.client.register(email, password, language))

    async def login(self, identifier: str, password: str) -> None:
        self._load_user(await self.client.login(identifier, password))

    async def load_session(self) -> bool:
        """Restore the session from the cookie; ``False`` when logged out."""
        try:
            user = await self.client.me()
        except SyncError as exc:
            if exc.status != 401:
                raise
            self.session.value = None
            return False
        self._load_user(user)
        return True

    async def logout(self) -> None:
        await self.client.logout()
        self.session.value = None
        self.tasks.value = []
        self.history.value = []
        self.select_group(None)
        self.invites.value = []

    async def update_settings(self, **changes: Any) -> bool:
        """Change settings; keys are the API's camelCase names."""
        if self.session.value is None:
            return False
        session = self.session

        def apply() -> None:
            user = dict(session.value)
            settings = dict(user.get("settings") or {})
            for key in ("themeId", "soundEnabled", "language"):
                if changes.get(key) is not None:
                    settings[key] = changes[key]
            user["settings"] = settings
            if changes.get("username"):
                user["username"] = changes["username"]
            session.value = user

        async def request() -> None:
            result = await self.client.update_settings(**changes)
            session.value = {
                **session.value,
                "settings": result["settings"],
                "username": result["username"],
                "usernameChangeCount": result["usernameChangeCount"],
                "avatar": result.get("avatar"),
            }

        return await self.mutate("Saving settings", [session], apply, request)

    # ------------------------------------------------------------------
    # Task collections
    # ------------------------------------------------------------------
    def _scope(self, group: bool) -> Slice[list[Task]]:
        if group and self.active_group is None:
            raise ValueError("no active group")
        return self.group_tasks if group else self.tasks

    async def _save_collection(
        self,
        label: str,
        group: bool,
        change: Callable[[list[Task]], list[Task]],
    ) -> bool:
        """Send the whole collection after a create or delete.

        ``forceEmpty`` is only set when the change left the list empty, and
        only ids this client had seen may be deleted on the server.
        """
        target = self._scope(group)
        gid = self.active_group
        known = [t.id for t in target.value]

        def apply() -> None:
            target.value = change(target.value)

        async def request() -> None:
            updated = target.value
            order = [t.id for t in updated]
            force_empty = not updated
            if group:
                await self.client.save_group_tasks(gid, updated, force_empty, known)
                await self.client.save_group_order(gid, order)
            else:
                await self.client.sync_data(
                    tasks=updated, order=order, force_empty=force_empty, known_ids=known
                )

        refetch = self.refresh_group_tasks if group else None
        return await self.mutate(label, [target], apply, request, refetch)

    async def create_task(
        self,
        title: str,
        description: str = "",
        kind: TaskKind = "simple",
        group: bool = False,
    ) -> Task | None:
        """Add a task at the top; ``None`` when the server rejected it."""
        task = tracks.new_task(title, description, kind)
        ok = await self._save_collection(
            "Creating task", group, lambda tasks: [task, *tasks]
        )
        return task if ok else None

    async def delete_task(self, task_id: str, group: bool = False) -> bool:
        return await self._save_collection(
            "Deleting task",
            group,
            lambda tasks: [t for t in tasks if t.id != task_id],
        )

    async def reorder(self, ordered_ids: Sequence[str], group: bool = False) -> bool:
        """Reorder locally and send only the id list."""
        target = self._scope(group)
        order = list(ordered_ids)
        gid = self.active_group

        def apply() -> None:
            target.value = tracks.materialize_order(target.value, order)

        async def request() -> None:
            if group:
                await self.client.save_group_order(gid, order)
            else:
                await self.client.sync_data(order=order)

        return await self.mutate("Reordering tasks", [target], apply, request)

    async def _replace_task(
        self,
        task_id: str,
        change: Callable[[Task], Task],
        label: str,
        group: bool,
    ) -> bool:
        target = self._scope(group)
        current = next((t for t in target.value if t.id == task_id), None)
        if current is None:
            raise KeyError(task_id)
        updated = change(current)
        gid = self.active_group
        touched = [target] if group else [target, self.history]

        def apply() -> None:
            target.value = [updated if t.id == task_id else t for t in target.value]
            if not group and updated.is_completed != current.is_completed:
                self.history.value = tracks.record_daily_stat(
                    self.history.value, target.value
                )

        async def request() -> None:
            if group:
                await self.client.put_group_task(gid, updated)
                return
            await self.client.put_task(updated)
            if updated.is_completed != current.is_completed:
                await self.client.sync_data(history=self.history.value)

        return await self.mutate(label, touched, apply, request)

    async def edit_task(
        self, task_id: str, title: str, description: str, group: bool = False
    ) -> bool:
        return await self._replace_task(
            task_id,
            lambda t: tracks.edit(t, title, description),
            "Editing task",
            group,
        )

    async def toggle_task(self, task_id: str, group: bool = False) -> bool:
        return await self._replace_task(task_id, tracks.toggle, "Updating task", group)

    async def increment_task(self, task_id: str, group: bool = False) -> bool:
        return await self._replace_task(
            task_id, tracks.increment, "Updating counter", group
        )

    async def remove_log_entry(
        self, task_id: str, entry_id: str, group: bool = False
    ) -> bool:
        return await self._replace_task(
            task_id,
            lambda t: tracks.remove_log_entry(t, entry_id),
            "Removing log entry",
            group,
        )

    # ------------------------------------------------------------------
    # Groups, chat and invites
    # ------------------------------------------------------------------
    def select_group(self, gid: str | None) -> None:
        self.active_group = gid
        self.group_tasks.value = []
        self.chat.value = []

    async def refresh_group_tasks(self) -> None:
        gid = self.active_group
        if gid is None:
            return
        try:
            tasks = await self.client.get_group_tasks(gid)
        except SyncError as exc:
            if exc.status not in (403, 404):
                raise
            # access was revoked while the view was open
            tasks = []
        if gid == self.active_group:
            self.group_tasks.value = tasks

    async def refresh_chat(self) -> None:
        gid = self.active_group
        if gid is None:
            return
        messages = [ChatMessage.model_validate(m) for m in await self.client.get_chat(gid)]
        if gid == self.active_group:
            self.chat.value = messages

    async def refresh_invites(self) -> None:
        self.invites.value = await self.client.list_invites()

    async def send_message(self, text: str) -> bool:
        gid = self.active_group
        if gid is None:
            raise ValueError("no active group")
        username = (self.session.value or {}).get("username", "")
        pending = ChatMessage(username=username, text=text.strip())

        def apply() -> None:
            self.chat.value = [*self.chat.value, pending]

        async def request() -> None:
            await self.client.post_chat(gid, text)

        return await self.mutate(
            "Sending message", [self.chat], apply, request, self.refresh_chat
        )

    async def _answer_invite(self, gid: str, accept: bool) -> bool:
        def apply() -> None:
            self.invites.value = [i for i in self.invites.value if i["id"] != gid]

        async def request() -> None:
            if accept:
                await self.client.accept_invite(gid)
            else:
                await self.client.decline_invite(gid)

        label = "Accepting invite" if accept else "Declining invite"
        return await self.mutate(label, [self.invites], apply, request)

    async def accept_invite(self, gid: str) -> bool:
        return await self._answer_invite(gid, True)

    async def decline_invite(self, gid: str) -> bool:
        return await self._answer_invite(gid, False)
