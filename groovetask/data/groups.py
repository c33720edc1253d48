"""Groups ("crews"), their membership and pending invites.

Membership and invites are stored on both sides so either can be listed
without a scan: ``group:{gid}:members`` / ``group:{gid}:invites`` on the
group, ``user:{uid}:groups`` / ``user:{uid}:invites`` on the user.

Every check (ownership, membership, pending invite) runs before the first
write of an operation, so a rejected request leaves no trace.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Collection, Sequence

from pydantic import ValidationError

from ..adapters.base import KeyValueBackend
from ..core.models import Group, Member, Task
from ..errors import Conflict, Forbidden, InvalidInput, NotFound
from . import keys
from .identity import IdentityStore
from .tasks import TaskCollectionStore

log = logging.getLogger("groovetask.groups")

MAX_NAME_LENGTH = 40


class GroupStore:
    """Group lifecycle plus the membership gate for group-scoped data."""

    def __init__(
        self,
        backend: KeyValueBackend,
        identity: IdentityStore,
        tasks: TaskCollectionStore,
    ) -> None:
        self.backend = backend
        self.identity = identity
        self.tasks = tasks

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def get_group(self, gid: str) -> Group | None:
        raw = await self.backend.get(keys.group(gid))
        if not raw:
            return None
        try:
            return Group.model_validate_json(raw)
        except ValidationError:
            log.error("Group record %s is unreadable", gid)
            return None

    async def _groups(self, gids: Collection[str]) -> list[Group]:
        ids = sorted(gids)
        raws = await self.backend.mget(*[keys.group(g) for g in ids])
        groups = []
        for gid, raw in zip(ids, raws):
            if not raw:
                log.debug("Skipping dangling group reference %s", gid)
                continue
            try:
                groups.append(Group.model_validate_json(raw))
            except ValidationError:
                log.error("Group record %s is unreadable", gid)
        groups.sort(key=lambda g: g.created_at)
        return groups

    async def _owned_group(self, gid: str, requester: str) -> Group:
        group = await self.get_group(gid)
        if group is None:
            raise NotFound("Group not found")
        if group.owner_id != requester:
            raise Forbidden("Only the group owner can do that")
        return group

    async def is_member(self, gid: str, uid: str) -> bool:
        """Membership gate used by every group-scoped read and write."""
        return await self.backend.sismember(keys.group_members(gid), uid)

    async def require_member(self, gid: str, uid: str) -> None:
        if not await self.is_member(gid, uid):
            raise Forbidden()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def create_group(self, owner_id: str, name: str) -> Group:
        name = (name or "").strip()
        if not 1 <= len(name) <= MAX_NAME_LENGTH:
            raise InvalidInput("Group name must be 1-40 characters")
        group = Group(name=name, owner_id=owner_id)
        await (
            self.backend.pipeline()
            .set(keys.group(group.id), group.to_json())
            .sadd(keys.group_members(group.id), owner_id)
            .sadd(keys.user_groups(owner_id), group.id)
            .execute()
        )
        log.info("User %s created group %s", owner_id, group.id)
        return group

    async def delete_group(self, gid: str, requester: str) -> None:
        """Delete a group and every reference to it. Owner only."""
        await self._owned_group(gid, requester)
        members, invitees = await asyncio.gather(
            self.backend.smembers(keys.group_members(gid)),
            self.backend.smembers(keys.group_invites(gid)),
        )
        pipe = self.backend.pipeline()
        for uid in members:
            pipe.srem(keys.user_groups(uid), gid)
        for uid in invitees:
            pipe.srem(keys.user_invites(uid), gid)
        pipe.delete(
            keys.group(gid),
            keys.group_members(gid),
            keys.group_invites(gid),
            keys.chat(gid),
            *self.tasks.collection_keys(keys.group_owner(gid)),
        )
        await pipe.execute()
        log.info("Group %s deleted by %s", gid, requester)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    async def invite(self, gid: str, requester: str, target_username: str) -> str:
        """Invite a user by username and return their id."""
        await self.require_member(gid, requester)
        target = await self.identity.resolve_username(target_username or "")
        if target is None:
            raise NotFound("User not found")
        if await self.is_member(gid, target):
            raise Conflict("User is already a member")
        await (
            self.backend.pipeline()
            .sadd(keys.group_invites(gid), target)
            .sadd(keys.user_invites(target), gid)
            .execute()
        )
        log.info("User %s invited %s to %s", requester, target, gid)
        return target

    async def _require_invite(self, gid: str, uid: str) -> None:
        if not await self.backend.sismember(keys.user_invites(uid), gid):
            raise NotFound("Invite not found")

    async def accept_invite(self, gid: str, uid: str) -> Group:
        await self._require_invite(gid, uid)
        group = await self.get_group(gid)
        if group is None:
            raise NotFound("Group not found")
        await (
            self.backend.pipeline()
            .srem(keys.group_invites(gid), uid)
            .srem(keys.user_invites(uid), gid)
            .sadd(keys.group_members(gid), uid)
            .sadd(keys.user_groups(uid), gid)
            .execute()
        )
        return group

    async def decline_invite(self, gid: str, uid: str) -> None:
        await self._require_invite(gid, uid)
        await (
            self.backend.pipeline()
            .srem(keys.group_invites(gid), uid)
            .srem(keys.user_invites(uid), gid)
            .execute()
        )

    async def _remove_member(self, gid: str, uid: str) -> None:
        await (
            self.backend.pipeline()
            .srem(keys.group_members(gid), uid)
            .srem(keys.user_groups(uid), gid)
            .execute()
        )

    async def kick(self, gid: str, requester: str, target: str) -> None:
        await self._owned_group(gid, requester)
        if target == requester:
            raise InvalidInput("You cannot remove yourself")
        if not await self.is_member(gid, target):
            raise NotFound("User is not a member")
        await self._remove_member(gid, target)
        log.info("User %s removed %s from %s", requester, target, gid)

    async def leave(self, gid: str, uid: str) -> None:
        await self.require_member(gid, uid)
        group = await self.get_group(gid)
        if group is not None and group.owner_id == uid:
            raise Forbidden("The owner cannot leave; delete the group instead")
        await self._remove_member(gid, uid)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def get_members(self, gid: str, requester: str) -> list[Member]:
        await self.require_member(gid, requester)
        group = await self.get_group(gid)
        uids = sorted(await self.backend.smembers(keys.group_members(gid)))
        names = await self.identity.usernames_for(uids)
        owner = group.owner_id if group else None
        members = [
            Member(id=uid, username=names[uid], is_owner=uid == owner)
            for uid in uids
            if uid in names
        ]
        members.sort(key=lambda m: (not m.is_owner, m.username.lower()))
        return members

    async def list_groups(self, uid: str) -> list[Group]:
        return await self._groups(await self.backend.smembers(keys.user_groups(uid)))

    async def list_invites(self, uid: str) -> list[Group]:
        return await self._groups(await self.backend.smembers(keys.user_invites(uid)))

    # ------------------------------------------------------------------
    # Group task collection (gated)
    # ------------------------------------------------------------------
    async def get_tasks(self, gid: str, uid: str) -> list[Task]:
        await self.require_member(gid, uid)
        return await self.tasks.get_tasks(keys.group_owner(gid))

    async def save_tasks(
        self,
        gid: str,
        uid: str,
        tasks: Sequence[Task],
        force_empty: bool = False,
        known_ids: Collection[str] | None = None,
    ) -> None:
        await self.require_member(gid, uid)
        await self.tasks.save_tasks(keys.group_owner(gid), tasks, force_empty, known_ids)

    async def save_order(self, gid: str, uid: str, ordered_ids: Sequence[str]) -> None:
        await self.require_member(gid, uid)
        await self.tasks.save_order(keys.group_owner(gid), ordered_ids)

    async def put_task(self, gid: str, uid: str, task: Task) -> None:
        await self.require_member(gid, uid)
        await self.tasks.put_task(keys.group_owner(gid), task)

    async def delete_task(self, gid: str, uid: str, task_id: str) -> bool:
        await self.require_member(gid, uid)
        return await self.tasks.delete_task(keys.group_owner(gid), task_id)
