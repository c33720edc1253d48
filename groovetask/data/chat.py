"""Bounded per-group chat log."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from ..adapters.base import KeyValueBackend
from ..core.models import ChatMessage
from ..errors import InvalidInput
from . import keys
from .groups import GroupStore
from .identity import IdentityStore

log = logging.getLogger("groovetask.chat")

MAX_MESSAGES = 500
DEFAULT_LIMIT = 100
MAX_TEXT_LENGTH = 1000


class ChatLogStore:
    def __init__(
        self, backend: KeyValueBackend, groups: GroupStore, identity: IdentityStore
    ) -> None:
        self.backend = backend
        self.groups = groups
        self.identity = identity

    async def post_message(self, gid: str, sender_id: str, text: str) -> ChatMessage:
        """Append a message, keeping only the newest 500 entries.

        The sender's username is copied into the message, so later renames
        do not change chat history.
        """
        text = (text or "").strip()
        if not 1 <= len(text) <= MAX_TEXT_LENGTH:
            raise InvalidInput("Message must be 1-1000 characters")
        await self.groups.require_member(gid, sender_id)
        sender = await self.identity.require_profile(sender_id)

        message = ChatMessage(username=sender.username, text=text)
        await (
            self.backend.pipeline()
            .rpush(keys.chat(gid), message.to_json())
            .ltrim(keys.chat(gid), -MAX_MESSAGES, -1)
            .execute()
        )
        return message

    async def get_messages(
        self, gid: str, uid: str, limit: int = DEFAULT_LIMIT
    ) -> list[ChatMessage]:
        """Newest ``limit`` messages, oldest first.

        A caller who is not (or no longer) a member gets an empty list.
        """
        if not await self.groups.is_member(gid, uid):
            return []
        limit = max(1, min(int(limit), MAX_MESSAGES))
        messages = []
        for raw in await self.backend.lrange(keys.chat(gid), -limit, -1):
            try:
                messages.append(ChatMessage.model_validate_json(raw))
            except ValidationError:
                log.warning("Skipping unreadable chat entry in %s", gid)
        return messages
