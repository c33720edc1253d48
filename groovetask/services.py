"""Wiring of the stores around one backend."""

from __future__ import annotations

import random
from dataclasses import dataclass

from .adapters.base import KeyValueBackend
from .config import Settings
from .core.security import PasswordHasher, SessionTokens
from .data.chat import ChatLogStore
from .data.groups import GroupStore
from .data.history import HistoryStore
from .data.identity import IdentityStore
from .data.tasks import TaskCollectionStore


@dataclass
class Services:
    settings: Settings
    backend: KeyValueBackend
    tokens: SessionTokens
    tasks: TaskCollectionStore
    history: HistoryStore
    identity: IdentityStore
    groups: GroupStore
    chat: ChatLogStore


def build_services(
    settings: Settings,
    backend: KeyValueBackend,
    rng: random.Random | None = None,
) -> Services:
    tokens = SessionTokens(settings.jwt_secret, settings.session_days)
    tasks = TaskCollectionStore(backend)
    history = HistoryStore(backend)
    identity = IdentityStore(
        backend,
        PasswordHasher(settings.bcrypt_rounds),
        tokens,
        tasks,
        history,
        rng=rng,
    )
    groups = GroupStore(backend, identity, tasks)
    chat = ChatLogStore(backend, groups, identity)
    return Services(
        settings=settings,
        backend=backend,
        tokens=tokens,
        tasks=tasks,
        history=history,
        identity=identity,
        groups=groups,
        chat=chat,
    )
