"""Core package for GrooveTask.

This module exposes the main data models and stores so that consumers of
the package can simply import them from ``groovetask``.
"""

from .adapters.memory import MemoryBackend
from .adapters.upstash import UpstashBackend
from .core.models import ChatMessage, DailyStat, Group, Task, UserProfile
from .data.chat import ChatLogStore
from .data.groups import GroupStore
from .data.identity import IdentityStore
from .data.tasks import TaskCollectionStore

__all__ = [
    "ChatLogStore",
    "ChatMessage",
    "DailyStat",
    "Group",
    "GroupStore",
    "IdentityStore",
    "MemoryBackend",
    "Task",
    "TaskCollectionStore",
    "UpstashBackend",
    "UserProfile",
]
