"""Data models for GrooveTask's core entities.

The models are implemented using :mod:`pydantic` so that they provide
runtime validation and convenient serialisation to and from dictionaries.
Field names are snake_case in Python and camelCase on the wire and in
storage, which keeps records written by older clients readable.
"""

from __future__ import annotations

import time
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

TaskKind = Literal["simple", "counter"]

DEFAULT_THEME = "neon-blue"
DEFAULT_LANGUAGE = "en"
THEME_IDS = frozenset(
    {
        "neon-blue",
        "neon-purple",
        "neon-green",
        "neon-pink",
        "neon-orange",
        "neon-red",
        "neon-yellow",
        "classic-white",
    }
)


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class Record(BaseModel):
    """Base model using camelCase aliases for (de)serialisation."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def dump(self) -> dict:
        return self.model_dump(by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class UserSettings(Record):
    theme_id: str = DEFAULT_THEME
    sound_enabled: bool = True
    language: str = DEFAULT_LANGUAGE


class UserProfile(Record):
    """A registered account as stored under ``user:{id}``.

    Attributes
    ----------
    id:
        Stable opaque identifier, never changes.
    email:
        Lower-cased login email, unique across users.
    username:
        Display/login name, unique case-insensitively.
    username_change_count:
        Number of renames performed so far (capped at three).
    password_hash:
        bcrypt hash; never included in API responses.

    """

    id: str = Field(default_factory=new_id)
    email: str
    username: str
    username_change_count: int = 0
    password_hash: str
    created_at: int = Field(default_factory=now_ms)
    settings: UserSettings = Field(default_factory=UserSettings)
    avatar: str | None = None

    def public(self) -> dict:
        """Profile fields that may be shown to the owner."""
        return {
            "email": self.email,
            "username": self.username,
            "usernameChangeCount": self.username_change_count,
            "settings": self.settings.dump(),
            "avatar": self.avatar,
        }


class LogEntry(Record):
    id: str = Field(default_factory=new_id)
    timestamp: int = Field(default_factory=now_ms)


class Task(Record):
    """A single track: either a checklist item or a counter.

    ``is_completed``/``completed_at`` are meaningful for ``simple`` tasks,
    ``count``/``log`` for ``counter`` tasks. For counters the log is the
    source of truth and ``count`` always equals its length.
    """

    id: str = Field(default_factory=new_id)
    kind: TaskKind = Field("simple", alias="type")
    title: str
    description: str = ""
    is_completed: bool = False
    completed_at: int | None = None
    count: int | None = None
    log: list[LogEntry] | None = None
    created_at: int = Field(default_factory=now_ms)

    @model_validator(mode="after")
    def _counter_fields(self) -> Task:
        if self.kind == "counter":
            if self.log is None:
                self.log = []
            self.count = len(self.log)
        return self

    def dump(self) -> dict:
        data = super().dump()
        if self.kind == "simple":
            data.pop("count", None)
            data.pop("log", None)
        return data

    def to_json(self) -> str:
        return self.model_dump_json(
            by_alias=True,
            exclude={"count", "log"} if self.kind == "simple" else None,
        )


class DailyStat(Record):
    date: str  # YYYY-MM-DD
    completed_count: int = 0
    total_tasks_at_end: int = 0


class Group(Record):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    owner_id: str
    created_at: int = Field(default_factory=now_ms)


class Member(Record):
    id: str
    username: str
    is_owner: bool = False


class ChatMessage(Record):
    """A chat line. ``username`` is captured when the message is sent."""

    id: str = Field(default_factory=new_id)
    username: str
    text: str
    timestamp: int = Field(default_factory=now_ms)
