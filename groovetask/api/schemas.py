"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from ..core.models import DailyStat, Record, Task


class RegisterBody(Record):
    email: str
    password: str
    language: str | None = None


class LoginBody(Record):
    identifier: str  # email or username
    password: str


class SettingsBody(Record):
    theme_id: str | None = None
    sound_enabled: bool | None = None
    language: str | None = None
    username: str | None = None
    avatar: str | None = None


class SyncBody(Record):
    """Personal data sync; every part is optional and saved independently."""

    tasks: list[Task] | None = None
    history: list[DailyStat] | None = None
    order: list[str] | None = None
    force_empty: bool = False
    known_ids: list[str] | None = None


class GroupTasksBody(Record):
    tasks: list[Task]
    force_empty: bool = False
    known_ids: list[str] | None = None


class OrderBody(Record):
    order: list[str]


class CreateGroupBody(Record):
    name: str


class InviteBody(Record):
    username: str


class KickBody(Record):
    user_id: str


class ChatBody(Record):
    text: str
