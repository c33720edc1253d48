"""Accounts, login identifiers and username claims.

Uniqueness of e-mails and usernames rests entirely on ``SET NX``: a
mapping key is claimed by writing it only if it has no value, and the
claim's return value is the only thing that decides who owns a name.
Existence checks made beforehand only let a request fail early.
"""

from __future__ import annotations

import json
import logging
import random
import re
from dataclasses import dataclass, field

from pydantic import ValidationError

from ..adapters.base import KeyValueBackend
from ..core.models import (
    DEFAULT_LANGUAGE,
    THEME_IDS,
    DailyStat,
    Task,
    UserProfile,
    UserSettings,
    new_id,
    now_ms,
)
from ..core.security import (
    MAX_PASSWORD_BYTES,
    PasswordHasher,
    SessionTokens,
    password_too_long,
)
from ..core.tracks import normalize_legacy_task
from ..core.usernames import (
    CLAIM_ATTEMPTS,
    MAX_CHANGES,
    candidates,
    derive_base,
    is_valid_username,
)
from ..errors import (
    AlreadyExists,
    BackendError,
    Conflict,
    Forbidden,
    GenerationExhausted,
    InvalidCredentials,
    InvalidInput,
    NotFound,
)
from . import keys
from .history import HistoryStore, dump_history, parse_history
from .tasks import TaskCollectionStore

log = logging.getLogger("groovetask.identity")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8
AVATAR_MAX_LENGTH = 200_000


@dataclass
class Session:
    """Result of a successful register or login."""

    profile: UserProfile
    token: str
    tasks: list[Task] = field(default_factory=list)
    history: list[DailyStat] = field(default_factory=list)

    def view(self) -> dict:
        return session_view(self.profile, self.tasks, self.history)


def session_view(
    profile: UserProfile, tasks: list[Task], history: list[DailyStat]
) -> dict:
    return {
        **profile.public(),
        "data": {
            "tasks": [t.dump() for t in tasks],
            "history": [s.dump() for s in history],
        },
    }


class IdentityStore:
    """Registration, login and profile updates."""

    def __init__(
        self,
        backend: KeyValueBackend,
        hasher: PasswordHasher,
        tokens: SessionTokens,
        tasks: TaskCollectionStore,
        history: HistoryStore,
        rng: random.Random | None = None,
    ) -> None:
        self.backend = backend
        self.hasher = hasher
        self.tokens = tokens
        self.tasks = tasks
        self.history = history
        self.rng = rng

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    async def load_profile(self, uid: str) -> UserProfile | None:
        raw = await self.backend.get(keys.user(uid))
        if not raw:
            return None
        try:
            return UserProfile.model_validate_json(raw)
        except ValidationError:
            log.error("Profile record for %s is unreadable", uid)
            return None

    async def require_profile(self, uid: str) -> UserProfile:
        profile = await self.load_profile(uid)
        if profile is None:
            raise NotFound("User not found")
        return profile

    async def resolve_username(self, name: str) -> str | None:
        return await self.backend.get(keys.username(name))

    async def usernames_for(self, uids: list[str]) -> dict[str, str]:
        """Map each user id to its current username, skipping unknown ids."""
        raws = await self.backend.mget(*[keys.user(u) for u in uids])
        names: dict[str, str] = {}
        for uid, raw in zip(uids, raws):
            if not raw:
                continue
            try:
                names[uid] = UserProfile.model_validate_json(raw).username
            except ValidationError:
                log.warning("Skipping unreadable profile %s", uid)
        return names

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------
    async def _claim_generated_username(self, base: str, uid: str) -> str:
        for candidate in candidates(base, CLAIM_ATTEMPTS, self.rng):
            if await self.backend.set(keys.username(candidate), uid, nx=True):
                return candidate
            log.debug("Username %s already claimed, trying another", candidate)
        raise GenerationExhausted()

    async def _release(self, key: str, uid: str) -> None:
        # only the holder may release; nobody else can claim it meanwhile
        if await self.backend.get(key) == uid:
            await self.backend.delete(key)

    async def _release_quietly(self, uid: str, *claim_keys: str) -> None:
        for key in claim_keys:
            try:
                await self._release(key, uid)
            except BackendError:
                log.exception("Could not release %s held by %s; clean up manually", key, uid)

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------
    async def register(
        self, email: str, password: str, language: str | None = None
    ) -> Session:
        email = (email or "").strip().lower()
        if not EMAIL_RE.match(email):
            raise InvalidInput("Invalid email format")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput("Password must be at least 8 characters")
        if password_too_long(password):
            raise InvalidInput(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        if await self.backend.get(keys.email(email)) or await self.backend.exists(
            keys.legacy_user(email)
        ):
            raise AlreadyExists()

        password_hash = await self.hasher.hash(password)
        uid = new_id()
        username = await self._claim_generated_username(derive_base(email), uid)
        username_key = keys.username(username)

        if not await self.backend.set(keys.email(email), uid, nx=True):
            # a concurrent registration took the e-mail first
            await self._release_quietly(uid, username_key)
            raise AlreadyExists()

        profile = UserProfile(
            id=uid,
            email=email,
            username=username,
            password_hash=password_hash,
            settings=UserSettings(language=language or DEFAULT_LANGUAGE),
        )
        try:
            await (
                self.backend.pipeline()
                .set(keys.user(uid), profile.to_json())
                .set(keys.history(uid), "[]")
                .execute()
            )
        except BackendError:
            log.error(
                "Profile write for %s failed after claiming %s and %s",
                uid,
                username_key,
                keys.email(email),
            )
            await self._release_quietly(uid, keys.email(email), username_key)
            raise

        log.info("Registered %s as %s", uid, username)
        return Session(profile=profile, token=self.tokens.issue(uid, email))

    async def login(self, identifier: str, password: str) -> Session:
        ident = (identifier or "").strip().lower()
        password = password or ""
        uid: str | None = None
        legacy: dict | None = None

        if "@" in ident:
            uid = await self.backend.get(keys.email(ident))
            if not uid:
                legacy = await self._load_legacy_user(ident)
        elif ident:
            uid = await self.backend.get(keys.username(ident))

        profile = await self.load_profile(uid) if uid else None
        if legacy is not None:
            hashed = legacy.get("passwordHash")
        elif profile is not None:
            hashed = profile.password_hash
        else:
            hashed = None

        if not hashed:
            await self.hasher.verify_dummy(password)
            raise InvalidCredentials()
        if not await self.hasher.verify(password, hashed):
            raise InvalidCredentials()

        if legacy is not None:
            profile = await self._migrate_legacy_user(ident, legacy)
        elif profile is None:
            raise InvalidCredentials()

        tasks = await self.tasks.get_tasks(profile.id)
        history = await self.history.get_history(profile.id)
        return Session(
            profile=profile,
            token=self.tokens.issue(profile.id, profile.email),
            tasks=tasks,
            history=history,
        )

    async def _load_legacy_user(self, email: str) -> dict | None:
        raw = await self.backend.get(keys.legacy_user(email))
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            log.error("Legacy record for %s is not JSON", email)
            return None
        return data if isinstance(data, dict) else None

    async def _migrate_legacy_user(self, email: str, legacy: dict) -> UserProfile:
        """Move an e-mail keyed account into the id keyed layout."""
        log.info("Migrating legacy user %s", email)
        uid = str(legacy.get("id") or new_id())
        username = await self._claim_generated_username(derive_base(email), uid)

        if not await self.backend.set(keys.email(email), uid, nx=True):
            # a concurrent login finished the migration first
            await self._release_quietly(uid, keys.username(username))
            existing = await self.backend.get(keys.email(email))
            profile = await self.load_profile(existing) if existing else None
            if profile is None:
                raise Conflict("Account migration in progress, please retry")
            return profile

        try:
            settings = UserSettings.model_validate(legacy.get("settings") or {})
        except ValidationError:
            settings = UserSettings()
        profile = UserProfile(
            id=uid,
            email=email,
            username=username,
            password_hash=legacy["passwordHash"],
            created_at=legacy.get("createdAt") or now_ms(),
            settings=settings,
        )

        data = legacy.get("data") or {}
        old_tasks: list[Task] = []
        for item in data.get("tasks") or []:
            if not isinstance(item, dict):
                continue
            try:
                old_tasks.append(normalize_legacy_task(item))
            except ValidationError:
                log.warning("Dropping unreadable legacy task for %s", email)
        old_history = parse_history(data.get("history") or [])

        pipe = self.backend.pipeline()
        pipe.set(keys.user(uid), profile.to_json())
        if old_tasks:
            pipe.hset(keys.tasks(uid), {t.id: t.to_json() for t in old_tasks})
            pipe.set(keys.task_order(uid), json.dumps([t.id for t in old_tasks]))
        pipe.set(keys.history(uid), dump_history(old_history))
        pipe.delete(keys.legacy_user(email))
        try:
            await pipe.execute()
        except BackendError:
            # the legacy record is intact, so the next login can start over
            log.error("Migration of %s to %s failed; releasing its claims", email, uid)
            await self._release_quietly(uid, keys.email(email), keys.username(username))
            raise
        return profile

    # ------------------------------------------------------------------
    # Profile updates
    # ------------------------------------------------------------------
    async def check_username_available(
        self, candidate: str, requester: str | None = None
    ) -> tuple[bool, str | None]:
        """Tell whether ``candidate`` could be claimed by ``requester``.

        A name already held by the requester counts as available.
        """
        if not isinstance(candidate, str) or not is_valid_username(candidate):
            return False, "Invalid format"
        owner = await self.resolve_username(candidate)
        if owner is None or (requester is not None and owner == requester):
            return True, None
        return False, "Username taken"

    async def _claim_rename(self, profile: UserProfile, new_name: str) -> str | None:
        """Claim ``new_name`` for ``profile``; return the name to release."""
        if new_name.lower() == profile.username.lower():
            return None
        if not is_valid_username(new_name):
            raise InvalidInput("Invalid username format")
        if profile.username_change_count >= MAX_CHANGES:
            raise Forbidden("Max username changes reached")
        if not await self.backend.set(keys.username(new_name), profile.id, nx=True):
            raise Conflict("Username taken")
        old = profile.username
        profile.username = new_name
        profile.username_change_count += 1
        return old

    async def _save_profile(self, profile: UserProfile, old: str | None) -> None:
        try:
            await self.backend.set(keys.user(profile.id), profile.to_json())
        except BackendError:
            if old is not None:
                await self._release_quietly(profile.id, keys.username(profile.username))
            raise
        if old is not None:
            await self._release(keys.username(old), profile.id)
            log.info("User %s renamed %s -> %s", profile.id, old, profile.username)

    async def change_username(self, uid: str, new_name: str) -> UserProfile:
        """Rename a user: claim the new name, save, then free the old one."""
        profile = await self.require_profile(uid)
        old = await self._claim_rename(profile, new_name)
        await self._save_profile(profile, old)
        return profile

    async def update_settings(
        self,
        uid: str,
        theme_id: str | None = None,
        sound_enabled: bool | None = None,
        language: str | None = None,
        username: str | None = None,
        avatar: str | None = None,
    ) -> UserProfile:
        profile = await self.require_profile(uid)

        if theme_id is not None and theme_id not in THEME_IDS:
            raise InvalidInput("Unknown theme")
        if language is not None and not 2 <= len(language) <= 10:
            raise InvalidInput("Invalid language code")
        if avatar:
            if not avatar.startswith("data:image/"):
                raise InvalidInput("Avatar must be an image data URL")
            if len(avatar) > AVATAR_MAX_LENGTH:
                raise InvalidInput("Avatar is too large")

        old = await self._claim_rename(profile, username) if username else None

        settings = profile.settings
        profile.settings = UserSettings(
            theme_id=theme_id or settings.theme_id,
            sound_enabled=settings.sound_enabled if sound_enabled is None else sound_enabled,
            language=language or settings.language,
        )
        if avatar is not None:
            profile.avatar = avatar or None

        await self._save_profile(profile, old)
        return profile

    async def get_session(self, uid: str) -> dict:
        profile = await self.require_profile(uid)
        tasks = await self.tasks.get_tasks(uid)
        history = await self.history.get_history(uid)
        return session_view(profile, tasks, history)
