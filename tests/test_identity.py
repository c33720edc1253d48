"""Tests for registration, login and profile updates."""

import asyncio
import json
import random
from typing import Any

import pytest

from groovetask.adapters.memory import MemoryBackend
from groovetask.config import Settings
from groovetask.core.models import Task
from groovetask.core.security import PasswordHasher
from groovetask.errors import (
    AlreadyExists,
    BackendError,
    Conflict,
    Forbidden,
    GenerationExhausted,
    InvalidCredentials,
    InvalidInput,
    NotFound,
)
from groovetask.services import Services, build_services


def run(coro: Any) -> Any:
    """Run an async coroutine synchronously for tests."""
    return asyncio.run(coro)


def make_services(rng: random.Random | None = None) -> Services:
    return build_services(Settings(bcrypt_rounds=4), MemoryBackend(), rng=rng)


class FixedRandom(random.Random):
    """Always produces the same suffix."""

    def randint(self, a: int, b: int) -> int:
        return 4821


def test_register_claims_username_and_email() -> None:
    services = make_services()
    session = run(services.identity.register("Jane@X.com", "password1", "de"))
    profile = session.profile

    assert profile.email == "jane@x.com"
    assert profile.username == "jane"
    assert profile.settings.language == "de"
    assert profile.password_hash != "password1"
    assert run(services.backend.get("email:jane@x.com")) == profile.id
    assert run(services.backend.get("username:jane")) == profile.id
    assert run(services.history.get_history(profile.id)) == []

    view = session.view()
    assert view["username"] == "jane"
    assert view["data"] == {"tasks": [], "history": []}
    assert "passwordHash" not in view
    assert services.tokens.verify(session.token)["uid"] == profile.id


def test_colliding_bases_get_distinct_names_and_both_log_in() -> None:
    services = make_services(FixedRandom())
    first = run(services.identity.register("jane@x.com", "password1"))
    second = run(services.identity.register("j.a.n.e@y.com", "password2"))

    assert first.profile.username == "jane"
    assert second.profile.username == "jane4821"

    assert run(services.identity.login("jane", "password1")).profile.id == first.profile.id
    assert run(services.identity.login("JANE4821", "password2")).profile.id == second.profile.id


def test_concurrent_registrations_never_share_a_username() -> None:
    services = make_services()
    emails = [f"sam{'.' * i}@host{i}.com" for i in range(6)]

    async def register_all():
        return await asyncio.gather(
            *(services.identity.register(e, "password1") for e in emails)
        )

    sessions = run(register_all())
    names = [s.profile.username for s in sessions]
    assert len(set(n.lower() for n in names)) == len(emails)
    for session in sessions:
        key = f"username:{session.profile.username.lower()}"
        assert run(services.backend.get(key)) == session.profile.id


def test_generation_exhausted_releases_nothing() -> None:
    services = make_services(FixedRandom())
    run(services.identity.register("jane@x.com", "password1"))
    run(services.identity.register("jane@y.com", "password1"))  # takes jane4821

    with pytest.raises(GenerationExhausted):
        run(services.identity.register("jane@z.com", "password1"))
    assert run(services.backend.get("email:jane@z.com")) is None


def test_register_validation_happens_before_writes() -> None:
    services = make_services()
    with pytest.raises(InvalidInput):
        run(services.identity.register("not-an-email", "password1"))
    with pytest.raises(InvalidInput):
        run(services.identity.register("jane@x.com", "short"))
    assert services.backend.data == {}


def test_duplicate_email_rejected() -> None:
    services = make_services()
    run(services.identity.register("jane@x.com", "password1"))
    with pytest.raises(AlreadyExists):
        run(services.identity.register("JANE@x.com", "password2"))


def test_concurrent_same_email_registers_once() -> None:
    services = make_services()

    async def race():
        return await asyncio.gather(
            services.identity.register("jane@x.com", "password1"),
            services.identity.register("jane@x.com", "password2"),
            return_exceptions=True,
        )

    results = run(race())
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1 and isinstance(errors[0], AlreadyExists)
    # the loser's username claim was released
    claimed = [k for k in services.backend.data if k.startswith("username:")]
    assert len(claimed) == 1


def test_login_failures_are_indistinguishable() -> None:
    services = make_services()
    run(services.identity.register("jane@x.com", "password1"))

    with pytest.raises(InvalidCredentials) as wrong_password:
        run(services.identity.login("jane@x.com", "nope-nope"))
    with pytest.raises(InvalidCredentials) as unknown_user:
        run(services.identity.login("ghost@x.com", "password1"))
    with pytest.raises(InvalidCredentials):
        run(services.identity.login("ghost", "password1"))
    assert str(wrong_password.value) == str(unknown_user.value) == "Invalid credentials"


def test_dummy_verify_always_fails() -> None:
    hasher = PasswordHasher(rounds=4)
    assert run(hasher.verify_dummy("dummy")) is False
    assert run(hasher.verify("password", "not-a-bcrypt-hash")) is False


def test_login_returns_tasks_and_history() -> None:
    services = make_services()
    session = run(services.identity.register("jane@x.com", "password1"))
    uid = session.profile.id
    run(services.backend.set(f"data:history:{uid}", json.dumps([{"date": "2024-03-01", "completedCount": 1, "totalTasksAtEnd": 2}])))

    run(services.tasks.put_task(uid, Task(id="t1", title="Read")))
    logged_in = run(services.identity.login("jane@x.com", "password1"))
    assert [t.id for t in logged_in.tasks] == ["t1"]
    assert logged_in.history[0].completed_count == 1


def test_legacy_account_migrates_on_login() -> None:
    services = make_services()
    hashed = run(services.identity.hasher.hash("password1"))
    services.backend.data["user:old@x.com"] = json.dumps(
        {
            "email": "old@x.com",
            "passwordHash": hashed,
            "settings": {"themeId": "neon-pink", "soundEnabled": False, "language": "fr"},
            "data": {
                "tasks": [{"id": "t1", "title": "Legacy", "lastCompletedDate": None}],
                "history": [{"date": "2024-01-01", "completedCount": 0, "totalTasksAtEnd": 1}],
            },
        }
    )

    with pytest.raises(AlreadyExists):
        run(services.identity.register("old@x.com", "password1"))

    session = run(services.identity.login("OLD@x.com", "password1"))
    profile = session.profile
    assert profile.username == "old"
    assert profile.settings.theme_id == "neon-pink"
    assert [t.id for t in session.tasks] == ["t1"]
    assert len(session.history) == 1
    assert "user:old@x.com" not in services.backend.data
    assert run(services.backend.get("email:old@x.com")) == profile.id

    # second login goes through the migrated record
    again = run(services.identity.login("old", "password1"))
    assert again.profile.id == profile.id


def test_rename_claims_new_then_releases_old() -> None:
    services = make_services()
    uid = run(services.identity.register("alice@x.com", "password1")).profile.id

    profile = run(services.identity.change_username(uid, "Bob"))
    assert profile.username == "Bob"
    assert profile.username_change_count == 1
    assert run(services.backend.get("username:bob")) == uid
    assert run(services.backend.get("username:alice")) is None

    # the freed name can be claimed by someone else
    other = run(services.identity.register("carol@x.com", "password1")).profile.id
    run(services.identity.change_username(other, "alice"))
    assert run(services.backend.get("username:alice")) == other


def test_rename_to_taken_name_conflicts() -> None:
    services = make_services()
    run(services.identity.register("alice@x.com", "password1"))
    uid = run(services.identity.register("bob@x.com", "password1")).profile.id

    with pytest.raises(Conflict):
        run(services.identity.change_username(uid, "ALICE"))
    assert run(services.identity.require_profile(uid)).username == "bob"
    assert run(services.backend.get("username:bob")) == uid


def test_rename_limits() -> None:
    services = make_services()
    uid = run(services.identity.register("alice@x.com", "password1")).profile.id

    with pytest.raises(InvalidInput):
        run(services.identity.change_username(uid, "no spaces"))

    for name in ("alice1", "alice2", "alice3"):
        run(services.identity.change_username(uid, name))
    with pytest.raises(Forbidden, match="Max username changes"):
        run(services.identity.change_username(uid, "alice4"))

    # a case-only change is not a rename
    profile = run(services.identity.change_username(uid, "ALICE3"))
    assert profile.username_change_count == 3


def test_concurrent_rename_to_same_name() -> None:
    services = make_services()
    a = run(services.identity.register("anna@x.com", "password1")).profile.id
    b = run(services.identity.register("bert@x.com", "password1")).profile.id

    async def race():
        return await asyncio.gather(
            services.identity.change_username(a, "winner"),
            services.identity.change_username(b, "winner"),
            return_exceptions=True,
        )

    results = run(race())
    assert sum(isinstance(r, Conflict) for r in results) == 1
    owner = run(services.backend.get("username:winner"))
    assert owner in (a, b)
    loser = b if owner == a else a
    assert run(services.identity.require_profile(loser)).username in ("anna", "bert")


def test_check_username_available() -> None:
    services = make_services()
    uid = run(services.identity.register("jane@x.com", "password1")).profile.id

    assert run(services.identity.check_username_available("jane")) == (False, "Username taken")
    assert run(services.identity.check_username_available("Jane", uid)) == (True, None)
    assert run(services.identity.check_username_available("free_name")) == (True, None)
    assert run(services.identity.check_username_available("x!")) == (False, "Invalid format")


def test_update_settings() -> None:
    services = make_services()
    uid = run(services.identity.register("jane@x.com", "password1")).profile.id

    profile = run(
        services.identity.update_settings(
            uid, theme_id="neon-green", sound_enabled=False, avatar="data:image/png;base64,AAAA"
        )
    )
    assert profile.settings.theme_id == "neon-green"
    assert profile.settings.sound_enabled is False
    assert profile.settings.language == "en"
    assert profile.avatar.startswith("data:image/")

    # empty avatar removes it, omitted fields keep their values
    profile = run(services.identity.update_settings(uid, avatar=""))
    assert profile.avatar is None
    assert profile.settings.theme_id == "neon-green"

    with pytest.raises(InvalidInput):
        run(services.identity.update_settings(uid, theme_id="rainbow"))
    with pytest.raises(InvalidInput):
        run(services.identity.update_settings(uid, avatar="https://example.com/a.png"))
    with pytest.raises(NotFound):
        run(services.identity.update_settings("ghost", theme_id="neon-green"))


def test_get_session_view() -> None:
    services = make_services()
    uid = run(services.identity.register("jane@x.com", "password1")).profile.id
    view = run(services.identity.get_session(uid))
    assert view["email"] == "jane@x.com"
    assert view["usernameChangeCount"] == 0
    assert view["settings"]["themeId"] == "neon-blue"


def test_password_longer_than_bcrypt_accepts_is_rejected() -> None:
    services = make_services()
    with pytest.raises(InvalidInput):
        run(services.identity.register("jane@x.com", "p" * 80))
    # 40 characters but 80 bytes once encoded
    with pytest.raises(InvalidInput):
        run(services.identity.register("jane@x.com", "é" * 40))
    assert services.backend.data == {}

    run(services.identity.register("jane@x.com", "p" * 72))
    assert run(services.identity.login("jane", "p" * 72)).profile.username == "jane"
    with pytest.raises(InvalidCredentials):
        run(services.identity.login("jane", "p" * 80))


class FailingBatchBackend(MemoryBackend):
    """Fails the next batch once ``fail_next_batch`` is set."""

    fail_next_batch = False

    async def execute_many(self, commands: list) -> list:
        if self.fail_next_batch:
            self.fail_next_batch = False
            raise BackendError("ERR connection reset")
        return await super().execute_many(commands)


def test_failed_legacy_migration_releases_claims() -> None:
    backend = FailingBatchBackend()
    services = build_services(Settings(bcrypt_rounds=4), backend)
    hashed = run(services.identity.hasher.hash("password1"))
    backend.data["user:old@x.com"] = json.dumps({"email": "old@x.com", "passwordHash": hashed})

    backend.fail_next_batch = True
    with pytest.raises(BackendError):
        run(services.identity.login("old@x.com", "password1"))
    assert "email:old@x.com" not in backend.data
    assert not [k for k in backend.data if k.startswith("username:")]
    assert "user:old@x.com" in backend.data

    session = run(services.identity.login("old@x.com", "password1"))
    assert session.profile.username == "old"
    assert run(backend.get("email:old@x.com")) == session.profile.id
