"""Tests for the bounded group chat log."""

import asyncio
from typing import Any

import pytest

from groovetask.adapters.memory import MemoryBackend
from groovetask.config import Settings
from groovetask.data.chat import MAX_MESSAGES
from groovetask.errors import InvalidInput
from groovetask.services import build_services


def run(coro: Any) -> Any:
    """Run an async coroutine synchronously for tests."""
    return asyncio.run(coro)


def make_group():
    services = build_services(Settings(bcrypt_rounds=4), MemoryBackend())
    uid = run(services.identity.register("jane@x.com", "password1")).profile.id
    gid = run(services.groups.create_group(uid, "Crew")).id
    return services, gid, uid


def test_post_and_read_messages() -> None:
    services, gid, uid = make_group()
    message = run(services.chat.post_message(gid, uid, "  hello  "))
    assert message.text == "hello"
    assert message.username == "jane"

    (stored,) = run(services.chat.get_messages(gid, uid))
    assert stored == message


def test_username_is_captured_at_send_time() -> None:
    services, gid, uid = make_group()
    run(services.chat.post_message(gid, uid, "before"))
    run(services.identity.change_username(uid, "janet"))
    run(services.chat.post_message(gid, uid, "after"))

    names = [m.username for m in run(services.chat.get_messages(gid, uid))]
    assert names == ["jane", "janet"]


def test_log_is_capped() -> None:
    services, gid, uid = make_group()

    async def flood():
        for i in range(MAX_MESSAGES + 5):
            await services.chat.post_message(gid, uid, f"m{i}")

    run(flood())
    assert len(services.backend.data[f"chat:{gid}"]) == MAX_MESSAGES

    everything = run(services.chat.get_messages(gid, uid, limit=10_000))
    assert len(everything) == MAX_MESSAGES
    assert everything[0].text == "m5"
    assert everything[-1].text == f"m{MAX_MESSAGES + 4}"

    latest = run(services.chat.get_messages(gid, uid, limit=3))
    assert [m.text for m in latest] == [f"m{MAX_MESSAGES + i}" for i in (2, 3, 4)]
    assert len(run(services.chat.get_messages(gid, uid, limit=0))) == 1


def test_message_length_limits() -> None:
    services, gid, uid = make_group()
    with pytest.raises(InvalidInput):
        run(services.chat.post_message(gid, uid, "   "))
    with pytest.raises(InvalidInput):
        run(services.chat.post_message(gid, uid, "x" * 1001))
    assert run(services.chat.get_messages(gid, uid)) == []
