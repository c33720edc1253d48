import asyncio

from groovetask.sync.client import GrooveTaskClient, SyncError
from groovetask.sync.poller import Poller
from groovetask.sync.state import ClientState


def make_poller(calls: list[str], interval: float = 0.02) -> Poller:
    state = ClientState(GrooveTaskClient("http://testserver"))

    async def tasks():
        calls.append("tasks")

    async def chat():
        calls.append("chat")
        raise SyncError(0, "offline")  # failures do not stop polling

    return Poller(state, interval=interval, refreshers=[tasks, chat])


def test_poller_refreshes_until_suspended():
    calls: list[str] = []

    async def scenario():
        poller = make_poller(calls)
        poller.start()
        await asyncio.sleep(0.07)
        await poller.suspend()
        assert not poller.running
        seen = len(calls)
        await asyncio.sleep(0.05)
        return seen

    seen = asyncio.run(scenario())
    assert calls.count("tasks") >= 2
    assert calls.count("chat") == calls.count("tasks")
    assert len(calls) == seen


def test_resume_refreshes_immediately():
    calls: list[str] = []

    async def scenario():
        poller = make_poller(calls, interval=10)
        poller.start()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        first = list(calls)
        await poller.suspend()
        await poller.resume()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await poller.suspend()
        return first

    first = asyncio.run(scenario())
    assert first == ["tasks", "chat"]
    assert calls == ["tasks", "chat", "tasks", "chat"]


def test_start_is_idempotent():
    async def scenario():
        poller = make_poller([], interval=10)
        poller.start()
        task = poller._task
        poller.start()
        same = poller._task is task
        await poller.suspend()
        return same

    assert asyncio.run(scenario())


def test_unexpected_refresh_errors_are_logged_and_polling_continues(caplog):
    calls: list[str] = []

    async def broken():
        calls.append("broken")
        raise ValueError("unexpected payload")

    async def scenario():
        state = ClientState(GrooveTaskClient("http://testserver"))
        poller = Poller(state, interval=0.02, refreshers=[broken])
        poller.start()
        await asyncio.sleep(0.07)
        alive = poller.running
        await poller.suspend()
        return alive

    with caplog.at_level("ERROR", logger="groovetask.sync"):
        alive = asyncio.run(scenario())
    assert alive
    assert len(calls) >= 2
    assert "unexpected payload" in caplog.text
