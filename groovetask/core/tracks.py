"""Pure operations on tasks and task lists.

None of these functions touch storage. They return new objects instead of
mutating their arguments so callers can keep the previous value around as
a rollback snapshot.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable, Sequence
from datetime import UTC

from .models import DailyStat, LogEntry, Task, TaskKind, now_ms


def today() -> str:
    return datetime.datetime.now(tz=UTC).date().isoformat()


def day_of(timestamp_ms: int) -> str:
    return datetime.datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC).date().isoformat()


def new_task(title: str, description: str = "", kind: TaskKind = "simple") -> Task:
    title = title.strip()
    if not title:
        raise ValueError("title must not be empty")
    return Task(title=title, description=description, kind=kind)


def edit(task: Task, title: str, description: str) -> Task:
    title = title.strip()
    if not title:
        raise ValueError("title must not be empty")
    return task.model_copy(update={"title": title, "description": description})


def toggle(task: Task, at: int | None = None) -> Task:
    if task.kind != "simple":
        raise ValueError("only simple tasks can be toggled")
    done = not task.is_completed
    return task.model_copy(
        update={"is_completed": done, "completed_at": (at or now_ms()) if done else None}
    )


def increment(task: Task, at: int | None = None) -> Task:
    """Append one log entry; the count follows the log."""
    if task.kind != "counter":
        raise ValueError("only counter tasks can be incremented")
    log = [*(task.log or []), LogEntry(timestamp=at or now_ms())]
    return task.model_copy(update={"log": log, "count": len(log)})


def remove_log_entry(task: Task, entry_id: str) -> Task:
    if task.kind != "counter":
        raise ValueError("only counter tasks have a log")
    log = [e for e in task.log or [] if e.id != entry_id]
    if len(log) == len(task.log or []):
        raise KeyError(entry_id)
    return task.model_copy(update={"log": log, "count": len(log)})


def materialize_order(tasks: Iterable[Task], order: Sequence[str] | None) -> list[Task]:
    """Arrange ``tasks`` following ``order``.

    Ids in ``order`` that no longer exist are skipped. Tasks missing from
    ``order`` are appended sorted by creation time so that an incomplete or
    stale order list never hides a task.
    """
    by_id = {t.id: t for t in tasks}
    ordered: list[Task] = []
    for task_id in order or []:
        task = by_id.pop(task_id, None)
        if task is not None:
            ordered.append(task)
    orphans = sorted(by_id.values(), key=lambda t: t.created_at)
    return ordered + orphans


def normalize_legacy_task(raw: dict) -> Task:
    """Build a :class:`Task` from a record written by an older client.

    Old records carried ``lastCompletedDate`` (an ISO date string) instead
    of ``completedAt`` and had no ``type``.
    """
    data = dict(raw)
    if "completedAt" not in data:
        last = data.pop("lastCompletedDate", None)
        completed_at = None
        if last:
            try:
                parsed = datetime.datetime.fromisoformat(str(last).replace("Z", "+00:00"))
            except ValueError:
                parsed = None
            if parsed is not None:
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=UTC)
                completed_at = int(parsed.timestamp() * 1000)
        data["completedAt"] = completed_at
    data.setdefault("description", "")
    data.setdefault("createdAt", now_ms())
    if data.get("type") is None:
        data["type"] = "simple"
    return Task.model_validate(data)


def reset_stale_completions(tasks: Iterable[Task], day: str | None = None) -> list[Task]:
    """Un-complete simple tasks that were completed before ``day``."""
    day = day or today()
    result = []
    for task in tasks:
        if (
            task.kind == "simple"
            and task.is_completed
            and task.completed_at
            and day_of(task.completed_at) != day
        ):
            task = task.model_copy(update={"is_completed": False, "completed_at": None})
        result.append(task)
    return result


def record_daily_stat(
    history: Sequence[DailyStat], tasks: Sequence[Task], day: str | None = None
) -> list[DailyStat]:
    """Return ``history`` with today's completion figures upserted."""
    day = day or today()
    stat = DailyStat(
        date=day,
        completed_count=sum(1 for t in tasks if t.is_completed),
        total_tasks_at_end=len(tasks),
    )
    updated = [s for s in history if s.date != day]
    updated.append(stat)
    updated.sort(key=lambda s: s.date)
    return updated
