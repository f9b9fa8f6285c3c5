from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import json
from pathlib import Path
from typing import Any, Iterable

from .errors import CorruptIndexError, ParseError
from .models import Task
from .paths import data_paths
from .store import atomic_write_text
from .timeutil import Duration, format_instant, parse_instant


INDEX_VERSION = 1


@dataclass(frozen=True)
class IndexRecord:
    """Per-task summary derived entirely from the task's log."""

    key: str
    title: str
    last_start: datetime | None
    last_end: datetime | None
    total_clocked: Duration
    active: bool

    @property
    def has_entries(self) -> bool:
        return self.last_start is not None

    def last_duration(self, now: datetime) -> Duration | None:
        if self.last_start is None:
            return None
        return Duration.between(self.last_start, self.last_end if self.last_end is not None else now)


Index = dict[str, IndexRecord]


def record_for(task: Task) -> IndexRecord:
    last = task.last_entry
    return IndexRecord(
        key=task.key,
        title=task.title,
        last_start=last.start if last is not None else None,
        last_end=last.end if last is not None else None,
        total_clocked=task.total_clocked(),
        active=task.is_active,
    )


def rebuild(tasks: Iterable[Task]) -> Index:
    """Recompute every record from the logs. Incremental updates must agree with this."""
    return {task.key: record_for(task) for task in tasks}


def update_incremental(index: Index, task: Task) -> IndexRecord:
    record = record_for(task)
    index[task.key] = record
    return record


def active_keys(index: Index) -> list[str]:
    return sorted(key for key, record in index.items() if record.active)


def index_path(root: Path) -> Path:
    return data_paths(root).index_json


def load_index(root: Path) -> Index | None:
    """Persisted index, or `None` when there is none yet."""

    path = index_path(root)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CorruptIndexError(f"Index is not valid JSON: {path}; rebuild index?") from exc
    if not isinstance(raw, dict):
        raise CorruptIndexError(f"Index has unexpected shape: {path}; rebuild index?")
    version = raw.get("version")
    if version != INDEX_VERSION:
        raise CorruptIndexError(
            f"Index version {version!r} does not match {INDEX_VERSION}: {path}; rebuild index?",
            field="version",
        )
    records = raw.get("tasks")
    if not isinstance(records, dict):
        raise CorruptIndexError(f"Index has no task table: {path}; rebuild index?", field="tasks")

    index: Index = {}
    for key, item in records.items():
        index[key] = _record_from_json(key, item)
    return index


def render_index(index: Index) -> str:
    payload = {
        "version": INDEX_VERSION,
        "tasks": {key: _record_to_json(index[key]) for key in sorted(index)},
    }
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=True) + "\n"


def save_index(root: Path, index: Index) -> None:
    atomic_write_text(index_path(root), render_index(index))


def _record_to_json(record: IndexRecord) -> dict[str, Any]:
    return {
        "title": record.title,
        "last_start": format_instant(record.last_start) if record.last_start is not None else None,
        "last_end": format_instant(record.last_end) if record.last_end is not None else None,
        "total_clocked": record.total_clocked.to_human(),
        "active": bool(record.active),
    }


def _record_from_json(key: str, item: Any) -> IndexRecord:
    if not isinstance(item, dict):
        raise CorruptIndexError(f"Index record for {key} is not a table; rebuild index?", key=key)
    try:
        last_start = _optional_instant(item.get("last_start"))
        last_end = _optional_instant(item.get("last_end"))
        total = Duration.parse_human(str(item.get("total_clocked") or ""))
    except ParseError as exc:
        raise CorruptIndexError(f"Index record for {key} is malformed: {exc}; rebuild index?", key=key) from exc
    active = item.get("active")
    if not isinstance(active, bool) or not isinstance(item.get("title"), str):
        raise CorruptIndexError(f"Index record for {key} is malformed; rebuild index?", key=key)
    if active and (last_start is None or last_end is not None):
        raise CorruptIndexError(f"Index record for {key} is active without an open entry; rebuild index?", key=key)
    return IndexRecord(
        key=key,
        title=item["title"],
        last_start=last_start,
        last_end=last_end,
        total_clocked=total,
        active=active,
    )


def _optional_instant(value: Any) -> datetime | None:
    if value is None:
        return None
    return parse_instant(str(value))
