from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Sequence

from .checks import check_single_active
from .index import Index, IndexRecord
from .models import LogEntry, Task
from .timeutil import Duration


LIST_FIELDS = ("start", "end", "effort", "id", "title")


@dataclass(frozen=True)
class StatusItem:
    key: str
    title: str
    start: datetime
    end: datetime | None
    effort: Duration
    total_effort: Duration

    @property
    def active(self) -> bool:
        return self.end is None


@dataclass(frozen=True)
class StatusReport:
    """Most recent entry per task, newest first.

    `current` is the active task's row wherever it sorts, and survives `limit`.
    """

    items: list[StatusItem] = field(default_factory=list)
    current: StatusItem | None = None
    stale: bool = False


@dataclass(frozen=True)
class ListItem:
    key: str
    title: str
    entry: LogEntry

    @property
    def start(self) -> datetime:
        return self.entry.start

    @property
    def end(self) -> datetime | None:
        return self.entry.end

    def effort(self, now: datetime) -> Duration:
        return self.entry.effort(now)


@dataclass(frozen=True)
class ListReport:
    items: list[ListItem] = field(default_factory=list)
    stale: bool = False


def recent_records(index: Index) -> list[IndexRecord]:
    """Records with at least one entry, most recently started first."""
    records = [record for record in index.values() if record.has_entries]
    records.sort(key=lambda record: record.key)
    records.sort(key=lambda record: record.last_start, reverse=True)
    return records


def build_status(index: Index, *, now: datetime, limit: int | None = None, stale: bool = False) -> StatusReport:
    items: list[StatusItem] = []
    for record in recent_records(index):
        assert record.last_start is not None
        effort = Duration.between(record.last_start, record.last_end or now)
        total = record.total_clocked + effort if record.active else record.total_clocked
        items.append(
            StatusItem(
                key=record.key,
                title=record.title,
                start=record.last_start,
                end=record.last_end,
                effort=effort,
                total_effort=total,
            )
        )
    active = check_single_active(index)
    current = next((item for item in items if item.key == active), None)
    if limit is not None:
        items = items[: max(0, limit)]
    return StatusReport(items=items, current=current, stale=stale)


def format_short_status(report: StatusReport) -> str:
    current = report.current
    if current is None:
        return ""
    return f"{current.key} {current.effort.to_human()}"


def build_listing(
    tasks: Iterable[Task],
    *,
    after: datetime | None = None,
    before: datetime | None = None,
) -> list[ListItem]:
    items: list[ListItem] = []
    for task in tasks:
        for entry in task.log:
            if after is not None and entry.start < after:
                continue
            if before is not None and entry.start >= before:
                continue
            items.append(ListItem(key=task.key, title=task.title, entry=entry))
    items.sort(key=lambda item: item.key)
    items.sort(key=lambda item: item.start, reverse=True)
    return items


def group_by_day(items: Sequence[ListItem]) -> list[tuple[date, list[ListItem]]]:
    """Split an ordered listing into runs sharing the same start date.

    Only regroups; the entries and their order are kept as given.
    """

    groups: list[tuple[date, list[ListItem]]] = []
    for item in items:
        day = item.start.date()
        if groups and groups[-1][0] == day:
            groups[-1][1].append(item)
        else:
            groups.append((day, [item]))
    return groups


def total_effort(items: Iterable[ListItem], *, now: datetime) -> Duration:
    total = Duration()
    for item in items:
        total = total + item.effort(now)
    return total


def daily_totals(items: Sequence[ListItem], *, now: datetime) -> list[tuple[date, Duration]]:
    return [(day, total_effort(group, now=now)) for day, group in group_by_day(items)]


def parse_fields(value: str | None) -> tuple[str, ...]:
    if not value:
        return LIST_FIELDS
    wanted = [item.strip().lower() for item in value.split(",") if item.strip()]
    unknown = [item for item in wanted if item not in LIST_FIELDS]
    if unknown:
        raise ValueError(f"unknown field(s): {', '.join(unknown)}; choose from {', '.join(LIST_FIELDS)}")
    return tuple(dict.fromkeys(wanted))
