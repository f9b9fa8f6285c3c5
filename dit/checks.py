from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Sequence

from .errors import ActiveConflictError
from .index import Index, active_keys, rebuild
from .models import LogEntry, Task
from .timeutil import now as clock_now


@dataclass(frozen=True)
class Overlap:
    first_key: str
    first: LogEntry
    second_key: str
    second: LogEntry


@dataclass(frozen=True)
class CheckReport:
    task_overlaps: dict[str, list[tuple[LogEntry, LogEntry]]] = field(default_factory=dict)
    cross_overlaps: list[Overlap] = field(default_factory=list)
    active: list[str] = field(default_factory=list)
    index_mismatches: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return (
            not any(self.task_overlaps.values())
            and not self.cross_overlaps
            and len(self.active) <= 1
            and not self.index_mismatches
        )


def find_overlaps(entries: Sequence[LogEntry], *, now: datetime | None = None) -> list[tuple[int, int]]:
    """Index pairs of overlapping entries in a log sorted by start.

    Intervals are half-open, so touching entries do not overlap. An active
    entry runs until `now`. Each entry starting inside an earlier one is paired
    with the earlier entry that reaches furthest. The input is not sorted here.
    """

    current = now or clock_now()
    pairs: list[tuple[int, int]] = []
    reach_idx: int | None = None
    reach_end: datetime | None = None
    for idx, entry in enumerate(entries):
        end = entry.end if entry.end is not None else current
        if end <= entry.start:
            continue
        if reach_idx is not None and reach_end is not None and entry.start < reach_end:
            pairs.append((reach_idx, idx))
        if reach_end is None or end > reach_end:
            reach_idx, reach_end = idx, end
    return pairs


def check_single_active(index: Index) -> str | None:
    """Key of the active task, `None` when idle; more than one is a conflict."""
    keys = active_keys(index)
    if len(keys) > 1:
        raise ActiveConflictError(keys)
    return keys[0] if keys else None


def find_cross_overlaps(tasks: Iterable[Task], *, now: datetime | None = None) -> list[Overlap]:
    merged = sorted(
        ((task.key, entry) for task in tasks for entry in task.log),
        key=lambda item: item[1].start,
    )
    current = now or clock_now()
    # Furthest-reaching entry so far, per task.
    reach: dict[str, tuple[LogEntry, datetime]] = {}
    overlaps: list[Overlap] = []
    for key, entry in merged:
        end = entry.end if entry.end is not None else current
        if end <= entry.start:
            continue
        for other_key, (other, other_end) in reach.items():
            if other_key != key and entry.start < other_end:
                overlaps.append(Overlap(first_key=other_key, first=other, second_key=key, second=entry))
        if key not in reach or end > reach[key][1]:
            reach[key] = (entry, end)
    return overlaps


def check_index(index: Index, tasks: Iterable[Task]) -> list[str]:
    """Keys whose stored record disagrees with a fresh rebuild."""
    expected = rebuild(tasks)
    mismatched = {key for key in expected if index.get(key) != expected[key]}
    mismatched.update(key for key in index if key not in expected)
    return sorted(mismatched)


def run_checks(index: Index, tasks: Sequence[Task], *, now: datetime | None = None) -> CheckReport:
    current = now or clock_now()
    task_overlaps: dict[str, list[tuple[LogEntry, LogEntry]]] = {}
    for task in tasks:
        pairs = find_overlaps(task.log, now=current)
        if pairs:
            task_overlaps[task.key] = [(task.log[i], task.log[j]) for i, j in pairs]
    return CheckReport(
        task_overlaps=task_overlaps,
        cross_overlaps=find_cross_overlaps(tasks, now=current),
        active=active_keys(index),
        index_mismatches=check_index(index, tasks),
    )
