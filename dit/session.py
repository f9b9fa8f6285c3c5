from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from .checks import CheckReport, check_single_active, find_overlaps, run_checks
from .config import DitConfig
from .errors import (
    AlreadyActiveError,
    AlreadyExistsError,
    CorruptIndexError,
    EmptyStackError,
    InvalidIntervalError,
    LockTimeoutError,
    NotActiveError,
    NotFoundError,
)
from .index import Index, load_index, rebuild, render_index, save_index, update_incremental
from .locks import store_lock
from .models import LogEntry, Task, validate_key
from .paths import DataPaths, data_paths
from .runtime_log import LogHooks, emit_log
from .stack import load_stack, render_stack
from .store import (
    atomic_write_bytes,
    insert_entry,
    load_all_tasks,
    load_task,
    read_snapshot,
    render_task,
    restore_snapshot,
    task_exists,
    task_path,
)
from .timeutil import format_instant, normalize, now as clock_now
from . import views

T = TypeVar("T")


class _Transaction:
    """Read-modify-write scope for one command.

    Tasks are mutated in memory; `commit` writes every touched file atomically
    and puts back the previous bytes of already written files if a later write
    fails, so a multi-step transition is never half applied.
    """

    def __init__(self, root: Path, index: Index, stack: list[str], *, index_dirty: bool = False) -> None:
        self.root = root
        self.index = index
        self.stack = list(stack)
        self._stack_before = list(stack)
        self._tasks: dict[str, Task] = {}
        self._dirty: list[str] = []
        self._index_dirty = index_dirty

    def has_task(self, key: str) -> bool:
        return key in self._tasks or task_exists(self.root, key)

    def task(self, key: str) -> Task:
        if key not in self._tasks:
            self._tasks[key] = load_task(self.root, key)
        return self._tasks[key]

    def create(self, key: str, title: str) -> Task:
        if self.has_task(key):
            raise AlreadyExistsError(f"Task already exists: {key}", key=key)
        task = Task(key=key, title=" ".join((title or "").split()) or key)
        self._tasks[key] = task
        self.touch(task)
        return task

    def touch(self, task: Task) -> None:
        task.sort_log()
        update_incremental(self.index, task)
        if task.key not in self._dirty:
            self._dirty.append(task.key)
        self._index_dirty = True

    def pending_writes(self) -> list[tuple[Path, bytes]]:
        paths = data_paths(self.root)
        writes: list[tuple[Path, bytes]] = []
        for key in self._dirty:
            task = self._tasks[key]
            writes.append((task_path(self.root, key), render_task(task).encode("utf-8")))
        if self.stack != self._stack_before:
            writes.append((paths.stack_json, render_stack(self.stack).encode("utf-8")))
        if self._index_dirty:
            writes.append((paths.index_json, render_index(self.index).encode("utf-8")))
        return writes

    def commit(self) -> None:
        snapshots: list[tuple[Path, bytes | None]] = []
        try:
            for path, data in self.pending_writes():
                snapshots.append((path, read_snapshot(path)))
                atomic_write_bytes(path, data)
        except BaseException:
            for path, original in reversed(snapshots):
                restore_snapshot(path, original)
            raise


class Tracker:
    """Session state machine over the task logs, the index and the switch stack.

    Every transition closes the previous active entry before checking the
    single-active invariant, and only then opens a new entry.
    """

    def __init__(
        self,
        root: Path,
        *,
        config: DitConfig | None = None,
        hooks: LogHooks | None = None,
        clock: Callable[[], datetime] = clock_now,
    ) -> None:
        self.root = root
        self.paths: DataPaths = data_paths(root)
        self.config = config or DitConfig()
        self.hooks = hooks
        self._clock = clock

    def now(self) -> datetime:
        return normalize(self._clock())

    def _log(self, message: str, *, level: str = "info") -> None:
        emit_log(message, level=level, hooks=self.hooks)

    # ---- transactions ----

    @contextmanager
    def _transaction(self) -> Iterator[_Transaction]:
        with store_lock(
            self.paths.lock_file,
            exclusive=True,
            timeout_s=self.config.locks.write_timeout_s,
        ):
            self._log(f"Acquired write lock: {self.paths.lock_file}", level="trace")
            index = load_index(self.root)
            rebuilt = index is None
            if index is None:
                self._log("Index missing; rebuilding from task logs", level="debug")
                index = rebuild(load_all_tasks(self.root))
            txn = _Transaction(self.root, index, load_stack(self.root), index_dirty=rebuilt)
            yield txn
            txn.commit()
            self._log("Committed changes", level="trace")

    def _read_locked(self, reader: Callable[[], T], *, strict: bool = False) -> tuple[T, bool]:
        """Run `reader` under a shared lock; returns (result, stale).

        Waiting is bounded. Unless `strict`, a timeout falls back to an unlocked
        read flagged as stale; atomic renames keep every single file whole.
        """

        try:
            with store_lock(
                self.paths.lock_file,
                exclusive=False,
                timeout_s=self.config.locks.read_timeout_s,
            ):
                return reader(), False
        except LockTimeoutError:
            if strict:
                raise
            self._log("Data directory is busy; reading possibly stale data", level="debug")
        return reader(), True

    def _current_index(self) -> Index:
        index = load_index(self.root)
        if index is None:
            self._log("Index missing; rebuilding in memory", level="debug")
            index = rebuild(load_all_tasks(self.root))
        return index

    # ---- transition helpers ----

    def _resolve(self, at: datetime | None) -> datetime:
        return normalize(at) if at is not None else self.now()

    def _open_entry(
        self,
        txn: _Transaction,
        key: str,
        start: datetime,
        *,
        create: bool = False,
        title: str | None = None,
    ) -> Task:
        active = check_single_active(txn.index)
        if active is not None:
            raise AlreadyActiveError(f"Already working on a task: {active}", key=active)

        if txn.has_task(key):
            task = txn.task(key)
        elif create:
            task = txn.create(key, title or key)
        else:
            raise NotFoundError(f"Task does not exist: {key}", key=key)

        if task.open_entry_index() is not None:
            raise CorruptIndexError(
                f"Log of {key} already has an open entry but the index marks nothing active; rebuild index?",
                key=key,
            )
        last = task.last_entry
        if last is not None and start < last.start:
            raise InvalidIntervalError(
                f"Cannot start {key} at {format_instant(start)}, before its latest entry "
                f"({format_instant(last.start)})",
                key=key,
                field="start",
            )
        insert_entry(task, LogEntry(start=start))
        txn.touch(task)
        self._warn_overlaps(task)
        return task

    def _open_task(self, txn: _Transaction) -> tuple[Task, int]:
        active = check_single_active(txn.index)
        if active is None:
            raise NotActiveError("Not working on any task")
        task = txn.task(active)
        idx = task.open_entry_index()
        if idx is None or idx != len(task.log) - 1:
            raise CorruptIndexError(
                f"Index marks {active} as active but its log has no open entry; rebuild index?",
                key=active,
            )
        return task, idx

    def _close_active(self, txn: _Transaction, end: datetime) -> Task:
        task, idx = self._open_task(txn)
        entry = task.log[idx]
        if end < entry.start:
            raise InvalidIntervalError(
                f"Cannot halt {task.key} at {format_instant(end)}, before it started "
                f"({format_instant(entry.start)})",
                key=task.key,
                field="end",
            )
        task.log[idx] = entry.closed_at(end)
        txn.touch(task)
        return task

    def _warn_overlaps(self, task: Task) -> None:
        for i, j in find_overlaps(task.log, now=self.now()):
            first, second = task.log[i], task.log[j]
            self._log(
                f"Overlapping entries in {task.key}: {format_instant(first.start)} and {format_instant(second.start)}",
                level="warn",
            )

    # ---- transitions ----

    def new(self, key: str, title: str | None = None) -> Task:
        clean = validate_key(key)
        with self._transaction() as txn:
            task = txn.create(clean, title or clean)
        self._log(f"Created: {clean}")
        return task

    def work_on(self, key: str, *, at: datetime | None = None, title: str | None = None) -> Task:
        clean = validate_key(key)
        start = self._resolve(at)
        with self._transaction() as txn:
            task = self._open_entry(txn, clean, start, create=True, title=title)
        self._log(f"Working on: {clean}")
        return task

    def halt(self, *, at: datetime | None = None) -> Task:
        end = self._resolve(at)
        with self._transaction() as txn:
            task = self._close_active(txn, end)
        self._log(f"Halted: {task.key}")
        return task

    def append(self, key: str, start: datetime, end: datetime) -> Task:
        """Record a closed historical entry. Overlaps are reported, not refused."""

        clean = validate_key(key)
        start = normalize(start)
        end = normalize(end)
        if end < start:
            raise InvalidIntervalError(
                f"Entry for {clean} ends ({format_instant(end)}) before it starts ({format_instant(start)})",
                key=clean,
                field="end",
            )
        with self._transaction() as txn:
            if not txn.has_task(clean):
                raise NotFoundError(f"Task does not exist: {clean}", key=clean)
            task = txn.task(clean)
            open_idx = task.open_entry_index()
            if open_idx is not None and start >= task.log[open_idx].start:
                raise InvalidIntervalError(
                    f"Cannot append to {clean} after its active entry; halt first",
                    key=clean,
                    field="start",
                )
            insert_entry(task, LogEntry(start=start, end=end))
            txn.touch(task)
            self._warn_overlaps(task)
        self._log(f"Appended to {clean}: {format_instant(start)} - {format_instant(end)}")
        return task

    def cancel(self) -> Task:
        with self._transaction() as txn:
            task, idx = self._open_task(txn)
            del task.log[idx]
            txn.touch(task)
        self._log(f"Canceled: {task.key}")
        return task

    def resume(self, *, at: datetime | None = None, index: int = 0) -> Task:
        """Start a fresh entry on the `index`-th most recent task (0 = latest)."""

        start = self._resolve(at)
        with self._transaction() as txn:
            active = check_single_active(txn.index)
            if active is not None:
                raise AlreadyActiveError(f"Already working on a task: {active}", key=active)
            recent = views.recent_records(txn.index)
            if index < 0 or index >= len(recent):
                raise NotFoundError(f"No previous task {index} to resume; rebuild index?")
            key = recent[index].key
            task = self._open_entry(txn, key, start)
        self._log(f"Working on: {task.key}")
        return task

    def reopen(self) -> Task:
        """Undo the last halt: the most recent entry is continued."""

        with self._transaction() as txn:
            active = check_single_active(txn.index)
            if active is not None:
                raise AlreadyActiveError(f"Already working on: {active}", key=active)
            recent = views.recent_records(txn.index)
            if not recent:
                raise NotFoundError("No previous task to reopen; rebuild index?")
            task = txn.task(recent[0].key)
            last = task.last_entry
            if last is None or last.is_open:
                raise CorruptIndexError(
                    f"Index and log of {task.key} disagree about its latest entry; rebuild index?",
                    key=task.key,
                )
            task.log[-1] = last.reopened()
            txn.touch(task)
        self._log(f"Appending to: {task.key}")
        return task

    def switch_to(self, key: str, *, at: datetime | None = None, title: str | None = None) -> Task:
        clean = validate_key(key)
        when = self._resolve(at)
        with self._transaction() as txn:
            active = check_single_active(txn.index)
            if active is None:
                raise NotActiveError("Not working on any task; use work-on")
            if active == clean:
                raise AlreadyActiveError(f"Already working on: {clean}", key=clean)
            self._close_active(txn, when)
            txn.stack.append(active)
            task = self._open_entry(txn, clean, when, create=True, title=title)
        self._log(f"Switched: {active} -> {clean}")
        return task

    def switch_back(self, *, at: datetime | None = None) -> Task:
        when = self._resolve(at)
        with self._transaction() as txn:
            active = check_single_active(txn.index)
            if active is None:
                raise NotActiveError("Not working on any task")
            if not txn.stack:
                raise EmptyStackError("Switch stack is empty; nothing to switch back to")
            previous = txn.stack.pop()
            if previous == active:
                raise AlreadyActiveError(f"Already working on: {previous}", key=previous)
            if not txn.has_task(previous):
                raise NotFoundError(f"Task does not exist: {previous}", key=previous)
            self._close_active(txn, when)
            task = self._open_entry(txn, previous, when)
        self._log(f"Switched back: {active} -> {previous}")
        return task

    # ---- index maintenance ----

    def rebuild_index(self) -> Index:
        """Throw away the persisted index and recompute it from every log."""

        with store_lock(
            self.paths.lock_file,
            exclusive=True,
            timeout_s=self.config.locks.write_timeout_s,
        ):
            index = rebuild(load_all_tasks(self.root))
            save_index(self.root, index)
        self._log(f"Rebuilt index: {len(index)} task(s)", level="debug")
        return index

    # ---- queries ----

    def active_key(self) -> str | None:
        index, _stale = self._read_locked(self._current_index)
        return check_single_active(index)

    def switch_stack(self) -> list[str]:
        stack, _stale = self._read_locked(lambda: load_stack(self.root))
        return stack

    def status(self, *, limit: int | None = None) -> views.StatusReport:
        index, stale = self._read_locked(self._current_index)
        return views.build_status(index, now=self.now(), limit=limit, stale=stale)

    def listing(
        self,
        *,
        keys: list[str] | None = None,
        after: datetime | None = None,
        before: datetime | None = None,
    ) -> views.ListReport:
        wanted = [validate_key(key) for key in keys] if keys else None

        def read() -> list[Task]:
            if wanted is None:
                return load_all_tasks(self.root)
            return [load_task(self.root, key) for key in wanted]

        tasks, stale = self._read_locked(read)
        items = views.build_listing(tasks, after=after, before=before)
        return views.ListReport(items=items, stale=stale)

    def check(self) -> CheckReport:
        def read() -> tuple[Index, list[Task]]:
            return self._current_index(), load_all_tasks(self.root)

        (index, tasks), _stale = self._read_locked(read, strict=True)
        return run_checks(index, tasks, now=self.now())

    def task_path(self, key: str) -> Path:
        clean = validate_key(key)
        if not task_exists(self.root, clean):
            raise NotFoundError(f"Task does not exist: {clean}", key=clean)
        return task_path(self.root, clean)
