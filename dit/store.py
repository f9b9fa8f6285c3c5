from __future__ import annotations

from bisect import bisect_right
from datetime import datetime
import json
import os
from pathlib import Path
import tempfile
import tomllib

from .errors import AlreadyExistsError, NotFoundError, ParseError
from .models import LogEntry, Task, is_valid_key, validate_key
from .paths import TASK_SUFFIX
from .timeutil import format_instant, normalize, parse_instant


def task_path(root: Path, key: str) -> Path:
    """File holding the log of `key`; also what an external editor should open."""
    return root / f"{validate_key(key)}{TASK_SUFFIX}"


def task_exists(root: Path, key: str) -> bool:
    return task_path(root, key).is_file()


def list_keys(root: Path) -> list[str]:
    if not root.is_dir():
        return []
    keys: list[str] = []
    for path in root.rglob(f"*{TASK_SUFFIX}"):
        relative = path.relative_to(root)
        if any(part.startswith(".") for part in relative.parts):
            continue
        key = relative.with_suffix("").as_posix()
        if is_valid_key(key) and path.is_file():
            keys.append(key)
    return sorted(keys)


def load_task(root: Path, key: str) -> Task:
    clean = validate_key(key)
    path = task_path(root, clean)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise NotFoundError(f"Task does not exist: {clean}", key=clean) from exc
    return parse_task(clean, text, source=path)


def load_all_tasks(root: Path) -> list[Task]:
    return [load_task(root, key) for key in list_keys(root)]


def save_task(root: Path, task: Task) -> Path:
    task.sort_log()
    path = task_path(root, task.key)
    atomic_write_text(path, render_task(task))
    return path


def create_task(root: Path, key: str, title: str) -> Task:
    clean = validate_key(key)
    if task_exists(root, clean):
        raise AlreadyExistsError(f"Task already exists: {clean}", key=clean)
    task = Task(key=clean, title=" ".join((title or "").split()) or clean)
    save_task(root, task)
    return task


def insert_entry(task: Task, entry: LogEntry) -> None:
    starts = [item.start for item in task.log]
    task.log.insert(bisect_right(starts, entry.start), entry)
    task.sort_log()


def append_entry(root: Path, task: Task, entry: LogEntry) -> Task:
    insert_entry(task, entry)
    save_task(root, task)
    return task


def render_task(task: Task) -> str:
    lines = [f"title = {_toml_string(task.title)}"]
    for entry in task.log:
        lines.append("")
        lines.append("[[log]]")
        lines.append(f"start = {_toml_string(format_instant(entry.start))}")
        if entry.end is not None:
            lines.append(f"end = {_toml_string(format_instant(entry.end))}")
    return "\n".join(lines) + "\n"


def parse_task(key: str, text: str, *, source: Path | None = None) -> Task:
    where = str(source) if source is not None else key
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ParseError(f"Could not parse task file {where}: {exc}", key=key, field="toml") from exc

    title = data.get("title", "")
    if not isinstance(title, str):
        raise ParseError(f"Invalid title in {where}", key=key, field="title")

    raw_log = data.get("log", [])
    if not isinstance(raw_log, list):
        raise ParseError(f"Invalid log in {where}", key=key, field="log")

    entries: list[LogEntry] = []
    for pos, item in enumerate(raw_log):
        if not isinstance(item, dict):
            raise ParseError(f"Invalid log entry #{pos} in {where}", key=key, field=f"log[{pos}]")
        start = _parse_when(item.get("start"), key=key, field=f"log[{pos}].start", where=where)
        end = None
        if item.get("end") is not None:
            end = _parse_when(item.get("end"), key=key, field=f"log[{pos}].end", where=where)
            if end < start:
                raise ParseError(
                    f"Log entry #{pos} in {where} ends before it starts",
                    key=key,
                    field=f"log[{pos}].end",
                )
        entries.append(LogEntry(start=start, end=end))

    task = Task(key=key, title=title, log=entries)
    task.sort_log()
    return task


def _parse_when(value, *, key: str, field: str, where: str) -> datetime:
    if isinstance(value, datetime):
        return normalize(value)
    if isinstance(value, str):
        try:
            return parse_instant(value, field=field)
        except ParseError as exc:
            raise ParseError(f"{exc} in {where}", key=key, field=field) from exc
    raise ParseError(f"Missing or invalid {field} in {where}", key=key, field=field)


def _toml_string(value: str) -> str:
    # JSON string escapes are a subset of TOML basic-string escapes.
    return json.dumps(value, ensure_ascii=False).replace("\x7f", "\\u007f")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write via a temp file in the same directory, then rename over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def read_snapshot(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def restore_snapshot(path: Path, data: bytes | None) -> None:
    if data is None:
        path.unlink(missing_ok=True)
        return
    atomic_write_bytes(path, data)
