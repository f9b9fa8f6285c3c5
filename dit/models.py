from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import re

from .errors import InvalidKeyError
from .timeutil import Duration, normalize


_TASK_KEY_RE = re.compile(r"^(/?[A-Za-z][0-9A-Za-z_-]*)+$")


def validate_key(key: str) -> str:
    """Return the canonical form of a task key or raise `InvalidKeyError`.

    Keys are exact-match identifiers; `/` nests tasks (`foo/bar`). A leading
    slash is accepted and dropped.
    """

    raw = str(key or "").strip()
    if not _TASK_KEY_RE.match(raw):
        raise InvalidKeyError(f"Invalid task key: {raw!r}", key=raw)
    return raw.lstrip("/")


def is_valid_key(key: str) -> bool:
    return bool(_TASK_KEY_RE.match(str(key or "").strip()))


@dataclass(frozen=True)
class LogEntry:
    start: datetime
    end: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", normalize(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", normalize(self.end))

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def is_closed(self) -> bool:
        return self.end is not None

    def duration(self) -> Duration:
        if self.end is None:
            raise ValueError("active entry has no duration")
        return Duration.between(self.start, self.end)

    def effort(self, now: datetime) -> Duration:
        """Duration for closed entries, time elapsed so far for the active one."""
        return Duration.between(self.start, self.end if self.end is not None else now)

    def closed_at(self, end: datetime) -> LogEntry:
        return LogEntry(start=self.start, end=end)

    def reopened(self) -> LogEntry:
        return LogEntry(start=self.start, end=None)


@dataclass
class Task:
    key: str
    title: str
    log: list[LogEntry] = field(default_factory=list)

    def sort_log(self) -> None:
        self.log.sort(key=lambda entry: entry.start)

    @property
    def last_entry(self) -> LogEntry | None:
        return self.log[-1] if self.log else None

    @property
    def is_active(self) -> bool:
        last = self.last_entry
        return last is not None and last.is_open

    def open_entry_index(self) -> int | None:
        for idx in range(len(self.log) - 1, -1, -1):
            if self.log[idx].is_open:
                return idx
        return None

    def total_clocked(self) -> Duration:
        total = Duration()
        for entry in self.log:
            if entry.is_closed:
                total = total + entry.duration()
        return total
