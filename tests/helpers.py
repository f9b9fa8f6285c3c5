from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Iterator

from dit.config import DitConfig, LocksConfig
from dit.runtime_log import LogHooks
from dit.session import Tracker


UTC = timezone.utc


def at(hour: int, minute: int = 0, second: int = 0, *, day: int = 1) -> datetime:
    return datetime(2024, 3, day, hour, minute, second, tzinfo=UTC)


class FixedClock:
    """Clock that only moves when a test says so."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **delta: int) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


class RecordingLog:
    def __init__(self) -> None:
        self.lines: list[tuple[str, str]] = []

    def __call__(self, level: str, message: str) -> None:
        self.lines.append((level, message))

    def messages(self, level: str | None = None) -> list[str]:
        return [message for lvl, message in self.lines if level is None or lvl == level]


def make_tracker(
    root: Path,
    clock: FixedClock,
    *,
    log: RecordingLog | None = None,
    read_timeout_s: float = 0.05,
    write_timeout_s: float = 0.05,
) -> Tracker:
    config = DitConfig(locks=LocksConfig(write_timeout_s=write_timeout_s, read_timeout_s=read_timeout_s))
    hooks = LogHooks(log=log, emit_console=False)
    return Tracker(root, config=config, hooks=hooks, clock=clock)


@contextmanager
def data_dir() -> Iterator[Path]:
    with TemporaryDirectory() as tmp:
        root = Path(tmp) / ".dit"
        root.mkdir()
        yield root
