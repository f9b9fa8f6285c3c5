from __future__ import annotations

import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
import sys
from typing import Callable


LEVELS = {"trace": 0, "debug": 1, "info": 2, "warn": 3, "error": 4}


@dataclass(frozen=True)
class LogHooks:
    verbosity: int = 0
    log: Callable[[str, str], None] | None = None
    emit_console: bool = True
    log_file: Path | None = None

    @property
    def console_threshold(self) -> int:
        return max(LEVELS["trace"], LEVELS["info"] - self.verbosity)


def emit_log(message: str, *, level: str = "info", hooks: LogHooks | None = None) -> None:
    rank = LEVELS.get(level, LEVELS["info"])
    if hooks and hooks.log:
        hooks.log(level, message)
    if hooks and hooks.log_file is not None and rank >= LEVELS["debug"]:
        _append_runtime_log(hooks.log_file, level=level, message=message)
    threshold = hooks.console_threshold if hooks else LEVELS["info"]
    if (hooks is None or hooks.emit_console) and rank >= threshold:
        if rank >= LEVELS["warn"]:
            prefix = "Error: " if level == "error" else "Warning: "
            print(prefix + message, file=sys.stderr)
        else:
            print(message)


def _append_runtime_log(log_file: Path, *, level: str, message: str) -> None:
    normalized_message = " ".join(message.split())
    stamp = datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()
    line = f"{stamp} [{level.lower()}] {normalized_message}\n"
    with contextlib.suppress(Exception):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with log_file.open("a", encoding="utf-8") as handle:
            handle.write(line)
