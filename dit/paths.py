from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path


DIT_DIR_NAME = ".dit"
DIRECTORY_ENV = "DIT_DIRECTORY"
TASK_SUFFIX = ".toml"


def find_data_root(start: Path | None = None, *, home: Path | None = None) -> Path:
    """Closest `.dit` directory from `start` upward.

    Falls back to `~/.dit`, which is created on demand so a first `dit new`
    works anywhere.
    """

    probe = (start or Path.cwd()).resolve()
    for candidate in [probe, *probe.parents]:
        path = candidate / DIT_DIR_NAME
        if path.is_dir():
            return path
    fallback = (home or Path.home()) / DIT_DIR_NAME
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def resolve_data_root(directory: str | None = None, *, start: Path | None = None) -> Path:
    explicit = directory or os.environ.get(DIRECTORY_ENV)
    if explicit:
        path = Path(explicit).expanduser()
        if path.exists() and not path.is_dir():
            raise NotADirectoryError(f"Path exists but is not a directory: {path}")
        path.mkdir(parents=True, exist_ok=True)
        return path.resolve()
    return find_data_root(start)


@dataclass(frozen=True)
class DataPaths:
    root: Path
    index_json: Path
    stack_json: Path
    lock_file: Path
    config_toml: Path
    log_file: Path


def data_paths(root: Path) -> DataPaths:
    return DataPaths(
        root=root,
        index_json=root / ".index.json",
        stack_json=root / ".switch-stack.json",
        lock_file=root / ".lock",
        config_toml=root / ".config.toml",
        log_file=root / ".dit.log",
    )
