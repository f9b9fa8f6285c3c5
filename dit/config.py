from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import tomllib


LIST_MODES = ("group-by-day", "plain", "daily")


def _as_float(value, *, default: float) -> float:
    try:
        return float(value)
    except Exception:  # noqa: BLE001
        return float(default)


def _as_int(value, *, default: int) -> int:
    try:
        return int(value)
    except Exception:  # noqa: BLE001
        return int(default)


def _as_bool(value, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off"}:
            return False
    return bool(default)


@dataclass(frozen=True)
class LocksConfig:
    write_timeout_s: float = 10.0
    read_timeout_s: float = 0.5


@dataclass(frozen=True)
class StatusConfig:
    limit: int = 10


@dataclass(frozen=True)
class ListConfig:
    mode: str = "group-by-day"


@dataclass(frozen=True)
class LogConfig:
    file: bool = False
    verbosity: int = 0


@dataclass(frozen=True)
class DitConfig:
    locks: LocksConfig = field(default_factory=LocksConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    list: ListConfig = field(default_factory=ListConfig)
    log: LogConfig = field(default_factory=LogConfig)


def load_dit_toml(path: Path) -> tuple[DitConfig, str]:
    """Load data directory config from `.config.toml`.

    Returns (config, warning). Warning is empty on success; a broken file never
    stops a command, it only falls back to defaults.
    """

    if not path.exists():
        return DitConfig(), ""

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        return DitConfig(), f"{path.name} parse failed: {exc}"

    locks = data.get("locks") if isinstance(data.get("locks"), dict) else {}
    status = data.get("status") if isinstance(data.get("status"), dict) else {}
    listing = data.get("list") if isinstance(data.get("list"), dict) else {}
    log = data.get("log") if isinstance(data.get("log"), dict) else {}

    mode = str(listing.get("mode") or ListConfig.mode).strip().lower()
    warning = ""
    if mode not in LIST_MODES:
        warning = f"{path.name}: unknown list.mode {mode!r}, using {ListConfig.mode}"
        mode = ListConfig.mode

    cfg = DitConfig(
        locks=LocksConfig(
            write_timeout_s=max(0.0, _as_float(locks.get("write_timeout_s"), default=LocksConfig.write_timeout_s)),
            read_timeout_s=max(0.0, _as_float(locks.get("read_timeout_s"), default=LocksConfig.read_timeout_s)),
        ),
        status=StatusConfig(
            limit=max(1, _as_int(status.get("limit"), default=StatusConfig.limit)),
        ),
        list=ListConfig(mode=mode),
        log=LogConfig(
            file=_as_bool(log.get("file"), default=LogConfig.file),
            verbosity=max(0, _as_int(log.get("verbosity"), default=LogConfig.verbosity)),
        ),
    )
    return cfg, warning
