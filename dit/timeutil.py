from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
import re

from .errors import ParseError


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %z"

_AT_TIMESTAMP_RE = re.compile(
    r"^(?P<y>\d{4})-(?P<m>\d{2})-(?P<d>\d{2})-(?P<h>\d{1,2}):(?P<min>\d{2})(?::(?P<s>\d{2}))?$"
)
_AT_TIME_RE = re.compile(r"^(?P<h>\d{1,2}):(?P<min>\d{2})(?::(?P<s>\d{2}))?$")
_DURATION_RE = re.compile(r"^(?:(?P<d>\d+)d)?(?:(?P<h>\d+)h)?(?:(?P<min>\d+)(?:min|m))?(?:(?P<s>\d+)s)?$")


def normalize(value: datetime) -> datetime:
    """Drop sub-second precision and pin the value to a fixed UTC offset.

    Naive values are taken as local wall-clock time.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        value = value.astimezone()
    offset = value.utcoffset()
    assert offset is not None
    return value.replace(microsecond=0, tzinfo=timezone(offset))


def now() -> datetime:
    return normalize(datetime.now().astimezone())


def format_instant(value: datetime) -> str:
    return normalize(value).strftime(TIMESTAMP_FORMAT)


def parse_instant(text: str, *, field: str | None = None) -> datetime:
    raw = " ".join(str(text or "").split())
    try:
        parsed = datetime.strptime(raw, TIMESTAMP_FORMAT)
    except ValueError as exc:
        raise ParseError(f"Invalid timestamp: {text!r}", field=field) from exc
    return normalize(parsed)


@dataclass(frozen=True, order=True)
class Duration:
    """Whole, non-negative seconds."""

    seconds: int = 0

    def __post_init__(self) -> None:
        if self.seconds < 0:
            raise ValueError(f"duration cannot be negative: {self.seconds}s")

    @classmethod
    def from_seconds(cls, seconds: int) -> Duration:
        return cls(int(seconds))

    @classmethod
    def between(cls, start: datetime, end: datetime) -> Duration:
        return cls(max(0, int((end - start).total_seconds())))

    @classmethod
    def parse_human(cls, text: str, *, field: str | None = None) -> Duration:
        raw = str(text or "").strip()
        match = _DURATION_RE.match(raw)
        if not raw or match is None:
            raise ParseError(f"Invalid duration: {text!r}", field=field)
        return cls(
            _group_int(match, "d") * 86400
            + _group_int(match, "h") * 3600
            + _group_int(match, "min") * 60
            + _group_int(match, "s")
        )

    def to_human(self) -> str:
        if self.seconds == 0:
            return "0s"
        hours, rest = divmod(self.seconds, 3600)
        minutes, seconds = divmod(rest, 60)
        pieces = [(hours, "h"), (minutes, "min"), (seconds, "s")]
        return "".join(f"{value}{suffix}" for value, suffix in pieces if value)

    def __add__(self, other: Duration) -> Duration:
        if not isinstance(other, Duration):
            return NotImplemented
        return Duration(self.seconds + other.seconds)

    def __str__(self) -> str:
        return self.to_human()


def resolve_at(text: str | None, *, base: datetime | None = None) -> datetime:
    """Resolve a user supplied point in time.

    Accepts `YYYY-MM-DD-HH:MM[:SS]`, `HH:MM[:SS]` (today) or a signed relative
    duration such as `-15min` or `-1h30min` applied to `base`; the sign covers
    every unit. `None` means `base`.
    """

    current = normalize(base) if base is not None else now()
    if text is None:
        return current
    raw = text.strip()
    if not raw:
        raise ParseError("Empty datetime", field="at")

    match = _AT_TIMESTAMP_RE.match(raw)
    if match:
        try:
            local = datetime(
                _group_int(match, "y"),
                _group_int(match, "m"),
                _group_int(match, "d"),
                _group_int(match, "h"),
                _group_int(match, "min"),
                _group_int(match, "s"),
            )
        except ValueError as exc:
            raise ParseError(f"Invalid datetime: {raw!r}", field="at") from exc
        return normalize(local)

    match = _AT_TIME_RE.match(raw)
    if match:
        try:
            clock = time(_group_int(match, "h"), _group_int(match, "min"), _group_int(match, "s"))
        except ValueError as exc:
            raise ParseError(f"Invalid time: {raw!r}", field="at") from exc
        return normalize(datetime.combine(current.date(), clock, tzinfo=current.tzinfo))

    sign = -1 if raw.startswith("-") else 1
    body = raw[1:] if raw[:1] in "+-" else raw
    if body and _DURATION_RE.match(body):
        offset = Duration.parse_human(body, field="at")
        return normalize(current + timedelta(seconds=sign * offset.seconds))

    raise ParseError(f"Invalid datetime: {raw!r}", field="at")


def _group_int(match: re.Match[str], name: str) -> int:
    value = match.group(name)
    return int(value) if value else 0
