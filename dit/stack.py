from __future__ import annotations

import json
from pathlib import Path

from .errors import ParseError
from .models import is_valid_key
from .paths import data_paths
from .store import atomic_write_text


STACK_VERSION = 1


def stack_path(root: Path) -> Path:
    return data_paths(root).stack_json


def load_stack(root: Path) -> list[str]:
    """Switch stack, oldest first; the last item is what switch-back returns to."""

    path = stack_path(root)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Could not parse switch stack: {path}", field="stack") from exc
    if not isinstance(raw, dict) or raw.get("version") != STACK_VERSION:
        raise ParseError(f"Unexpected switch stack format: {path}", field="stack")
    keys = raw.get("stack")
    if not isinstance(keys, list) or not all(isinstance(key, str) and is_valid_key(key) for key in keys):
        raise ParseError(f"Invalid switch stack entries: {path}", field="stack")
    return list(keys)


def render_stack(keys: list[str]) -> str:
    payload = {"version": STACK_VERSION, "stack": list(keys)}
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=True) + "\n"


def save_stack(root: Path, keys: list[str]) -> None:
    atomic_write_text(stack_path(root), render_stack(keys))
