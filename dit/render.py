from __future__ import annotations

from datetime import datetime
from typing import Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .checks import CheckReport
from .timeutil import format_instant
from .views import ListItem, StatusReport, group_by_day, total_effort


_FIELD_HEADERS = {
    "start": "Start",
    "end": "End",
    "effort": "Effort",
    "id": "Id",
    "title": "Title",
}


def _instant_cell(value: datetime | None) -> str:
    return format_instant(value) if value is not None else ""


def _new_table(headers: Sequence[str]) -> Table:
    table = Table(box=box.SIMPLE_HEAD, show_edge=False, pad_edge=False)
    for header in headers:
        table.add_column(header, no_wrap=header != "Title")
    return table


def status_table(report: StatusReport) -> Table:
    table = _new_table(["Start", "End", "Effort", "Total Effort", "Id", "Title"])
    for item in report.items:
        table.add_row(
            _instant_cell(item.start),
            _instant_cell(item.end),
            item.effort.to_human(),
            item.total_effort.to_human(),
            escape(item.key),
            escape(item.title),
        )
    return table


def list_table(items: Sequence[ListItem], *, fields: Sequence[str], now: datetime) -> Table:
    table = _new_table([_FIELD_HEADERS[name] for name in fields])
    for item in items:
        cells = {
            "start": _instant_cell(item.start),
            "end": _instant_cell(item.end),
            "effort": item.effort(now).to_human(),
            "id": escape(item.key),
            "title": escape(item.title),
        }
        table.add_row(*(cells[name] for name in fields))
    return table


def print_listing(
    console: Console,
    items: Sequence[ListItem],
    *,
    mode: str,
    fields: Sequence[str],
    now: datetime,
) -> None:
    if mode == "plain":
        console.print(list_table(items, fields=fields, now=now))
        return
    for day, group in group_by_day(items):
        console.print(f"{day.isoformat()}: {total_effort(group, now=now).to_human()}", markup=False, highlight=False)
        if mode == "group-by-day":
            console.print(list_table(group, fields=fields, now=now))


def check_lines(report: CheckReport) -> list[str]:
    lines: list[str] = []
    for key, pairs in sorted(report.task_overlaps.items()):
        for first, second in pairs:
            lines.append(
                f"overlap in {key}: {format_instant(first.start)} / {format_instant(second.start)}"
            )
    for overlap in report.cross_overlaps:
        lines.append(
            f"overlap across tasks: {overlap.first_key} {format_instant(overlap.first.start)}"
            f" / {overlap.second_key} {format_instant(overlap.second.start)}"
        )
    if len(report.active) > 1:
        lines.append(f"more than one active task: {', '.join(report.active)}")
    if report.index_mismatches:
        lines.append(f"index out of date for: {', '.join(report.index_mismatches)} (run rebuild-index)")
    return lines
