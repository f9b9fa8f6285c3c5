from __future__ import annotations

import unittest

from dit.index import rebuild
from dit.models import LogEntry, Task
from dit.timeutil import Duration
from dit.views import (
    LIST_FIELDS,
    build_listing,
    build_status,
    daily_totals,
    format_short_status,
    group_by_day,
    parse_fields,
    recent_records,
)
from tests.helpers import at


def _tasks() -> list[Task]:
    return [
        Task(key="a", title="A", log=[LogEntry(start=at(9, day=1), end=at(10, day=1)), LogEntry(start=at(9, day=2))]),
        Task(key="b", title="B", log=[LogEntry(start=at(11, day=1), end=at(11, 30, day=1))]),
        Task(key="c", title="C"),
    ]


class TestStatusView(unittest.TestCase):
    def test_recent_records_skip_unclocked_tasks(self) -> None:
        self.assertEqual(["a", "b"], [record.key for record in recent_records(rebuild(_tasks()))])

    def test_short_status_of_active_task(self) -> None:
        report = build_status(rebuild(_tasks()), now=at(10, 5, day=2))
        self.assertEqual("a 1h5min", format_short_status(report))
        current = report.current
        assert current is not None
        self.assertEqual(Duration(3600 + 3900), current.total_effort)

    def test_short_status_when_idle_is_empty(self) -> None:
        tasks = _tasks()[1:]
        report = build_status(rebuild(tasks), now=at(12))
        self.assertIsNone(report.current)
        self.assertEqual("", format_short_status(report))
        self.assertEqual(Duration(1800), report.items[0].effort)

    def test_short_status_uses_the_active_row_wherever_it_sorts(self) -> None:
        tasks = [
            Task(key="a", title="A", log=[LogEntry(start=at(10), end=at(11))]),
            Task(key="b", title="B", log=[LogEntry(start=at(9))]),
        ]
        report = build_status(rebuild(tasks), now=at(11, 30), limit=1)
        self.assertEqual(["a"], [item.key for item in report.items])
        self.assertEqual("b 2h30min", format_short_status(report))

    def test_limit(self) -> None:
        report = build_status(rebuild(_tasks()), now=at(12, day=2), limit=1)
        self.assertEqual(["a"], [item.key for item in report.items])
        self.assertEqual([], build_status(rebuild(_tasks()), now=at(12), limit=0).items)


class TestListingView(unittest.TestCase):
    def test_listing_groups_by_day(self) -> None:
        items = build_listing(_tasks())
        self.assertEqual([("a", 2), ("b", 1), ("a", 1)], [(item.key, item.start.day) for item in items])

        groups = group_by_day(items)
        self.assertEqual([2, 1], [day.day for day, _group in groups])
        self.assertEqual(2, len(groups[1][1]))

        totals = daily_totals(items, now=at(9, 15, day=2))
        self.assertEqual([Duration(900), Duration(5400)], [total for _day, total in totals])

    def test_listing_bounds_are_half_open(self) -> None:
        items = build_listing(_tasks(), after=at(11, day=1), before=at(9, day=2))
        self.assertEqual([("b", at(11, day=1))], [(item.key, item.start) for item in items])

    def test_parse_fields(self) -> None:
        self.assertEqual(LIST_FIELDS, parse_fields(None))
        self.assertEqual(("id", "effort"), parse_fields("ID, effort,id"))
        with self.assertRaises(ValueError):
            parse_fields("start,colour")


if __name__ == "__main__":
    unittest.main()
