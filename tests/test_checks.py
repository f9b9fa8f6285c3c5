from __future__ import annotations

import unittest

from dit.checks import check_index, check_single_active, find_cross_overlaps, find_overlaps, run_checks
from dit.errors import ActiveConflictError
from dit.index import rebuild, record_for
from dit.models import LogEntry, Task
from tests.helpers import at


class TestOverlaps(unittest.TestCase):
    def test_touching_entries_do_not_overlap(self) -> None:
        entries = [LogEntry(start=at(9), end=at(10)), LogEntry(start=at(10), end=at(11))]
        self.assertEqual([], find_overlaps(entries, now=at(12)))

    def test_overlap_with_the_furthest_reaching_entry(self) -> None:
        entries = [
            LogEntry(start=at(9), end=at(12)),
            LogEntry(start=at(10), end=at(10, 30)),
            LogEntry(start=at(11), end=at(11, 30)),
            LogEntry(start=at(13), end=at(14)),
        ]
        self.assertEqual([(0, 1), (0, 2)], find_overlaps(entries, now=at(15)))

    def test_active_entry_runs_until_now(self) -> None:
        entries = [LogEntry(start=at(9)), LogEntry(start=at(10), end=at(11))]
        self.assertEqual([(0, 1)], find_overlaps(entries, now=at(12)))
        self.assertEqual([], find_overlaps(entries, now=at(9, 30)))

    def test_empty_intervals_are_ignored(self) -> None:
        entries = [LogEntry(start=at(10), end=at(10)), LogEntry(start=at(10), end=at(11))]
        self.assertEqual([], find_overlaps(entries, now=at(12)))

    def test_cross_overlaps_only_between_different_tasks(self) -> None:
        foo = Task(key="foo", title="Foo", log=[LogEntry(start=at(9), end=at(11))])
        bar = Task(key="bar", title="Bar", log=[LogEntry(start=at(10), end=at(12))])
        baz = Task(key="baz", title="Baz", log=[LogEntry(start=at(12), end=at(13))])
        overlaps = find_cross_overlaps([foo, bar, baz], now=at(14))
        self.assertEqual(1, len(overlaps))
        self.assertEqual(("foo", "bar"), (overlaps[0].first_key, overlaps[0].second_key))

    def test_cross_overlap_is_not_hidden_by_the_same_task(self) -> None:
        x = Task(
            key="x",
            title="X",
            log=[LogEntry(start=at(9), end=at(13)), LogEntry(start=at(11), end=at(11, 30))],
        )
        y = Task(key="y", title="Y", log=[LogEntry(start=at(9, 30), end=at(12))])
        overlaps = find_cross_overlaps([x, y], now=at(14))
        self.assertEqual(
            [("x", at(9), "y", at(9, 30)), ("y", at(9, 30), "x", at(11))],
            [(o.first_key, o.first.start, o.second_key, o.second.start) for o in overlaps],
        )


class TestIndexChecks(unittest.TestCase):
    def test_single_active(self) -> None:
        idle = Task(key="idle", title="Idle", log=[LogEntry(start=at(8), end=at(9))])
        busy = Task(key="busy", title="Busy", log=[LogEntry(start=at(10))])
        self.assertIsNone(check_single_active(rebuild([idle])))
        self.assertEqual("busy", check_single_active(rebuild([idle, busy])))

    def test_two_active_tasks_conflict(self) -> None:
        a = Task(key="a", title="A", log=[LogEntry(start=at(9))])
        b = Task(key="b", title="B", log=[LogEntry(start=at(10))])
        with self.assertRaises(ActiveConflictError) as ctx:
            check_single_active(rebuild([a, b]))
        self.assertEqual(["a", "b"], ctx.exception.keys)
        self.assertTrue(ctx.exception.fatal)

    def test_check_index_reports_drift(self) -> None:
        foo = Task(key="foo", title="Foo", log=[LogEntry(start=at(9), end=at(10))])
        bar = Task(key="bar", title="Bar")
        index = rebuild([foo, bar])
        self.assertEqual([], check_index(index, [foo, bar]))

        foo.log.append(LogEntry(start=at(11), end=at(12)))
        index["gone"] = record_for(Task(key="gone", title="Gone"))
        self.assertEqual(["foo", "gone"], check_index(index, [foo, bar]))

    def test_run_checks(self) -> None:
        foo = Task(
            key="foo",
            title="Foo",
            log=[LogEntry(start=at(9), end=at(11)), LogEntry(start=at(10), end=at(12))],
        )
        bar = Task(key="bar", title="Bar", log=[LogEntry(start=at(13), end=at(14))])
        report = run_checks(rebuild([foo, bar]), [foo, bar], now=at(15))
        self.assertFalse(report.ok)
        self.assertEqual(["foo"], list(report.task_overlaps))
        self.assertEqual([], report.cross_overlaps)
        self.assertEqual([], report.index_mismatches)

        clean = run_checks(rebuild([bar]), [bar], now=at(15))
        self.assertTrue(clean.ok)


if __name__ == "__main__":
    unittest.main()
