from __future__ import annotations

import json
import unittest

from dit.errors import CorruptIndexError
from dit.index import (
    INDEX_VERSION,
    active_keys,
    index_path,
    load_index,
    rebuild,
    record_for,
    save_index,
    update_incremental,
)
from dit.models import LogEntry, Task
from dit.timeutil import Duration
from tests.helpers import at, data_dir


def _tasks() -> list[Task]:
    return [
        Task(key="idle", title="Idle"),
        Task(key="done", title="Done", log=[LogEntry(start=at(8), end=at(9)), LogEntry(start=at(9), end=at(9, 30))]),
        Task(key="busy", title="Busy", log=[LogEntry(start=at(7), end=at(8)), LogEntry(start=at(10))]),
    ]


class TestIndex(unittest.TestCase):
    def test_record_summarises_the_log(self) -> None:
        done, busy = _tasks()[1:]
        record = record_for(done)
        self.assertEqual(at(9), record.last_start)
        self.assertEqual(at(9, 30), record.last_end)
        self.assertEqual(Duration(5400), record.total_clocked)
        self.assertFalse(record.active)

        record = record_for(busy)
        self.assertTrue(record.active)
        self.assertIsNone(record.last_end)
        self.assertEqual(Duration(3600), record.total_clocked)
        self.assertEqual(Duration(900), record.last_duration(at(10, 15)))

    def test_record_of_empty_task(self) -> None:
        record = record_for(Task(key="idle", title="Idle"))
        self.assertFalse(record.has_entries)
        self.assertIsNone(record.last_duration(at(10)))
        self.assertEqual(Duration(0), record.total_clocked)

    def test_incremental_updates_match_rebuild(self) -> None:
        tasks = _tasks()
        index = rebuild(tasks[:1])
        for task in tasks[1:]:
            update_incremental(index, task)
        busy = tasks[2]
        busy.log[-1] = busy.log[-1].closed_at(at(11))
        update_incremental(index, busy)
        self.assertEqual(rebuild(tasks), index)
        self.assertEqual([], active_keys(index))

    def test_save_then_load(self) -> None:
        with data_dir() as root:
            self.assertIsNone(load_index(root))
            index = rebuild(_tasks())
            save_index(root, index)
            self.assertEqual(index, load_index(root))
            self.assertEqual(["busy"], active_keys(load_index(root) or {}))

            raw = json.loads(index_path(root).read_text(encoding="utf-8"))
            self.assertEqual(INDEX_VERSION, raw["version"])
            self.assertEqual("1h30min", raw["tasks"]["done"]["total_clocked"])

    def test_corrupt_index_is_fatal(self) -> None:
        bad_payloads = [
            "not json",
            "[]",
            json.dumps({"version": INDEX_VERSION + 1, "tasks": {}}),
            json.dumps({"version": INDEX_VERSION, "tasks": []}),
            json.dumps({"version": INDEX_VERSION, "tasks": {"foo": "x"}}),
            json.dumps(
                {
                    "version": INDEX_VERSION,
                    "tasks": {
                        "foo": {
                            "title": "Foo",
                            "last_start": "2024-03-01 10:00:00 +0000",
                            "last_end": "2024-03-01 11:00:00 +0000",
                            "total_clocked": "1h",
                            "active": True,
                        }
                    },
                }
            ),
        ]
        with data_dir() as root:
            for payload in bad_payloads:
                with self.subTest(payload=payload):
                    index_path(root).write_text(payload, encoding="utf-8")
                    with self.assertRaises(CorruptIndexError) as ctx:
                        load_index(root)
                    self.assertTrue(ctx.exception.fatal)


if __name__ == "__main__":
    unittest.main()
