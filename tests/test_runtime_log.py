from __future__ import annotations

from contextlib import redirect_stderr, redirect_stdout
import io
from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

from dit.runtime_log import LogHooks, emit_log


class TestEmitLog(unittest.TestCase):
    def test_console_levels_follow_verbosity(self) -> None:
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            emit_log("quiet detail", level="debug", hooks=LogHooks())
            emit_log("Working on: foo", level="info", hooks=LogHooks())
            emit_log("careful", level="warn", hooks=LogHooks())
            emit_log("broken", level="error", hooks=LogHooks())
            emit_log("loud detail", level="debug", hooks=LogHooks(verbosity=1))
        self.assertEqual("Working on: foo\nloud detail\n", out.getvalue())
        self.assertEqual("Warning: careful\nError: broken\n", err.getvalue())

    def test_callback_sees_everything_and_console_can_be_muted(self) -> None:
        seen: list[tuple[str, str]] = []
        out = io.StringIO()
        with redirect_stdout(out):
            emit_log("x", level="trace", hooks=LogHooks(log=lambda level, msg: seen.append((level, msg)), emit_console=False))
        self.assertEqual([("trace", "x")], seen)
        self.assertEqual("", out.getvalue())

    def test_log_file_gets_debug_and_above(self) -> None:
        with TemporaryDirectory() as tmp:
            log_file = Path(tmp) / ".dit.log"
            hooks = LogHooks(emit_console=False, log_file=log_file)
            emit_log("lock held", level="trace", hooks=hooks)
            emit_log("index   rebuilt\nfrom logs", level="debug", hooks=hooks)
            lines = log_file.read_text(encoding="utf-8").splitlines()
            self.assertEqual(1, len(lines))
            self.assertTrue(lines[0].endswith("[debug] index rebuilt from logs"))


if __name__ == "__main__":
    unittest.main()
