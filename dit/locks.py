from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import time
from typing import IO, Iterator

from .errors import LockTimeoutError


LOCK_POLL_INTERVAL_S = 0.02


@contextmanager
def store_lock(lock_path: Path, *, exclusive: bool = True, timeout_s: float = 10.0) -> Iterator[IO[str]]:
    """Hold an advisory lock on the data directory for the duration of the block.

    Writers take it exclusively, readers shared. Waiting is bounded by
    `timeout_s`; after that `LockTimeoutError` is raised. The lock is released
    on every exit path.
    """

    try:
        import fcntl  # type: ignore
    except ModuleNotFoundError:
        raise RuntimeError("Data directory locks require fcntl (not available on this platform).")

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    handle = lock_path.open("a+", encoding="utf-8")
    mode = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
    deadline = time.monotonic() + max(0.0, timeout_s)
    try:
        while True:
            try:
                fcntl.flock(handle.fileno(), mode | fcntl.LOCK_NB)
                break
            except OSError as exc:
                if time.monotonic() >= deadline:
                    kind = "exclusive" if exclusive else "shared"
                    raise LockTimeoutError(
                        f"Timed out after {timeout_s:.2f}s waiting for {kind} lock: {lock_path}",
                        field="lock",
                    ) from exc
                time.sleep(LOCK_POLL_INTERVAL_S)
        try:
            yield handle
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    finally:
        handle.close()
