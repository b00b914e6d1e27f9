"""
codegraph.core.filelock -- Advisory lock around graph snapshot writes.

The store writes a temp file and renames it over the snapshot.  The
rename is atomic on its own; the lock keeps two codegraph processes
pointed at the same file from interleaving their temp/rename cycles.

Usage::

    with FileLock(store_path, timeout=5.0):
        write_temp_and_replace(...)

The lock is a ``<path>.lock`` sidecar created with ``O_CREAT | O_EXCL``,
so no platform-specific locking API is needed.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from types import TracebackType
from typing import Optional, Type

log = logging.getLogger(__name__)


class FileLock:
    """Sidecar-file lock.

    Parameters
    ----------
    path : Path
        The file to protect.  The lock file is ``path.lock``.
    timeout : float
        Seconds to wait before giving up with ``TimeoutError``.
    poll : float
        Seconds between attempts.
    stale_after : float, optional
        A lock file older than this is considered abandoned and broken.
        Defaults to twice *timeout*.
    """

    def __init__(
        self,
        path: Path,
        timeout: float = 5.0,
        poll: float = 0.05,
        stale_after: Optional[float] = None,
    ) -> None:
        self.lock_path = Path(str(path) + ".lock")
        self.timeout = timeout
        self.poll = poll
        self.stale_after = stale_after if stale_after is not None else timeout * 2
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.release()

    def acquire(self) -> None:
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                self._fd = os.open(
                    str(self.lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY
                )
                os.write(self._fd, str(os.getpid()).encode("ascii"))
                return
            except FileExistsError:
                if self._break_if_stale():
                    continue
                if time.monotonic() >= deadline:
                    raise TimeoutError(
                        f"Could not lock {self.lock_path} within {self.timeout}s"
                    )
                time.sleep(self.poll)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            os.close(self._fd)
        finally:
            self._fd = None
            self._unlink()

    def _break_if_stale(self) -> bool:
        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            # Holder released between our open() and stat(); retry now.
            return True
        if age <= self.stale_after:
            return False
        log.warning("Breaking stale lock (%.1fs old): %s", age, self.lock_path)
        self._unlink()
        return True

    def _unlink(self) -> None:
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass
