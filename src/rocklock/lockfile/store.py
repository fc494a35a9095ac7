"""Reading and atomically writing ``package.lock``.

Writers serialize through an exclusive ``<lockfile>.lock`` file created with
``O_CREAT | O_EXCL``; the lockfile itself is replaced with ``os.replace`` from
a temporary file in the same directory, so readers only ever observe the old
or the new content. A lock file left behind by a process that no longer
exists is removed with a warning.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import time
from typing import Iterator, Optional

from ..constants import Constants
from ..errors import LockfileBusyError, LockfileError
from .model import Lockfile

logger = logging.getLogger(__name__)


class LockfileStore:
    """Filesystem access for one project's lockfile."""

    def __init__(self, path: str, wait_timeout: float = Constants.LOCK_WAIT_TIMEOUT_SEC,
                 poll_interval: float = Constants.LOCK_POLL_INTERVAL_SEC):
        self.path = path
        self.lock_path = f"{path}.lock"
        self.wait_timeout = wait_timeout
        self.poll_interval = poll_interval

    @classmethod
    def for_project(cls, project_dir: str, **kwargs) -> "LockfileStore":
        return cls(os.path.join(project_dir, Constants.LOCKFILE_FILE), **kwargs)

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def read(self) -> Optional[Lockfile]:
        """Return the parsed lockfile, or None when it does not exist.

        Raises:
            LockfileCorruptError: the file exists but cannot be parsed.
            LockfileError: the file exists but cannot be read.
        """
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                text = fh.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise LockfileError(f"failed to read {self.path}: {exc}") from exc
        return Lockfile.loads(text, path=self.path)

    def read_text(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    @contextlib.contextmanager
    def acquire(self) -> Iterator[None]:
        """Hold the exclusive write lock for the duration of the block.

        Raises:
            LockfileBusyError: the lock is held elsewhere and ``wait_timeout``
                elapsed (immediately when the timeout is zero).
        """
        fd = self._open_lock()
        try:
            os.write(fd, f"{os.getpid()}\n".encode("ascii"))
            os.close(fd)
            yield
        finally:
            try:
                os.unlink(self.lock_path)
            except FileNotFoundError:
                logger.warning("Write lock %s disappeared while held", self.lock_path)

    def _open_lock(self) -> int:
        deadline = time.monotonic() + max(self.wait_timeout, 0.0)
        while True:
            try:
                return os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError as exc:
                if self._break_stale_lock():
                    continue
                if time.monotonic() >= deadline:
                    raise LockfileBusyError(self.lock_path) from exc
                logger.debug("Waiting for write lock %s", self.lock_path)
                time.sleep(self.poll_interval)
            except OSError as exc:
                raise LockfileError(f"failed to create write lock {self.lock_path}: {exc}") from exc

    def _holder_pid(self) -> Optional[int]:
        try:
            with open(self.lock_path, "r", encoding="ascii", errors="replace") as fh:
                text = fh.read().strip()
        except OSError:
            return None
        return int(text) if text.isdigit() else None

    def _break_stale_lock(self) -> bool:
        """Remove the write lock when the process that created it is gone.

        Returns True when the caller should retry immediately.
        """
        pid = self._holder_pid()
        if pid is None or pid == os.getpid():
            return False
        try:
            os.kill(pid, 0)
            return False
        except ProcessLookupError:
            pass
        except OSError:
            # Owned by another user, or not signalable on this platform.
            return False
        logger.warning("Removing stale write lock %s left by exited process %d", self.lock_path, pid)
        try:
            os.unlink(self.lock_path)
        except FileNotFoundError:
            pass
        return True

    def write(self, lock: Lockfile) -> bool:
        """Atomically replace the lockfile with ``lock`` under the write lock.

        Returns False without touching the file when its content would not
        change.
        """
        with self.acquire():
            return self.commit(lock)

    def commit(self, lock: Lockfile) -> bool:
        """Like :meth:`write`, for callers already inside :meth:`acquire`."""
        content = lock.dumps()
        if self.read_text() == content:
            logger.debug("Lockfile %s unchanged", self.path)
            return False
        self._atomic_write(content)
        logger.info("Wrote %s (%d package(s))", self.path, len(lock))
        return True

    def _atomic_write(self, content: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".package.lock.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
