from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.5


class NamedLock:
    """System-wide exclusive lock backed by ``flock`` on a file.

    Every ``hold()`` opens its own file description, so holders exclude each
    other whether they live in the same process or not, and the kernel drops
    the lock if the holder dies.
    """

    def __init__(self, name: str, lock_dir: Path) -> None:
        self.name = name
        self.path = lock_dir / f"{name}.lock"
        self._held_fd: int | None = None

    def _try_lock(self) -> int | None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return None
        except OSError:
            os.close(fd)
            raise
        return fd

    def _unlock(self, fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)

    @asynccontextmanager
    async def hold(self, timeout: float = 0) -> AsyncIterator[bool]:
        """Try to take the lock, waiting up to ``timeout`` seconds.

        Yields whether the lock was acquired; it is released on exit unless
        it was handed over with ``release_after()``.
        """
        deadline = time.monotonic() + timeout
        fd = self._try_lock()
        while fd is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(POLL_INTERVAL_SECONDS, remaining))
            fd = self._try_lock()

        if fd is None:
            logger.info("Lock %s is held elsewhere", self.name)
            yield False
            return

        self._held_fd = fd
        try:
            yield True
        finally:
            if self._held_fd == fd:
                self._held_fd = None
                self._unlock(fd)

    def release_after(self, task: asyncio.Future[Any]) -> None:
        """Keep the current hold past its ``async with`` block until ``task`` ends."""
        fd = self._held_fd
        if fd is None:
            raise RuntimeError(f"Lock {self.name} is not held")
        self._held_fd = None

        def release(_: asyncio.Future[Any]) -> None:
            self._unlock(fd)
            logger.info("Lock %s released after its holder finished", self.name)

        task.add_done_callback(release)
