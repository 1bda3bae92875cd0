"""Reader/writer lock for threads.

Many readers or a single writer. Once a writer is waiting, new readers
queue behind it so a steady stream of readers cannot starve writers.

The lock is not reentrant and not owned by a thread: a thread that already
holds it in any mode and acquires it again deadlocks, and any thread may
release a held lock.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

__all__ = ["RWLock"]


class RWLock:
    """Non-reentrant reader/writer lock with writer preference.
    
    Example:
        >>> lock = RWLock()
        >>> with lock.read_locked():
        ...     snapshot = dict(shared)
        >>> with lock.write_locked():
        ...     shared["k"] = "v"
    """
    
    __slots__ = ("_cond", "_readers", "_writer", "_waiting_writers")
    
    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0
    
    @property
    def readers(self) -> int:
        """Number of readers currently holding the lock."""
        return self._readers
    
    @property
    def writer_active(self) -> bool:
        return self._writer
    
    def acquire_read(self, blocking: bool = True, timeout: float = -1) -> bool:
        """Acquire in shared mode. Returns False if not acquired."""
        with self._cond:
            if not self._cond.wait_for(self._can_read, _wait_timeout(blocking, timeout)):
                return False
            self._readers += 1
            return True
    
    def release_read(self) -> None:
        with self._cond:
            if self._readers == 0:
                raise RuntimeError("release_read() of RWLock not held for reading")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()
    
    def acquire_write(self, blocking: bool = True, timeout: float = -1) -> bool:
        """Acquire in exclusive mode. Returns False if not acquired."""
        with self._cond:
            self._waiting_writers += 1
            acquired = False
            try:
                acquired = self._cond.wait_for(self._can_write, _wait_timeout(blocking, timeout))
                if acquired:
                    self._writer = True
                return acquired
            finally:
                self._waiting_writers -= 1
                if not acquired:
                    # Readers queued behind this writer may proceed
                    self._cond.notify_all()
    
    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write() of RWLock not held for writing")
            self._writer = False
            self._cond.notify_all()
    
    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()
    
    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
    
    def _can_read(self) -> bool:
        return not self._writer and self._waiting_writers == 0
    
    def _can_write(self) -> bool:
        return not self._writer and self._readers == 0
    
    def __repr__(self) -> str:
        return (f"<RWLock readers={self._readers} writer={self._writer} "
                f"waiting_writers={self._waiting_writers}>")


def _wait_timeout(blocking: bool, timeout: float) -> float | None:
    if not blocking:
        return 0
    return None if timeout < 0 else timeout
