"""Reader/writer mutex that checks invariants at lock boundaries.

When the --syncutil.check_invariants flag is set, the registered check runs
at the moments when invariants protected by the mutex must hold:

    lock()     acquire exclusive -> check
    unlock()   check -> release exclusive
    rlock()    acquire shared    -> check
    runlock()  check -> release shared

The check therefore always runs while the caller holds the lock, and sees
what the caller sees. It should raise (e.g. InvariantViolation) when an
invariant is broken; the mutex does not catch it. A check that raises on
release leaves the lock held.

The underlying lock is not reentrant: the check must not lock the mutex.

A typical use looks like this:

    class Generations:
        def __init__(self) -> None:
            # INVARIANT: next == current + 1
            self.current = 1  # GUARDED_BY(mu)
            self.next = 2     # GUARDED_BY(mu)
            self.mu = InvariantMutex(self.check_invariants)

        def check_invariants(self) -> None:
            require(self.next == self.current + 1, f"{self.next} != {self.current} + 1")

        def set_generation(self, n: int) -> None:
            with self.mu:
                self.current = n
                self.next = n + 1
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable

from syncutil.foundation.config.flags import check_invariants_enabled, mark_in_use

from .rwlock import RWLock

if TYPE_CHECKING:
    from types import TracebackType

__all__ = ["InvariantMutex", "new_invariant_mutex"]


class InvariantMutex:
    """Reader/writer mutex that runs an invariant check when enabled.
    
    Args:
        check: Side-effect free callable that raises if an invariant is
            violated. There is no guarantee about how often it runs.
    
    Raises:
        TypeError: If check is None or not callable
    
    The invariants must hold when the mutex is created: with checking
    enabled, check runs once during construction.
    
    The toggle is read before the lock is taken; a toggle that cannot be
    resolved raises without acquiring anything.
    """
    
    __slots__ = ("_lock", "_check")
    
    def __init__(self, check: Callable[[], object]) -> None:
        if check is None or not callable(check):
            raise TypeError("check must be a non-None callable")
        self._check = check
        self._lock = RWLock()
        if mark_in_use():
            check()
    
    def lock(self) -> None:
        enabled = check_invariants_enabled()
        self._lock.acquire_write()
        if enabled:
            self._check()
    
    def unlock(self) -> None:
        self._check_if_enabled()
        self._lock.release_write()
    
    def rlock(self) -> None:
        enabled = check_invariants_enabled()
        self._lock.acquire_read()
        if enabled:
            self._check()
    
    def runlock(self) -> None:
        self._check_if_enabled()
        self._lock.release_read()
    
    def try_lock(self) -> bool:
        """Acquire exclusively without blocking. Checks only if acquired."""
        enabled = check_invariants_enabled()
        if not self._lock.acquire_write(blocking=False):
            return False
        if enabled:
            self._check()
        return True
    
    def try_rlock(self) -> bool:
        """Acquire shared without blocking. Checks only if acquired."""
        enabled = check_invariants_enabled()
        if not self._lock.acquire_read(blocking=False):
            return False
        if enabled:
            self._check()
        return True
    
    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the mutex in shared mode for the duration of the block."""
        self.rlock()
        try:
            yield
        finally:
            self.runlock()
    
    def __enter__(self) -> InvariantMutex:
        self.lock()
        return self
    
    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.unlock()
    
    def _check_if_enabled(self) -> None:
        if check_invariants_enabled():
            self._check()
    
    def __repr__(self) -> str:
        return f"<InvariantMutex {self._lock!r}>"


def new_invariant_mutex(check: Callable[[], object]) -> InvariantMutex:
    """Create an InvariantMutex; see the class for details."""
    return InvariantMutex(check)
