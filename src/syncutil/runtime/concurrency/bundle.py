"""Bundles: concurrent fallible operations sharing one cancellation scope.

Operations are callables that take a CancelScope. If any operation raises,
the bundle's scope is cancelled, so concurrent and future operations see
cancellation. join() waits for every operation and returns the first
failure, i.e. the one that led to the cancellation of the others.

Bundles are a convenient way to run pipelines of concurrent actors that
pass data to each other, tearing the pipeline down if anything fails:

    def delete_all_objects(parent: CancelScope, workers: int) -> Exception | None:
        bundle = Bundle(parent)
        names: queue.Queue[str] = queue.Queue(maxsize=1)

        # List names into the queue. Because the lister sends through the
        # scope, it cannot block forever if the deleters fail and stop
        # draining the queue.
        def list_names(scope: CancelScope) -> None:
            for name in list_objects(scope):
                send(names, name, scope)
            close(names, scope, receivers=workers)

        def delete(scope: CancelScope) -> None:
            for name in drain(names, scope):
                delete_object(scope, name)

        bundle.add(list_names)
        for _ in range(workers):
            bundle.add(delete)

        return bundle.join()

Key Features:
    - First failure wins: exactly one error is reported, the rest dropped
    - Cooperative: the scope is cancelled, operations are never killed
    - Thread-per-operation, so blocked pipeline stages cannot starve others
    - AsyncBundle offers the same contract for asyncio coroutines

Exceptions that are not Exception subclasses (KeyboardInterrupt,
SystemExit, ...) are bugs rather than failures: the bundle does not catch
them. On a worker thread they reach threading.excepthook; AsyncBundle
re-raises them from join().
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from collections.abc import Awaitable
from enum import StrEnum
from typing import TYPE_CHECKING, Callable

from syncutil.foundation.errors import BundleClosedError
from syncutil.runtime.observability.logging import get_logger

from .scope import CancelScope

if TYPE_CHECKING:
    from types import TracebackType

__all__ = [
    "AsyncBundle",
    "AsyncOperation",
    "Bundle",
    "BundleState",
    "Operation",
    "new_bundle",
]

Operation = Callable[[CancelScope], object]
AsyncOperation = Callable[[CancelScope], Awaitable[object]]

log = get_logger("syncutil.bundle")

_bundle_ids = itertools.count(1)


class BundleState(StrEnum):
    """Bundle lifecycle states."""
    OPEN = "open"          # No failure recorded
    FAILING = "failing"    # First failure stored, scope cancelled
    DRAINED = "drained"    # join() observed every operation finished


class _FirstFailure:
    """Shared bookkeeping: owned scope plus the one-shot first-error slot."""
    
    __slots__ = ("name", "_scope", "_slot_lock", "_failed", "_first_error", "_closed", "_launched", "_log")
    
    def __init__(self, parent: CancelScope | None, name: str | None) -> None:
        self.name = name or f"bundle-{next(_bundle_ids)}"
        self._scope = CancelScope(parent, name=self.name)
        self._slot_lock = threading.Lock()
        self._failed = False
        self._first_error: Exception | None = None
        self._closed = False
        self._launched = 0
        self._log = log.bind(bundle=self.name)
    
    @property
    def scope(self) -> CancelScope:
        """The bundle's private child scope, passed to every operation."""
        return self._scope
    
    @property
    def error(self) -> Exception | None:
        """First failure recorded so far, if any."""
        return self._first_error
    
    @property
    def state(self) -> BundleState:
        if self._closed:
            return BundleState.DRAINED
        return BundleState.FAILING if self._failed else BundleState.OPEN
    
    def _op_name(self, op: object, name: str | None, index: int) -> str:
        return name or getattr(op, "__name__", None) or f"op-{index}"
    
    def _record_failure(self, exc: Exception, op_name: str) -> None:
        # Install, then cancel: anyone who sees the scope cancelled will see
        # the error by the time join() returns.
        with self._slot_lock:
            first = not self._failed
            if first:
                self._failed = True
                self._first_error = exc
        if not first:
            self._log.debug("bundle.error_dropped", op=op_name, error=exc)
            return
        self._log.debug("bundle.first_error", op=op_name, error=exc)
        self._scope.cancel(f"{op_name} failed: {exc}")


class Bundle(_FirstFailure):
    """A collection of concurrently-executing operations, each of which may fail.
    
    Args:
        parent: Scope the bundle's scope derives from; None means background()
        name: Optional name for logs, thread names and the scope
    
    Example:
        >>> bundle = Bundle(parent)
        >>> bundle.add(fetch_users)
        >>> bundle.add(fetch_orders)
        >>> if (err := bundle.join()) is not None:
        ...     raise err
        
        >>> # Or raise the first failure on exit
        >>> with Bundle(parent) as bundle:
        ...     bundle.add(fetch_users)
        ...     bundle.add(fetch_orders)
    
    join() must not be called from inside one of the bundle's operations.
    """
    
    __slots__ = ("_cond", "_pending")
    
    def __init__(self, parent: CancelScope | None = None, *, name: str | None = None) -> None:
        super().__init__(parent, name)
        self._cond = threading.Condition()
        self._pending = 0
    
    @property
    def pending(self) -> int:
        """Operations launched but not yet finished."""
        return self._pending
    
    def add(self, op: Operation, *, name: str | None = None) -> None:
        """Run op(scope) on a new thread. Does not block.
        
        Raises:
            BundleClosedError: If join() has already returned
        """
        with self._cond:
            if self._closed:
                raise BundleClosedError(f"{self.name}: add() after join() returned")
            self._pending += 1
            self._launched += 1
            index = self._launched
        
        op_name = self._op_name(op, name, index)
        thread = threading.Thread(
            target=self._run,
            args=(op, op_name),
            name=f"syncutil-{self.name}-{index}",
            daemon=True,
        )
        try:
            thread.start()
        except BaseException:
            self._finish()
            raise
    
    def join(self) -> Exception | None:
        """Wait for every operation added so far; return the first failure.
        
        Operations added by running operations before the count drops to
        zero are waited for too. Does not cancel the scope on success.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._pending == 0)
            self._closed = True
            error = self._first_error
        self._log.debug("bundle.join", launched=self._launched, failed=error is not None)
        return error
    
    def _run(self, op: Operation, op_name: str) -> None:
        try:
            op(self._scope)
        except Exception as exc:
            self._record_failure(exc, op_name)
        finally:
            self._finish()
    
    def _finish(self) -> None:
        with self._cond:
            self._pending -= 1
            if self._pending == 0:
                self._cond.notify_all()
    
    def __enter__(self) -> Bundle:
        return self
    
    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is not None:
            # Body failed: tear down the operations, then let its error through
            self._scope.cancel(f"{self.name} body raised {type(exc_val).__name__}")
            self.join()
            return
        error = self.join()
        if error is not None:
            raise error
    
    def __repr__(self) -> str:
        return f"<Bundle {self.name!r} state={self.state} pending={self._pending}>"


class AsyncBundle(_FirstFailure):
    """Bundle of asyncio operations with the same first-failure contract.
    
    Operations are coroutine functions taking the bundle's scope. The bundle
    cancels the scope on the first failure but never cancels tasks: operations
    watch ``scope.cancelled`` or ``await scope.wait_async()``.
    
    Example:
        >>> async with AsyncBundle() as bundle:
        ...     bundle.add(produce)
        ...     bundle.add(consume)
    """
    
    __slots__ = ("_tasks", "_crashed")
    
    def __init__(self, parent: CancelScope | None = None, *, name: str | None = None) -> None:
        super().__init__(parent, name)
        self._tasks: set[asyncio.Task[None]] = set()
        self._crashed: list[BaseException] = []
    
    @property
    def pending(self) -> int:
        return len(self._tasks)
    
    def add(self, op: AsyncOperation, *, name: str | None = None) -> None:
        """Schedule op(scope) as a task on the running loop.
        
        Raises:
            BundleClosedError: If join() has already returned
            RuntimeError: If no event loop is running
        """
        if self._closed:
            raise BundleClosedError(f"{self.name}: add() after join() returned")
        self._launched += 1
        index = self._launched
        op_name = self._op_name(op, name, index)
        task = asyncio.get_running_loop().create_task(
            self._run(op, op_name), name=f"syncutil-{self.name}-{index}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._reap)
    
    async def join(self) -> Exception | None:
        """Wait for every operation added so far; return the first failure.
        
        Raises:
            BaseException: The first non-Exception error escaping an operation
        
        If the waiting task is itself cancelled, the scope is cancelled before
        the cancellation propagates.
        """
        try:
            while self._tasks:
                await asyncio.wait(set(self._tasks))
        except asyncio.CancelledError:
            self._scope.cancel(f"{self.name} join cancelled")
            raise
        self._closed = True
        self._log.debug("bundle.join", launched=self._launched, failed=self._failed)
        if self._crashed:
            raise self._crashed[0]
        return self._first_error
    
    async def _run(self, op: AsyncOperation, op_name: str) -> None:
        try:
            await op(self._scope)
        except Exception as exc:
            self._record_failure(exc, op_name)
    
    def _reap(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and (exc := task.exception()) is not None:
            self._crashed.append(exc)
    
    async def __aenter__(self) -> AsyncBundle:
        return self
    
    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is not None:
            self._scope.cancel(f"{self.name} body raised {type(exc_val).__name__}")
            await self.join()
            return
        error = await self.join()
        if error is not None:
            raise error
    
    def __repr__(self) -> str:
        return f"<AsyncBundle {self.name!r} state={self.state} pending={len(self._tasks)}>"


def new_bundle(parent: CancelScope | None = None) -> Bundle:
    """Create a thread-backed Bundle under parent (background() if None)."""
    return Bundle(parent)
