"""Hierarchical cooperative cancellation.

A CancelScope is cancelled explicitly or when its parent is cancelled.
Cancellation is cooperative: work observes the scope (``cancelled``,
``wait()``, ``raise_if_cancelled()``) and abandons itself; nothing is
interrupted forcibly.

Key Features:
    - Cascading: cancelling a scope cancels every descendant
    - Ambient root: background() is never cancelled
    - Deadlines: timeout= cancels the scope after a delay
    - Thread-safe, with an asyncio-friendly wait_async()

Example:
    >>> root = CancelScope()
    >>> with root.child(timeout=5.0) as scope:
    ...     for item in items:
    ...         scope.raise_if_cancelled()
    ...         process(item)
    >>> # Leaving the block cancels the scope and disarms its timer
"""

from __future__ import annotations

import asyncio
import threading
import weakref
from typing import TYPE_CHECKING, Callable

from syncutil.foundation.errors import CancelledError, ScopeError
from syncutil.runtime.observability.logging import get_logger

if TYPE_CHECKING:
    from types import TracebackType

__all__ = ["CancelScope", "background", "DEADLINE_EXCEEDED", "SCOPE_EXITED"]

DEADLINE_EXCEEDED = "deadline exceeded"
SCOPE_EXITED = "scope exited"

log = get_logger("syncutil.scope")


class CancelScope:
    """Cancellation scope with parent-to-child propagation.
    
    Args:
        parent: Scope to derive from; None means the ambient background()
        timeout: Seconds after which the scope cancels itself
        name: Optional name for logs and repr
    
    A scope derived from an already-cancelled parent starts cancelled with
    the parent's reason. Parents hold their children weakly, so a scope is
    released once nothing else references it.
    """
    
    __slots__ = (
        "name", "_parent", "_lock", "_event", "_reason",
        "_children", "_callbacks", "_timer", "__weakref__",
    )
    
    def __init__(
        self,
        parent: CancelScope | None = None,
        *,
        timeout: float | None = None,
        name: str | None = None,
    ) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._reason: str | None = None
        self._children: weakref.WeakSet[CancelScope] = weakref.WeakSet()
        self._callbacks: list[Callable[[], object]] = []
        self._timer: threading.Timer | None = None
        self._parent: CancelScope = background() if parent is None else parent
        self._parent._link(self)
        if timeout is not None:
            self._arm(timeout)
    
    # ─────────────────────────────────────────────────────────────────
    # Observation
    # ─────────────────────────────────────────────────────────────────
    
    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()
    
    @property
    def reason(self) -> str | None:
        """Reason supplied to the cancel() call that took effect."""
        return self._reason
    
    @property
    def parent(self) -> CancelScope | None:
        return self._parent
    
    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled. Returns False if timeout elapsed first."""
        return self._event.wait(timeout)
    
    async def wait_async(self) -> None:
        """Suspend the current task until the scope is cancelled."""
        if self._event.is_set():
            return
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        
        def wake() -> None:
            loop.call_soon_threadsafe(_resolve, waiter)
        
        self.add_callback(wake)
        try:
            await waiter
        finally:
            self.remove_callback(wake)
    
    def raise_if_cancelled(self) -> None:
        """Raise CancelledError if the scope is cancelled."""
        if self._event.is_set():
            raise CancelledError(self._reason)
    
    # ─────────────────────────────────────────────────────────────────
    # Derivation & Cancellation
    # ─────────────────────────────────────────────────────────────────
    
    def child(self, *, timeout: float | None = None, name: str | None = None) -> CancelScope:
        """Derive a child scope."""
        return CancelScope(self, timeout=timeout, name=name)
    
    def cancel(self, reason: str | None = None) -> bool:
        """Cancel this scope and every descendant.
        
        Idempotent: the first call wins and its reason sticks.
        
        Returns:
            True if this call performed the cancellation
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            children = list(self._children)
            self._children.clear()
            callbacks, self._callbacks = self._callbacks, []
            timer, self._timer = self._timer, None
        
        if timer is not None:
            timer.cancel()
        self._parent._unlink(self)
        log.debug("scope.cancelled", scope=self.name, reason=reason)
        
        for child in children:
            child.cancel(reason)
        for callback in callbacks:
            callback()
        return True
    
    def add_callback(self, callback: Callable[[], object]) -> None:
        """Run callback once on cancellation (immediately if already cancelled).
        
        Callbacks run on the cancelling thread and must not block or raise.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()
    
    def remove_callback(self, callback: Callable[[], object]) -> bool:
        """Unregister a callback. Returns False if it was not registered."""
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                return False
            return True
    
    # ─────────────────────────────────────────────────────────────────
    # Context Manager
    # ─────────────────────────────────────────────────────────────────
    
    def __enter__(self) -> CancelScope:
        return self
    
    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.cancel(SCOPE_EXITED)
    
    def __repr__(self) -> str:
        state = f"cancelled, reason={self._reason!r}" if self.cancelled else "active"
        label = f" {self.name!r}" if self.name else ""
        return f"<CancelScope{label} {state}>"
    
    # ─────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────
    
    def _link(self, child: CancelScope) -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.add(child)
                return
            reason = self._reason
        child.cancel(reason)
    
    def _unlink(self, child: CancelScope) -> None:
        with self._lock:
            self._children.discard(child)
    
    def _arm(self, timeout: float) -> None:
        if timeout <= 0:
            self.cancel(DEADLINE_EXCEEDED)
            return
        timer = threading.Timer(timeout, self.cancel, kwargs={"reason": DEADLINE_EXCEEDED})
        timer.daemon = True
        with self._lock:
            if self._event.is_set():
                return
            self._timer = timer
        timer.start()


class _BackgroundScope(CancelScope):
    """The ambient root scope: never cancelled, keeps no children."""
    
    __slots__ = ()
    
    def __init__(self) -> None:
        self.name = "background"
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._reason = None
        self._children = weakref.WeakSet()
        self._callbacks = []
        self._timer = None
    
    @property
    def parent(self) -> CancelScope | None:
        return None
    
    def cancel(self, reason: str | None = None) -> bool:
        raise ScopeError("the background scope cannot be cancelled")
    
    def add_callback(self, callback: Callable[[], object]) -> None:
        pass
    
    def remove_callback(self, callback: Callable[[], object]) -> bool:
        return False
    
    def __exit__(self, *_: object) -> None:
        pass
    
    def _link(self, child: CancelScope) -> None:
        pass
    
    def _unlink(self, child: CancelScope) -> None:
        pass


_BACKGROUND = _BackgroundScope()


def background() -> CancelScope:
    """The ambient, never-cancelled root scope."""
    return _BACKGROUND


def _resolve(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)
