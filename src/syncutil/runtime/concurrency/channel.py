"""Scope-aware blocking queue operations.

Pipeline stages connected by bounded queues must not block forever once the
pipeline is torn down. These helpers wait on a queue.Queue in short slices,
checking the scope in between, and raise CancelledError when it fires.

Example:
    >>> q: queue.Queue[int] = queue.Queue(maxsize=1)
    >>> def producer(scope: CancelScope) -> None:
    ...     for i in range(1000):
    ...         send(q, i, scope)
    ...     close(q, scope)
    >>> def consumer(scope: CancelScope) -> None:
    ...     for item in drain(q, scope):
    ...         handle(item)
"""

from __future__ import annotations

import queue
from collections.abc import Iterator
from typing import TypeVar

from .scope import CancelScope

__all__ = ["CLOSED", "DEFAULT_POLL", "send", "recv", "close", "drain"]

T = TypeVar("T")

# Upper bound on how late a blocked send/recv notices cancellation
DEFAULT_POLL = 0.05


class _Closed:
    __slots__ = ()
    
    def __repr__(self) -> str:
        return "CLOSED"


CLOSED = _Closed()


def send(q: queue.Queue[T], item: T, scope: CancelScope, *, poll: float = DEFAULT_POLL) -> None:
    """Put item on q, blocking until there is room or scope is cancelled.
    
    Raises:
        CancelledError: If scope is cancelled before the item is queued
    """
    while True:
        scope.raise_if_cancelled()
        try:
            q.put(item, timeout=poll)
            return
        except queue.Full:
            continue


def recv(q: queue.Queue[T], scope: CancelScope, *, poll: float = DEFAULT_POLL) -> T:
    """Take the next item from q, blocking until one arrives or scope is cancelled.
    
    Raises:
        CancelledError: If scope is cancelled before an item arrives
    """
    while True:
        scope.raise_if_cancelled()
        try:
            return q.get(timeout=poll)
        except queue.Empty:
            continue


def close(q: queue.Queue, scope: CancelScope, *, receivers: int = 1, poll: float = DEFAULT_POLL) -> None:
    """Tell receivers draining q that no more items follow (one marker each)."""
    for _ in range(receivers):
        send(q, CLOSED, scope, poll=poll)


def drain(q: queue.Queue[T], scope: CancelScope, *, poll: float = DEFAULT_POLL) -> Iterator[T]:
    """Yield items from q until a CLOSED marker arrives."""
    while True:
        item = recv(q, scope, poll=poll)
        if item is CLOSED:
            return
        yield item
