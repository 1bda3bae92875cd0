"""Structured concurrency primitives for threads and asyncio.

Key Components:
    - CancelScope: hierarchical cooperative cancellation
    - Bundle / AsyncBundle: run operations under one scope, first failure wins
    - InvariantMutex: reader/writer mutex running invariant checks when enabled
    - RWLock: the non-reentrant reader/writer lock underneath
    - send / recv / drain / close: queue operations that respect a scope

Design Philosophy:
    - Structured lifetime: operations don't outlive the bundle's join()
    - Fail-fast: the first failure cancels the shared scope
    - Cooperative: cancellation is signalled, never forced

Example:
    >>> from syncutil.runtime.concurrency import Bundle
    >>> bundle = Bundle()
    >>> bundle.add(lambda scope: fetch("a", scope))
    >>> bundle.add(lambda scope: fetch("b", scope))
    >>> error = bundle.join()
"""

from __future__ import annotations

from .scope import DEADLINE_EXCEEDED, SCOPE_EXITED, CancelScope, background
from .bundle import AsyncBundle, AsyncOperation, Bundle, BundleState, Operation, new_bundle
from .rwlock import RWLock
from .invariant import InvariantMutex, new_invariant_mutex
from .channel import CLOSED, close, drain, recv, send

__all__ = [
    # Scopes
    "CancelScope",
    "background",
    "DEADLINE_EXCEEDED",
    "SCOPE_EXITED",
    # Bundles
    "Bundle",
    "AsyncBundle",
    "BundleState",
    "Operation",
    "AsyncOperation",
    "new_bundle",
    # Locks
    "RWLock",
    "InvariantMutex",
    "new_invariant_mutex",
    # Queues
    "CLOSED",
    "send",
    "recv",
    "close",
    "drain",
]
