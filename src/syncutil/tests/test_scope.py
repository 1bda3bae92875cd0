"""Tests for hierarchical cancellation scopes."""

from __future__ import annotations

import asyncio
import gc
import threading
import time

import pytest

from syncutil.foundation.errors import CancelledError, ScopeError
from syncutil.runtime.concurrency import DEADLINE_EXCEEDED, SCOPE_EXITED, CancelScope, background


# ═════════════════════════════════════════════════════════════════════════════
# Cancellation & Propagation
# ═════════════════════════════════════════════════════════════════════════════


def test_new_scope_is_active() -> None:
    scope = CancelScope()
    assert not scope.cancelled
    assert scope.reason is None
    assert scope.parent is background()


def test_cancel_cascades_to_descendants_and_is_idempotent() -> None:
    parent = CancelScope()
    child = parent.child()
    grandchild = child.child()
    
    assert parent.cancel("stop") is True
    assert parent.cancel("ignored") is False
    
    assert parent.reason == "stop"
    assert child.cancelled and child.reason == "stop"
    assert grandchild.cancelled and grandchild.reason == "stop"


def test_cancelling_child_leaves_parent_active() -> None:
    parent = CancelScope()
    child = parent.child()
    child.cancel()
    assert child.cancelled
    assert not parent.cancelled


def test_child_of_cancelled_parent_starts_cancelled() -> None:
    parent = CancelScope()
    parent.cancel("done")
    late = CancelScope(parent)
    assert late.cancelled
    assert late.reason == "done"


def test_raise_if_cancelled() -> None:
    scope = CancelScope()
    scope.raise_if_cancelled()  # no-op while active
    scope.cancel("terminate")
    with pytest.raises(CancelledError, match="terminate") as info:
        scope.raise_if_cancelled()
    assert info.value.reason == "terminate"


def test_parent_releases_dropped_children() -> None:
    parent = CancelScope()
    for _ in range(10):
        parent.child()
    gc.collect()
    assert len(parent._children) == 0


def test_cancelled_child_unlinks_from_parent() -> None:
    parent = CancelScope()
    child = parent.child()
    assert child in parent._children
    child.cancel()
    assert child not in parent._children


# ═════════════════════════════════════════════════════════════════════════════
# Background Scope
# ═════════════════════════════════════════════════════════════════════════════


def test_background_cannot_be_cancelled() -> None:
    with pytest.raises(ScopeError):
        background().cancel()
    assert not background().cancelled
    assert background().parent is None


def test_background_keeps_no_children() -> None:
    CancelScope()
    assert len(background()._children) == 0


# ═════════════════════════════════════════════════════════════════════════════
# Waiting, Callbacks, Deadlines
# ═════════════════════════════════════════════════════════════════════════════


def test_wait_returns_when_cancelled_from_another_thread() -> None:
    scope = CancelScope()
    threading.Timer(0.02, scope.cancel).start()
    assert scope.wait(timeout=2.0) is True


def test_wait_times_out_while_active() -> None:
    assert CancelScope().wait(timeout=0.01) is False


def test_callbacks_run_once_on_cancel() -> None:
    scope = CancelScope()
    calls: list[str] = []
    scope.add_callback(lambda: calls.append("a"))
    scope.cancel()
    scope.cancel()
    assert calls == ["a"]


def test_callback_added_after_cancel_runs_immediately() -> None:
    scope = CancelScope()
    scope.cancel()
    calls: list[str] = []
    scope.add_callback(lambda: calls.append("late"))
    assert calls == ["late"]


def test_removed_callback_does_not_run() -> None:
    scope = CancelScope()
    calls: list[str] = []
    callback = lambda: calls.append("x")  # noqa: E731
    scope.add_callback(callback)
    assert scope.remove_callback(callback) is True
    assert scope.remove_callback(callback) is False
    scope.cancel()
    assert calls == []


def test_timeout_cancels_with_deadline_reason() -> None:
    scope = CancelScope(timeout=0.02)
    assert scope.wait(timeout=2.0)
    assert scope.reason == DEADLINE_EXCEEDED


def test_timeout_on_parent_cancels_children() -> None:
    parent = CancelScope(timeout=0.02)
    child = parent.child()
    assert child.wait(timeout=2.0)
    assert child.reason == DEADLINE_EXCEEDED


def test_non_positive_timeout_cancels_immediately() -> None:
    assert CancelScope(timeout=0).cancelled


def test_explicit_cancel_disarms_timer() -> None:
    scope = CancelScope(timeout=0.05)
    scope.cancel("manual")
    time.sleep(0.1)
    assert scope.reason == "manual"


def test_context_manager_cancels_on_exit() -> None:
    parent = CancelScope()
    with parent.child() as scope:
        assert not scope.cancelled
    assert scope.cancelled
    assert scope.reason == SCOPE_EXITED
    assert not parent.cancelled


@pytest.mark.asyncio
async def test_wait_async_wakes_on_cancel_from_thread() -> None:
    scope = CancelScope()
    threading.Timer(0.02, scope.cancel).start()
    await asyncio.wait_for(scope.wait_async(), timeout=2.0)
    assert scope.cancelled


@pytest.mark.asyncio
async def test_wait_async_returns_immediately_when_cancelled() -> None:
    scope = CancelScope()
    scope.cancel()
    await asyncio.wait_for(scope.wait_async(), timeout=0.5)


@pytest.mark.asyncio
async def test_wait_async_unregisters_on_timeout() -> None:
    scope = CancelScope()
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(scope.wait_async(), timeout=0.01)
    assert scope._callbacks == []
