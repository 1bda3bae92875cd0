"""Tests for InvariantMutex lock-boundary checks."""

from __future__ import annotations

import threading

import pytest

from syncutil.foundation.errors import InvariantViolation, require
from syncutil.runtime.concurrency import InvariantMutex, new_invariant_mutex


class Generations:
    """Guarded state with INVARIANT: next == current + 1."""
    
    def __init__(self) -> None:
        self.current = 1
        self.next = 2
        self.checks = 0
        self.mu = InvariantMutex(self.check_invariants)
    
    def check_invariants(self) -> None:
        self.checks += 1
        require(self.next == self.current + 1, f"{self.next} != {self.current} + 1")
    
    def set_generation(self, n: int) -> None:
        with self.mu:
            self.current = n
            self.next = n + 1


# ═════════════════════════════════════════════════════════════════════════════
# Construction
# ═════════════════════════════════════════════════════════════════════════════


def test_none_check_is_rejected() -> None:
    with pytest.raises(TypeError):
        InvariantMutex(None)  # type: ignore[arg-type]


def test_non_callable_check_is_rejected() -> None:
    with pytest.raises(TypeError):
        new_invariant_mutex("not callable")  # type: ignore[arg-type]


def test_check_runs_once_at_construction_when_enabled(checks_on: None) -> None:
    calls: list[str] = []
    InvariantMutex(lambda: calls.append("check"))
    assert calls == ["check"]


def test_construction_is_silent_when_disabled(checks_off: None) -> None:
    calls: list[str] = []
    InvariantMutex(lambda: calls.append("check"))
    assert calls == []


def test_construction_fails_when_invariant_already_broken(checks_on: None) -> None:
    def broken() -> None:
        raise InvariantViolation("broken from the start")
    
    with pytest.raises(InvariantViolation):
        InvariantMutex(broken)


# ═════════════════════════════════════════════════════════════════════════════
# Lock Boundaries
# ═════════════════════════════════════════════════════════════════════════════


def test_check_runs_at_each_boundary_when_enabled(checks_on: None) -> None:
    calls: list[str] = []
    mu = InvariantMutex(lambda: calls.append("check"))
    calls.clear()
    
    mu.lock()
    assert len(calls) == 1
    mu.unlock()
    assert len(calls) == 2
    mu.rlock()
    assert len(calls) == 3
    mu.runlock()
    assert len(calls) == 4


def test_check_never_runs_when_disabled(checks_off: None) -> None:
    calls: list[str] = []
    mu = InvariantMutex(lambda: calls.append("check"))
    
    mu.lock()
    mu.unlock()
    with mu.read():
        pass
    with mu:
        pass
    assert calls == []


def test_check_observes_lock_held_in_announced_mode(checks_on: None) -> None:
    modes: list[tuple[bool, int]] = []
    holder: list[InvariantMutex] = []
    
    def check() -> None:
        if holder:
            rw = holder[0]._lock
            modes.append((rw.writer_active, rw.readers))
    
    mu = InvariantMutex(check)
    holder.append(mu)
    
    mu.lock()    # after acquire
    mu.unlock()  # before release
    mu.rlock()
    mu.runlock()
    
    assert modes == [(True, 0), (True, 0), (False, 1), (False, 1)]


def test_try_lock_checks_only_when_acquired(checks_on: None) -> None:
    calls: list[str] = []
    mu = InvariantMutex(lambda: calls.append("check"))
    calls.clear()
    
    assert mu.try_lock() is True
    assert calls == ["check"]
    assert mu.try_lock() is False
    assert mu.try_rlock() is False
    assert calls == ["check"]
    mu.unlock()
    
    assert mu.try_rlock() is True
    assert mu.try_rlock() is True
    mu.runlock()
    mu.runlock()


# ═════════════════════════════════════════════════════════════════════════════
# Scenarios
# ═════════════════════════════════════════════════════════════════════════════


def test_mutation_preserving_invariant_does_not_crash(checks_on: None) -> None:
    s = Generations()
    s.set_generation(7)
    assert (s.current, s.next) == (7, 8)
    assert s.checks == 3  # construction, acquire, release


def test_broken_invariant_crashes_before_release(checks_on: None) -> None:
    s = Generations()
    
    with pytest.raises(InvariantViolation, match="9 != 7 \\+ 1"):
        with s.mu:
            s.current = 7
            s.next = 9
    
    # The release hook raised, so the lock was never handed on
    assert s.mu._lock.writer_active
    assert s.mu.try_lock() is False


def test_broken_invariant_ignored_when_disabled(checks_off: None) -> None:
    s = Generations()
    with s.mu:
        s.next = s.current + 2
    assert s.mu.try_lock() is True
    assert s.checks == 0


def test_toggle_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNCUTIL_CHECK_INVARIANTS", "true")
    calls: list[str] = []
    mu = InvariantMutex(lambda: calls.append("check"))
    with mu.read():
        pass
    assert calls == ["check"] * 3


def test_readers_share_writers_exclude(checks_on: None) -> None:
    s = Generations()
    inside = threading.Barrier(3, timeout=5.0)
    
    def reader() -> None:
        with s.mu.read():
            inside.wait()  # all three readers hold the lock at once
    
    threads = [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)
    assert not inside.broken
    
    s.mu.rlock()
    assert s.mu.try_lock() is False
    s.mu.runlock()
    assert s.mu.try_lock() is True
    s.mu.unlock()
