"""Exception hierarchy for syncutil.

Operation failures inside a bundle are whatever the operation raises; the
types here cover cancellation, misuse of the primitives and invariant checks.
"""

from __future__ import annotations


class SyncutilError(Exception):
    """Base class for errors raised by syncutil itself."""


class CancelledError(SyncutilError):
    """Raised by operations that observe a cancellation request.
    
    Distinguishes cooperative cancellation from other failures so callers
    can suppress it or map it to a status. The bundle never raises this on
    its own; operations raise it when interrupted mid-work.
    """
    
    __slots__ = ("reason",)
    
    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(reason or "operation cancelled")


class ScopeError(SyncutilError):
    """Invalid use of a cancellation scope."""


class BundleClosedError(SyncutilError):
    """Operation submitted to a bundle whose join() has already returned."""


class InvariantViolation(AssertionError):
    """Raised by invariant checks when guarded state is inconsistent.
    
    Subclasses AssertionError: a violation is a bug, not a recoverable error.
    """


def require(condition: bool, message: str = "invariant violated") -> None:
    """Raise InvariantViolation unless condition holds.

    Example:
        >>> def check() -> None:
        ...     require(s.next == s.current + 1, f"{s.next} != {s.current} + 1")
    """
    if not condition:
        raise InvariantViolation(message)
