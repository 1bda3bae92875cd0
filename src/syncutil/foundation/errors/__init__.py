"""Error types for syncutil.

- SyncutilError: base for errors raised by the library
- CancelledError: cooperative cancellation observed by an operation
- ScopeError / BundleClosedError: misuse of scopes and bundles
- InvariantViolation / require: invariant check failures
"""

from .errors import (
    BundleClosedError,
    CancelledError,
    InvariantViolation,
    ScopeError,
    SyncutilError,
    require,
)

__all__ = [
    "SyncutilError", "CancelledError", "ScopeError", "BundleClosedError",
    "InvariantViolation", "require",
]
