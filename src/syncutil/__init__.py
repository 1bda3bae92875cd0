"""syncutil - structured concurrency helpers for threads and asyncio.

Two small tools with sharp failure semantics:

Bundles run a dynamic set of fallible operations under a shared
cancellation scope. The first failure cancels the scope and is what join()
reports:

    >>> from syncutil import Bundle
    >>> bundle = Bundle()
    >>> bundle.add(list_objects)
    >>> bundle.add(delete_objects)
    >>> error = bundle.join()

Invariant mutexes run a check at every lock boundary when started with
--syncutil.check_invariants (or SYNCUTIL_CHECK_INVARIANTS=true), so broken
invariants fail right where they break:

    >>> from syncutil import InvariantMutex, require
    >>> mu = InvariantMutex(lambda: require(s.next == s.current + 1))
    >>> with mu:
    ...     s.current, s.next = 5, 6
"""

from __future__ import annotations

__version__ = "0.1.0"

from .foundation.config import (
    FLAG_NAME,
    SyncutilSettings,
    add_flags,
    apply_flags,
    check_invariants_enabled,
    clear_settings_cache,
    get_settings,
    parse_flags,
    reset_check_invariants,
    set_check_invariants,
)
from .foundation.errors import (
    BundleClosedError,
    CancelledError,
    InvariantViolation,
    ScopeError,
    SyncutilError,
    require,
)
from .runtime.concurrency import (
    CLOSED,
    AsyncBundle,
    Bundle,
    BundleState,
    CancelScope,
    InvariantMutex,
    RWLock,
    background,
    close,
    drain,
    new_bundle,
    new_invariant_mutex,
    recv,
    send,
)
from .runtime.observability import configure_from_settings, configure_logging, get_logger

__all__ = [
    "__version__",
    # Config
    "FLAG_NAME", "SyncutilSettings", "add_flags", "apply_flags", "check_invariants_enabled",
    "clear_settings_cache", "get_settings", "parse_flags", "reset_check_invariants", "set_check_invariants",
    # Errors
    "SyncutilError", "CancelledError", "ScopeError", "BundleClosedError", "InvariantViolation", "require",
    # Concurrency
    "CancelScope", "background", "Bundle", "AsyncBundle", "BundleState", "new_bundle",
    "RWLock", "InvariantMutex", "new_invariant_mutex",
    "CLOSED", "send", "recv", "close", "drain",
    # Logging
    "configure_logging", "configure_from_settings", "get_logger",
]
