"""Process-wide invariant-checking toggle.

The toggle is fixed during startup, either from the command line:

    $ python -m myservice --syncutil.check_invariants

or from the environment (SYNCUTIL_CHECK_INVARIANTS=true), or by calling
set_check_invariants() before any InvariantMutex is created. Readers on the
lock paths see a plain module-global boolean.

Example:
    >>> import argparse
    >>> from syncutil.foundation.config import add_flags, apply_flags
    >>> parser = argparse.ArgumentParser()
    >>> add_flags(parser)
    >>> args = parser.parse_args(["--syncutil.check_invariants"])
    >>> apply_flags(args)
    >>> check_invariants_enabled()
    True
"""

from __future__ import annotations

import argparse
import threading
from collections.abc import Sequence

from syncutil.foundation.config.settings import InvariantSettings
from syncutil.runtime.observability.logging import get_logger

__all__ = [
    "FLAG_NAME",
    "add_flags",
    "apply_flags",
    "parse_flags",
    "check_invariants_enabled",
    "set_check_invariants",
    "reset_check_invariants",
]

FLAG_NAME = "syncutil.check_invariants"
_DEST = "syncutil_check_invariants"

# None until resolved from flags, setter or settings
_check_invariants: bool | None = None
# Set once an InvariantMutex has been built; later changes are suspicious
_in_use = False
_lock = threading.Lock()

log = get_logger("syncutil.flags")


def check_invariants_enabled() -> bool:
    """Whether invariant checks run at lock-boundary moments."""
    enabled = _check_invariants
    if enabled is None:
        return _resolve()
    return enabled


def set_check_invariants(enabled: bool) -> None:
    """Set the toggle. Call during startup, before any mutex is constructed."""
    global _check_invariants
    with _lock:
        previous = _check_invariants
        _check_invariants = bool(enabled)
        changed_in_use = _in_use and previous is not None and previous != _check_invariants
    if changed_in_use:
        log.warning("invariants.toggle_changed", flag=FLAG_NAME, enabled=bool(enabled))


def reset_check_invariants() -> None:
    """Forget the resolved toggle (useful for testing).
    
    The next read resolves it again from settings.
    """
    global _check_invariants, _in_use
    with _lock:
        _check_invariants = None
        _in_use = False


def mark_in_use() -> bool:
    """Record that a mutex consulted the toggle; returns the current value."""
    global _in_use
    enabled = check_invariants_enabled()
    _in_use = True
    return enabled


def add_flags(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Register --syncutil.check_invariants on an existing parser."""
    parser.add_argument(
        f"--{FLAG_NAME}",
        dest=_DEST,
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Crash when registered invariants are violated.",
    )
    return parser


def apply_flags(namespace: argparse.Namespace) -> None:
    """Apply parsed flags; an absent flag leaves the toggle untouched."""
    value = getattr(namespace, _DEST, None)
    if value is not None:
        set_check_invariants(value)


def parse_flags(argv: Sequence[str] | None = None) -> list[str]:
    """Parse syncutil flags out of argv (default sys.argv[1:]).
    
    Returns:
        The arguments that were not recognized, for the host's own parser.
    """
    parser = add_flags(argparse.ArgumentParser(add_help=False, allow_abbrev=False))
    namespace, remaining = parser.parse_known_args(argv)
    apply_flags(namespace)
    return remaining


def _resolve() -> bool:
    global _check_invariants
    with _lock:
        if _check_invariants is None:
            _check_invariants = InvariantSettings().check_invariants
        return _check_invariants
