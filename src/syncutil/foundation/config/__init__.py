"""Configuration: pydantic-settings and the invariant-checking flag."""

from .settings import (
    InvariantSettings,
    LoggingSettings,
    SyncutilSettings,
    clear_settings_cache,
    get_settings,
)
from .flags import (
    FLAG_NAME,
    add_flags,
    apply_flags,
    check_invariants_enabled,
    parse_flags,
    reset_check_invariants,
    set_check_invariants,
)

__all__ = [
    "InvariantSettings",
    "LoggingSettings",
    "SyncutilSettings",
    "clear_settings_cache",
    "get_settings",
    "FLAG_NAME",
    "add_flags",
    "apply_flags",
    "check_invariants_enabled",
    "parse_flags",
    "reset_check_invariants",
    "set_check_invariants",
]
