"""Shared fixtures: isolate the invariant toggle, settings and log output."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from syncutil.foundation.config import clear_settings_cache, reset_check_invariants
from syncutil.runtime.observability import configure_logging


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset global toggle and settings before and after each test."""
    monkeypatch.delenv("SYNCUTIL_CHECK_INVARIANTS", raising=False)
    monkeypatch.delenv("SYNCUTIL_LOG_LEVEL", raising=False)
    monkeypatch.delenv("SYNCUTIL_LOG_FORMAT", raising=False)
    clear_settings_cache()
    reset_check_invariants()
    configure_logging(format="none")
    yield
    clear_settings_cache()
    reset_check_invariants()
    configure_logging(format="none")


@pytest.fixture
def checks_on() -> None:
    """Enable invariant checking for one test."""
    from syncutil.foundation.config import set_check_invariants
    set_check_invariants(True)


@pytest.fixture
def checks_off() -> None:
    """Disable invariant checking for one test."""
    from syncutil.foundation.config import set_check_invariants
    set_check_invariants(False)
