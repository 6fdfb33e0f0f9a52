# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tasktree.core.state import AppState, SessionConfig
from tasktree.tasks.task_session import TaskSession

from .fakes import FakeRemoteStore, MemoryCache

# Short timers keep async tests fast while preserving ordering between debounce and archive.
DEBOUNCE = 0.05
TRANSITION = 0.01


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasktree-test",
        log_level="DEBUG",
        console_enabled=False,
        user_id="alice",
        strict=False,
        theme="light",
        remote_url=None,
        remote_token=None,
        remote_timeout_seconds=1.0,
        sync_debounce_seconds=DEBOUNCE,
        transition_delay_seconds=TRANSITION,
        data_dir=tmp_path,
        cache_db_path=tmp_path / "cache.sqlite3",
    )


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture()
def session(remote: FakeRemoteStore, cache: MemoryCache) -> TaskSession:
    return TaskSession(remote, cache, debounce_seconds=DEBOUNCE, transition_delay_seconds=TRANSITION)


@pytest.fixture()
def state(settings: SimpleNamespace, session: TaskSession, remote: FakeRemoteStore, cache: MemoryCache) -> AppState:
    """AppState wired with deterministic fakes."""
    return AppState(settings=settings, session=session, remote=remote, cache=cache, ui=SessionConfig())
