# src/tasktree/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (remote store, local cache, session).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import LocalCache, RemoteTaskStore
from ..core.state import AppState, SessionConfig
from ..remote.http_store import HttpRemoteTaskStore
from ..remote.offline import OfflineRemoteTaskStore
from ..storage.local_cache import MemoryLocalCache, SqliteLocalCache
from ..tasks.task_session import TaskSession

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.cache_db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_remote(settings) -> RemoteTaskStore:
    if not settings.remote_url:
        logger.info("No remote URL configured; using the in-memory offline store.")
        return OfflineRemoteTaskStore()
    try:
        return HttpRemoteTaskStore(
            settings.remote_url,
            token=settings.remote_token,
            timeout_seconds=settings.remote_timeout_seconds,
        )
    except ValueError:
        logger.exception("Invalid remote configuration; falling back to the offline store.")
        return OfflineRemoteTaskStore()


def _build_cache(settings) -> LocalCache:
    if str(settings.cache_db_path) == ":memory:":
        return MemoryLocalCache()
    return SqliteLocalCache(settings.cache_db_path)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if str(settings.cache_db_path) != ":memory:":
        _ensure_local_dirs(settings)

    remote = _build_remote(settings)
    cache = _build_cache(settings)
    session = TaskSession(
        remote,
        cache,
        debounce_seconds=settings.sync_debounce_seconds,
        transition_delay_seconds=settings.transition_delay_seconds,
        strict=settings.strict,
    )
    return AppState(
        settings=settings,
        session=session,
        remote=remote,
        cache=cache,
        ui=SessionConfig(theme=settings.theme),
    )


async def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.session.close()
    except Exception:
        logger.exception("Failed to flush pending sync work.")

    aclose = getattr(state.remote, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception:
            logger.debug("Remote client close failed.", exc_info=True)
