# src/tasktree/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_session import TaskSession
from .ports import LocalCache, RemoteTaskStore


@dataclass(slots=True)
class SessionConfig:
    """Presentation-only state. The cascade engine never reads it."""

    theme: str = "light"
    drawer_open: bool = False


@dataclass
class AppState:
    # Settings object (see config.Settings); kept untyped so tests can pass a namespace.
    settings: Any

    session: TaskSession
    remote: RemoteTaskStore
    cache: LocalCache

    ui: SessionConfig = field(default_factory=SessionConfig)
