# src/tasktree/core/errors.py

from __future__ import annotations


class TaskTreeError(Exception):
    """Base class for tasktree errors."""


class ValidationNoop(TaskTreeError):
    """An edit referenced a missing task/subtask id (raised only in strict mode)."""


class RemoteError(TaskTreeError):
    """Base class for remote store failures."""


class RemoteWriteError(RemoteError):
    """Raised when a remote create/update/delete/move fails (network, permission, 5xx)."""


class RemoteNotFound(RemoteError):
    """Raised when the remote document targeted by update/delete no longer exists."""


class CacheCorrupt(TaskTreeError):
    """Raised when a local snapshot cannot be parsed."""


class DuplicateIdentity(TaskTreeError):
    """Two tasks shared an id after a load. Resolved by reconciliation, only ever logged."""
