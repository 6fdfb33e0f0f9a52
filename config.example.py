# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use:
- .env (local, gitignored)

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKTREE_APP_NAME": "App display name (default: tasktree).",
    "TASKTREE_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Connectors
    "TASKTREE_CONSOLE_ENABLED": "Enable console REPL (true/false, default: true).",
    # Session
    "TASKTREE_USER_ID": "User signed in at startup (default: local).",
    "TASKTREE_STRICT": "Raise on no-op edits instead of ignoring them (development, default: false).",
    "TASKTREE_THEME": "Initial theme: light | dark (default: light).",
    # Remote store
    "TASKTREE_REMOTE_URL": "Base URL of the REST document store (empty => in-memory offline store).",
    "TASKTREE_REMOTE_TOKEN": "Bearer token sent to the remote store.",
    "TASKTREE_REMOTE_TIMEOUT_SECONDS": "Per-request timeout (default: 10).",
    # Sync timing
    "TASKTREE_SYNC_DEBOUNCE_SECONDS": "Quiet period before a remote flush (default: 2.0).",
    "TASKTREE_TRANSITION_DELAY_SECONDS": (
        "Delay before an auto-completed task moves to the completed list (default: 0.5)."
    ),
    # Paths (gitignored)
    "TASKTREE_DATA_DIR": "Local data directory for logs and cache (default: .local/tasktree).",
    "TASKTREE_CACHE_DB_PATH": (
        "Local cache SQLite path (default: <data_dir>/cache.sqlite3; ':memory:' disables persistence)."
    ),
}
