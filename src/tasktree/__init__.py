"""
tasktree: hierarchical personal task manager.

Subpackages:
- tasks: models, cascade engine, ordering, reconciliation, sync scheduler, session
- core: ports, errors, application state
- remote: remote document store adapters (HTTP, offline)
- storage: local snapshot cache
- cli / connectors: composition root, slash commands, console REPL
"""
