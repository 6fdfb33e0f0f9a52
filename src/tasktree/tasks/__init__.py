"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Subtask, TaskBoard, Collection)
- cascade.py: pure edit rules (completion cascade, due-date propagation, restore)
- ordering.py: drag-and-drop reordering and its preview projection
- reconcile.py: merging replicas into one board with unique ids
- serialization.py: JSON snapshot format
- sync_scheduler.py: local cache writes + debounced remote flushes
- task_session.py: the canonical in-memory store and its command surface
"""
