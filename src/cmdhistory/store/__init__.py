"""
Storage module for cmdhistory.

This module provides SQLite-based persistence for remote command history:
command metadata, per-instance invocation lists, and the stdout/stderr
text each invocation streams while it runs.

Tables:
    - commands: Metadata and invocation-list JSON per command ID
    - invocations: Accumulated stdout/stderr per (command ID, instance ID)
"""

from cmdhistory.store.db import HistoryDB

__all__ = [
    "HistoryDB",
]
