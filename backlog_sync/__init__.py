"""
Backlog Sync

Reads work items from a tracking service, computes a new relative
ordering for a batch of items, and applies it as per-item field patches.
"""

from backlog_sync.client import BacklogSyncClient, SyncReport

__all__ = [
    "BacklogSyncClient",
    "SyncReport",
]
