"""Rollback snapshots and their stores."""

from .models import SNAPSHOT_FIELDS, RollbackSnapshot
from .store import FileRollbackStore, InMemoryRollbackStore, RollbackStore

__all__ = [
    "SNAPSHOT_FIELDS",
    "FileRollbackStore",
    "InMemoryRollbackStore",
    "RollbackSnapshot",
    "RollbackStore",
]
