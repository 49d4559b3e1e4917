"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- The event journal read by external indexers
- Journal metadata (last published sequence number)
"""

from agora.core.storage.sqlite_adapter import SQLiteAdapter
from agora.core.storage.journal import EventJournal

__all__ = ["SQLiteAdapter", "EventJournal"]
