"""
Adapters layer - Persistence and notification integrations.
"""

from .memory_store import MemoryStore
from .notifications import LoggingNotificationSender, RecordingNotificationSender
from .sql_store import SqlStore

__all__ = ["LoggingNotificationSender", "MemoryStore", "RecordingNotificationSender", "SqlStore"]
