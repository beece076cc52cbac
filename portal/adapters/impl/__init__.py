"""
Default adapter implementations for the exam portal auth service.
"""

from .memory_store import InMemoryCredentialStore, InMemorySessionStore
from .sqlite_store import SQLiteCredentialStore, SQLiteSessionStore
from .log_notifier import LoggingInvitationNotifier

__all__ = [
    "InMemoryCredentialStore",
    "InMemorySessionStore",
    "SQLiteCredentialStore",
    "SQLiteSessionStore",
    "LoggingInvitationNotifier",
]
