"""
Adapter interfaces and implementations for the exam portal auth service.
"""

from .credentials import CredentialStore
from .sessions import SessionStore
from .notifier import InvitationNotifier

__all__ = [
    "CredentialStore",
    "SessionStore",
    "InvitationNotifier",
]
