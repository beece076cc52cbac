"""
Session store interface: persistence for admin refresh-token sessions.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from portal.models.schemas import RefreshTokenRecord


class SessionStore(ABC):
    """Abstract base class for refresh-token session storage.

    Every mutation touches a single row or a predicate-selected set of rows;
    no operation needs a multi-step transaction.
    """

    @abstractmethod
    async def create_session(self, session: RefreshTokenRecord) -> RefreshTokenRecord:
        """
        Persist a new session.

        Args:
            session: The session record; ``token_hash`` must be unique
        """
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[RefreshTokenRecord]:
        pass

    @abstractmethod
    async def get_session_by_token_hash(self, token_hash: str) -> Optional[RefreshTokenRecord]:
        pass

    @abstractmethod
    async def list_active_sessions(self, admin_id: str, now: datetime) -> List[RefreshTokenRecord]:
        """
        List an admin's unrevoked, unexpired sessions.

        Returns:
            Sessions ordered newest first
        """
        pass

    @abstractmethod
    async def revoke_session(self, session_id: str) -> bool:
        """
        Mark a session revoked.

        Returns:
            True if the session existed and was not already revoked
        """
        pass

    @abstractmethod
    async def revoke_session_by_token_hash(self, token_hash: str) -> bool:
        pass

    @abstractmethod
    async def revoke_all_sessions(self, admin_id: str) -> int:
        """
        Revoke every unrevoked session owned by an admin.

        Returns:
            Number of sessions revoked
        """
        pass

    @abstractmethod
    async def delete_expired_sessions(self, now: datetime) -> int:
        """
        Physically delete sessions with ``expires_at < now``.

        Returns:
            Number of rows deleted
        """
        pass
