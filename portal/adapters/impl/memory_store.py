"""
In-memory credential and session stores.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from portal.adapters.credentials import CredentialStore
from portal.adapters.sessions import SessionStore
from portal.core.errors import DuplicateAccount
from portal.models.schemas import (
    AdminRecord, RefreshTokenRecord, UserRecord, normalize_email, utcnow
)


class InMemoryCredentialStore(CredentialStore):
    """Dictionary-backed account store. Data lives for the process lifetime."""

    def __init__(self):
        self.admins: Dict[str, AdminRecord] = {}
        self.users: Dict[str, UserRecord] = {}

    def _email_taken(self, email: str) -> bool:
        return (
            any(a.email == email for a in self.admins.values())
            or any(u.email == email for u in self.users.values())
        )

    async def get_admin(self, admin_id: str) -> Optional[AdminRecord]:
        admin = self.admins.get(admin_id)
        return admin.model_copy() if admin else None

    async def get_admin_by_email(self, email: str) -> Optional[AdminRecord]:
        email = normalize_email(email)
        for admin in self.admins.values():
            if admin.email == email:
                return admin.model_copy()
        return None

    async def list_admins(self) -> List[AdminRecord]:
        admins = sorted(self.admins.values(), key=lambda a: a.created_at)
        return [a.model_copy() for a in admins]

    async def create_admin(self, admin: AdminRecord) -> AdminRecord:
        admin = admin.model_copy(update={"email": normalize_email(admin.email)})
        if self._email_taken(admin.email):
            raise DuplicateAccount()
        self.admins[admin.id] = admin
        return admin.model_copy()

    async def update_admin(self, admin_id: str, **changes: Any) -> Optional[AdminRecord]:
        if admin_id not in self.admins:
            return None
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
        changes["updated_at"] = utcnow()
        updated = self.admins[admin_id].model_copy(update=changes)
        self.admins[admin_id] = updated
        return updated.model_copy()

    async def delete_admin(self, admin_id: str) -> bool:
        return self.admins.pop(admin_id, None) is not None

    async def count_admins_created_by(self, admin_id: str) -> int:
        return sum(1 for a in self.admins.values() if a.created_by == admin_id)

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        email = normalize_email(email)
        for user in self.users.values():
            if user.email == email:
                return user.model_copy()
        return None

    async def create_user(self, user: UserRecord) -> UserRecord:
        user = user.model_copy(update={"email": normalize_email(user.email)})
        if self._email_taken(user.email):
            raise DuplicateAccount()
        self.users[user.id] = user
        return user.model_copy()

    async def update_user(self, user_id: str, **changes: Any) -> Optional[UserRecord]:
        if user_id not in self.users:
            return None
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
        changes["updated_at"] = utcnow()
        updated = self.users[user_id].model_copy(update=changes)
        self.users[user_id] = updated
        return updated.model_copy()

    async def count_users(self) -> int:
        return len(self.users)


class InMemorySessionStore(SessionStore):
    """Dictionary-backed session store."""

    def __init__(self):
        self.sessions: Dict[str, RefreshTokenRecord] = {}
        self._by_token_hash: Dict[str, str] = {}

    async def create_session(self, session: RefreshTokenRecord) -> RefreshTokenRecord:
        if session.token_hash in self._by_token_hash:
            raise ValueError("Session token already exists")
        self.sessions[session.id] = session
        self._by_token_hash[session.token_hash] = session.id
        return session.model_copy()

    async def get_session(self, session_id: str) -> Optional[RefreshTokenRecord]:
        session = self.sessions.get(session_id)
        return session.model_copy() if session else None

    async def get_session_by_token_hash(self, token_hash: str) -> Optional[RefreshTokenRecord]:
        session_id = self._by_token_hash.get(token_hash)
        if session_id is None:
            return None
        return await self.get_session(session_id)

    async def list_active_sessions(self, admin_id: str, now: datetime) -> List[RefreshTokenRecord]:
        active = [
            s for s in self.sessions.values()
            if s.admin_id == admin_id and not s.is_revoked and s.expires_at > now
        ]
        active.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy() for s in active]

    def _revoke(self, session: RefreshTokenRecord) -> bool:
        if session.is_revoked:
            return False
        self.sessions[session.id] = session.model_copy(
            update={"is_revoked": True, "updated_at": utcnow()}
        )
        return True

    async def revoke_session(self, session_id: str) -> bool:
        session = self.sessions.get(session_id)
        return self._revoke(session) if session else False

    async def revoke_session_by_token_hash(self, token_hash: str) -> bool:
        session_id = self._by_token_hash.get(token_hash)
        if session_id is None:
            return False
        return await self.revoke_session(session_id)

    async def revoke_all_sessions(self, admin_id: str) -> int:
        owned = [s for s in list(self.sessions.values()) if s.admin_id == admin_id]
        return sum(1 for s in owned if self._revoke(s))

    async def delete_expired_sessions(self, now: datetime) -> int:
        expired = [s for s in self.sessions.values() if s.expires_at < now]
        for session in expired:
            del self.sessions[session.id]
            self._by_token_hash.pop(session.token_hash, None)
        return len(expired)
