"""
SQLite credential and session store implementations.
"""

import sqlite3
import aiosqlite
from datetime import datetime, timezone
from typing import Any, List, Optional
from portal.adapters.credentials import CredentialStore
from portal.adapters.sessions import SessionStore
from portal.core.errors import DuplicateAccount
from portal.models.schemas import (
    AdminRecord, RefreshTokenRecord, UserRecord, normalize_email, utcnow
)


# Fixed-width UTC text so lexical comparison in SQL matches time order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

ADMIN_COLUMNS = (
    "id, full_name, email, password_hash, is_active, is_super_admin, "
    "created_by, created_at, updated_at"
)
USER_COLUMNS = "id, name, email, password_hash, role, is_active, created_at, updated_at"
SESSION_COLUMNS = "id, token_hash, admin_id, expires_at, is_revoked, created_at, updated_at"


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _dt(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _admin_from_row(row) -> AdminRecord:
    return AdminRecord(
        id=row[0],
        full_name=row[1],
        email=row[2],
        password_hash=row[3],
        is_active=bool(row[4]),
        is_super_admin=bool(row[5]),
        created_by=row[6],
        created_at=_dt(row[7]),
        updated_at=_dt(row[8]),
    )


def _user_from_row(row) -> UserRecord:
    return UserRecord(
        id=row[0],
        name=row[1],
        email=row[2],
        password_hash=row[3],
        role=row[4],
        is_active=bool(row[5]),
        created_at=_dt(row[6]),
        updated_at=_dt(row[7]),
    )


def _session_from_row(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row[0],
        token_hash=row[1],
        admin_id=row[2],
        expires_at=_dt(row[3]),
        is_revoked=bool(row[4]),
        created_at=_dt(row[5]),
        updated_at=_dt(row[6]),
    )


class SQLiteStoreBase:
    """Shared connection handling and schema for the SQLite stores."""

    def __init__(self, db_path: str = "./portal.db"):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._initialized = False

    async def _init_db(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS admins (
                    id TEXT PRIMARY KEY,
                    full_name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    is_super_admin INTEGER NOT NULL DEFAULT 0,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'USER',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS refresh_tokens (
                    id TEXT PRIMARY KEY,
                    token_hash TEXT NOT NULL UNIQUE,
                    admin_id TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    is_revoked INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_refresh_tokens_admin
                ON refresh_tokens(admin_id)
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_refresh_tokens_expires
                ON refresh_tokens(expires_at)
            """)
            await db.commit()

        self._initialized = True

    async def _fetchone(self, query: str, params: tuple = ()):
        await self._init_db()
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(query, params) as cursor:
                return await cursor.fetchone()

    async def _fetchall(self, query: str, params: tuple = ()):
        await self._init_db()
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(query, params) as cursor:
                return await cursor.fetchall()

    async def _execute(self, query: str, params: tuple = ()) -> int:
        """Run a write statement and return the affected row count."""
        await self._init_db()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            await db.commit()
            return cursor.rowcount


class SQLiteCredentialStore(SQLiteStoreBase, CredentialStore):
    """SQLite-based admin and user account store."""

    async def get_admin(self, admin_id: str) -> Optional[AdminRecord]:
        row = await self._fetchone(
            f"SELECT {ADMIN_COLUMNS} FROM admins WHERE id = ?", (admin_id,)
        )
        return _admin_from_row(row) if row else None

    async def get_admin_by_email(self, email: str) -> Optional[AdminRecord]:
        row = await self._fetchone(
            f"SELECT {ADMIN_COLUMNS} FROM admins WHERE email = ?",
            (normalize_email(email),)
        )
        return _admin_from_row(row) if row else None

    async def list_admins(self) -> List[AdminRecord]:
        rows = await self._fetchall(
            f"SELECT {ADMIN_COLUMNS} FROM admins ORDER BY created_at, id"
        )
        return [_admin_from_row(row) for row in rows]

    async def create_admin(self, admin: AdminRecord) -> AdminRecord:
        admin = admin.model_copy(update={"email": normalize_email(admin.email)})
        if await self.get_user_by_email(admin.email) is not None:
            raise DuplicateAccount()

        try:
            await self._execute(
                f"INSERT INTO admins ({ADMIN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    admin.id, admin.full_name, admin.email, admin.password_hash,
                    int(admin.is_active), int(admin.is_super_admin), admin.created_by,
                    _ts(admin.created_at), _ts(admin.updated_at),
                )
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateAccount() from e
        return admin

    async def update_admin(self, admin_id: str, **changes: Any) -> Optional[AdminRecord]:
        current = await self.get_admin(admin_id)
        if not current:
            return None

        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
        changes["updated_at"] = utcnow()
        updated = current.model_copy(update=changes)

        try:
            await self._execute(
                "UPDATE admins SET full_name = ?, email = ?, password_hash = ?, "
                "is_active = ?, is_super_admin = ?, created_by = ?, updated_at = ? "
                "WHERE id = ?",
                (
                    updated.full_name, updated.email, updated.password_hash,
                    int(updated.is_active), int(updated.is_super_admin),
                    updated.created_by, _ts(updated.updated_at), admin_id,
                )
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateAccount() from e
        return updated

    async def delete_admin(self, admin_id: str) -> bool:
        deleted = await self._execute("DELETE FROM admins WHERE id = ?", (admin_id,))
        return deleted > 0

    async def count_admins_created_by(self, admin_id: str) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) FROM admins WHERE created_by = ?", (admin_id,)
        )
        return row[0]

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        row = await self._fetchone(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,)
        )
        return _user_from_row(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        row = await self._fetchone(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = ?",
            (normalize_email(email),)
        )
        return _user_from_row(row) if row else None

    async def create_user(self, user: UserRecord) -> UserRecord:
        user = user.model_copy(update={"email": normalize_email(user.email)})
        if await self.get_admin_by_email(user.email) is not None:
            raise DuplicateAccount()

        try:
            await self._execute(
                f"INSERT INTO users ({USER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    user.id, user.name, user.email, user.password_hash, user.role,
                    int(user.is_active), _ts(user.created_at), _ts(user.updated_at),
                )
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateAccount() from e
        return user

    async def update_user(self, user_id: str, **changes: Any) -> Optional[UserRecord]:
        current = await self.get_user(user_id)
        if not current:
            return None

        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
        changes["updated_at"] = utcnow()
        updated = current.model_copy(update=changes)

        try:
            await self._execute(
                "UPDATE users SET name = ?, email = ?, password_hash = ?, is_active = ?, "
                "updated_at = ? WHERE id = ?",
                (
                    updated.name, updated.email, updated.password_hash,
                    int(updated.is_active), _ts(updated.updated_at), user_id,
                )
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateAccount() from e
        return updated

    async def count_users(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM users")
        return row[0]


class SQLiteSessionStore(SQLiteStoreBase, SessionStore):
    """SQLite-based refresh-token session store."""

    async def create_session(self, session: RefreshTokenRecord) -> RefreshTokenRecord:
        await self._execute(
            f"INSERT INTO refresh_tokens ({SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                session.id, session.token_hash, session.admin_id,
                _ts(session.expires_at), int(session.is_revoked),
                _ts(session.created_at), _ts(session.updated_at),
            )
        )
        return session

    async def get_session(self, session_id: str) -> Optional[RefreshTokenRecord]:
        row = await self._fetchone(
            f"SELECT {SESSION_COLUMNS} FROM refresh_tokens WHERE id = ?", (session_id,)
        )
        return _session_from_row(row) if row else None

    async def get_session_by_token_hash(self, token_hash: str) -> Optional[RefreshTokenRecord]:
        row = await self._fetchone(
            f"SELECT {SESSION_COLUMNS} FROM refresh_tokens WHERE token_hash = ?",
            (token_hash,)
        )
        return _session_from_row(row) if row else None

    async def list_active_sessions(self, admin_id: str, now: datetime) -> List[RefreshTokenRecord]:
        rows = await self._fetchall(
            f"SELECT {SESSION_COLUMNS} FROM refresh_tokens "
            "WHERE admin_id = ? AND is_revoked = 0 AND expires_at > ? "
            "ORDER BY created_at DESC",
            (admin_id, _ts(now))
        )
        return [_session_from_row(row) for row in rows]

    async def revoke_session(self, session_id: str) -> bool:
        updated = await self._execute(
            "UPDATE refresh_tokens SET is_revoked = 1, updated_at = ? "
            "WHERE id = ? AND is_revoked = 0",
            (_ts(utcnow()), session_id)
        )
        return updated > 0

    async def revoke_session_by_token_hash(self, token_hash: str) -> bool:
        updated = await self._execute(
            "UPDATE refresh_tokens SET is_revoked = 1, updated_at = ? "
            "WHERE token_hash = ? AND is_revoked = 0",
            (_ts(utcnow()), token_hash)
        )
        return updated > 0

    async def revoke_all_sessions(self, admin_id: str) -> int:
        return await self._execute(
            "UPDATE refresh_tokens SET is_revoked = 1, updated_at = ? "
            "WHERE admin_id = ? AND is_revoked = 0",
            (_ts(utcnow()), admin_id)
        )

    async def delete_expired_sessions(self, now: datetime) -> int:
        return await self._execute(
            "DELETE FROM refresh_tokens WHERE expires_at < ?", (_ts(now),)
        )
