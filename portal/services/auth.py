"""
Authentication service: login, registration, refresh, logout and principal
resolution for admins and users.
"""

import logging
from typing import List, Optional, Union

from portal.adapters.credentials import CredentialStore
from portal.adapters.sessions import SessionStore
from portal.core.errors import (
    AccountDeactivated, DuplicateAccount, InvalidCredentials, InvalidToken,
    PortalError, PrincipalNotFound, ResourceNotFound, TokenExpired, TokenRevoked
)
from portal.models.schemas import (
    AccessGrant, AdminClaims, AdminLoginResult, AdminProfile, Principal,
    RefreshTokenRecord, SessionInfo, UserClaims, UserLoginResult, UserProfile,
    UserRecord, normalize_email
)
from portal.observability.logging import AuditLogger
from portal.observability.metrics import get_metrics_collector
from portal.services.tokens import TokenService, hash_refresh_token

logger = logging.getLogger(__name__)


class AuthenticationService:
    """Orchestrates credential checks, token issuance and session bookkeeping."""

    def __init__(
        self,
        credentials: CredentialStore,
        sessions: SessionStore,
        tokens: TokenService,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.credentials = credentials
        self.sessions = sessions
        self.tokens = tokens
        self.audit = audit_logger or AuditLogger()
        self.metrics = get_metrics_collector()

    def _login_failed(self, email: str, principal_type: str, error: PortalError) -> PortalError:
        self.audit.log_login_attempt(email, principal_type, False, reason=error.message)
        self.metrics.record_auth_attempt(principal_type, False)
        return error

    async def authenticate_admin(self, email: str, password: str) -> AdminLoginResult:
        """
        Log an admin in and open a new session.

        Args:
            email: Admin email (any case)
            password: Plaintext password

        Returns:
            Sanitized profile, token pair and the new session's id

        Raises:
            InvalidCredentials: unknown email or wrong password
            AccountDeactivated: the admin exists but is inactive
        """
        email = normalize_email(email)
        admin = await self.credentials.get_admin_by_email(email)
        if not admin:
            raise self._login_failed(email, "admin", InvalidCredentials())

        # Deactivation is reported before the password is checked
        if not admin.is_active:
            raise self._login_failed(email, "admin", AccountDeactivated())

        if not await self.tokens.verify_password(password, admin.password_hash):
            raise self._login_failed(email, "admin", InvalidCredentials())

        tokens = self.tokens.issue_token_pair(AdminClaims.from_record(admin))
        session = await self.sessions.create_session(RefreshTokenRecord(
            token_hash=hash_refresh_token(tokens.refresh_token),
            admin_id=admin.id,
            expires_at=self.tokens.compute_refresh_expiry(),
        ))

        self.audit.log_login_attempt(email, "admin", True, principal_id=admin.id)
        self.audit.log_session_event("created", admin.id, session_id=session.id)
        self.metrics.record_auth_attempt("admin", True)

        return AdminLoginResult(
            admin=AdminProfile.from_record(admin),
            tokens=tokens,
            session_id=session.id,
        )

    async def authenticate_user(self, email: str, password: str) -> UserLoginResult:
        """Log a student in. Users receive an access token only."""
        email = normalize_email(email)
        user = await self.credentials.get_user_by_email(email)
        if not user:
            raise self._login_failed(email, "user", InvalidCredentials())

        if not user.is_active:
            raise self._login_failed(email, "user", AccountDeactivated())

        if not await self.tokens.verify_password(password, user.password_hash):
            raise self._login_failed(email, "user", InvalidCredentials())

        grant = self.tokens.issue_access_grant(UserClaims.from_record(user))

        self.audit.log_login_attempt(email, "user", True, principal_id=user.id)
        self.metrics.record_auth_attempt("user", True)

        return UserLoginResult(user=UserProfile.from_record(user), tokens=grant)

    async def authenticate(
        self, email: str, password: str
    ) -> Union[AdminLoginResult, UserLoginResult]:
        """Universal login: admin flow when the email belongs to an admin, user flow otherwise."""
        if await self.credentials.get_admin_by_email(email):
            return await self.authenticate_admin(email, password)
        return await self.authenticate_user(email, password)

    async def register_user(self, name: str, email: str, password: str) -> UserLoginResult:
        """
        Create a student account and log it in.

        Raises:
            DuplicateAccount: the email already belongs to a user or an admin
        """
        email = normalize_email(email)
        if await self.credentials.email_in_use(email):
            raise DuplicateAccount()

        password_hash = await self.tokens.hash_password(password)
        user = await self.credentials.create_user(UserRecord(
            name=name.strip(),
            email=email,
            password_hash=password_hash,
        ))

        logger.info(f"Registered user {user.id}")
        grant = self.tokens.issue_access_grant(UserClaims.from_record(user))
        return UserLoginResult(user=UserProfile.from_record(user), tokens=grant)

    async def refresh_access_token(self, refresh_token: str) -> AccessGrant:
        """
        Exchange a refresh token for a new access token.

        The refresh token is not rotated. The new access token reflects the
        admin's current state, so a role change takes effect on the next refresh.

        Raises:
            InvalidToken: bad token, unknown session, or session owner mismatch
            TokenRevoked: the session was revoked
            TokenExpired: the token or its session is past expiry
            AccountDeactivated: the admin was removed or deactivated
        """
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)

            session = await self.sessions.get_session_by_token_hash(
                hash_refresh_token(refresh_token)
            )
            if not session:
                raise InvalidToken("Invalid refresh token")
            if session.is_revoked:
                raise TokenRevoked("Refresh token has been revoked")
            if session.is_expired(self.tokens.clock()):
                raise TokenExpired("Refresh token expired")
            if session.admin_id != claims.subject_id:
                raise InvalidToken("Invalid refresh token")

            admin = await self.credentials.get_admin(session.admin_id)
            if not admin or not admin.is_active:
                raise AccountDeactivated()
        except PortalError:
            self.metrics.record_refresh(False)
            raise

        grant = self.tokens.issue_access_grant(AdminClaims.from_record(admin))
        self.metrics.record_refresh(True)
        self.audit.log_session_event("refreshed", admin.id, session_id=session.id)
        return grant

    async def logout(self, refresh_token: str) -> bool:
        """
        Revoke the session behind a refresh token.

        Returns:
            True if a live session was revoked. Unknown or already revoked
            tokens return False and are not an error.
        """
        token_hash = hash_refresh_token(refresh_token)
        session = await self.sessions.get_session_by_token_hash(token_hash)
        revoked = await self.sessions.revoke_session_by_token_hash(token_hash)
        if revoked:
            self.metrics.record_sessions_revoked("logout")
            self.audit.log_session_event("revoked", session.admin_id if session else None,
                                         session_id=session.id if session else None)
        return revoked

    async def logout_all(self, admin_id: str, reason: str = "logout_all") -> int:
        """Revoke every live session of an admin and return how many were revoked."""
        count = await self.sessions.revoke_all_sessions(admin_id)
        if count:
            self.metrics.record_sessions_revoked(reason, count)
        self.audit.log_session_event("revoked_all", admin_id, count=count)
        return count

    async def resolve_principal(self, access_token: str) -> Principal:
        """
        Turn an access token into the current state of its principal.

        Raises:
            InvalidToken / TokenExpired: the token does not verify
            PrincipalNotFound: the account no longer exists
            AccountDeactivated: the account is inactive
        """
        claims = self.tokens.verify_access_token(access_token)

        if isinstance(claims, AdminClaims):
            admin = await self.credentials.get_admin(claims.subject_id)
            if not admin:
                raise PrincipalNotFound("Admin not found")
            if not admin.is_active:
                raise AccountDeactivated()
            return Principal.from_admin(admin)

        user = await self.credentials.get_user(claims.subject_id)
        if not user:
            raise PrincipalNotFound("User not found")
        if not user.is_active:
            raise AccountDeactivated()
        return Principal.from_user(user)

    async def list_sessions(self, admin_id: str) -> List[SessionInfo]:
        """Active sessions of an admin, newest first."""
        sessions = await self.sessions.list_active_sessions(admin_id, self.tokens.clock())
        return [
            SessionInfo(id=s.id, created_at=s.created_at, expires_at=s.expires_at)
            for s in sessions
        ]

    async def revoke_session(self, admin_id: str, session_id: str) -> None:
        """
        Revoke one of the admin's own active sessions.

        Raises:
            ResourceNotFound: unknown session, another admin's session, or not active
        """
        session = await self.sessions.get_session(session_id)
        if (
            not session
            or session.admin_id != admin_id
            or session.is_revoked
            or session.is_expired(self.tokens.clock())
        ):
            raise ResourceNotFound("Session not found")

        await self.sessions.revoke_session(session_id)
        self.metrics.record_sessions_revoked("manual")
        self.audit.log_session_event("revoked", admin_id, session_id=session_id)
