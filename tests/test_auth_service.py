"""
Tests for the authentication service.
"""

import pytest
from datetime import timedelta

from portal.core.errors import (
    AccountDeactivated, DuplicateAccount, InvalidCredentials, InvalidToken,
    PrincipalNotFound, ResourceNotFound, TokenExpired, TokenRevoked
)
from portal.models.schemas import AdminClaims, AdminLoginResult, Role, UserLoginResult, utcnow
from portal.services.tokens import hash_refresh_token

from conftest import make_admin


class TestAdminLogin:
    """Test admin authentication."""

    async def test_login_returns_sanitized_profile_and_pair(self, auth_service, admin):
        result = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        assert result.admin.email == "admin@x.io"
        assert "password_hash" not in result.admin.model_dump()
        assert result.tokens.access_expires_in == "15m"
        assert result.tokens.refresh_expires_in == "7d"
        assert result.session_id

    async def test_login_is_case_insensitive(self, auth_service, admin):
        result = await auth_service.authenticate_admin("  ADMIN@X.io ", "pw123456")
        assert result.admin.id == admin.id

    async def test_login_persists_hashed_session(self, auth_service, session_store, admin, token_service):
        result = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        session = await session_store.get_session_by_token_hash(
            hash_refresh_token(result.tokens.refresh_token)
        )
        assert session is not None
        assert session.id == result.session_id
        assert session.admin_id == admin.id
        assert session.is_revoked is False
        assert session.token_hash != result.tokens.refresh_token

        remaining = session.expires_at - utcnow()
        assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)

    async def test_wrong_password(self, auth_service, admin):
        with pytest.raises(InvalidCredentials) as exc_info:
            await auth_service.authenticate_admin("admin@x.io", "wrong-password")
        assert exc_info.value.message == "Invalid email or password"

    async def test_unknown_email_has_same_message(self, auth_service):
        with pytest.raises(InvalidCredentials) as exc_info:
            await auth_service.authenticate_admin("nobody@x.io", "pw123456")
        assert exc_info.value.message == "Invalid email or password"

    async def test_deactivated_reported_before_password(self, auth_service, credential_store, admin):
        await credential_store.update_admin(admin.id, is_active=False)

        with pytest.raises(AccountDeactivated):
            await auth_service.authenticate_admin("admin@x.io", "wrong-password")

    async def test_super_admin_role(self, auth_service, token_service, super_admin):
        result = await auth_service.authenticate_admin("root@example.com", "root-password")

        claims = token_service.verify_access_token(result.tokens.access_token)
        assert claims.role == "SUPER_ADMIN"
        assert claims.is_super_admin is True

    async def test_each_login_opens_a_new_session(self, auth_service, admin):
        first = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        second = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        assert first.session_id != second.session_id
        assert first.tokens.refresh_token != second.tokens.refresh_token


class TestUserLogin:
    """Test student authentication and registration."""

    async def test_user_login_issues_access_token_only(self, auth_service, token_service, student):
        result = await auth_service.authenticate_user("student@example.com", "student-pass")

        assert result.user.role == Role.USER
        assert result.tokens.access_expires_in == "15m"
        assert not hasattr(result.tokens, "refresh_token")
        assert token_service.verify_access_token(result.tokens.access_token).kind == "user"

    async def test_user_wrong_password(self, auth_service, student):
        with pytest.raises(InvalidCredentials):
            await auth_service.authenticate_user("student@example.com", "nope")

    async def test_deactivated_user(self, auth_service, credential_store, student):
        await credential_store.update_user(student.id, is_active=False)
        with pytest.raises(AccountDeactivated):
            await auth_service.authenticate_user("student@example.com", "student-pass")

    async def test_universal_login_dispatches(self, auth_service, admin, student):
        admin_result = await auth_service.authenticate("admin@x.io", "pw123456")
        user_result = await auth_service.authenticate("student@example.com", "student-pass")

        assert isinstance(admin_result, AdminLoginResult)
        assert isinstance(user_result, UserLoginResult)

    async def test_register_user(self, auth_service, credential_store):
        result = await auth_service.register_user("New Student", "New@Example.com", "password1")

        assert result.user.email == "new@example.com"
        assert result.user.role == Role.USER
        stored = await credential_store.get_user_by_email("new@example.com")
        assert stored.password_hash != "password1"

    async def test_register_duplicate_user(self, auth_service, student):
        with pytest.raises(DuplicateAccount):
            await auth_service.register_user("Again", "STUDENT@example.com", "password1")

    async def test_register_with_admin_email(self, auth_service, admin):
        with pytest.raises(DuplicateAccount):
            await auth_service.register_user("Sneaky", "admin@x.io", "password1")


class TestRefresh:
    """Test access token refresh against the session store."""

    async def test_refresh_issues_new_access_token(self, auth_service, token_service, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        grant = await auth_service.refresh_access_token(login.tokens.refresh_token)

        assert grant.access_expires_in == "15m"
        assert token_service.verify_access_token(grant.access_token).subject_id == admin.id

    async def test_refresh_reflects_current_role(self, auth_service, token_service, credential_store, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        await credential_store.update_admin(admin.id, is_super_admin=True)

        grant = await auth_service.refresh_access_token(login.tokens.refresh_token)

        assert token_service.verify_access_token(grant.access_token).role == "SUPER_ADMIN"

    async def test_refresh_does_not_rotate(self, auth_service, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        await auth_service.refresh_access_token(login.tokens.refresh_token)
        await auth_service.refresh_access_token(login.tokens.refresh_token)

    async def test_refresh_after_logout(self, auth_service, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        await auth_service.logout(login.tokens.refresh_token)

        with pytest.raises(TokenRevoked):
            await auth_service.refresh_access_token(login.tokens.refresh_token)

    async def test_refresh_after_deactivation(self, auth_service, credential_store, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        await credential_store.update_admin(admin.id, is_active=False)

        with pytest.raises(AccountDeactivated):
            await auth_service.refresh_access_token(login.tokens.refresh_token)

    async def test_refresh_after_admin_deleted(self, auth_service, credential_store, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        await credential_store.delete_admin(admin.id)

        with pytest.raises(AccountDeactivated):
            await auth_service.refresh_access_token(login.tokens.refresh_token)

    async def test_refresh_without_session(self, auth_service, token_service, admin):
        orphan = token_service.issue_refresh_token(AdminClaims.from_record(admin))

        with pytest.raises(InvalidToken):
            await auth_service.refresh_access_token(orphan)

    async def test_refresh_with_expired_session(self, auth_service, session_store, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        session = session_store.sessions[login.session_id]
        session_store.sessions[login.session_id] = session.model_copy(
            update={"expires_at": utcnow() - timedelta(seconds=1)}
        )

        with pytest.raises(TokenExpired):
            await auth_service.refresh_access_token(login.tokens.refresh_token)

    async def test_refresh_with_access_token(self, auth_service, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        with pytest.raises(InvalidToken):
            await auth_service.refresh_access_token(login.tokens.access_token)


class TestLogout:
    """Test session revocation."""

    async def test_logout_is_idempotent(self, auth_service, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        assert await auth_service.logout(login.tokens.refresh_token) is True
        assert await auth_service.logout(login.tokens.refresh_token) is False

    async def test_logout_unknown_token(self, auth_service):
        assert await auth_service.logout("never-issued") is False

    async def test_logout_all_revokes_every_session(self, auth_service, admin):
        first = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        second = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        assert await auth_service.logout_all(admin.id) == 2

        for login in (first, second):
            with pytest.raises(TokenRevoked):
                await auth_service.refresh_access_token(login.tokens.refresh_token)

    async def test_logout_all_leaves_other_admins(self, auth_service, admin, super_admin):
        await auth_service.authenticate_admin("admin@x.io", "pw123456")
        other = await auth_service.authenticate_admin("root@example.com", "root-password")

        await auth_service.logout_all(admin.id)

        await auth_service.refresh_access_token(other.tokens.refresh_token)


class TestResolvePrincipal:
    """Test access token to principal resolution."""

    async def test_resolve_admin(self, auth_service, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        principal = await auth_service.resolve_principal(login.tokens.access_token)

        assert principal.type == "admin"
        assert principal.id == admin.id
        assert principal.role == Role.ADMIN
        assert principal.is_super_admin is False
        dumped = principal.model_dump(by_alias=True)
        assert dumped["isActive"] is True
        assert "passwordHash" not in dumped and "password_hash" not in dumped

    async def test_resolve_user(self, auth_service, student):
        login = await auth_service.authenticate_user("student@example.com", "student-pass")

        principal = await auth_service.resolve_principal(login.tokens.access_token)

        assert principal.type == "user"
        assert principal.role == Role.USER
        assert principal.is_super_admin is None

    async def test_resolve_uses_current_state(self, auth_service, credential_store, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        await credential_store.update_admin(admin.id, full_name="Renamed Admin")

        principal = await auth_service.resolve_principal(login.tokens.access_token)
        assert principal.name == "Renamed Admin"

    async def test_resolve_deleted_admin(self, auth_service, credential_store, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        await credential_store.delete_admin(admin.id)

        with pytest.raises(PrincipalNotFound):
            await auth_service.resolve_principal(login.tokens.access_token)

    async def test_resolve_deactivated_user(self, auth_service, credential_store, student):
        login = await auth_service.authenticate_user("student@example.com", "student-pass")
        await credential_store.update_user(student.id, is_active=False)

        with pytest.raises(AccountDeactivated):
            await auth_service.resolve_principal(login.tokens.access_token)

    async def test_resolve_garbage(self, auth_service):
        with pytest.raises(InvalidToken):
            await auth_service.resolve_principal("garbage")


class TestSessionListing:
    """Test listing and revoking individual sessions."""

    async def test_list_sessions_newest_first(self, auth_service, admin):
        first = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        second = await auth_service.authenticate_admin("admin@x.io", "pw123456")
        await auth_service.authenticate_admin("admin@x.io", "pw123456")

        await auth_service.logout(first.tokens.refresh_token)
        sessions = await auth_service.list_sessions(admin.id)

        assert len(sessions) == 2
        assert sessions[-1].id == second.session_id
        assert sessions[0].created_at >= sessions[1].created_at

    async def test_revoke_own_session(self, auth_service, admin):
        login = await auth_service.authenticate_admin("admin@x.io", "pw123456")

        await auth_service.revoke_session(admin.id, login.session_id)

        assert await auth_service.list_sessions(admin.id) == []
        with pytest.raises(TokenRevoked):
            await auth_service.refresh_access_token(login.tokens.refresh_token)

    async def test_cannot_revoke_other_admins_session(self, auth_service, admin, super_admin):
        other = await auth_service.authenticate_admin("root@example.com", "root-password")

        with pytest.raises(ResourceNotFound):
            await auth_service.revoke_session(admin.id, other.session_id)

    async def test_revoke_unknown_session(self, auth_service, admin):
        with pytest.raises(ResourceNotFound):
            await auth_service.revoke_session(admin.id, "missing")

    async def test_inactive_admin_created_directly(self, credential_store, auth_service):
        await credential_store.create_admin(make_admin("off@x.io", "pw123456", is_active=False))
        with pytest.raises(AccountDeactivated):
            await auth_service.authenticate_admin("off@x.io", "pw123456")
