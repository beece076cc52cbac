"""
Shared fixtures for the exam portal auth tests.
"""

import pytest

from portal.adapters.impl.log_notifier import LoggingInvitationNotifier
from portal.adapters.impl.memory_store import InMemoryCredentialStore, InMemorySessionStore
from portal.core.config import Settings
from portal.models.schemas import AdminRecord, UserRecord, normalize_email
from portal.services.admins import AdminManagementService
from portal.services.auth import AuthenticationService
from portal.services.passwords import PasswordHasher, hash_password
from portal.services.tokens import TokenService

# Low bcrypt cost keeps the suite fast
TEST_ROUNDS = 4


def make_settings(**overrides) -> Settings:
    values = {
        "jwt_access_secret": "test-access-secret",
        "jwt_refresh_secret": "test-refresh-secret",
        "password_hash_rounds": TEST_ROUNDS,
        "log_format": "text",
        "enable_tracing": False,
    }
    values.update(overrides)
    return Settings(**values)


def make_admin(email: str, password: str = "admin-password", **fields) -> AdminRecord:
    fields.setdefault("full_name", "Test Admin")
    return AdminRecord(
        email=normalize_email(email),
        password_hash=hash_password(password, TEST_ROUNDS),
        **fields
    )


def make_user(email: str, password: str = "user-password", **fields) -> UserRecord:
    fields.setdefault("name", "Test Student")
    return UserRecord(
        email=normalize_email(email),
        password_hash=hash_password(password, TEST_ROUNDS),
        **fields
    )


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def token_service(settings):
    return TokenService.from_settings(settings, PasswordHasher(TEST_ROUNDS))


@pytest.fixture
def credential_store():
    return InMemoryCredentialStore()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def notifier():
    return LoggingInvitationNotifier()


@pytest.fixture
def auth_service(credential_store, session_store, token_service):
    return AuthenticationService(credential_store, session_store, token_service)


@pytest.fixture
def admin_service(credential_store, auth_service, notifier):
    return AdminManagementService(credential_store, auth_service, notifier)


@pytest.fixture
async def super_admin(credential_store):
    return await credential_store.create_admin(
        make_admin("root@example.com", "root-password", full_name="Root Admin", is_super_admin=True)
    )


@pytest.fixture
async def admin(credential_store, super_admin):
    return await credential_store.create_admin(
        make_admin("admin@x.io", "pw123456", full_name="Regular Admin", created_by=super_admin.id)
    )


@pytest.fixture
async def student(credential_store):
    return await credential_store.create_user(make_user("student@example.com", "student-pass"))
