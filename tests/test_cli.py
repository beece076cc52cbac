"""
Tests for portal-ctl CLI tool.
"""

import asyncio
import json
import os
import tempfile
from datetime import timedelta
from pathlib import Path
from unittest.mock import Mock, patch

import httpx
import pytest
from typer.testing import CliRunner

from portal.adapters.impl.sqlite_store import SQLiteSessionStore
from portal.cli import PortalClient, app
from portal.models.schemas import RefreshTokenRecord, utcnow

SERVER = "http://localhost:8000"


@pytest.fixture
def cli_runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_credentials_dir():
    """Create temporary credentials directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def credentials_file(temp_credentials_dir):
    """Credentials of a logged-in admin."""
    creds_file = temp_credentials_dir / "credentials"
    with open(creds_file, 'w') as f:
        json.dump({
            "server": SERVER,
            "email": "admin@x.io",
            "access_token": "access-jwt",
            "refresh_token": "refresh-jwt",
        }, f)
    return creds_file


def json_response(payload: dict) -> Mock:
    response = Mock()
    response.json.return_value = payload
    return response


def error_response(status_code: int, text: str = "") -> Mock:
    response = Mock()
    response.raise_for_status.side_effect = httpx.HTTPStatusError(
        f"{status_code}", request=Mock(), response=Mock(status_code=status_code, text=text)
    )
    return response


class TestPortalClient:
    """Test PortalClient class."""

    def test_client_initialization(self):
        client = PortalClient("http://localhost:8000/", "token123")

        assert client.server_url == "http://localhost:8000"
        assert client.token == "token123"
        assert client.client.headers["Authorization"] == "Bearer token123"

    def test_client_without_token(self):
        client = PortalClient(SERVER)
        assert "Authorization" not in client.client.headers

    @patch('httpx.Client.post')
    def test_login_success(self, mock_post):
        mock_post.return_value = json_response({
            "success": True,
            "message": "Admin login successful",
            "data": {"tokens": {"accessToken": "new-token"}},
        })

        client = PortalClient(SERVER)
        result = client.login("admin@x.io", "pw123456")

        assert result["data"]["tokens"]["accessToken"] == "new-token"
        mock_post.assert_called_once_with(
            "http://localhost:8000/api/v1/auth/login",
            params={"include_tokens": "true"},
            json={"email": "admin@x.io", "password": "pw123456"}
        )

    @patch('httpx.Client.post')
    def test_login_failure(self, mock_post):
        mock_post.return_value = error_response(401)

        client = PortalClient(SERVER)

        with pytest.raises(httpx.HTTPStatusError):
            client.login("admin@x.io", "wrong")

    @patch('httpx.Client.post')
    def test_refresh(self, mock_post):
        mock_post.return_value = json_response({"data": {"tokens": {"accessToken": "fresh"}}})

        PortalClient(SERVER).refresh("refresh-jwt")

        mock_post.assert_called_once_with(
            "http://localhost:8000/api/v1/auth/refresh",
            params={"include_tokens": "true"},
            json={"refreshToken": "refresh-jwt"}
        )

    @patch('httpx.Client.delete')
    def test_revoke_session(self, mock_delete):
        mock_delete.return_value = json_response({"success": True})

        PortalClient(SERVER, "token123").revoke_session("session-1")

        mock_delete.assert_called_once_with("http://localhost:8000/api/v1/auth/sessions/session-1")

    @patch('httpx.Client.post')
    def test_invite_admin(self, mock_post):
        mock_post.return_value = json_response({"success": True})

        PortalClient(SERVER, "token123").invite_admin("New Admin", "new@x.io", True)

        mock_post.assert_called_once_with(
            "http://localhost:8000/api/v1/super-admin/invite",
            json={"fullName": "New Admin", "email": "new@x.io", "isSuperAdmin": True}
        )


class TestLoginCommand:
    """Test login command."""

    @patch('httpx.Client.post')
    def test_login_command_success(self, mock_post, cli_runner, temp_credentials_dir):
        mock_post.return_value = json_response({
            "success": True,
            "message": "Admin login successful",
            "data": {"tokens": {
                "accessToken": "access-jwt",
                "refreshToken": "refresh-jwt",
                "accessExpiresIn": "15m",
                "refreshExpiresIn": "7d",
            }},
        })
        creds_file = temp_credentials_dir / "credentials"

        result = cli_runner.invoke(app, [
            "login", "--email", "admin@x.io", "--password", "pw123456",
            "--server", SERVER, "--credentials", str(creds_file)
        ])

        assert result.exit_code == 0
        assert "Admin login successful" in result.stdout
        saved = json.loads(creds_file.read_text())
        assert saved["server"] == SERVER
        assert saved["access_token"] == "access-jwt"
        assert saved["refresh_token"] == "refresh-jwt"
        assert oct(os.stat(creds_file).st_mode & 0o777) == oct(0o600)

    @patch('httpx.Client.post')
    def test_login_command_failure(self, mock_post, cli_runner, temp_credentials_dir):
        mock_post.return_value = error_response(401)
        creds_file = temp_credentials_dir / "credentials"

        result = cli_runner.invoke(app, [
            "login", "--email", "admin@x.io", "--password", "wrong",
            "--server", SERVER, "--credentials", str(creds_file)
        ])

        assert result.exit_code == 1
        assert "Invalid credentials" in result.stdout
        assert not creds_file.exists()


class TestSessionCommands:
    """Test logout, refresh and session commands."""

    @patch('httpx.Client.post')
    def test_logout_forgets_credentials(self, mock_post, cli_runner, credentials_file):
        mock_post.return_value = json_response({"success": True, "message": "Logout successful"})

        result = cli_runner.invoke(app, ["logout", "--credentials", str(credentials_file)])

        assert result.exit_code == 0
        assert not credentials_file.exists()
        assert mock_post.call_args.kwargs["json"] == {"refreshToken": "refresh-jwt"}

    @patch('httpx.Client.post')
    def test_refresh_updates_access_token(self, mock_post, cli_runner, credentials_file):
        mock_post.return_value = json_response({"data": {"tokens": {"accessToken": "fresh-jwt"}}})

        result = cli_runner.invoke(app, ["refresh", "--credentials", str(credentials_file)])

        assert result.exit_code == 0
        assert json.loads(credentials_file.read_text())["access_token"] == "fresh-jwt"

    def test_refresh_without_saved_token(self, cli_runner, temp_credentials_dir):
        creds_file = temp_credentials_dir / "credentials"
        creds_file.write_text(json.dumps({"access_token": "student-jwt"}))

        result = cli_runner.invoke(app, ["refresh", "--credentials", str(creds_file)])

        assert result.exit_code == 1
        assert "No refresh token saved" in result.stdout

    @patch('httpx.Client.get')
    def test_sessions_table(self, mock_get, cli_runner, credentials_file):
        mock_get.return_value = json_response({"data": {"sessions": [
            {"id": "s1", "createdAt": "2024-01-01T00:00:00Z", "expiresAt": "2024-01-08T00:00:00Z"}
        ]}})

        result = cli_runner.invoke(app, ["sessions", "--credentials", str(credentials_file)])

        assert result.exit_code == 0
        assert "s1" in result.stdout

    @patch('httpx.Client.get')
    def test_sessions_json_output(self, mock_get, cli_runner, credentials_file):
        mock_get.return_value = json_response({"data": {"sessions": [{"id": "s1"}]}})

        result = cli_runner.invoke(app, ["sessions", "-o", "json", "--credentials", str(credentials_file)])

        assert result.exit_code == 0
        assert '"id": "s1"' in result.stdout

    @patch('httpx.Client.get')
    def test_sessions_unauthenticated(self, mock_get, cli_runner, credentials_file):
        mock_get.return_value = error_response(401)

        result = cli_runner.invoke(app, ["sessions", "--credentials", str(credentials_file)])

        assert result.exit_code == 1
        assert "Authentication required" in result.stdout

    def test_revoke_requires_target(self, cli_runner, credentials_file):
        result = cli_runner.invoke(app, ["revoke-session", "--credentials", str(credentials_file)])

        assert result.exit_code == 1
        assert "Session ID or --all required" in result.stdout

    @patch('httpx.Client.delete')
    def test_revoke_all(self, mock_delete, cli_runner, credentials_file):
        mock_delete.return_value = json_response({"data": {"revokedCount": 2}})

        result = cli_runner.invoke(app, ["revoke-session", "--all", "--credentials", str(credentials_file)])

        assert result.exit_code == 0
        assert "Revoked 2 sessions" in result.stdout

    @patch('httpx.Client.delete')
    def test_revoke_unknown_session(self, mock_delete, cli_runner, credentials_file):
        mock_delete.return_value = error_response(404)

        result = cli_runner.invoke(app, ["revoke-session", "s9", "--credentials", str(credentials_file)])

        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestAdminCommands:
    """Test super-admin commands."""

    @patch('httpx.Client.get')
    def test_admins_table(self, mock_get, cli_runner, credentials_file):
        mock_get.return_value = json_response({"data": {"admins": [{
            "id": "a1", "fullName": "Root", "email": "root@x.io",
            "isActive": True, "isSuperAdmin": True,
        }]}})

        result = cli_runner.invoke(app, ["admins", "--credentials", str(credentials_file)])

        assert result.exit_code == 0
        assert "root@x.io" in result.stdout

    @patch('httpx.Client.get')
    def test_admins_forbidden(self, mock_get, cli_runner, credentials_file):
        mock_get.return_value = error_response(403)

        result = cli_runner.invoke(app, ["admins", "--credentials", str(credentials_file)])

        assert result.exit_code == 1
        assert "Insufficient permissions" in result.stdout

    @patch('httpx.Client.post')
    def test_invite_prints_temporary_password(self, mock_post, cli_runner, credentials_file):
        mock_post.return_value = json_response({"data": {
            "admin": {"id": "a2", "email": "new@x.io"},
            "temporaryPassword": "temp-secret",
        }})

        result = cli_runner.invoke(app, [
            "invite", "--email", "new@x.io", "--name", "New Admin",
            "--credentials", str(credentials_file)
        ])

        assert result.exit_code == 0
        assert "new@x.io" in result.stdout
        assert "temp-secret" in result.stdout

    @patch('httpx.Client.delete')
    def test_delete_admin(self, mock_delete, cli_runner, credentials_file):
        mock_delete.return_value = json_response({"success": True})

        result = cli_runner.invoke(app, ["delete-admin", "a2", "-y", "--credentials", str(credentials_file)])

        assert result.exit_code == 0
        assert "deleted successfully" in result.stdout

    def test_delete_admin_aborted(self, cli_runner, credentials_file):
        result = cli_runner.invoke(
            app, ["delete-admin", "a2", "--credentials", str(credentials_file)], input="n\n"
        )

        assert result.exit_code == 0
        assert "Aborted" in result.stdout

    @patch('httpx.Client.post')
    def test_bootstrap(self, mock_post, cli_runner):
        mock_post.return_value = json_response({"message": "System bootstrapped successfully"})

        result = cli_runner.invoke(app, [
            "bootstrap", "--email", "root@x.io", "--name", "Root",
            "--password", "root-password", "--server", SERVER
        ])

        assert result.exit_code == 0
        assert "System bootstrapped successfully" in result.stdout


class TestCleanupCommand:
    """Test the offline cleanup command."""

    def test_missing_store(self, cli_runner, temp_credentials_dir):
        result = cli_runner.invoke(app, ["cleanup-sessions", "--db", str(temp_credentials_dir / "none.db")])

        assert result.exit_code == 1
        assert "Store not found" in result.stdout

    def test_deletes_expired_sessions(self, cli_runner, temp_credentials_dir):
        db_path = str(temp_credentials_dir / "portal.db")
        store = SQLiteSessionStore(db_path)

        async def seed():
            now = utcnow()
            await store.create_session(RefreshTokenRecord(
                token_hash="live", admin_id="a1", expires_at=now + timedelta(days=1)
            ))
            await store.create_session(RefreshTokenRecord(
                token_hash="expired", admin_id="a1", expires_at=now - timedelta(days=1)
            ))

        asyncio.run(seed())

        result = cli_runner.invoke(app, ["cleanup-sessions", "--db", db_path])

        assert result.exit_code == 0
        assert "Deleted 1 expired sessions" in result.stdout
