"""
portal-ctl CLI client for exam portal auth management.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional
import typer
import httpx
import yaml
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

app = typer.Typer(
    name="portal-ctl",
    help="Exam portal auth management CLI",
    add_completion=False
)

console = Console()

# Default configuration
DEFAULT_SERVER = "http://localhost:8000"
CREDENTIALS_FILE = Path.home() / ".exam-portal" / "credentials"


class PortalClient:
    """Client for interacting with the exam portal auth API."""

    def __init__(self, server_url: str, token: Optional[str] = None, insecure: bool = False):
        self.server_url = server_url.rstrip('/')
        self.token = token
        self.client = httpx.Client(
            verify=not insecure,
            timeout=30.0,
            headers={"Authorization": f"Bearer {token}"} if token else {}
        )

    def _url(self, path: str) -> str:
        return f"{self.server_url}/api/v1{path}"

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Login and get tokens echoed in the response body."""
        response = self.client.post(
            self._url("/auth/login"),
            params={"include_tokens": "true"},
            json={"email": email, "password": password}
        )
        response.raise_for_status()
        return response.json()

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        response = self.client.post(
            self._url("/auth/refresh"),
            params={"include_tokens": "true"},
            json={"refreshToken": refresh_token}
        )
        response.raise_for_status()
        return response.json()

    def logout(self, refresh_token: Optional[str]) -> Dict[str, Any]:
        response = self.client.post(
            self._url("/auth/logout"),
            json={"refreshToken": refresh_token}
        )
        response.raise_for_status()
        return response.json()

    def profile(self) -> Dict[str, Any]:
        response = self.client.get(self._url("/auth/profile"))
        response.raise_for_status()
        return response.json()

    def list_sessions(self) -> Dict[str, Any]:
        response = self.client.get(self._url("/auth/sessions"))
        response.raise_for_status()
        return response.json()

    def revoke_session(self, session_id: str) -> Dict[str, Any]:
        response = self.client.delete(self._url(f"/auth/sessions/{session_id}"))
        response.raise_for_status()
        return response.json()

    def revoke_all_sessions(self) -> Dict[str, Any]:
        response = self.client.delete(self._url("/auth/sessions"))
        response.raise_for_status()
        return response.json()

    def list_admins(self) -> Dict[str, Any]:
        response = self.client.get(self._url("/super-admin/admins"))
        response.raise_for_status()
        return response.json()

    def invite_admin(self, full_name: str, email: str, is_super_admin: bool = False) -> Dict[str, Any]:
        response = self.client.post(
            self._url("/super-admin/invite"),
            json={"fullName": full_name, "email": email, "isSuperAdmin": is_super_admin}
        )
        response.raise_for_status()
        return response.json()

    def toggle_admin(self, admin_id: str) -> Dict[str, Any]:
        response = self.client.put(self._url(f"/super-admin/admins/{admin_id}/toggle-status"))
        response.raise_for_status()
        return response.json()

    def delete_admin(self, admin_id: str) -> Dict[str, Any]:
        response = self.client.delete(self._url(f"/super-admin/admins/{admin_id}"))
        response.raise_for_status()
        return response.json()

    def bootstrap(self, full_name: str, email: str, password: str) -> Dict[str, Any]:
        response = self.client.post(
            self._url("/bootstrap"),
            json={"fullName": full_name, "email": email, "password": password}
        )
        response.raise_for_status()
        return response.json()


def load_credentials(credentials: Optional[str] = None) -> Dict[str, Any]:
    """Load saved credentials; an unreadable file counts as none."""
    creds_file = Path(credentials) if credentials else CREDENTIALS_FILE
    if not creds_file.exists():
        return {}
    try:
        with open(creds_file, 'r') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Warning: Failed to load credentials: {e}[/red]")
        return {}


def save_credentials(data: Dict[str, Any], credentials: Optional[str] = None):
    """Save credentials to file."""
    creds_file = Path(credentials) if credentials else CREDENTIALS_FILE
    creds_file.parent.mkdir(parents=True, exist_ok=True)

    with open(creds_file, 'w') as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    os.chmod(creds_file, 0o600)


def get_client(
    server: Optional[str] = None,
    insecure: bool = False,
    credentials: Optional[str] = None
) -> PortalClient:
    """Create portal client with authentication."""
    creds = load_credentials(credentials)
    server_url = server or os.environ.get("PORTAL_SERVER") or creds.get("server") or DEFAULT_SERVER

    # Check for token in environment
    token = creds.get("access_token") or os.environ.get("PORTAL_TOKEN")

    return PortalClient(server_url, token, insecure)


def fail(action: str, error: Exception, not_found: Optional[str] = None):
    """Print a failure for ``action`` and exit with status 1."""
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        if status_code == 401:
            console.print("[red]✗[/red] Authentication required. Run 'portal-ctl login' first.")
        elif status_code == 403:
            console.print("[red]✗[/red] Insufficient permissions.")
        elif status_code == 404 and not_found:
            console.print(f"[red]✗[/red] {not_found}")
        else:
            console.print(f"[red]✗[/red] Failed to {action}: {error.response.text}")
    else:
        console.print(f"[red]✗[/red] Failed to {action}: {error}")
    sys.exit(1)


@app.command()
def login(
    email: str = typer.Option(..., "--email", "-e", help="Account email"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Password (will prompt if not provided)"),
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """Login and save credentials."""
    if not password:
        password = typer.prompt("Password", hide_input=True)

    client = get_client(server, insecure, credentials)

    try:
        result = client.login(email, password)
        tokens = result["data"]["tokens"]
        save_credentials({
            "server": client.server_url,
            "email": email,
            "access_token": tokens.get("accessToken"),
            "refresh_token": tokens.get("refreshToken"),
            "access_expires_in": tokens.get("accessExpiresIn"),
        }, credentials)
        console.print(f"[green]✓[/green] {result['message']}")
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 401:
            console.print("[red]✗[/red] Invalid credentials")
            sys.exit(1)
        fail("login", e)
    except (httpx.HTTPError, KeyError) as e:
        fail("login", e)


@app.command()
def logout(
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """Revoke the saved session and forget credentials."""
    creds = load_credentials(credentials)
    client = get_client(server, insecure, credentials)

    try:
        client.logout(creds.get("refresh_token"))
    except httpx.HTTPError as e:
        console.print(f"[yellow]Warning: server logout failed: {e}[/yellow]")

    creds_file = Path(credentials) if credentials else CREDENTIALS_FILE
    if creds_file.exists():
        creds_file.unlink()
    console.print("[green]✓[/green] Logged out")


@app.command()
def refresh(
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """Exchange the saved refresh token for a new access token."""
    creds = load_credentials(credentials)
    if not creds.get("refresh_token"):
        console.print("[red]✗[/red] No refresh token saved. Run 'portal-ctl login' as an admin.")
        sys.exit(1)

    client = get_client(server, insecure, credentials)

    try:
        result = client.refresh(creds["refresh_token"])
        creds["access_token"] = result["data"]["tokens"].get("accessToken")
        save_credentials(creds, credentials)
        console.print("[green]✓[/green] Access token refreshed")
    except (httpx.HTTPError, KeyError) as e:
        fail("refresh token", e)


@app.command()
def whoami(
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """Show the authenticated principal."""
    client = get_client(server, insecure, credentials)

    try:
        user = client.profile()["data"]["user"]
    except (httpx.HTTPError, KeyError) as e:
        fail("get profile", e)
        return

    lines = [
        f"[cyan]Name:[/cyan] {user['name']}",
        f"[cyan]Email:[/cyan] {user['email']}",
        f"[cyan]Role:[/cyan] {user['role']}",
        f"[cyan]Type:[/cyan] {user['type']}",
    ]
    console.print(Panel.fit("\n".join(lines), title="Current Principal"))


@app.command()
def sessions(
    output: str = typer.Option("table", "-o", help="Output format: table, json, yaml"),
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """List your active admin sessions."""
    client = get_client(server, insecure, credentials)

    try:
        items = client.list_sessions()["data"]["sessions"]
    except (httpx.HTTPError, KeyError) as e:
        fail("list sessions", e)
        return

    if output == "json":
        print(json.dumps(items, indent=2))
    elif output == "yaml":
        print(yaml.dump(items, default_flow_style=False))
    else:  # table
        if not items:
            console.print("[yellow]No active sessions[/yellow]")
            return

        table = Table(title="Active Sessions")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Created", style="green")
        table.add_column("Expires", style="yellow")
        for item in items:
            table.add_row(item["id"], item["createdAt"], item["expiresAt"])
        console.print(table)


@app.command("revoke-session")
def revoke_session(
    session_id: Optional[str] = typer.Argument(None, help="Session ID to revoke"),
    all_sessions: bool = typer.Option(False, "--all", help="Revoke every session"),
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """Revoke one session, or all of them with --all."""
    if not session_id and not all_sessions:
        console.print("[red]✗[/red] Session ID or --all required")
        sys.exit(1)

    client = get_client(server, insecure, credentials)

    try:
        if all_sessions:
            count = client.revoke_all_sessions()["data"]["revokedCount"]
            console.print(f"[green]✓[/green] Revoked {count} sessions")
        else:
            client.revoke_session(session_id)
            console.print(f"[green]✓[/green] Session '{session_id}' revoked")
    except (httpx.HTTPError, KeyError) as e:
        fail("revoke session", e, not_found=f"Session '{session_id}' not found")


@app.command()
def admins(
    output: str = typer.Option("table", "-o", help="Output format: table, json, yaml"),
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """List admin accounts (super admin only)."""
    client = get_client(server, insecure, credentials)

    try:
        items = client.list_admins()["data"]["admins"]
    except (httpx.HTTPError, KeyError) as e:
        fail("list admins", e)
        return

    if output == "json":
        print(json.dumps(items, indent=2))
    elif output == "yaml":
        print(yaml.dump(items, default_flow_style=False))
    else:  # table
        if not items:
            console.print("[yellow]No admins found[/yellow]")
            return

        table = Table(title="Admins")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name", style="green")
        table.add_column("Email", style="blue")
        table.add_column("Active", style="yellow")
        table.add_column("Super Admin", style="magenta")
        for item in items:
            table.add_row(
                item["id"],
                item["fullName"],
                item["email"],
                "yes" if item["isActive"] else "no",
                "yes" if item["isSuperAdmin"] else "no",
            )
        console.print(table)


@app.command()
def invite(
    email: str = typer.Option(..., "--email", "-e", help="Invitee email"),
    full_name: str = typer.Option(..., "--name", "-n", help="Invitee full name"),
    super_admin: bool = typer.Option(False, "--super-admin", help="Grant super admin"),
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """Invite a new admin (super admin only)."""
    client = get_client(server, insecure, credentials)

    try:
        data = client.invite_admin(full_name, email, super_admin)["data"]
    except (httpx.HTTPError, KeyError) as e:
        fail("invite admin", e)
        return

    console.print(f"[green]✓[/green] Invited {data['admin']['email']} ({data['admin']['id']})")
    if data.get("temporaryPassword"):
        console.print(f"[cyan]Temporary password:[/cyan] {data['temporaryPassword']}")


@app.command("toggle-admin")
def toggle_admin(
    admin_id: str = typer.Argument(..., help="Admin ID"),
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path")
):
    """Activate or deactivate an admin."""
    client = get_client(server, insecure, credentials)

    try:
        result = client.toggle_admin(admin_id)
        console.print(f"[green]✓[/green] {result['message']}")
    except (httpx.HTTPError, KeyError) as e:
        fail("toggle admin", e, not_found=f"Admin '{admin_id}' not found")


@app.command("delete-admin")
def delete_admin(
    admin_id: str = typer.Argument(..., help="Admin ID to delete"),
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification"),
    credentials: Optional[str] = typer.Option(None, "--credentials", help="Credentials file path"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation")
):
    """Delete an admin."""
    if not yes:
        if not typer.confirm(f"Are you sure you want to delete admin '{admin_id}'?"):
            console.print("Aborted.")
            return

    client = get_client(server, insecure, credentials)

    try:
        client.delete_admin(admin_id)
        console.print(f"[green]✓[/green] Admin '{admin_id}' deleted successfully")
    except httpx.HTTPError as e:
        fail("delete admin", e, not_found=f"Admin '{admin_id}' not found")


@app.command()
def bootstrap(
    email: str = typer.Option(..., "--email", "-e", help="Super admin email"),
    full_name: str = typer.Option(..., "--name", "-n", help="Super admin full name"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Password (will prompt if not provided)"),
    server: Optional[str] = typer.Option(None, "--server", help="Server URL"),
    insecure: bool = typer.Option(False, "--insecure-skip-tls-verify", help="Skip TLS verification")
):
    """Create the first super admin on a fresh system."""
    if not password:
        password = typer.prompt("Password", hide_input=True, confirmation_prompt=True)

    client = PortalClient(server or os.environ.get("PORTAL_SERVER", DEFAULT_SERVER), insecure=insecure)

    try:
        result = client.bootstrap(full_name, email, password)
        console.print(f"[green]✓[/green] {result['message']}")
    except httpx.HTTPError as e:
        fail("bootstrap", e)


@app.command("cleanup-sessions")
def cleanup_sessions(
    db_path: str = typer.Option("./portal.db", "--db", help="SQLite store path")
):
    """Delete expired sessions from a SQLite store (offline)."""
    from portal.adapters.impl.sqlite_store import SQLiteSessionStore
    from portal.services.cleanup import SessionCleanupScheduler

    if not Path(db_path).exists():
        console.print(f"[red]✗[/red] Store not found: {db_path}")
        sys.exit(1)

    scheduler = SessionCleanupScheduler(SQLiteSessionStore(db_path))
    deleted = asyncio.run(scheduler.run_sweep())
    console.print(f"[green]✓[/green] Deleted {deleted} expired sessions")


@app.command()
def config(
    action: str = typer.Argument(..., help="Action: view, set-server"),
    value: Optional[str] = typer.Argument(None, help="Value for set actions")
):
    """Manage CLI configuration."""
    if action == "view":
        creds = load_credentials()
        server = os.environ.get("PORTAL_SERVER") or creds.get("server") or DEFAULT_SERVER

        panel = Panel.fit(
            f"[cyan]Server:[/cyan] {server}\n"
            f"[cyan]Credentials File:[/cyan] {CREDENTIALS_FILE}\n"
            f"[cyan]Credentials Exist:[/cyan] {'Yes' if CREDENTIALS_FILE.exists() else 'No'}\n"
            f"[cyan]Logged In As:[/cyan] {creds.get('email', '-')}",
            title="Portal CLI Configuration"
        )
        console.print(panel)

    elif action == "set-server":
        if not value:
            console.print("[red]✗[/red] Server URL required")
            sys.exit(1)

        console.print(f"[green]Set environment variable:[/green] export PORTAL_SERVER={value}")

    else:
        console.print(f"[red]✗[/red] Unknown action: {action}")
        sys.exit(1)


def main():
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
