"""
FastAPI dependency injection for the exam portal auth service.

Holds the service container wiring and the authorization gates: the base
gate, role gates and the optional gate.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from fastapi import Depends, FastAPI, Request

from portal.adapters.credentials import CredentialStore
from portal.adapters.sessions import SessionStore
from portal.core.config import Settings
from portal.core.context import AnonymousContext, AuthenticatedContext, RequestContext
from portal.core.cookies import ACCESS_COOKIE
from portal.core.errors import ConfigurationError, Forbidden, PortalError, Unauthorized
from portal.models.schemas import Role
from portal.observability.tracing import TracingContext
from portal.services import policy
from portal.services.admins import AdminManagementService
from portal.services.auth import AuthenticationService
from portal.services.cleanup import SessionCleanupScheduler
from portal.services.tokens import TokenService

logger = logging.getLogger(__name__)

_tracing = TracingContext()


@dataclass
class ServiceContainer:
    """Everything a request handler may need, built once at startup."""
    settings: Settings
    credentials: CredentialStore
    sessions: SessionStore
    tokens: TokenService
    auth: AuthenticationService
    admins: AdminManagementService
    cleanup: SessionCleanupScheduler


def initialize_services(app: FastAPI, container: ServiceContainer) -> None:
    """
    Attach the service container to the application.

    This should be called during application startup.
    """
    app.state.services = container


def get_services(request: Request) -> ServiceContainer:
    """Get the service container of the running application."""
    container = getattr(request.app.state, "services", None)
    if container is None:
        raise ConfigurationError("Services not initialized")
    return container


def get_app_settings(services: ServiceContainer = Depends(get_services)) -> Settings:
    return services.settings


def get_auth_service(services: ServiceContainer = Depends(get_services)) -> AuthenticationService:
    return services.auth


def get_admin_service(services: ServiceContainer = Depends(get_services)) -> AdminManagementService:
    return services.admins


def get_token_service(services: ServiceContainer = Depends(get_services)) -> TokenService:
    return services.tokens


def extract_token(request: Request) -> Optional[Tuple[str, str]]:
    """
    Find the access token on a request.

    The ``accessToken`` cookie wins over the ``Authorization: Bearer`` header.

    Returns:
        ``(token, source)`` or None when neither carries a token
    """
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token, "cookie"

    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip(), "header"

    return None


async def get_current_context(
    request: Request,
    auth_service: AuthenticationService = Depends(get_auth_service)
) -> AuthenticatedContext:
    """
    Base gate: resolve the request's token to a live principal.

    Raises:
        Unauthorized: no token on the request
        AuthenticationError: any resolution failure, with its own message
    """
    found = extract_token(request)
    if not found:
        raise Unauthorized()

    token, source = found
    with _tracing.trace_auth_check(source):
        principal = await auth_service.resolve_principal(token)

    request.state.principal = principal
    return AuthenticatedContext(principal=principal, token=token)


def require_role(*roles: Role) -> Callable:
    """
    Create a dependency that admits only the given roles.

    Args:
        roles: Allowed roles

    Returns:
        Dependency function
    """
    allowed = frozenset(roles)

    async def role_checker(
        context: AuthenticatedContext = Depends(get_current_context)
    ) -> AuthenticatedContext:
        if not policy.has_role(context.principal, allowed):
            raise Forbidden()
        return context

    return role_checker


# Common role dependencies
require_admin = require_role(*policy.ADMIN_ROLES)
require_super_admin = require_role(*policy.SUPER_ADMIN_ROLES)
require_user = require_role(*policy.USER_ROLES)
require_authenticated = require_role(*policy.ANY_ROLE)


async def get_optional_context(
    request: Request,
    auth_service: AuthenticationService = Depends(get_auth_service)
) -> RequestContext:
    """Optional gate: never fails, anonymous when the token is absent or unusable."""
    try:
        return await get_current_context(request, auth_service)
    except PortalError as e:
        logger.debug(f"Optional authentication skipped: {e.message}")
        return AnonymousContext(reason=e.message)
