"""
Authentication API endpoints.
"""

import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import ValidationError

from portal.core.config import Settings
from portal.core.context import AuthenticatedContext, RequestContext
from portal.core.cookies import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies
from portal.core.dependencies import (
    get_admin_service, get_app_settings, get_auth_service, get_optional_context,
    get_token_service, require_admin, require_authenticated
)
from portal.core.errors import DuplicateAccount, Unauthorized
from portal.models.schemas import (
    AccessGrant, AdminLoginResult, ApiResponse, LoginRequest, LogoutRequest,
    PasswordChangeRequest, RefreshRequest, RegisterRequest, TokenPair, UserLoginResult
)
from portal.observability.tracing import TracingContext
from portal.services.admins import AdminManagementService
from portal.services.auth import AuthenticationService
from portal.services.tokens import TokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

_tracing = TracingContext()

TOKEN_FIELDS = {"accessToken", "refreshToken"}


def _tokens_payload(tokens: Union[TokenPair, AccessGrant], echo: bool) -> Dict[str, Any]:
    """Expiry strings always; token strings only when echoing is allowed."""
    payload = tokens.model_dump(by_alias=True)
    if not echo:
        for field in TOKEN_FIELDS:
            payload.pop(field, None)
    return payload


def _should_echo(settings: Settings, include_tokens: bool) -> bool:
    return include_tokens or not settings.is_production


def _login_response(
    result: Union[AdminLoginResult, UserLoginResult],
    response: Response,
    settings: Settings,
    tokens: TokenService,
    echo: bool
) -> ApiResponse:
    if isinstance(result, AdminLoginResult):
        set_auth_cookies(
            response, settings, tokens,
            result.tokens.access_token, result.tokens.refresh_token
        )
        return ApiResponse(
            message="Admin login successful",
            data={
                "admin": result.admin.model_dump(by_alias=True, mode="json"),
                "tokens": _tokens_payload(result.tokens, echo),
                "sessionId": result.session_id,
            },
        )

    set_auth_cookies(response, settings, tokens, result.tokens.access_token)
    return ApiResponse(
        message="User login successful",
        data={
            "user": result.user.model_dump(by_alias=True, mode="json"),
            "tokens": _tokens_payload(result.tokens, echo),
        },
    )


@router.post("/login", response_model=ApiResponse)
async def login(
    request: LoginRequest,
    response: Response,
    include_tokens: bool = Query(False),
    auth_service: AuthenticationService = Depends(get_auth_service),
    token_service: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Universal login: admins get a token pair and a session, users an access token.
    """
    with _tracing.trace_login("any"):
        result = await auth_service.authenticate(request.email, request.password)
    return _login_response(
        result, response, settings, token_service, _should_echo(settings, include_tokens)
    )


@router.post("/admin/login", response_model=ApiResponse)
async def admin_login(
    request: LoginRequest,
    response: Response,
    include_tokens: bool = Query(False),
    auth_service: AuthenticationService = Depends(get_auth_service),
    token_service: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_app_settings)
):
    with _tracing.trace_login("admin"):
        result = await auth_service.authenticate_admin(request.email, request.password)
    return _login_response(
        result, response, settings, token_service, _should_echo(settings, include_tokens)
    )


@router.post("/user/login", response_model=ApiResponse)
async def user_login(
    request: LoginRequest,
    response: Response,
    include_tokens: bool = Query(False),
    auth_service: AuthenticationService = Depends(get_auth_service),
    token_service: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_app_settings)
):
    with _tracing.trace_login("user"):
        result = await auth_service.authenticate_user(request.email, request.password)
    return _login_response(
        result, response, settings, token_service, _should_echo(settings, include_tokens)
    )


@router.post("/register", response_model=ApiResponse, status_code=201)
async def register(
    request: RegisterRequest,
    response: Response,
    include_tokens: bool = Query(False),
    auth_service: AuthenticationService = Depends(get_auth_service),
    token_service: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Register a student account and log it in.
    """
    try:
        result = await auth_service.register_user(request.name, request.email, request.password)
    except DuplicateAccount as e:
        raise DuplicateAccount(e.message, status_code=400) from e

    set_auth_cookies(response, settings, token_service, result.tokens.access_token)
    return ApiResponse(
        message="User registration successful",
        data={
            "user": result.user.model_dump(by_alias=True, mode="json"),
            "tokens": _tokens_payload(result.tokens, _should_echo(settings, include_tokens)),
        },
    )


@router.post("/refresh", response_model=ApiResponse)
async def refresh(
    http_request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    include_tokens: bool = Query(False),
    auth_service: AuthenticationService = Depends(get_auth_service),
    token_service: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Exchange the refresh token (cookie or body) for a new access token.
    """
    refresh_token = http_request.cookies.get(REFRESH_COOKIE)
    if not refresh_token and body:
        refresh_token = body.refresh_token
    if not refresh_token:
        raise Unauthorized("Refresh token required")

    grant = await auth_service.refresh_access_token(refresh_token)
    set_auth_cookies(response, settings, token_service, grant.access_token)
    return ApiResponse(
        message="Token refreshed successfully",
        data={"tokens": _tokens_payload(grant, _should_echo(settings, include_tokens))},
    )


async def _read_logout_token(http_request: Request) -> Optional[str]:
    """Refresh token from the request body, or None when the body is missing or malformed."""
    try:
        body = LogoutRequest.model_validate(await http_request.json())
    except (ValueError, ValidationError):
        return None
    return body.refresh_token


@router.post("/logout", response_model=ApiResponse)
async def logout(
    http_request: Request,
    response: Response,
    auth_service: AuthenticationService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Revoke the current session and clear the auth cookies. Always succeeds.
    """
    refresh_token = http_request.cookies.get(REFRESH_COOKIE)
    if not refresh_token:
        refresh_token = await _read_logout_token(http_request)

    if refresh_token:
        try:
            await auth_service.logout(refresh_token)
        except Exception as e:
            logger.error(f"Failed to revoke session on logout: {e}")

    clear_auth_cookies(response, settings)
    return ApiResponse(message="Logout successful")


@router.get("/profile", response_model=ApiResponse)
async def profile(context: AuthenticatedContext = Depends(require_authenticated)):
    return ApiResponse(
        message="Profile retrieved successfully",
        data={"user": context.principal.model_dump(by_alias=True, mode="json", exclude_none=True)},
    )


@router.get("/verify", response_model=ApiResponse)
async def verify(context: AuthenticatedContext = Depends(require_authenticated)):
    principal = context.principal
    return ApiResponse(
        message="Token is valid",
        data={
            "valid": True,
            "user": {
                "id": principal.id,
                "email": principal.email,
                "name": principal.name,
                "role": principal.role.value,
                "type": principal.type,
            },
        },
    )


@router.get("/status", response_model=ApiResponse)
async def status(context: RequestContext = Depends(get_optional_context)):
    """
    Report whether the caller is authenticated; never fails.
    """
    if not context.is_authenticated:
        return ApiResponse(message="Not authenticated", data={"authenticated": False})
    return ApiResponse(
        message="Authenticated",
        data={
            "authenticated": True,
            "user": context.principal.model_dump(by_alias=True, mode="json", exclude_none=True),
        },
    )


@router.get("/sessions", response_model=ApiResponse)
async def list_sessions(
    context: AuthenticatedContext = Depends(require_admin),
    auth_service: AuthenticationService = Depends(get_auth_service)
):
    sessions = await auth_service.list_sessions(context.principal_id)
    return ApiResponse(
        message="Active sessions retrieved successfully",
        data={"sessions": [s.model_dump(by_alias=True, mode="json") for s in sessions]},
    )


@router.delete("/sessions/{session_id}", response_model=ApiResponse)
async def revoke_session(
    session_id: str,
    context: AuthenticatedContext = Depends(require_admin),
    auth_service: AuthenticationService = Depends(get_auth_service)
):
    await auth_service.revoke_session(context.principal_id, session_id)
    return ApiResponse(message="Session revoked successfully")


@router.delete("/sessions", response_model=ApiResponse)
async def revoke_all_sessions(
    response: Response,
    context: AuthenticatedContext = Depends(require_admin),
    auth_service: AuthenticationService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Revoke every session of the caller, including the current one.
    """
    count = await auth_service.logout_all(context.principal_id)
    clear_auth_cookies(response, settings)
    return ApiResponse(
        message="All sessions revoked successfully",
        data={"revokedCount": count},
    )


@router.put("/password", response_model=ApiResponse)
async def change_password(
    request: PasswordChangeRequest,
    response: Response,
    context: AuthenticatedContext = Depends(require_admin),
    admin_service: AdminManagementService = Depends(get_admin_service),
    settings: Settings = Depends(get_app_settings)
):
    """
    Change the caller's password. Every session is revoked, so the caller logs in again.
    """
    count = await admin_service.change_password(
        context.principal_id, request.current_password, request.new_password
    )
    clear_auth_cookies(response, settings)
    return ApiResponse(
        message="Password changed successfully. Please log in again",
        data={"revokedCount": count},
    )
