"""
Auth cookie helpers.

The access cookie is sent on every request; the refresh cookie is scoped to
the refresh endpoint so it never travels with ordinary API calls.
"""

from typing import Optional
from fastapi import Response

from portal.core.config import Settings
from portal.services.tokens import TokenService

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def _cookie_options(settings: Settings) -> dict:
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "strict",
        "domain": settings.cookie_domain,
    }


def set_auth_cookies(
    response: Response,
    settings: Settings,
    tokens: TokenService,
    access_token: str,
    refresh_token: Optional[str] = None
) -> None:
    """
    Write the auth cookies with max-age equal to each token's lifetime.

    Args:
        response: Outgoing response
        settings: Cookie domain, path and secure flag
        tokens: Token service providing the lifetimes
        access_token: Always written
        refresh_token: Written only when given
    """
    options = _cookie_options(settings)
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=int(tokens.access_ttl.total_seconds()),
        path=settings.access_cookie_path,
        **options
    )
    if refresh_token:
        response.set_cookie(
            REFRESH_COOKIE,
            refresh_token,
            max_age=int(tokens.refresh_ttl.total_seconds()),
            path=settings.refresh_cookie_path,
            **options
        )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    options = _cookie_options(settings)
    response.delete_cookie(ACCESS_COOKIE, path=settings.access_cookie_path, **options)
    response.delete_cookie(REFRESH_COOKIE, path=settings.refresh_cookie_path, **options)
