"""
Token service: signs and verifies access and refresh tokens.

Access tokens are short-lived and verified by signature alone. Refresh tokens
are long-lived and only honoured when a matching, unrevoked session exists in
the session store (see :mod:`portal.services.auth`).
"""

import hashlib
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Union

import jwt
from pydantic import TypeAdapter, ValidationError

from portal.core.config import Settings
from portal.core.errors import ConfigurationError, InvalidToken, TokenExpired
from portal.models.schemas import (
    AccessGrant, AdminClaims, TokenClaims, TokenPair, UserClaims, utcnow
)
from portal.observability.metrics import get_metrics_collector
from portal.services.passwords import PasswordHasher

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"

DEFAULT_REFRESH_TTL = timedelta(days=7)

_DURATION_PATTERN = re.compile(r'^\s*(\d+)\s*([smhd])\s*$')
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 60 * 60, "d": 24 * 60 * 60}

_claims_adapter: TypeAdapter = TypeAdapter(TokenClaims)


def parse_duration(value: str) -> Optional[timedelta]:
    """
    Parse a duration such as ``15m``, ``12h`` or ``7d``.

    Returns:
        The duration, or None when the value has no recognized unit.
    """
    match = _DURATION_PATTERN.match(value or "")
    if not match:
        return None
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _UNIT_SECONDS[unit])


def hash_refresh_token(token: str) -> str:
    """Digest under which a refresh token's session is stored."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class TokenService:
    """Creates and verifies signed, time-bounded tokens."""

    def __init__(
        self,
        access_secret: Optional[str],
        refresh_secret: Optional[str],
        access_expires_in: str = "15m",
        refresh_expires_in: str = "7d",
        issuer: str = "addis-admin",
        audience: str = "addis-admin-users",
        algorithm: str = "HS256",
        password_hasher: Optional[PasswordHasher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_expires_in = access_expires_in
        self.refresh_expires_in = refresh_expires_in
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.password_hasher = password_hasher or PasswordHasher()
        self.clock = clock or utcnow

        if not access_secret or not refresh_secret:
            logger.warning("JWT signing secrets are not configured; token operations will fail")

    @classmethod
    def from_settings(cls, settings: Settings, password_hasher: Optional[PasswordHasher] = None) -> "TokenService":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_expires_in=settings.jwt_access_expires_in,
            refresh_expires_in=settings.jwt_refresh_expires_in,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            algorithm=settings.jwt_algorithm,
            password_hasher=password_hasher or PasswordHasher(settings.password_hash_rounds),
        )

    @property
    def access_ttl(self) -> timedelta:
        return parse_duration(self.access_expires_in) or timedelta(minutes=15)

    @property
    def refresh_ttl(self) -> timedelta:
        return parse_duration(self.refresh_expires_in) or DEFAULT_REFRESH_TTL

    def _secret_for(self, token_type: str) -> str:
        secret = self.access_secret if token_type == ACCESS else self.refresh_secret
        if not secret:
            raise ConfigurationError(f"JWT {token_type} secret not configured")
        return secret

    def _sign(self, claims: Union[AdminClaims, UserClaims], token_type: str, ttl: timedelta) -> str:
        secret = self._secret_for(token_type)
        now = self.clock()

        payload: Dict[str, Any] = {
            "sub": claims.subject_id,
            "kind": claims.kind,
            "email": claims.email,
            "name": claims.display_name,
            "role": claims.role,
            "is_active": claims.is_active,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "iss": self.issuer,
            "aud": self.audience,
            "jti": uuid.uuid4().hex,
        }
        if isinstance(claims, AdminClaims):
            payload["is_super_admin"] = claims.is_super_admin

        token = jwt.encode(payload, secret, algorithm=self.algorithm)
        get_metrics_collector().record_token_issued(token_type, claims.kind)
        return token

    def _verify(self, token: str, token_type: str) -> Union[AdminClaims, UserClaims]:
        secret = self._secret_for(token_type)

        # Time claims are checked against self.clock, the same clock used for signing
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "require": ["exp", "iat", "sub"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"{token_type} token rejected: {e}")
            raise InvalidToken(f"Invalid {token_type} token")

        try:
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (TypeError, ValueError):
            raise InvalidToken(f"Invalid {token_type} token")

        now = int(self.clock().timestamp())
        if expires_at <= now:
            raise TokenExpired(f"{token_type.capitalize()} token expired")
        if issued_at > now:
            raise InvalidToken(f"Invalid {token_type} token")

        if payload.get("type") != token_type:
            raise InvalidToken("Invalid token type")

        try:
            return _claims_adapter.validate_python({
                "kind": payload.get("kind"),
                "subject_id": payload.get("sub"),
                "email": payload.get("email"),
                "display_name": payload.get("name"),
                "role": payload.get("role"),
                "is_active": payload.get("is_active", True),
                "is_super_admin": payload.get("is_super_admin", False),
            })
        except ValidationError:
            raise InvalidToken(f"Invalid {token_type} token")

    def issue_access_token(self, claims: Union[AdminClaims, UserClaims]) -> str:
        """Sign an access token for an admin or a user."""
        return self._sign(claims, ACCESS, self.access_ttl)

    def issue_refresh_token(self, claims: AdminClaims) -> str:
        """Sign a refresh token. Only admins hold refresh tokens."""
        if not isinstance(claims, AdminClaims):
            raise ValueError("Refresh tokens are only issued to admins")
        return self._sign(claims, REFRESH, self.refresh_ttl)

    def issue_token_pair(self, claims: AdminClaims) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(claims),
            refresh_token=self.issue_refresh_token(claims),
            access_expires_in=self.access_expires_in,
            refresh_expires_in=self.refresh_expires_in,
        )

    def issue_access_grant(self, claims: Union[AdminClaims, UserClaims]) -> AccessGrant:
        return AccessGrant(
            access_token=self.issue_access_token(claims),
            access_expires_in=self.access_expires_in,
        )

    def verify_access_token(self, token: str) -> Union[AdminClaims, UserClaims]:
        """
        Verify an access token and return its claims.

        Raises:
            TokenExpired: the token is past its expiry
            InvalidToken: bad signature, issuer, audience, shape or token type
            ConfigurationError: the access secret is not configured
        """
        return self._verify(token, ACCESS)

    def verify_refresh_token(self, token: str) -> AdminClaims:
        """Verify a refresh token; same failure modes as :meth:`verify_access_token`."""
        claims = self._verify(token, REFRESH)
        if not isinstance(claims, AdminClaims):
            raise InvalidToken("Invalid refresh token")
        return claims

    def compute_refresh_expiry(self) -> datetime:
        """Absolute expiry for a session created now; unknown units fall back to 7 days."""
        return self.clock() + self.refresh_ttl

    async def hash_password(self, password: str) -> str:
        return await self.password_hasher.hash(password)

    async def verify_password(self, password: str, password_hash: str) -> bool:
        return await self.password_hasher.verify(password, password_hash)
