"""
Pydantic models for the exam portal auth service.
"""

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a record identifier."""
    return uuid.uuid4().hex


def normalize_email(email: str) -> str:
    """Lower-case and trim an email address."""
    return email.strip().lower()


class Role(str, Enum):
    """Principal roles, lowest to highest privilege."""
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class CamelModel(BaseModel):
    """Base for API-facing models serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Store records
class AdminRecord(BaseModel):
    """Persisted admin account."""
    id: str = Field(default_factory=new_id)
    full_name: str
    email: str
    password_hash: str
    is_active: bool = True
    is_super_admin: bool = False
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def role(self) -> Role:
        return Role.SUPER_ADMIN if self.is_super_admin else Role.ADMIN


class UserRecord(BaseModel):
    """Persisted student account."""
    id: str = Field(default_factory=new_id)
    name: str
    email: str
    password_hash: str
    role: Literal["USER"] = "USER"
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RefreshTokenRecord(BaseModel):
    """Persisted admin session, keyed by the digest of its refresh token."""
    id: str = Field(default_factory=new_id)
    token_hash: str
    admin_id: str
    expires_at: datetime
    is_revoked: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at < (now or utcnow())


# Token claims
class AdminClaims(BaseModel):
    """Claims carried by tokens issued to an admin."""
    kind: Literal["admin"] = "admin"
    subject_id: str
    email: str
    display_name: str
    role: Literal["ADMIN", "SUPER_ADMIN"]
    is_active: bool = True
    is_super_admin: bool = False

    @classmethod
    def from_record(cls, admin: AdminRecord) -> "AdminClaims":
        return cls(
            subject_id=admin.id,
            email=admin.email,
            display_name=admin.full_name,
            role=admin.role.value,
            is_active=admin.is_active,
            is_super_admin=admin.is_super_admin,
        )


class UserClaims(BaseModel):
    """Claims carried by tokens issued to a student."""
    kind: Literal["user"] = "user"
    subject_id: str
    email: str
    display_name: str
    role: Literal["USER"] = "USER"
    is_active: bool = True

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserClaims":
        return cls(
            subject_id=user.id,
            email=user.email,
            display_name=user.name,
            is_active=user.is_active,
        )


TokenClaims = Annotated[Union[AdminClaims, UserClaims], Field(discriminator="kind")]


class TokenPair(CamelModel):
    """Access and refresh tokens issued together at admin login."""
    access_token: str
    refresh_token: str
    access_expires_in: str
    refresh_expires_in: str


class AccessGrant(CamelModel):
    """A single access token and its configured lifetime."""
    access_token: str
    access_expires_in: str


# Resolved principals and profiles
class Principal(CamelModel):
    """Normalized identity attached to an authenticated request."""
    type: Literal["admin", "user"]
    id: str
    email: str
    name: str
    role: Role
    is_active: bool
    is_super_admin: Optional[bool] = None

    @classmethod
    def from_admin(cls, admin: AdminRecord) -> "Principal":
        return cls(
            type="admin",
            id=admin.id,
            email=admin.email,
            name=admin.full_name,
            role=admin.role,
            is_active=admin.is_active,
            is_super_admin=admin.is_super_admin,
        )

    @classmethod
    def from_user(cls, user: UserRecord) -> "Principal":
        return cls(
            type="user",
            id=user.id,
            email=user.email,
            name=user.name,
            role=Role.USER,
            is_active=user.is_active,
        )


class AdminProfile(CamelModel):
    """Admin account without credential material."""
    id: str
    full_name: str
    email: str
    is_active: bool
    is_super_admin: bool
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, admin: AdminRecord) -> "AdminProfile":
        return cls(**admin.model_dump(exclude={"password_hash"}))


class UserProfile(CamelModel):
    """Student account without credential material."""
    id: str
    name: str
    email: str
    role: Role = Role.USER
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserProfile":
        return cls(**user.model_dump(exclude={"password_hash"}))


class SessionInfo(CamelModel):
    """Public view of an admin session."""
    id: str
    created_at: datetime
    expires_at: datetime


class AdminLoginResult(BaseModel):
    admin: AdminProfile
    tokens: TokenPair
    session_id: str


class UserLoginResult(BaseModel):
    user: UserProfile
    tokens: AccessGrant


class InvitationResult(BaseModel):
    admin: AdminProfile
    temporary_password: str


class AdminStats(CamelModel):
    total_admins: int
    active_admins: int
    inactive_admins: int
    super_admins: int
    total_users: int


# Request models
def _validate_email(value: str) -> str:
    value = normalize_email(value)
    if len(value) < 5 or len(value) > 255:
        raise ValueError('Email must be between 5 and 255 characters')
    if not EMAIL_PATTERN.match(value):
        raise ValueError('Invalid email format')
    return value


class LoginRequest(CamelModel):
    """Credentials submitted at login."""
    email: str
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _validate_email(v)


class RegisterRequest(CamelModel):
    """Student self-registration."""
    name: str = Field(..., min_length=1, max_length=100)
    email: str
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _validate_email(v)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Name is required')
        return v


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class PasswordChangeRequest(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


class BootstrapRequest(CamelModel):
    """Initial super admin account."""
    full_name: str = Field(..., min_length=1, max_length=100)
    email: str
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _validate_email(v)


class AdminInviteRequest(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    email: str
    is_super_admin: bool = False

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _validate_email(v)


class AdminUpdateRequest(CamelModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = None
    is_active: Optional[bool] = None
    is_super_admin: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v is None:
            return v
        return _validate_email(v)


# Response envelope
class ApiResponse(BaseModel):
    """Envelope shared by every API response."""
    success: bool = True
    message: str
    data: Optional[Dict[str, Any]] = None


class ErrorDetail(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    errors: Optional[List[ErrorDetail]] = None
