"""
API request and response models for SocialHub REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (accessToken, refreshToken, loginAttempts) to match
the web client; Python attributes stay snake_case via the alias generator.

Request fields are all optional on purpose: a missing field must surface as
the flow's own 400 missing_fields error, not as a generic 422.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Account, TokenPayload

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    username: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class RefreshTokenRequest(BaseModel):
    """Documented body of /refresh, /logout and /logout-all.

    Only used for the OpenAPI schema. Those routes read the token with
    api.routes.v1.auth.refresh_token_field so a non-string or unparsable
    body reaches the session flow instead of failing validation.
    """

    model_config = _CAMEL

    refresh_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountView(BaseModel):
    """Public view of an account. Password hash, refresh tokens and the store's
    version counter are never part of it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    username: str
    email: str
    description: Optional[str] = None
    age: Optional[int] = None
    location: Optional[str] = None
    is_admin: bool = False
    login_attempts: int = 0
    lock_until: Optional[str] = None
    last_login: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountView":
        """Factory Method: the Account -> wire mapping lives next to the wire model."""
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            description=account.description,
            age=account.age,
            location=account.location,
            is_admin=account.is_admin,
            login_attempts=account.login_attempts,
            lock_until=account.lock_until.isoformat() if account.lock_until else None,
            last_login=account.last_login.isoformat() if account.last_login else None,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class TokenPairResponse(BaseModel):
    """Response for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    access_token: str
    refresh_token: str


class SessionResponse(AccountView):
    """Response for register and login: account fields at the top level plus tokens."""

    access_token: str
    refresh_token: str


class SessionStatusResponse(BaseModel):
    """Response for GET /api/v1/auth/session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    authenticated: bool
    account_id: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: Optional[TokenPayload]) -> "SessionStatusResponse":
        if identity is None:
            return cls(authenticated=False)
        return cls(
            authenticated=True,
            account_id=identity.subject,
            email=identity.email,
            expires_at=identity.expires_at.isoformat(),
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    type is kept for the web client, which keys duplicate-field errors on it
    ("unameDupErr" / "emailDupErr").
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    type: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
