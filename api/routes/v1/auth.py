"""
api/routes/v1/auth.py -- Session REST endpoints.

Routes:
  POST /api/v1/auth/register    -- create account; returns account view + token pair (201)
  POST /api/v1/auth/login       -- password login; returns account view + token pair
  POST /api/v1/auth/refresh     -- rotate a refresh token; returns a new token pair
  POST /api/v1/auth/logout      -- forget one refresh token; always 200
  POST /api/v1/auth/logout-all  -- forget every refresh token of the account
  GET  /api/v1/auth/me          -- current account (mandatory access-token gate)
  GET  /api/v1/auth/session     -- who is calling, if anyone (optional gate)

Handlers are thin: they unpack the body, call SessionService and serialize
the result. Flow failures are AuthError subclasses raised by the service and
converted to the error envelope by the handler registered in api/main.py.

Security:
  [H2] Every flow endpoint is rate-limited per client IP (limits from Settings).
  [M5] Cache-Control: no-store on responses that carry tokens.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AccountView,
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    SessionResponse,
    SessionStatusResponse,
    TokenPairResponse,
)
from auth.dependencies import get_identity, try_get_identity
from auth.models import TokenPayload
from auth.session import AuthenticatedSession, SessionService
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /auth/register, /auth/login, /auth/refresh, /auth/logout, /auth/logout-all:
#       public -- credentials or refresh token travel in the body
# - GET  /auth/me:      requires a valid access token (get_identity)
# - GET  /auth/session: public, identity attached when present (try_get_identity)
router = APIRouter()


def _sessions(request: Request) -> SessionService:
    return request.app.state.sessions


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _session_response(session: AuthenticatedSession, status_code: int) -> JSONResponse:
    view = AccountView.from_account(session.account)
    body = SessionResponse(
        **view.model_dump(),
        access_token=session.tokens.access_token,
        refresh_token=session.tokens.refresh_token,
    )
    return _no_store(JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True)))


# ---------------------------------------------------------------------------
# Session flows
# ---------------------------------------------------------------------------


@limiter.limit(_settings.register_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(request: Request, body: Optional[RegisterRequest] = None) -> JSONResponse:
    """Create an account and sign it in."""
    body = body or RegisterRequest()
    session = _sessions(request).register(body.username, body.email, body.password)
    return _session_response(session, status_code=201)


@limiter.limit(_settings.login_rate_limit)  # [H2]
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: Optional[LoginRequest] = None) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password both answer 400 invalid_credentials with
    the same message; a locked account answers 423 before the password is
    even checked.
    """
    body = body or LoginRequest()
    session = _sessions(request).login(body.email, body.password)
    return _session_response(session, status_code=200)


async def refresh_token_field(request: Request) -> Any:
    """Return the body's refreshToken value as sent, or None.

    Parsed by hand rather than through RefreshTokenRequest: an unparsable body
    counts as no token, and a non-string token is passed on so TokenCodec
    rejects it with the flow's own error instead of a generic 422.
    """
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload.get("refreshToken", payload.get("refresh_token"))


# Body schema for the docs only; the routes read it via refresh_token_field.
_REFRESH_TOKEN_BODY = {
    "requestBody": {
        "required": False,
        "content": {"application/json": {"schema": RefreshTokenRequest.model_json_schema(by_alias=True)}},
    }
}


@limiter.limit(_settings.refresh_rate_limit)
@router.post("/auth/refresh", response_model=TokenPairResponse, openapi_extra=_REFRESH_TOKEN_BODY)
def refresh(request: Request, refresh_token: Any = Depends(refresh_token_field)) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    pair = _sessions(request).refresh(refresh_token)
    content = TokenPairResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)
    return _no_store(JSONResponse(content=content.model_dump(by_alias=True)))


@limiter.limit(_settings.logout_rate_limit)
@router.post("/auth/logout", response_model=MessageResponse, openapi_extra=_REFRESH_TOKEN_BODY)
def logout(request: Request, refresh_token: Any = Depends(refresh_token_field)) -> MessageResponse:
    """Forget the given refresh token. Always 200, whatever the body holds."""
    _sessions(request).logout(refresh_token)
    return MessageResponse(message="Logout successful.")


@limiter.limit(_settings.logout_rate_limit)
@router.post("/auth/logout-all", response_model=MessageResponse, openapi_extra=_REFRESH_TOKEN_BODY)
def logout_all(request: Request, refresh_token: Any = Depends(refresh_token_field)) -> MessageResponse:
    """Forget every refresh token of the account the given token belongs to."""
    _sessions(request).logout_all(refresh_token)
    return MessageResponse(message="Logged out from all devices.")


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=AccountView)
def me(request: Request, identity: TokenPayload = Depends(get_identity)) -> JSONResponse:
    """Return the account behind the access token."""
    sessions = _sessions(request)
    account = None
    if identity.subject.isdigit():
        account = sessions.accounts.get_by_id(int(identity.subject))
    if account is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Account not found."},
        )
    return JSONResponse(content=AccountView.from_account(account).model_dump(by_alias=True))


@router.get("/auth/session", response_model=SessionStatusResponse)
def session_status(identity: Optional[TokenPayload] = Depends(try_get_identity)) -> JSONResponse:
    """Report whether the caller presented a valid access token. Never rejects."""
    return JSONResponse(content=SessionStatusResponse.from_identity(identity).model_dump(by_alias=True))
