"""
auth/dependencies.py -- FastAPI Depends() gates for access tokens.

Both gates read "Authorization: Bearer <accessToken>" and verify it with the
TokenCodec stored on app.state.token_codec.

try_get_identity() is the optional gate: it attaches the decoded identity to
request.state.identity when the header is present and valid, and otherwise
proceeds anonymously. It never rejects a request.

get_identity() is the mandatory gate:
  - no Authorization header             -> 401
  - wrong scheme, malformed, bad/expired -> 403

Bearer parsing: the header is trimmed, then split on single spaces, and must
yield exactly ["Bearer", <token>]. Internal runs of whitespace are not
collapsed, so "Bearer  <token>" is malformed.

Layer rule: may import from fastapi because this module is part of the
dependency injection system; no imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import TokenPayload
from auth.tokens import TokenCodec


def parse_bearer(header: str | None) -> str | None:
    """Return the credential of a well-formed Bearer header, else None."""
    if not header:
        return None
    parts = header.strip().split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


def _codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def try_get_identity(request: Request) -> TokenPayload | None:
    """Optional gate. Returns the identity or None; never raises."""
    request.state.identity = None
    token = parse_bearer(request.headers.get("Authorization"))
    if token is None:
        return None
    payload = _codec(request).verify_access_token(token)
    request.state.identity = payload
    return payload


def get_identity(request: Request) -> TokenPayload:
    """Mandatory gate. Use as a FastAPI dependency:

        @router.get("/protected")
        def route(identity: TokenPayload = Depends(get_identity)): ...
    """
    header = request.headers.get("Authorization")
    if not header:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Access token required."},
        )
    token = parse_bearer(header)
    payload = _codec(request).verify_access_token(token) if token else None
    if payload is None:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Invalid or expired token."},
        )
    request.state.identity = payload
    return payload
