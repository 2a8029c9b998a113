"""
auth/tokens.py -- JWT access/refresh token codec.

Security design decisions:
  JWT: python-jose with HS256. Access tokens carry sub (account id), email,
       iat, exp and a random jti; refresh tokens carry the same minus email.
       Verification returns None on any failure -- the session service and
       the auth dependencies turn that into the right 401/403.

  Two secrets: access tokens are signed with JWT_SECRET, refresh tokens with
       REFRESH_TOKEN_SECRET. Settings refuses identical values, so a leaked
       short-lived access token can never be replayed as a refresh token and
       a refresh token is useless as a bearer credential.

  jti: two tokens for the same account issued within the same second would
       otherwise be byte-identical. Refresh-token revocation compares raw
       token strings, so every issued token must be unique.

The codec holds its configuration on the instance. Nothing here reads the
environment; build one with TokenCodec.from_settings(get_settings()).

Layer rule: no imports from api/. core.config is imported for typing only.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.models import TokenPayload

if TYPE_CHECKING:
    from core.config import Settings

_ALGORITHM = "HS256"


class TokenCodec:
    """Issues and verifies signed, expiring access and refresh tokens.

    Usage:
        codec = TokenCodec.from_settings(settings)
        token = codec.issue_access_token(account.id, account.email)
        payload = codec.verify_access_token(token)   # TokenPayload or None
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Both token secrets are required")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh secrets must differ")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            access_secret=settings.jwt_secret,
            refresh_secret=settings.refresh_token_secret,
            access_ttl=settings.jwt_expiry,
            refresh_ttl=settings.refresh_token_expiry,
        )

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, account_id, email) -> str:
        """Sign a short-lived token carrying the account id and email.

        Raises ValueError if either value is missing or empty.
        """
        if not account_id or not email:
            raise ValueError("account_id and email are required to issue an access token")
        claims = {"sub": str(account_id), "email": str(email)}
        return self._encode(claims, self._access_secret, self.access_ttl)

    def issue_refresh_token(self, account_id) -> str:
        """Sign a long-lived token carrying only the account id.

        Raises ValueError if account_id is missing or empty.
        """
        if not account_id:
            raise ValueError("account_id is required to issue a refresh token")
        return self._encode({"sub": str(account_id)}, self._refresh_secret, self.refresh_ttl)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access_token(self, token) -> TokenPayload | None:
        """Return the payload of a valid access token, or None."""
        return self._decode(token, self._access_secret)

    def verify_refresh_token(self, token) -> TokenPayload | None:
        """Return the payload of a valid refresh token, or None."""
        return self._decode(token, self._refresh_secret)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _encode(claims: dict, secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    @staticmethod
    def _decode(token, secret: str) -> TokenPayload | None:
        # Rejected before touching jose: jose raises on non-string input.
        if not token or not isinstance(token, str):
            return None
        try:
            claims = jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        subject = claims.get("sub")
        if not subject or "exp" not in claims or "iat" not in claims:
            return None
        return TokenPayload(
            subject=str(subject),
            email=claims.get("email"),
            issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            token_id=claims.get("jti"),
        )
