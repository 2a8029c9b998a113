"""
auth/session.py -- Register / login / refresh / logout / logout-all flows.

SessionService composes the token codec, password verifier, lockout tracker
and refresh-token store. Each public method is one request-response
transaction: it either returns a result or raises an AuthError subclass that
api/main.py turns into a status code and error envelope. Nothing is kept
between calls; all state lives in the account store.

Refresh tokens arrive exactly as the client sent them and may be any JSON
value; the codec treats non-strings as invalid tokens.

Audit logging: failed logins, lock transitions, refusals while locked and
refresh-token mismatches are logged on "socialhub.auth". Nothing is retried
automatically.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AccountLocked,
    DuplicateEmail,
    DuplicateUsername,
    InvalidCredentials,
    InvalidField,
    InvalidOrExpiredToken,
    InvalidRefreshToken,
    InvalidToken,
    MissingFields,
    MissingToken,
    StorageError,
    WeakPassword,
)
from auth.lockout import LockoutTracker
from auth.models import Account
from auth.passwords import DEFAULT_ROUNDS, MAX_PASSWORD_BYTES, dummy_hash, hash_password, verify_password
from auth.refresh_tokens import RefreshTokenStore
from auth.store import AccountStore
from auth.tokens import TokenCodec

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("socialhub.auth")

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 30
EMAIL_MAX_LENGTH = 50


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthenticatedSession:
    """Result of register and login: the account plus a fresh token pair."""

    account: Account
    tokens: TokenPair


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email.strip()))


class SessionService:
    """Session flows over an AccountStore.

    Usage:
        service = SessionService.from_settings(SqlAccountStore(settings.database_url), settings)
        session = service.login("a@x.com", "password123")
        pair = service.refresh(session.tokens.refresh_token)
    """

    def __init__(
        self,
        accounts: AccountStore,
        codec: TokenCodec,
        lockout: LockoutTracker | None = None,
        refresh_tokens: RefreshTokenStore | None = None,
        *,
        password_min_length: int = 8,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.accounts = accounts
        self.codec = codec
        self.lockout = lockout or LockoutTracker()
        self.refresh_tokens = refresh_tokens or RefreshTokenStore(accounts)
        self.password_min_length = password_min_length
        self.bcrypt_rounds = bcrypt_rounds
        self.clock = clock

    @classmethod
    def from_settings(
        cls, accounts: AccountStore, settings: Settings, clock: Callable[[], datetime] = _utcnow
    ) -> SessionService:
        return cls(
            accounts,
            TokenCodec.from_settings(settings),
            LockoutTracker.from_settings(settings),
            RefreshTokenStore.from_settings(accounts, settings),
            password_min_length=settings.password_min_length,
            bcrypt_rounds=settings.bcrypt_rounds,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    def register(self, username: str | None, email: str | None, password: str | None) -> AuthenticatedSession:
        if not username or not email or not password:
            raise MissingFields("All fields are required.")
        if not is_valid_email(email):
            raise InvalidField("Please provide a valid email address.")
        if len(password) < self.password_min_length:
            raise WeakPassword(f"Password must be at least {self.password_min_length} characters long.")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise InvalidField(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long.")
        if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
            raise InvalidField(
                f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters long."
            )
        if len(email) > EMAIL_MAX_LENGTH:
            raise InvalidField(f"Email must be at most {EMAIL_MAX_LENGTH} characters long.")

        self._ensure_unique(username, email)

        account = Account(
            username=username,
            email=email,
            hashed_password=hash_password(password, rounds=self.bcrypt_rounds),
        )
        try:
            account_id = self.accounts.create_account(account)
        except IntegrityError:
            # A concurrent registration took the username or email between
            # the uniqueness check and the insert.
            self._ensure_unique(username, email)
            raise

        tokens = self._issue_pair(account_id, email)
        stored = self.refresh_tokens.reset(account_id, tokens.refresh_token)
        if stored is None:
            raise StorageError(f"Account {account_id} vanished right after registration")
        logger.info("Registered account %s (%s)", account_id, username)
        return AuthenticatedSession(account=stored, tokens=tokens)

    def _ensure_unique(self, username: str, email: str) -> None:
        if self.accounts.get_by_username(username) is not None:
            raise DuplicateUsername()
        if self.accounts.get_by_email(email) is not None:
            raise DuplicateEmail()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str | None, password: str | None) -> AuthenticatedSession:
        if not email or not password:
            raise MissingFields("Email and password are required.")
        if not is_valid_email(email):
            raise InvalidField("Please provide a valid email address.")

        account = self.accounts.get_by_email(email)
        if account is None:
            # Same bcrypt cost as a real check so timing does not reveal the miss.
            verify_password(password, dummy_hash(self.bcrypt_rounds))
            logger.info("Failed login for unknown email")
            raise InvalidCredentials()

        now = self.clock()
        if self.lockout.is_locked(account, now):
            logger.warning("Refused login for locked account %s (locked until %s)", account.id, account.lock_until)
            raise AccountLocked()

        if not verify_password(password, account.hashed_password):
            self._record_failure(account.id, now)
            raise InvalidCredentials()

        tokens = self._issue_pair(account.id, account.email)

        # Lockout reset, last_login and the new refresh token land in one write.
        def _on_success(current: Account) -> dict:
            changes: dict = {"last_login": now, **self.refresh_tokens.appended(current, tokens.refresh_token)}
            if current.login_attempts > 0 or current.lock_until is not None:
                changes.update(self.lockout.record_success(current))
            return changes

        stored = self.accounts.update(account.id, _on_success)
        if stored is None:
            raise StorageError(f"Account {account.id} vanished during login")
        logger.info("Login succeeded for account %s", account.id)
        return AuthenticatedSession(account=stored, tokens=tokens)

    def _record_failure(self, account_id: int, now: datetime) -> None:
        seen: dict = {}

        def _fail(current: Account) -> dict:
            seen["was_locked"] = self.lockout.is_locked(current, now)
            return self.lockout.record_failure(current, now)

        updated = self.accounts.update(account_id, _fail)
        if updated is None:
            return
        logger.info("Failed login for account %s (attempt %d)", account_id, updated.login_attempts)
        if self.lockout.is_locked(updated, now) and not seen.get("was_locked"):
            logger.warning(
                "Account %s locked until %s after %d failed attempts",
                account_id,
                updated.lock_until.isoformat(),
                updated.login_attempts,
            )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str | None) -> TokenPair:
        """Exchange a honoured refresh token for a new access/refresh pair."""
        if not refresh_token:
            raise MissingToken("Refresh token required.", status_code=401)

        payload = self.codec.verify_refresh_token(refresh_token)
        if payload is None:
            raise InvalidOrExpiredToken()

        account = self._load_subject(payload.subject)
        if account is None or not self.refresh_tokens.contains(account, refresh_token):
            logger.warning("Refresh with unknown or revoked token for subject %s", payload.subject)
            raise InvalidRefreshToken()

        tokens = self._issue_pair(account.id, account.email)
        # rotate() re-checks membership inside the conditional write, so two
        # concurrent refreshes with the same token cannot both succeed.
        self.refresh_tokens.rotate(account.id, refresh_token, tokens.refresh_token)
        return tokens

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, refresh_token: str | None) -> None:
        """Forget one refresh token. Never fails from the caller's view."""
        if not refresh_token:
            return
        payload = self.codec.verify_refresh_token(refresh_token)
        if payload is None:
            logger.debug("Logout with invalid or expired refresh token ignored")
            return
        account_id = _parse_account_id(payload.subject)
        if account_id is None:
            return
        try:
            self.refresh_tokens.remove(account_id, refresh_token)
        except Exception:
            # Logout never fails for the caller, whatever the store raised.
            logger.exception("Logout could not revoke refresh token for account %s", account_id)

    def logout_all(self, refresh_token: str | None) -> None:
        """Forget every refresh token of the token's account."""
        if not refresh_token:
            raise MissingToken("Refresh token required.", status_code=400)
        payload = self.codec.verify_refresh_token(refresh_token)
        if payload is None:
            raise InvalidToken()
        account_id = _parse_account_id(payload.subject)
        if account_id is None:
            return
        if self.refresh_tokens.clear(account_id) is not None:
            logger.info("Revoked all refresh tokens for account %s", account_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_pair(self, account_id: int, email: str) -> TokenPair:
        return TokenPair(
            access_token=self.codec.issue_access_token(account_id, email),
            refresh_token=self.codec.issue_refresh_token(account_id),
        )

    def _load_subject(self, subject: str) -> Account | None:
        account_id = _parse_account_id(subject)
        if account_id is None:
            return None
        return self.accounts.get_by_id(account_id)


def _parse_account_id(subject: str) -> int | None:
    try:
        return int(subject)
    except (TypeError, ValueError):
        return None
