"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the lockout
tracker and the session service do the work; these classes only own shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Account:
    """An identity record owned by the account store.

    LockoutState is embedded as login_attempts / lock_until. It is mutated only
    through LockoutTracker-produced changes applied by AccountStore.update().

    refresh_tokens is the RefreshTokenSet: raw signed refresh tokens that are
    still honoured, ordered oldest first and capped (see auth/refresh_tokens.py).

    version is bumped on every write and is what makes AccountStore.update() a
    conditional write rather than a blind overwrite.
    """

    username: str
    email: str
    hashed_password: str
    id: int | None = None
    description: str | None = None
    age: int | None = None
    location: str | None = None
    is_admin: bool = False
    login_attempts: int = 0
    lock_until: datetime | None = None
    refresh_tokens: list[str] = field(default_factory=list)
    last_login: datetime | None = None
    created_at: str | None = None
    updated_at: str | None = None
    version: int = 0


@dataclass(frozen=True)
class TokenPayload:
    """Decoded claims of a verified access or refresh token. Never persisted.

    email is only present on access tokens.
    """

    subject: str
    issued_at: datetime
    expires_at: datetime
    email: str | None = None
    token_id: str | None = None
