"""
auth/refresh_tokens.py -- Server-side set of honoured refresh tokens per account.

A refresh token is only accepted while its raw string is in the account's
refresh_tokens list. That list is what makes refresh tokens revocable even
though they are stateless JWTs: logout removes one entry, logout-all empties
it, and rotation swaps the presented token for the newly issued one.

The list is capped (default 5, one per device/session). Appending past the cap
evicts from the front, so the oldest session is the one that gets dropped.

The list helpers below are pure. RefreshTokenStore applies them through
AccountStore.update() so each mutation is a single conditional write.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from auth.errors import InvalidRefreshToken
from auth.models import Account

if TYPE_CHECKING:
    from auth.store import AccountStore
    from core.config import Settings

DEFAULT_CAPACITY = 5


def append_capped(tokens: list[str], token: str, capacity: int = DEFAULT_CAPACITY) -> list[str]:
    """Return ``tokens`` + ``token``, trimmed from the front to ``capacity``."""
    updated = [*tokens, token]
    if len(updated) > capacity:
        updated = updated[len(updated) - capacity :]
    return updated


def rotate_tokens(tokens: list[str], old: str, new: str, capacity: int = DEFAULT_CAPACITY) -> list[str]:
    """Replace ``old`` with ``new`` (appended last).

    Raises InvalidRefreshToken when ``old`` is not present; the input list is
    never modified.
    """
    if old not in tokens:
        raise InvalidRefreshToken()
    return append_capped(discard_token(tokens, old), new, capacity)


def discard_token(tokens: list[str], token: str) -> list[str]:
    """Return ``tokens`` without its first occurrence of ``token``."""
    updated = list(tokens)
    if token in updated:
        updated.remove(token)
    return updated


class RefreshTokenStore:
    """Refresh-token set operations bound to an AccountStore."""

    def __init__(self, accounts: AccountStore, capacity: int = DEFAULT_CAPACITY) -> None:
        self.accounts = accounts
        self.capacity = capacity

    @classmethod
    def from_settings(cls, accounts: AccountStore, settings: Settings) -> RefreshTokenStore:
        return cls(accounts, capacity=settings.refresh_token_capacity)

    @staticmethod
    def contains(account: Account, token: str) -> bool:
        return token in account.refresh_tokens

    def appended(self, current: Account, token: str) -> dict:
        """Field changes that add ``token`` to ``current``'s set.

        For callers that fold the append into a larger update() mutation.
        """
        return {"refresh_tokens": append_capped(current.refresh_tokens, token, self.capacity)}

    def add(self, account_id: int, token: str) -> Account | None:
        return self.accounts.update(account_id, lambda current: self.appended(current, token))

    def reset(self, account_id: int, token: str) -> Account | None:
        """Make ``token`` the only honoured refresh token."""
        return self.accounts.update(account_id, lambda current: {"refresh_tokens": [token]})

    def rotate(self, account_id: int, old: str, new: str) -> Account:
        """Swap ``old`` for ``new`` in one write.

        Raises InvalidRefreshToken if the account is gone or ``old`` is no longer
        in the set, which is also what a concurrent refresh that lost the race
        with the same token sees.
        """
        account = self.accounts.update(
            account_id,
            lambda current: {"refresh_tokens": rotate_tokens(current.refresh_tokens, old, new, self.capacity)},
        )
        if account is None:
            raise InvalidRefreshToken()
        return account

    def remove(self, account_id: int, token: str) -> Account | None:
        def _discard(current: Account) -> dict | None:
            if token not in current.refresh_tokens:
                return None
            return {"refresh_tokens": discard_token(current.refresh_tokens, token)}

        return self.accounts.update(account_id, _discard)

    def clear(self, account_id: int) -> Account | None:
        return self.accounts.update(
            account_id, lambda current: {"refresh_tokens": []} if current.refresh_tokens else None
        )
