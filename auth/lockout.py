"""
auth/lockout.py -- Failed-login counter and timed account lock.

Two states per account:
  Unlocked -- lock_until unset, or lock_until <= now
  Locked   -- lock_until > now

The lock is a side effect of the failure count crossing the threshold, not a
separate flag. Once a lock expires the next failure starts a fresh window at 1
instead of leaving the account one attempt away from another two-hour lock.

The tracker never writes. record_failure() and record_success() return a dict
of field changes, and the caller applies it with AccountStore.update(), which
re-reads the record and writes conditionally on its version. Two concurrent
failed logins therefore both land: the loser of the race is recomputed from
the winner's state instead of overwriting it.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from auth.models import Account

if TYPE_CHECKING:
    from core.config import Settings

DEFAULT_THRESHOLD = 5
DEFAULT_LOCK_DURATION = timedelta(hours=2)


class LockoutTracker:
    def __init__(self, threshold: int = DEFAULT_THRESHOLD, lock_duration: timedelta = DEFAULT_LOCK_DURATION) -> None:
        self.threshold = threshold
        self.lock_duration = lock_duration

    @classmethod
    def from_settings(cls, settings: Settings) -> LockoutTracker:
        return cls(threshold=settings.lockout_threshold, lock_duration=settings.lockout_duration)

    def is_locked(self, account: Account, now: datetime) -> bool:
        """True only while lock_until is strictly in the future."""
        return account.lock_until is not None and account.lock_until > now

    def record_failure(self, account: Account, now: datetime) -> dict:
        """Field changes for one more failed attempt against ``account``.

        An already locked account keeps its existing lock_until; only the
        counter moves.
        """
        if account.lock_until is not None and account.lock_until < now:
            return {"login_attempts": 1, "lock_until": None}

        attempts = account.login_attempts + 1
        changes: dict = {"login_attempts": attempts}
        if attempts >= self.threshold and not self.is_locked(account, now):
            changes["lock_until"] = now + self.lock_duration
        return changes

    def record_success(self, account: Account) -> dict:
        """Field changes that return ``account`` to a clean Unlocked state."""
        return {"login_attempts": 0, "lock_until": None}
