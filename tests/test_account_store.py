"""
tests/test_account_store.py -- Tests for auth/store.py (SqlAccountStore).

Covers:
  - create/get by username, email and id; duplicates raise IntegrityError
  - datetime and JSON list fields survive a round trip
  - update(): version bump, no-op when mutate returns nothing, missing
    account, unknown field rejection, exceptions from mutate write nothing
  - a concurrent write between read and write is retried against the newer
    state instead of being overwritten
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.errors import InvalidRefreshToken
from auth.models import Account
from auth.store import SqlAccountStore

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _new(username: str = "alice", email: str = "alice@example.com") -> Account:
    return Account(username=username, email=email, hashed_password="h" * 60)


class TestCreateAndGet:
    def test_create_returns_id(self, store: SqlAccountStore) -> None:
        assert isinstance(store.create_account(_new()), int)

    def test_lookups(self, store: SqlAccountStore) -> None:
        account_id = store.create_account(_new())
        assert store.get_by_username("alice").id == account_id
        assert store.get_by_email("alice@example.com").id == account_id
        assert store.get_by_id(account_id).username == "alice"

    def test_new_account_defaults(self, store: SqlAccountStore) -> None:
        account = store.get_by_id(store.create_account(_new()))
        assert account.login_attempts == 0
        assert account.lock_until is None
        assert account.refresh_tokens == []
        assert account.is_admin is False
        assert account.version == 0
        assert account.created_at

    def test_unknown_lookups_return_none(self, store: SqlAccountStore) -> None:
        assert store.get_by_username("nobody") is None
        assert store.get_by_email("nobody@example.com") is None
        assert store.get_by_id(12345) is None

    def test_username_lookup_is_case_sensitive(self, store: SqlAccountStore) -> None:
        store.create_account(_new())
        assert store.get_by_username("Alice") is None

    def test_duplicate_username_raises(self, store: SqlAccountStore) -> None:
        store.create_account(_new())
        with pytest.raises(IntegrityError):
            store.create_account(_new(email="other@example.com"))

    def test_duplicate_email_raises(self, store: SqlAccountStore) -> None:
        store.create_account(_new())
        with pytest.raises(IntegrityError):
            store.create_account(_new(username="bob"))


class TestUpdate:
    def test_applies_changes_and_bumps_version(self, store: SqlAccountStore) -> None:
        account_id = store.create_account(_new())
        updated = store.update(account_id, lambda current: {"login_attempts": current.login_attempts + 1})
        assert updated.login_attempts == 1
        assert updated.version == 1
        assert store.get_by_id(account_id).login_attempts == 1

    def test_datetime_and_list_round_trip(self, store: SqlAccountStore) -> None:
        account_id = store.create_account(_new())
        lock_until = NOW + timedelta(hours=2)
        store.update(
            account_id,
            lambda current: {"lock_until": lock_until, "last_login": NOW, "refresh_tokens": ["a", "b"]},
        )
        stored = store.get_by_id(account_id)
        assert stored.lock_until == lock_until
        assert stored.last_login == NOW
        assert stored.refresh_tokens == ["a", "b"]

    def test_clearing_lock_until(self, store: SqlAccountStore) -> None:
        account_id = store.create_account(_new())
        store.update(account_id, lambda current: {"lock_until": NOW})
        store.update(account_id, lambda current: {"lock_until": None})
        assert store.get_by_id(account_id).lock_until is None

    def test_no_changes_writes_nothing(self, store: SqlAccountStore) -> None:
        account_id = store.create_account(_new())
        result = store.update(account_id, lambda current: None)
        assert result.version == 0
        assert store.get_by_id(account_id).version == 0

    def test_missing_account_returns_none(self, store: SqlAccountStore) -> None:
        assert store.update(999, lambda current: {"login_attempts": 1}) is None

    def test_unknown_field_rejected(self, store: SqlAccountStore) -> None:
        account_id = store.create_account(_new())
        with pytest.raises(ValueError):
            store.update(account_id, lambda current: {"username": "mallory"})
        assert store.get_by_id(account_id).username == "alice"

    def test_mutate_exception_propagates_without_write(self, store: SqlAccountStore) -> None:
        account_id = store.create_account(_new())

        def _boom(current: Account) -> dict:
            raise InvalidRefreshToken()

        with pytest.raises(InvalidRefreshToken):
            store.update(account_id, _boom)
        assert store.get_by_id(account_id).version == 0


class TestConcurrentUpdate:
    def test_interleaved_write_is_retried_not_lost(self, tmp_path) -> None:
        store = SqlAccountStore(f"sqlite:///{tmp_path / 'accounts.db'}")
        try:
            account_id = store.create_account(_new())
            seen_versions: list[int] = []

            def _increment(current: Account) -> dict:
                seen_versions.append(current.version)
                if len(seen_versions) == 1:
                    # Another request lands between this read and our write.
                    store.update(account_id, lambda other: {"login_attempts": other.login_attempts + 1})
                return {"login_attempts": current.login_attempts + 1}

            updated = store.update(account_id, _increment)

            assert seen_versions == [0, 1]
            assert updated.login_attempts == 2
            assert updated.version == 2
            assert store.get_by_id(account_id).login_attempts == 2
        finally:
            store.close()

    def test_ping(self, store: SqlAccountStore) -> None:
        assert store.ping() is True
