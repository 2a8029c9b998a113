"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. SqlAccountStore is the repository;
_row_to_account / _to_columns are the mappers. The session service, lockout
tracker and refresh-token store never touch SQL directly, and only depend on
the AccountStore protocol, so any conforming storage can be swapped in.

Conditional updates:
  Every account row carries a version counter. update() reads the row, asks
  the caller's mutate() callback for field changes computed from that fresh
  copy, then writes with WHERE id = :id AND version = :seen. If another
  request wrote in between, zero rows match and the whole read-compute-write
  cycle is retried against the newer state. Lockout counters and the refresh
  token set are never blindly overwritten from a stale in-memory copy.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: auth/socialhub_auth.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.errors import StorageError
from auth.models import Account

logger = logging.getLogger("socialhub.auth.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'socialhub_auth.db'}"

_MAX_UPDATE_ATTEMPTS = 10

# Account fields update() may change. Anything else raises ValueError before
# any SQL is built.
_MUTABLE_FIELDS = frozenset(
    {
        "hashed_password",
        "description",
        "age",
        "location",
        "is_admin",
        "login_attempts",
        "lock_until",
        "refresh_tokens",
        "last_login",
    }
)

# mutate(current) -> changes to apply, or None to leave the record untouched.
AccountMutation = Callable[[Account], "dict | None"]


class AccountStore(Protocol):
    def get_by_username(self, username: str) -> Account | None: ...

    def get_by_email(self, email: str) -> Account | None: ...

    def get_by_id(self, account_id: int) -> Account | None: ...

    def create_account(self, account: Account) -> int: ...

    def update(self, account_id: int, mutate: AccountMutation) -> Account | None: ...

    def ping(self) -> bool: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(30), nullable=False, unique=True),
    Column("email", String(50), nullable=False, unique=True),
    Column("hashed_password", String(60), nullable=False),
    Column("description", String(50)),
    Column("age", Integer),
    Column("location", String(20)),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("login_attempts", Integer, nullable=False, server_default="0"),
    Column("lock_until", String(32)),  # ISO 8601, NULL when unlocked
    Column("refresh_tokens", Text, nullable=False, server_default="[]"),  # JSON list, oldest first
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("version", Integer, nullable=False, server_default="0"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Rows written by hand may lack an offset; everything here is UTC.
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlAccountStore:
    """SQLAlchemy-backed AccountStore.

    Usage:
        store = SqlAccountStore()
        account_id = store.create_account(Account(username="alice", email="a@x.com", hashed_password=h))
        store.update(account_id, lambda current: {"login_attempts": current.login_attempts + 1})
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by exact email."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. The session service treats that as a concurrent registration
        that won the race.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    username=account.username,
                    email=account.email,
                    hashed_password=account.hashed_password,
                    description=account.description,
                    age=account.age,
                    location=account.location,
                    is_admin=1 if account.is_admin else 0,
                    login_attempts=account.login_attempts,
                    lock_until=_to_iso(account.lock_until),
                    refresh_tokens=json.dumps(account.refresh_tokens),
                    created_at=now,
                    updated_at=now,
                    version=0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update(self, account_id: int, mutate: AccountMutation) -> Account | None:
        """Apply ``mutate`` to the current record as one conditional write.

        Returns the updated Account, the unchanged Account if mutate() returned
        no changes, or None if the account does not exist. Exceptions raised by
        mutate() propagate and nothing is written. Raises StorageError if the
        write keeps losing to concurrent writers.
        """
        for attempt in range(1, _MAX_UPDATE_ATTEMPTS + 1):
            with self.engine.connect() as conn:
                # first() closes the cursor so no read snapshot outlives the SELECT.
                row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).first()
                if row is None:
                    return None
                current = _row_to_account(row)
                changes = mutate(current)
                if not changes:
                    return current
                unknown = set(changes) - _MUTABLE_FIELDS
                if unknown:
                    raise ValueError(f"Unknown account fields: {unknown!r}")
                updated_at = _now_iso()
                result = conn.execute(
                    _accounts.update()
                    .where((_accounts.c.id == account_id) & (_accounts.c.version == current.version))
                    .values(**_to_columns(changes), version=current.version + 1, updated_at=updated_at)
                )
                conn.commit()
            if result.rowcount == 1:
                return replace(current, **changes, version=current.version + 1, updated_at=updated_at)
            logger.debug("Version conflict on account %s (attempt %d), retrying", account_id, attempt)
        raise StorageError(f"Could not update account {account_id} after {_MAX_UPDATE_ATTEMPTS} attempts")

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _to_columns(changes: dict) -> dict:
    values = dict(changes)
    if "lock_until" in values:
        values["lock_until"] = _to_iso(values["lock_until"])
    if "last_login" in values:
        values["last_login"] = _to_iso(values["last_login"])
    if "refresh_tokens" in values:
        values["refresh_tokens"] = json.dumps(list(values["refresh_tokens"]))
    if "is_admin" in values:
        values["is_admin"] = 1 if values["is_admin"] else 0
    return values


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        description=row.description,
        age=row.age,
        location=row.location,
        is_admin=bool(row.is_admin),
        login_attempts=row.login_attempts,
        lock_until=_from_iso(row.lock_until),
        refresh_tokens=json.loads(row.refresh_tokens or "[]"),
        last_login=_from_iso(row.last_login),
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )
