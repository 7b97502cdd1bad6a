"""Database repositories for accounts and their role profiles."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Iterator

from psycopg import sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import (
    Account,
    ConsumerProfile,
    Profile,
    ProfileType,
    ProviderProfile,
    Role,
)

_ACCOUNT_COLUMNS = "account_id, phone_number, role, password_hash, created_at, updated_at"
_UPDATABLE_COLUMNS = frozenset({"phone_number", "password_hash"})


def _parse_account_id(account_id: str) -> uuid.UUID | None:
    """Return the id as a UUID, or ``None`` when it cannot name any stored account."""
    try:
        return uuid.UUID(str(account_id))
    except ValueError:
        return None


class AccountRepository:
    """Postgres-backed persistence for user accounts."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def create_account(self, *, phone_number: str, role: Role, password_hash: str) -> Account:
        """Insert a new account row and return it."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO accounts ({_ACCOUNT_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING {_ACCOUNT_COLUMNS}
                    """,
                    (account_id, phone_number, role.value, password_hash, now, now),
                )
                row = cur.fetchone()
                conn.commit()
        return self._map_record(row)

    def get_account(self, account_id: str) -> Account | None:
        """Fetch an account by identifier or return ``None``."""
        key = _parse_account_id(account_id)
        if key is None:
            return None
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s",
                    (key,),
                )
                row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def update_account(self, account_id: str, fields: dict[str, Any]) -> Account | None:
        """Apply a partial update and return the refreshed row, ``None`` when missing."""
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"cannot update columns: {', '.join(sorted(unknown))}")
        key = _parse_account_id(account_id)
        if key is None:
            return None
        if not fields:
            return self.get_account(account_id)

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in fields
        )
        query = sql.SQL(
            "UPDATE accounts SET {assignments}, updated_at = %s WHERE account_id = %s "
            "RETURNING " + _ACCOUNT_COLUMNS
        ).format(assignments=assignments)
        params = [*fields.values(), datetime.now(timezone.utc), key]

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
                conn.commit()
        if not row:
            return None
        return self._map_record(row)

    def delete_account(self, account_id: str) -> Account | None:
        """Remove an account together with any profile rows in one transaction."""
        key = _parse_account_id(account_id)
        if key is None:
            return None
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("DELETE FROM consumer_profiles WHERE account_id = %s", (key,))
                cur.execute("DELETE FROM provider_profiles WHERE account_id = %s", (key,))
                cur.execute(
                    f"DELETE FROM accounts WHERE account_id = %s RETURNING {_ACCOUNT_COLUMNS}",
                    (key,),
                )
                row = cur.fetchone()
                conn.commit()
        if not row:
            return None
        return self._map_record(row)

    def iter_accounts(self, batch_size: int = 100) -> Iterator[Account]:
        """Yield every account lazily through a server-side cursor."""
        with self._pool.connection() as conn:
            with conn.cursor(name="accounts_stream", row_factory=tuple_row) as cur:
                cur.itersize = batch_size
                cur.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts ORDER BY created_at DESC")
                for row in cur:
                    yield self._map_record(row)

    def list_accounts(self, *, limit: int, offset: int) -> list[Account]:
        """Return one page of accounts, newest first."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_ACCOUNT_COLUMNS}
                    FROM accounts
                    ORDER BY created_at DESC, account_id DESC
                    LIMIT %s OFFSET %s
                    """,
                    (limit, offset),
                )
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def count_accounts(self) -> int:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("SELECT COUNT(*) FROM accounts")
                (total,) = cur.fetchone()
        return int(total)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row[0]),
            phone_number=row[1],
            role=Role(row[2]),
            password_hash=row[3],
            created_at=row[4],
            updated_at=row[5],
        )


class ProfileRepository:
    """Postgres-backed persistence for the role-specific profile tables."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create_consumer_profile(self, account_id: str, profile_type: ProfileType) -> ConsumerProfile:
        """Insert the consumer profile linked to ``account_id``."""
        profile_id = str(uuid.uuid4())
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    INSERT INTO consumer_profiles (profile_id, account_id, type, created_at)
                    VALUES (%s, %s, %s, %s)
                    RETURNING profile_id, account_id, type, created_at
                    """,
                    (profile_id, account_id, profile_type.value, datetime.now(timezone.utc)),
                )
                row = cur.fetchone()
                conn.commit()
        return ConsumerProfile(
            profile_id=str(row[0]),
            account_id=str(row[1]),
            type=ProfileType(row[2]),
            created_at=row[3],
        )

    def create_provider_profile(self, account_id: str) -> ProviderProfile:
        """Insert the provider profile linked to ``account_id``."""
        profile_id = str(uuid.uuid4())
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    INSERT INTO provider_profiles (profile_id, account_id, created_at)
                    VALUES (%s, %s, %s)
                    RETURNING profile_id, account_id, created_at
                    """,
                    (profile_id, account_id, datetime.now(timezone.utc)),
                )
                row = cur.fetchone()
                conn.commit()
        return ProviderProfile(profile_id=str(row[0]), account_id=str(row[1]), created_at=row[2])

    def get_profile(self, account_id: str, role: Role) -> Profile | None:
        """Load the profile variant that ``role`` owns for the account."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                if role is Role.consumer:
                    cur.execute(
                        """
                        SELECT profile_id, account_id, type, created_at
                        FROM consumer_profiles
                        WHERE account_id = %s
                        """,
                        (account_id,),
                    )
                    row = cur.fetchone()
                    if not row:
                        return None
                    return ConsumerProfile(
                        profile_id=str(row[0]),
                        account_id=str(row[1]),
                        type=ProfileType(row[2]),
                        created_at=row[3],
                    )

                cur.execute(
                    """
                    SELECT profile_id, account_id, created_at
                    FROM provider_profiles
                    WHERE account_id = %s
                    """,
                    (account_id,),
                )
                row = cur.fetchone()
                if not row:
                    return None
                return ProviderProfile(profile_id=str(row[0]), account_id=str(row[1]), created_at=row[2])
