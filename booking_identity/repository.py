"""Postgres repository for account identity and credential state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from psycopg import errors, sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, Address, Role
from .domain.contracts import CREDENTIAL_FIELDS, NewAccount, ProfileUpdate
from .domain.errors import DuplicateCredentialError

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    mobile_number TEXT NOT NULL UNIQUE,
    address_line1 TEXT NOT NULL,
    address_landmark TEXT,
    address_pincode TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin', 'customer')),
    password_hash TEXT NOT NULL,
    is_email_verified BOOLEAN NOT NULL DEFAULT FALSE,
    email_verification_token_hash TEXT,
    email_verification_expires_at TIMESTAMPTZ,
    password_reset_token_hash TEXT,
    password_reset_expires_at TIMESTAMPTZ,
    refresh_token_hash TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS accounts_verification_hash_idx ON accounts (email_verification_token_hash);
CREATE INDEX IF NOT EXISTS accounts_reset_hash_idx ON accounts (password_reset_token_hash);
CREATE INDEX IF NOT EXISTS accounts_refresh_hash_idx ON accounts (refresh_token_hash);
"""

_COLUMNS = (
    "account_id",
    "name",
    "email",
    "mobile_number",
    "address_line1",
    "address_landmark",
    "address_pincode",
    "role",
    "password_hash",
    "is_email_verified",
    "created_at",
    "updated_at",
    "email_verification_token_hash",
    "email_verification_expires_at",
    "password_reset_token_hash",
    "password_reset_expires_at",
    "refresh_token_hash",
)
_SELECT_LIST = sql.SQL(", ").join(sql.Identifier(column) for column in _COLUMNS)


class AccountRepository:
    """Postgres-backed account persistence with conditional credential updates."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def create_schema(self) -> None:
        with self._pool.connection() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()

    def create_account(self, payload: NewAccount) -> Account:
        """Insert an unverified account; unique violations become ``DuplicateCredentialError``."""
        now = datetime.now(timezone.utc)
        query = sql.SQL(
            """
            INSERT INTO accounts (
                account_id, name, email, mobile_number, address_line1, address_landmark,
                address_pincode, role, password_hash, is_email_verified, created_at, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, FALSE, %s, %s)
            RETURNING {columns}
            """
        ).format(columns=_SELECT_LIST)
        params = (
            str(uuid.uuid4()),
            payload.name,
            payload.email,
            payload.mobile_number,
            payload.address.line1,
            payload.address.landmark,
            payload.address.pincode,
            Role(payload.role).value,
            payload.password_hash,
            now,
            now,
        )
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                conn.commit()
        except errors.UniqueViolation as exc:
            raise DuplicateCredentialError(_duplicate_message(exc)) from exc
        return self._map_record(row)

    def get_account(self, account_id: str) -> Account | None:
        return self._fetch_one("account_id", account_id)

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one("email", email)

    def find_by_mobile(self, mobile_number: str) -> Account | None:
        return self._fetch_one("mobile_number", mobile_number)

    def find_by_verification_hash(self, token_hash: str) -> Account | None:
        return self._fetch_one("email_verification_token_hash", token_hash)

    def find_by_reset_hash(self, token_hash: str) -> Account | None:
        return self._fetch_one("password_reset_token_hash", token_hash)

    def find_by_refresh_token_hash(self, token_hash: str) -> Account | None:
        return self._fetch_one("refresh_token_hash", token_hash)

    def list_accounts(self, *, limit: int = 50, offset: int = 0) -> list[Account]:
        query = sql.SQL("SELECT {columns} FROM accounts ORDER BY created_at, account_id LIMIT %s OFFSET %s").format(
            columns=_SELECT_LIST
        )
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, (limit, offset))
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def update_profile(self, account_id: str, changes: ProfileUpdate) -> Account | None:
        values: dict[str, Any] = {}
        if changes.name is not None:
            values["name"] = changes.name.strip()
        if changes.mobile_number is not None:
            values["mobile_number"] = changes.mobile_number.strip()
        if changes.address is not None:
            values["address_line1"] = changes.address.line1
            values["address_landmark"] = changes.address.landmark
            values["address_pincode"] = changes.address.pincode
        if changes.role is not None:
            values["role"] = Role(changes.role).value
        try:
            return self._update({"account_id": account_id}, values)
        except errors.UniqueViolation as exc:
            raise DuplicateCredentialError(_duplicate_message(exc)) from exc

    def delete_account(self, account_id: str) -> bool:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM accounts WHERE account_id = %s", (account_id,))
                deleted = cur.rowcount == 1
            conn.commit()
        return deleted

    def compare_and_set(
        self,
        account_id: str | None,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> Account | None:
        """Apply credential ``changes`` in one UPDATE guarded by the ``expected`` values.

        The guard and the write are a single statement, so of two callers
        expecting the same value only the first to commit sees a row back.
        """
        unknown = (set(expected) | set(changes)) - CREDENTIAL_FIELDS
        if unknown:
            raise ValueError(f"not credential fields: {sorted(unknown)}")
        if not changes:
            raise ValueError("compare_and_set requires at least one change")
        conditions: dict[str, Any] = dict(expected)
        if account_id is not None:
            conditions["account_id"] = account_id
        if not conditions:
            raise ValueError("compare_and_set requires an account id or an expected value")
        return self._update(conditions, dict(changes))

    def _update(self, conditions: Mapping[str, Any], values: Mapping[str, Any]) -> Account | None:
        assignments = [sql.SQL("{} = %s").format(sql.Identifier(column)) for column in values]
        assignments.append(sql.SQL("updated_at = %s"))
        guards = [
            sql.SQL("{} IS NOT DISTINCT FROM %s").format(sql.Identifier(column)) for column in conditions
        ]
        query = sql.SQL("UPDATE accounts SET {assignments} WHERE {guards} RETURNING {columns}").format(
            assignments=sql.SQL(", ").join(assignments),
            guards=sql.SQL(" AND ").join(guards),
            columns=_SELECT_LIST,
        )
        params = [*values.values(), datetime.now(timezone.utc), *conditions.values()]
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
            conn.commit()
        return self._map_record(row) if row else None

    def _fetch_one(self, column: str, value: Any) -> Account | None:
        query = sql.SQL("SELECT {columns} FROM accounts WHERE {column} = %s").format(
            columns=_SELECT_LIST, column=sql.Identifier(column)
        )
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, (value,))
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            name=row[1],
            email=row[2],
            mobile_number=row[3],
            address=Address(line1=row[4], landmark=row[5], pincode=row[6]),
            role=Role(row[7]),
            password_hash=row[8],
            is_email_verified=row[9],
            created_at=row[10],
            updated_at=row[11],
            email_verification_token_hash=row[12],
            email_verification_expires_at=row[13],
            password_reset_token_hash=row[14],
            password_reset_expires_at=row[15],
            refresh_token_hash=row[16],
        )


def _duplicate_message(exc: errors.UniqueViolation) -> str:
    constraint = getattr(exc.diag, "constraint_name", None) or ""
    if "mobile" in constraint:
        return "mobile number already registered"
    return "email already registered"
