# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""PostgreSQL implementation of the NEDA repositories.

All repositories of one unit of work share a single cursor, so whatever they
write commits or rolls back as one transaction. The "one active profile per
(user, kind)" rule is guaranteed by the ``uq_profiles_active_kind`` partial
unique index; a violation surfaces as ``AlreadyExistsError``.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from psycopg2 import errors as pg_errors
from psycopg2 import sql
from psycopg2.extras import Json

from ..core.db import Database
from ..core.exceptions import AlreadyExistsError, NotFoundError
from ..core.models import (
    AuditFilter,
    AuditRecord,
    CatalogEntry,
    CatalogKind,
    Credential,
    OrderFilter,
    OrderSort,
    Pagination,
    PaymentOrder,
    Principal,
    PrincipalFilter,
    PrincipalSort,
    Profile,
    ProfileKind,
    TransactionSummary,
    VerificationStatus,
    profile_from_row,
)

logger = logging.getLogger(__name__)

ACTIVE_PROFILE_INDEX = "uq_profiles_active_kind"

# (table, identifying column) per catalog
CATALOG_TABLES: dict[CatalogKind, tuple[str, str]] = {
    CatalogKind.TOKEN: ("tokens", "symbol"),
    CatalogKind.CURRENCY: ("fiat_currencies", "code"),
}


def _like(term: str) -> str:
    """Build an ILIKE substring pattern with wildcards in ``term`` escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _where(clauses: list[sql.Composable]) -> sql.Composable:
    if not clauses:
        return sql.SQL("")
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses)


class PostgresPrincipalRepository:
    def __init__(self, cur: Any):
        self.cur = cur

    def add(self, principal: Principal) -> Principal:
        self.cur.execute(
            """
            INSERT INTO user_profiles (id, business_type, verification_status, company_name, email,
                                       website, phone, address, country, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                principal.id,
                principal.business_type.value,
                principal.verification_status.value,
                principal.company_name,
                principal.email,
                principal.website,
                principal.phone,
                principal.address,
                principal.country,
                principal.created_at,
                principal.updated_at,
            ),
        )
        return Principal.from_row(self.cur.fetchone())

    def get(self, user_id: str) -> Principal | None:
        self.cur.execute("SELECT * FROM user_profiles WHERE id = %s", (user_id,))
        row = self.cur.fetchone()
        return Principal.from_row(row) if row else None

    def lock(self, user_id: str) -> Principal | None:
        self.cur.execute("SELECT * FROM user_profiles WHERE id = %s FOR UPDATE", (user_id,))
        row = self.cur.fetchone()
        return Principal.from_row(row) if row else None

    def set_verification_status(self, user_id: str, status: VerificationStatus, now: datetime) -> Principal:
        self.cur.execute(
            "UPDATE user_profiles SET verification_status = %s, updated_at = %s WHERE id = %s RETURNING *",
            (status.value, now, user_id),
        )
        row = self.cur.fetchone()
        if row is None:
            raise NotFoundError("User", user_id)
        return Principal.from_row(row)

    def search(
        self,
        filters: PrincipalFilter,
        pagination: Pagination,
        sort: PrincipalSort,
    ) -> tuple[list[Principal], int]:
        clauses: list[sql.Composable] = []
        params: list[Any] = []
        if filters.verification_status:
            clauses.append(sql.SQL("verification_status = ANY(%s)"))
            params.append(sorted(s.value for s in filters.verification_status))
        if filters.business_type:
            clauses.append(sql.SQL("business_type = ANY(%s)"))
            params.append(sorted(k.value for k in filters.business_type))
        if filters.date_from:
            clauses.append(sql.SQL("created_at >= %s"))
            params.append(filters.date_from)
        if filters.date_to:
            clauses.append(sql.SQL("created_at <= %s"))
            params.append(filters.date_to)
        if filters.search:
            clauses.append(sql.SQL("(company_name ILIKE %s OR email ILIKE %s)"))
            pattern = _like(filters.search)
            params.extend([pattern, pattern])

        where = _where(clauses)
        self.cur.execute(sql.SQL("SELECT COUNT(*) AS count FROM user_profiles") + where, params)
        total = self.cur.fetchone()["count"]

        order = sql.SQL(" ORDER BY {col} {direction} NULLS LAST, id {direction} LIMIT %s OFFSET %s").format(
            col=sql.Identifier(sort.sort_by),
            direction=sql.SQL("DESC" if sort.descending else "ASC"),
        )
        self.cur.execute(
            sql.SQL("SELECT * FROM user_profiles") + where + order,
            [*params, pagination.limit, pagination.offset],
        )
        return [Principal.from_row(r) for r in self.cur.fetchall()], total

    def count_by_status(self) -> dict[VerificationStatus, int]:
        self.cur.execute("SELECT verification_status, COUNT(*) AS count FROM user_profiles GROUP BY verification_status")
        counts = {status: 0 for status in VerificationStatus}
        for row in self.cur.fetchall():
            counts[VerificationStatus(row["verification_status"])] = row["count"]
        return counts


class PostgresCredentialRepository:
    def __init__(self, cur: Any):
        self.cur = cur

    def add(self, credential: Credential) -> Credential:
        self.cur.execute(
            """
            INSERT INTO api_keys (id, user_id, name, public_key, secret_hash, permissions,
                                  is_active, expires_at, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                credential.id,
                credential.user_id,
                credential.name,
                credential.public_key,
                credential.secret_hash,
                Json(credential.permissions.to_dict()),
                credential.is_active,
                credential.expires_at,
                credential.created_at,
                credential.updated_at,
            ),
        )
        return Credential.from_row(self.cur.fetchone())

    def get(self, credential_id: str) -> Credential | None:
        self.cur.execute("SELECT * FROM api_keys WHERE id = %s", (credential_id,))
        row = self.cur.fetchone()
        return Credential.from_row(row) if row else None

    def get_active_by_public_key(self, public_key: str) -> Credential | None:
        self.cur.execute(
            "SELECT * FROM api_keys WHERE public_key = %s AND is_active = true",
            (public_key,),
        )
        row = self.cur.fetchone()
        return Credential.from_row(row) if row else None

    def list_for_owners(self, user_ids: list[str]) -> list[Credential]:
        if not user_ids:
            return []
        self.cur.execute(
            "SELECT * FROM api_keys WHERE user_id = ANY(%s::uuid[]) ORDER BY created_at DESC, id",
            (list(user_ids),),
        )
        return [Credential.from_row(r) for r in self.cur.fetchall()]

    def deactivate(self, credential_id: str, now: datetime) -> bool:
        self.cur.execute(
            "UPDATE api_keys SET is_active = false, updated_at = %s WHERE id = %s AND is_active = true",
            (now, credential_id),
        )
        return self.cur.rowcount > 0

    def touch_last_used(self, credential_id: str, now: datetime) -> None:
        self.cur.execute("UPDATE api_keys SET last_used_at = %s WHERE id = %s", (now, credential_id))

    def delete(self, credential_id: str) -> bool:
        self.cur.execute("DELETE FROM api_keys WHERE id = %s", (credential_id,))
        return self.cur.rowcount > 0


class PostgresProfileRepository:
    def __init__(self, cur: Any):
        self.cur = cur

    def add(self, profile: Profile) -> Profile:
        try:
            self.cur.execute(
                """
                INSERT INTO profiles (id, user_id, kind, is_active, attributes, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    profile.id,
                    profile.user_id,
                    profile.kind.value,
                    profile.is_active,
                    Json(profile.attributes()),
                    profile.created_at,
                    profile.updated_at,
                ),
            )
        except pg_errors.UniqueViolation as e:
            if getattr(e.diag, "constraint_name", None) != ACTIVE_PROFILE_INDEX:
                raise
            logger.debug("Active %s profile conflict for user %s", profile.kind.value, profile.user_id)
            raise AlreadyExistsError(f"User already has an active {profile.kind.value} profile") from e
        return profile_from_row(self.cur.fetchone())

    def get_active(self, user_id: str, kind: ProfileKind) -> Profile | None:
        self.cur.execute(
            "SELECT * FROM profiles WHERE user_id = %s AND kind = %s AND is_active = true",
            (user_id, kind.value),
        )
        row = self.cur.fetchone()
        return profile_from_row(row) if row else None

    def latest(self, user_id: str, kind: ProfileKind) -> Profile | None:
        self.cur.execute(
            "SELECT * FROM profiles WHERE user_id = %s AND kind = %s ORDER BY created_at DESC, id DESC LIMIT 1",
            (user_id, kind.value),
        )
        row = self.cur.fetchone()
        return profile_from_row(row) if row else None

    def deactivate(self, profile_id: str, now: datetime) -> Profile:
        self.cur.execute(
            "UPDATE profiles SET is_active = false, updated_at = %s WHERE id = %s RETURNING *",
            (now, profile_id),
        )
        row = self.cur.fetchone()
        if row is None:
            raise NotFoundError("Profile", profile_id)
        return profile_from_row(row)

    def list_for_users(self, user_ids: list[str]) -> list[Profile]:
        if not user_ids:
            return []
        self.cur.execute(
            "SELECT * FROM profiles WHERE user_id = ANY(%s::uuid[]) ORDER BY created_at DESC, id",
            (list(user_ids),),
        )
        return [profile_from_row(r) for r in self.cur.fetchall()]

    def counts(self, kind: ProfileKind) -> tuple[int, int]:
        self.cur.execute(
            """
            SELECT COUNT(*) AS total, COUNT(*) FILTER (WHERE is_active) AS active
            FROM profiles WHERE kind = %s
            """,
            (kind.value,),
        )
        row = self.cur.fetchone()
        return row["total"], row["active"]


class PostgresAuditRecordRepository:
    def __init__(self, cur: Any):
        self.cur = cur

    def append(self, record: AuditRecord) -> AuditRecord:
        self.cur.execute(
            """
            INSERT INTO audit_logs (id, actor_id, action, resource_type, resource_id, details, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                record.id,
                record.actor_id,
                record.action,
                record.resource_type,
                record.resource_id,
                Json(record.details),
                record.created_at,
            ),
        )
        return AuditRecord.from_row(self.cur.fetchone())

    def query(self, filters: AuditFilter, pagination: Pagination) -> tuple[list[AuditRecord], int]:
        clauses: list[sql.Composable] = []
        params: list[Any] = []
        if filters.date_from:
            clauses.append(sql.SQL("created_at >= %s"))
            params.append(filters.date_from)
        if filters.date_to:
            clauses.append(sql.SQL("created_at <= %s"))
            params.append(filters.date_to)
        if filters.search:
            clauses.append(sql.SQL("(action ILIKE %s OR resource_type ILIKE %s)"))
            pattern = _like(filters.search)
            params.extend([pattern, pattern])
        if filters.actor_id:
            clauses.append(sql.SQL("actor_id = %s"))
            params.append(filters.actor_id)
        if filters.target_id:
            clauses.append(sql.SQL("resource_id = %s"))
            params.append(filters.target_id)

        where = _where(clauses)
        self.cur.execute(sql.SQL("SELECT COUNT(*) AS count FROM audit_logs") + where, params)
        total = self.cur.fetchone()["count"]
        self.cur.execute(
            sql.SQL("SELECT * FROM audit_logs") + where + sql.SQL(" ORDER BY created_at DESC, id DESC LIMIT %s OFFSET %s"),
            [*params, pagination.limit, pagination.offset],
        )
        return [AuditRecord.from_row(r) for r in self.cur.fetchall()], total


class PostgresLedgerRepository:
    def __init__(self, cur: Any):
        self.cur = cur

    def recent_transactions(self, user_ids: list[str], per_user: int) -> list[TransactionSummary]:
        if not user_ids:
            return []
        self.cur.execute(
            """
            SELECT * FROM (
                SELECT t.*, ROW_NUMBER() OVER (PARTITION BY user_id ORDER BY created_at DESC, id) AS rn
                FROM transactions t
                WHERE user_id = ANY(%s::uuid[])
            ) ranked
            WHERE rn <= %s
            ORDER BY created_at DESC, id
            """,
            (list(user_ids), per_user),
        )
        return [TransactionSummary.from_row(r) for r in self.cur.fetchall()]

    def transaction_count(self, since: datetime | None = None) -> int:
        if since is None:
            self.cur.execute("SELECT COUNT(*) AS count FROM transactions")
        else:
            self.cur.execute("SELECT COUNT(*) AS count FROM transactions WHERE created_at >= %s", (since,))
        return self.cur.fetchone()["count"]

    def order_status_counts(self) -> dict[str, int]:
        self.cur.execute("SELECT status, COUNT(*) AS count FROM payment_orders GROUP BY status")
        return {row["status"]: row["count"] for row in self.cur.fetchall()}

    def order_volume_usd(self, since: datetime | None = None) -> float:
        if since is None:
            self.cur.execute("SELECT COALESCE(SUM(amount_in_usd), 0) AS total FROM payment_orders")
        else:
            self.cur.execute(
                "SELECT COALESCE(SUM(amount_in_usd), 0) AS total FROM payment_orders WHERE created_at >= %s",
                (since,),
            )
        return float(self.cur.fetchone()["total"])

    def search_orders(
        self,
        filters: OrderFilter,
        pagination: Pagination,
        sort: OrderSort,
    ) -> tuple[list[PaymentOrder], int]:
        clauses: list[sql.Composable] = []
        params: list[Any] = []
        if filters.status:
            clauses.append(sql.SQL("status = ANY(%s)"))
            params.append(sorted(filters.status))
        if filters.date_from:
            clauses.append(sql.SQL("created_at >= %s"))
            params.append(filters.date_from)
        if filters.date_to:
            clauses.append(sql.SQL("created_at <= %s"))
            params.append(filters.date_to)

        where = _where(clauses)
        self.cur.execute(sql.SQL("SELECT COUNT(*) AS count FROM payment_orders") + where, params)
        total = self.cur.fetchone()["count"]

        order = sql.SQL(" ORDER BY {col} {direction} NULLS LAST, id {direction} LIMIT %s OFFSET %s").format(
            col=sql.Identifier(sort.sort_by),
            direction=sql.SQL("DESC" if sort.descending else "ASC"),
        )
        self.cur.execute(
            sql.SQL("SELECT * FROM payment_orders") + where + order,
            [*params, pagination.limit, pagination.offset],
        )
        return [PaymentOrder.from_row(r) for r in self.cur.fetchall()], total

    def enabled_tokens(self) -> int:
        self.cur.execute("SELECT COUNT(*) AS count FROM tokens WHERE is_enabled = true")
        return self.cur.fetchone()["count"]

    def enabled_currencies(self) -> int:
        self.cur.execute("SELECT COUNT(*) AS count FROM fiat_currencies WHERE is_enabled = true")
        return self.cur.fetchone()["count"]


class PostgresCatalogRepository:
    def __init__(self, cur: Any):
        self.cur = cur

    @staticmethod
    def _columns(kind: CatalogKind) -> sql.Composable:
        _, code = CATALOG_TABLES[kind]
        return sql.SQL("id, {code} AS code, is_enabled, updated_at").format(code=sql.Identifier(code))

    @staticmethod
    def _table(kind: CatalogKind) -> sql.Identifier:
        return sql.Identifier(CATALOG_TABLES[kind][0])

    def list_entries(self, kind: CatalogKind) -> list[CatalogEntry]:
        self.cur.execute(
            sql.SQL("SELECT {columns} FROM {table} ORDER BY code, id").format(
                columns=self._columns(kind), table=self._table(kind)
            )
        )
        return [CatalogEntry.from_row(kind, r) for r in self.cur.fetchall()]

    def lock(self, kind: CatalogKind, entry_id: str) -> CatalogEntry | None:
        self.cur.execute(
            sql.SQL("SELECT {columns} FROM {table} WHERE id = %s FOR UPDATE").format(
                columns=self._columns(kind), table=self._table(kind)
            ),
            (entry_id,),
        )
        row = self.cur.fetchone()
        return CatalogEntry.from_row(kind, row) if row else None

    def set_enabled(self, kind: CatalogKind, entry_id: str, enabled: bool, now: datetime) -> CatalogEntry:
        self.cur.execute(
            sql.SQL("UPDATE {table} SET is_enabled = %s, updated_at = %s WHERE id = %s RETURNING {columns}").format(
                columns=self._columns(kind), table=self._table(kind)
            ),
            (enabled, now, entry_id),
        )
        row = self.cur.fetchone()
        if row is None:
            raise NotFoundError(kind.value.capitalize(), entry_id)
        return CatalogEntry.from_row(kind, row)


class PostgresUnitOfWork:
    """All repositories bound to one cursor (one transaction)."""

    def __init__(self, cur: Any):
        self.cur = cur
        self.principals = PostgresPrincipalRepository(cur)
        self.credentials = PostgresCredentialRepository(cur)
        self.profiles = PostgresProfileRepository(cur)
        self.audit = PostgresAuditRecordRepository(cur)
        self.ledger = PostgresLedgerRepository(cur)
        self.catalog = PostgresCatalogRepository(cur)


class PostgresStore:
    """Store handle backed by a ``Database`` pool."""

    def __init__(self, database: Database):
        self.database = database

    @contextmanager
    def transaction(self, read_only: bool = False) -> Generator[PostgresUnitOfWork, None, None]:
        with self.database.cursor() as cur:
            if read_only:
                cur.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ ONLY")
            yield PostgresUnitOfWork(cur)
