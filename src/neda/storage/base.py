# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Repository protocols for the NEDA store.

Services never talk to a database client directly. They open a unit of work
with ``Store.transaction()`` and use the typed repositories it exposes; every
repository call made through one unit of work commits or rolls back together.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

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
)


class PrincipalRepository(Protocol):
    """Accounts (``user_profiles``)."""

    def add(self, principal: Principal) -> Principal: ...

    def get(self, user_id: str) -> Principal | None: ...

    def lock(self, user_id: str) -> Principal | None:
        """Fetch and lock the principal row until the unit of work ends."""
        ...

    def set_verification_status(self, user_id: str, status: VerificationStatus, now: datetime) -> Principal: ...

    def search(
        self,
        filters: PrincipalFilter,
        pagination: Pagination,
        sort: PrincipalSort,
    ) -> tuple[list[Principal], int]: ...

    def count_by_status(self) -> dict[VerificationStatus, int]: ...


class CredentialRepository(Protocol):
    """API keys (``api_keys``)."""

    def add(self, credential: Credential) -> Credential: ...

    def get(self, credential_id: str) -> Credential | None: ...

    def get_active_by_public_key(self, public_key: str) -> Credential | None: ...

    def list_for_owners(self, user_ids: list[str]) -> list[Credential]:
        """Credentials of every given owner, newest first."""
        ...

    def deactivate(self, credential_id: str, now: datetime) -> bool:
        """Set is_active=false. Returns False when it was already inactive."""
        ...

    def touch_last_used(self, credential_id: str, now: datetime) -> None: ...

    def delete(self, credential_id: str) -> bool: ...


class ProfileRepository(Protocol):
    """Sender and provider profiles (``profiles``)."""

    def add(self, profile: Profile) -> Profile:
        """Insert an active profile.

        Raises:
            AlreadyExistsError: an active profile of the same kind exists.
        """
        ...

    def get_active(self, user_id: str, kind: ProfileKind) -> Profile | None: ...

    def latest(self, user_id: str, kind: ProfileKind) -> Profile | None:
        """Most recently created profile of this kind, active or not."""
        ...

    def deactivate(self, profile_id: str, now: datetime) -> Profile: ...

    def list_for_users(self, user_ids: list[str]) -> list[Profile]: ...

    def counts(self, kind: ProfileKind) -> tuple[int, int]:
        """(total, active) profiles of this kind."""
        ...


class AuditRecordRepository(Protocol):
    """Append-only ledger (``audit_logs``). There is no update or delete."""

    def append(self, record: AuditRecord) -> AuditRecord: ...

    def query(self, filters: AuditFilter, pagination: Pagination) -> tuple[list[AuditRecord], int]:
        """Matching records newest first, plus the total match count."""
        ...


class LedgerRepository(Protocol):
    """Read-only access to transactions, payment orders and catalog counts."""

    def recent_transactions(self, user_ids: list[str], per_user: int) -> list[TransactionSummary]: ...

    def transaction_count(self, since: datetime | None = None) -> int: ...

    def order_status_counts(self) -> dict[str, int]: ...

    def order_volume_usd(self, since: datetime | None = None) -> float: ...

    def search_orders(
        self,
        filters: OrderFilter,
        pagination: Pagination,
        sort: OrderSort,
    ) -> tuple[list[PaymentOrder], int]:
        """Matching payment orders in sort order, plus the total match count."""
        ...

    def enabled_tokens(self) -> int: ...

    def enabled_currencies(self) -> int: ...


class CatalogRepository(Protocol):
    """Supported tokens and fiat currencies (``tokens``, ``fiat_currencies``)."""

    def list_entries(self, kind: CatalogKind) -> list[CatalogEntry]: ...

    def lock(self, kind: CatalogKind, entry_id: str) -> CatalogEntry | None: ...

    def set_enabled(self, kind: CatalogKind, entry_id: str, enabled: bool, now: datetime) -> CatalogEntry: ...


class UnitOfWork(Protocol):
    """Repositories bound to one transaction."""

    principals: PrincipalRepository
    credentials: CredentialRepository
    profiles: ProfileRepository
    audit: AuditRecordRepository
    ledger: LedgerRepository
    catalog: CatalogRepository


class Store(Protocol):
    """Injected store handle."""

    def transaction(self, read_only: bool = False) -> AbstractContextManager[UnitOfWork]:
        """Open a unit of work: commit on clean exit, roll back on any exception.

        ``read_only`` units see one consistent snapshot for all their reads.
        """
        ...
