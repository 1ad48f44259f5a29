# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""In-memory store for tests and development.

Thread-safe but not persistent: data is lost on restart. One re-entrant lock
serializes units of work; a unit that raises is rolled back by restoring the
snapshot taken when it began.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from ..core.db import generate_id
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
)


@dataclass
class _State:
    principals: dict[str, Principal] = field(default_factory=dict)
    credentials: dict[str, Credential] = field(default_factory=dict)
    profiles: list[Profile] = field(default_factory=list)
    audit: list[AuditRecord] = field(default_factory=list)
    transactions: list[TransactionSummary] = field(default_factory=list)
    orders: list[PaymentOrder] = field(default_factory=list)
    catalog: dict[CatalogKind, list[CatalogEntry]] = field(
        default_factory=lambda: {kind: [] for kind in CatalogKind}
    )


def _page(items: list[Any], pagination: Pagination) -> list[Any]:
    return items[pagination.offset : pagination.offset + pagination.limit]


def _contains(haystack: str | None, needle: str) -> bool:
    return haystack is not None and needle.lower() in haystack.lower()


class InMemoryPrincipalRepository:
    def __init__(self, state: _State):
        self.state = state

    def add(self, principal: Principal) -> Principal:
        if principal.id in self.state.principals:
            raise AlreadyExistsError("User already exists", existing_id=principal.id)
        self.state.principals[principal.id] = copy.deepcopy(principal)
        return copy.deepcopy(principal)

    def get(self, user_id: str) -> Principal | None:
        principal = self.state.principals.get(user_id)
        return copy.deepcopy(principal) if principal else None

    def lock(self, user_id: str) -> Principal | None:
        # The store lock is already held for the whole unit of work
        return self.get(user_id)

    def set_verification_status(self, user_id: str, status: VerificationStatus, now: datetime) -> Principal:
        principal = self.state.principals.get(user_id)
        if principal is None:
            raise NotFoundError("User", user_id)
        principal.verification_status = status
        principal.updated_at = now
        return copy.deepcopy(principal)

    def search(
        self,
        filters: PrincipalFilter,
        pagination: Pagination,
        sort: PrincipalSort,
    ) -> tuple[list[Principal], int]:
        matches = []
        for p in self.state.principals.values():
            if filters.verification_status and p.verification_status not in filters.verification_status:
                continue
            if filters.business_type and p.business_type not in filters.business_type:
                continue
            if filters.date_from and p.created_at < filters.date_from:
                continue
            if filters.date_to and p.created_at > filters.date_to:
                continue
            if filters.search and not (_contains(p.company_name, filters.search) or _contains(p.email, filters.search)):
                continue
            matches.append(p)

        # NULLS LAST in both directions, ties broken by id
        present = [p for p in matches if getattr(p, sort.sort_by) is not None]
        missing = [p for p in matches if getattr(p, sort.sort_by) is None]
        present.sort(key=lambda p: (getattr(p, sort.sort_by), p.id), reverse=sort.descending)
        missing.sort(key=lambda p: p.id, reverse=sort.descending)
        ordered = present + missing
        return [copy.deepcopy(p) for p in _page(ordered, pagination)], len(ordered)

    def count_by_status(self) -> dict[VerificationStatus, int]:
        counts = {status: 0 for status in VerificationStatus}
        for p in self.state.principals.values():
            counts[p.verification_status] += 1
        return counts


class InMemoryCredentialRepository:
    def __init__(self, state: _State):
        self.state = state

    def add(self, credential: Credential) -> Credential:
        if any(c.public_key == credential.public_key for c in self.state.credentials.values()):
            raise AlreadyExistsError("Public key already exists")
        self.state.credentials[credential.id] = copy.deepcopy(credential)
        return copy.deepcopy(credential)

    def get(self, credential_id: str) -> Credential | None:
        credential = self.state.credentials.get(credential_id)
        return copy.deepcopy(credential) if credential else None

    def get_active_by_public_key(self, public_key: str) -> Credential | None:
        for c in self.state.credentials.values():
            if c.public_key == public_key and c.is_active:
                return copy.deepcopy(c)
        return None

    def list_for_owners(self, user_ids: list[str]) -> list[Credential]:
        owners = set(user_ids)
        found = [c for c in self.state.credentials.values() if c.user_id in owners]
        found.sort(key=lambda c: c.id)
        found.sort(key=lambda c: c.created_at, reverse=True)
        return [copy.deepcopy(c) for c in found]

    def deactivate(self, credential_id: str, now: datetime) -> bool:
        credential = self.state.credentials.get(credential_id)
        if credential is None or not credential.is_active:
            return False
        credential.is_active = False
        credential.updated_at = now
        return True

    def touch_last_used(self, credential_id: str, now: datetime) -> None:
        credential = self.state.credentials.get(credential_id)
        if credential is not None:
            credential.last_used_at = now

    def delete(self, credential_id: str) -> bool:
        return self.state.credentials.pop(credential_id, None) is not None


class InMemoryProfileRepository:
    def __init__(self, state: _State):
        self.state = state

    def add(self, profile: Profile) -> Profile:
        if profile.is_active and self.get_active(profile.user_id, profile.kind) is not None:
            raise AlreadyExistsError(f"User already has an active {profile.kind.value} profile")
        self.state.profiles.append(copy.deepcopy(profile))
        return copy.deepcopy(profile)

    def get_active(self, user_id: str, kind: ProfileKind) -> Profile | None:
        for p in self.state.profiles:
            if p.user_id == user_id and p.kind is kind and p.is_active:
                return copy.deepcopy(p)
        return None

    def latest(self, user_id: str, kind: ProfileKind) -> Profile | None:
        # Insertion order breaks created_at ties
        candidates = [p for p in self.state.profiles if p.user_id == user_id and p.kind is kind]
        if not candidates:
            return None
        newest = max(enumerate(candidates), key=lambda pair: (pair[1].created_at, pair[0]))[1]
        return copy.deepcopy(newest)

    def deactivate(self, profile_id: str, now: datetime) -> Profile:
        for i, p in enumerate(self.state.profiles):
            if p.id == profile_id:
                self.state.profiles[i] = replace(p, is_active=False, updated_at=now)
                return copy.deepcopy(self.state.profiles[i])
        raise NotFoundError("Profile", profile_id)

    def list_for_users(self, user_ids: list[str]) -> list[Profile]:
        owners = set(user_ids)
        found = [p for p in self.state.profiles if p.user_id in owners]
        found.sort(key=lambda p: p.created_at, reverse=True)
        return [copy.deepcopy(p) for p in found]

    def counts(self, kind: ProfileKind) -> tuple[int, int]:
        of_kind = [p for p in self.state.profiles if p.kind is kind]
        return len(of_kind), sum(1 for p in of_kind if p.is_active)


class InMemoryAuditRecordRepository:
    def __init__(self, state: _State):
        self.state = state

    def append(self, record: AuditRecord) -> AuditRecord:
        self.state.audit.append(copy.deepcopy(record))
        return copy.deepcopy(record)

    def query(self, filters: AuditFilter, pagination: Pagination) -> tuple[list[AuditRecord], int]:
        results = []
        for record in reversed(self.state.audit):  # Most recent first
            if filters.date_from and record.created_at < filters.date_from:
                continue
            if filters.date_to and record.created_at > filters.date_to:
                continue
            if filters.search and not (
                _contains(record.action, filters.search) or _contains(record.resource_type, filters.search)
            ):
                continue
            if filters.actor_id and record.actor_id != filters.actor_id:
                continue
            if filters.target_id and record.resource_id != filters.target_id:
                continue
            results.append(record)
        # Stable sort keeps append order among equal timestamps
        results.sort(key=lambda r: r.created_at, reverse=True)
        return [copy.deepcopy(r) for r in _page(results, pagination)], len(results)


class InMemoryLedgerRepository:
    def __init__(self, state: _State):
        self.state = state

    def recent_transactions(self, user_ids: list[str], per_user: int) -> list[TransactionSummary]:
        by_user: dict[str, list[TransactionSummary]] = {}
        for t in sorted(self.state.transactions, key=lambda t: t.created_at, reverse=True):
            if t.user_id in user_ids:
                by_user.setdefault(t.user_id, []).append(t)
        recent = [t for txs in by_user.values() for t in txs[:per_user]]
        recent.sort(key=lambda t: t.created_at, reverse=True)
        return [copy.deepcopy(t) for t in recent]

    def transaction_count(self, since: datetime | None = None) -> int:
        return sum(1 for t in self.state.transactions if since is None or t.created_at >= since)

    def order_status_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for order in self.state.orders:
            counts[order.status] = counts.get(order.status, 0) + 1
        return counts

    def order_volume_usd(self, since: datetime | None = None) -> float:
        return float(sum(o.amount_in_usd for o in self.state.orders if since is None or o.created_at >= since))

    def search_orders(
        self,
        filters: OrderFilter,
        pagination: Pagination,
        sort: OrderSort,
    ) -> tuple[list[PaymentOrder], int]:
        matches = [
            o
            for o in self.state.orders
            if (not filters.status or o.status in filters.status)
            and (not filters.date_from or o.created_at >= filters.date_from)
            and (not filters.date_to or o.created_at <= filters.date_to)
        ]
        matches.sort(key=lambda o: (getattr(o, sort.sort_by), o.id), reverse=sort.descending)
        return [copy.deepcopy(o) for o in _page(matches, pagination)], len(matches)

    def enabled_tokens(self) -> int:
        return sum(1 for t in self.state.catalog[CatalogKind.TOKEN] if t.is_enabled)

    def enabled_currencies(self) -> int:
        return sum(1 for c in self.state.catalog[CatalogKind.CURRENCY] if c.is_enabled)


class InMemoryCatalogRepository:
    def __init__(self, state: _State):
        self.state = state

    def list_entries(self, kind: CatalogKind) -> list[CatalogEntry]:
        entries = sorted(self.state.catalog[kind], key=lambda e: (e.code, e.id))
        return [copy.deepcopy(e) for e in entries]

    def lock(self, kind: CatalogKind, entry_id: str) -> CatalogEntry | None:
        for entry in self.state.catalog[kind]:
            if entry.id == entry_id:
                return copy.deepcopy(entry)
        return None

    def set_enabled(self, kind: CatalogKind, entry_id: str, enabled: bool, now: datetime) -> CatalogEntry:
        for entry in self.state.catalog[kind]:
            if entry.id == entry_id:
                entry.is_enabled = enabled
                entry.updated_at = now
                return copy.deepcopy(entry)
        raise NotFoundError(kind.value.capitalize(), entry_id)


class InMemoryUnitOfWork:
    def __init__(self, state: _State):
        self.principals = InMemoryPrincipalRepository(state)
        self.credentials = InMemoryCredentialRepository(state)
        self.profiles = InMemoryProfileRepository(state)
        self.audit = InMemoryAuditRecordRepository(state)
        self.ledger = InMemoryLedgerRepository(state)
        self.catalog = InMemoryCatalogRepository(state)


class InMemoryStore:
    """Store handle over process-local state."""

    def __init__(self):
        self._state = _State()
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self, read_only: bool = False) -> Generator[InMemoryUnitOfWork, None, None]:
        with self._lock:
            snapshot = None if read_only else copy.deepcopy(self._state)
            try:
                yield InMemoryUnitOfWork(self._state)
            except BaseException:
                if snapshot is not None:
                    self._restore(snapshot)
                raise

    def _restore(self, snapshot: _State) -> None:
        # Repositories hold a reference to the live state object, so copy fields in place
        for name in _State.__dataclass_fields__:
            setattr(self._state, name, getattr(snapshot, name))

    # Ledger seeding (transactions, orders and catalog entries are written elsewhere)

    def seed_transaction(self, transaction: TransactionSummary) -> None:
        with self._lock:
            self._state.transactions.append(copy.deepcopy(transaction))

    def seed_payment_order(self, order_id: str, user_id: str, status: str, amount_in_usd: float, created_at: datetime) -> None:
        with self._lock:
            self._state.orders.append(
                PaymentOrder(
                    id=order_id,
                    user_id=user_id,
                    status=status,
                    amount_in_usd=amount_in_usd,
                    created_at=created_at,
                )
            )

    def seed_token(self, symbol: str, is_enabled: bool = True) -> CatalogEntry:
        return self._seed_catalog(CatalogKind.TOKEN, symbol, is_enabled)

    def seed_currency(self, code: str, is_enabled: bool = True) -> CatalogEntry:
        return self._seed_catalog(CatalogKind.CURRENCY, code, is_enabled)

    def _seed_catalog(self, kind: CatalogKind, code: str, is_enabled: bool) -> CatalogEntry:
        entry = CatalogEntry(id=generate_id(), kind=kind, code=code, is_enabled=is_enabled)
        with self._lock:
            self._state.catalog[kind].append(copy.deepcopy(entry))
        return entry
