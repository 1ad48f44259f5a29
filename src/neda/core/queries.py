# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Read side of the admin console: principal and order listings, dashboard stats."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from .models import (
    DashboardStats,
    OrderFilter,
    OrderSort,
    Page,
    Pagination,
    PrincipalFilter,
    PrincipalRow,
    PrincipalSort,
    ProfileKind,
    VerificationStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS_PER_USER = 5

PENDING_ORDER_STATUSES = ("pending", "processing")
FAILED_ORDER_STATUSES = ("failed", "cancelled")


def month_start(now: datetime) -> datetime:
    """Midnight on the first day of ``now``'s month, same timezone."""
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class AdminQueryEngine:
    """Composite read queries over the injected store."""

    def __init__(self, store: Any):
        self.store = store

    def list_principals(
        self,
        filters: PrincipalFilter | None = None,
        pagination: Pagination | None = None,
        sort: PrincipalSort | None = None,
    ) -> Page:
        """One page of principals with their profiles, keys and recent transactions.

        The page and its embedded records come from a single read-only
        snapshot. ``total_count`` counts every match, not just this page.
        """
        filters = filters or PrincipalFilter()
        pagination = pagination or Pagination()
        sort = sort or PrincipalSort()

        with self.store.transaction(read_only=True) as uow:
            principals, total = uow.principals.search(filters, pagination, sort)
            ids = [p.id for p in principals]
            profiles = uow.profiles.list_for_users(ids)
            credentials = uow.credentials.list_for_owners(ids)
            transactions = uow.ledger.recent_transactions(ids, RECENT_TRANSACTIONS_PER_USER)

        rows = {p.id: PrincipalRow(principal=p) for p in principals}
        for profile in profiles:
            rows[profile.user_id].profiles.append(profile)
        for credential in credentials:
            rows[credential.user_id].credentials.append(credential.summary())
        for transaction in transactions:
            rows[transaction.user_id].recent_transactions.append(transaction)

        return Page(
            rows=[rows[i] for i in ids],
            total_count=total,
            page=pagination.page,
            limit=pagination.limit,
        )

    def list_payment_orders(
        self,
        filters: OrderFilter | None = None,
        pagination: Pagination | None = None,
        sort: OrderSort | None = None,
    ) -> Page:
        """One page of payment orders filtered by status and creation date."""
        filters = filters or OrderFilter()
        pagination = pagination or Pagination()
        sort = sort or OrderSort()

        with self.store.transaction(read_only=True) as uow:
            orders, total = uow.ledger.search_orders(filters, pagination, sort)
        return Page(rows=orders, total_count=total, page=pagination.page, limit=pagination.limit)

    def dashboard_stats(self) -> DashboardStats:
        """Aggregate counters for the admin dashboard.

        Each sub-aggregate is read on its own. One that fails keeps its zero
        defaults and is named in ``stats.degraded``; the rest still report.
        """
        stats = DashboardStats()
        since = month_start(utcnow())

        sections: list[tuple[str, Callable[[Any, DashboardStats], None]]] = [
            ("users", self._user_stats),
            ("providers", lambda uow, s: self._profile_stats(uow, s, ProfileKind.PROVIDER)),
            ("senders", lambda uow, s: self._profile_stats(uow, s, ProfileKind.SENDER)),
            ("orders", self._order_stats),
            ("volume", lambda uow, s: self._volume_stats(uow, s, since)),
            ("transactions", lambda uow, s: self._transaction_stats(uow, s, since)),
            ("tokens", self._token_stats),
            ("currencies", self._currency_stats),
        ]
        for name, section in sections:
            partial = DashboardStats()
            try:
                with self.store.transaction(read_only=True) as uow:
                    section(uow, partial)
            except Exception as e:
                logger.warning("Dashboard aggregate %s unavailable: %s", name, e)
                stats.degraded.append(name)
                continue
            _merge(stats, partial)

        return stats

    @staticmethod
    def _user_stats(uow: Any, stats: DashboardStats) -> None:
        counts = uow.principals.count_by_status()
        stats.total_users = sum(counts.values())
        stats.verified_users = counts.get(VerificationStatus.VERIFIED, 0)
        stats.pending_verification = counts.get(VerificationStatus.PENDING, 0)
        stats.rejected_users = counts.get(VerificationStatus.REJECTED, 0)

    @staticmethod
    def _profile_stats(uow: Any, stats: DashboardStats, kind: ProfileKind) -> None:
        total, active = uow.profiles.counts(kind)
        if kind is ProfileKind.PROVIDER:
            stats.total_providers, stats.active_providers = total, active
        else:
            stats.total_senders, stats.active_senders = total, active

    @staticmethod
    def _order_stats(uow: Any, stats: DashboardStats) -> None:
        counts = uow.ledger.order_status_counts()
        stats.total_payment_orders = sum(counts.values())
        stats.completed_orders = counts.get("completed", 0)
        stats.pending_orders = sum(counts.get(s, 0) for s in PENDING_ORDER_STATUSES)
        stats.failed_orders = sum(counts.get(s, 0) for s in FAILED_ORDER_STATUSES)

    @staticmethod
    def _volume_stats(uow: Any, stats: DashboardStats, since: datetime) -> None:
        stats.total_volume_usd = uow.ledger.order_volume_usd()
        stats.monthly_volume_usd = uow.ledger.order_volume_usd(since=since)

    @staticmethod
    def _transaction_stats(uow: Any, stats: DashboardStats, since: datetime) -> None:
        stats.total_transactions = uow.ledger.transaction_count()
        stats.monthly_transactions = uow.ledger.transaction_count(since=since)

    @staticmethod
    def _token_stats(uow: Any, stats: DashboardStats) -> None:
        stats.active_tokens = uow.ledger.enabled_tokens()

    @staticmethod
    def _currency_stats(uow: Any, stats: DashboardStats) -> None:
        stats.active_currencies = uow.ledger.enabled_currencies()


def _merge(stats: DashboardStats, partial: DashboardStats) -> None:
    defaults = DashboardStats()
    for name, value in partial.__dict__.items():
        if name != "degraded" and value != getattr(defaults, name):
            setattr(stats, name, value)
