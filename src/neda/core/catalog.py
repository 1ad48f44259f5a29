# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Admin switches for the supported token and fiat currency catalogs.

Enabling or disabling an entry locks its row, writes the new state and
appends the audit record in one unit of work.
"""

from __future__ import annotations

import logging
from typing import Any

from .audit import ADMIN_ACTION_RESOURCE, AdminActionLog
from .exceptions import NotFoundError
from .models import AdminActionType, CatalogEntry, CatalogKind, utcnow

logger = logging.getLogger(__name__)


class CatalogAdmin:
    """List catalog entries and toggle them, each toggle audited."""

    def __init__(self, store: Any, audit_log: AdminActionLog | None = None):
        self.store = store
        self.audit_log = audit_log or AdminActionLog(store)

    def list_entries(self, kind: CatalogKind) -> list[CatalogEntry]:
        """Every entry of the catalog, ordered by symbol or code."""
        with self.store.transaction(read_only=True) as uow:
            return uow.catalog.list_entries(kind)

    def set_enabled(
        self,
        kind: CatalogKind,
        entry_id: str,
        enabled: bool,
        actor_id: str,
        reason: str | None = None,
    ) -> CatalogEntry:
        """Enable or disable one entry.

        Setting the state it already has still writes an audit record, with
        ``changed = False``.

        Raises:
            NotFoundError: No entry with this id in the catalog.
        """
        action = AdminActionType.catalog(kind, enabled)

        with self.store.transaction() as uow:
            current = uow.catalog.lock(kind, entry_id)
            if current is None:
                raise NotFoundError(kind.value.capitalize(), entry_id)
            updated = uow.catalog.set_enabled(kind, entry_id, enabled, utcnow())
            self.audit_log.append(
                uow,
                actor_id=actor_id,
                action=action,
                resource_type=ADMIN_ACTION_RESOURCE,
                resource_id=entry_id,
                reason=reason,
                details={
                    "action_type": action.value,
                    f"{kind.value}_id": entry_id,
                    "code": current.code,
                    "enabled": enabled,
                    "changed": current.is_enabled != enabled,
                },
            )

        logger.info("%s %s (%s) by %s", action.value, entry_id, current.code, actor_id)
        return updated
