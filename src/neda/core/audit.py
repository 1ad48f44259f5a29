# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""Append-only administrative audit ledger.

Every mutating credential or trust operation appends exactly one record
through ``AdminActionLog.append`` using the caller's unit of work, so the
record commits or rolls back together with the change it describes. The ledger has no
update or delete path.
"""

from __future__ import annotations

import logging
from typing import Any

from .db import generate_id
from .logging import redact
from .models import AuditFilter, AuditRecord, Page, Pagination, utcnow

logger = logging.getLogger(__name__)

ADMIN_ACTION_RESOURCE = "admin_action"
API_KEY_RESOURCE = "api_key"


class AdminActionLog:
    """Writer and reader of the ``audit_logs`` ledger.

    Args:
        store: Injected store handle; only ``query`` opens its own unit of work.
    """

    def __init__(self, store: Any):
        self.store = store

    def append(
        self,
        uow: Any,
        *,
        actor_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """Append one record inside the caller's unit of work.

        ``details`` is sanitized before it is stored; the reason is stored
        with it under ``details["reason"]``.
        """
        metadata = redact(dict(details or {}))
        metadata["reason"] = reason
        record = AuditRecord(
            id=generate_id(),
            actor_id=actor_id,
            action=str(action),
            resource_type=resource_type,
            resource_id=resource_id,
            reason=reason,
            details=metadata,
            created_at=utcnow(),
        )
        stored = uow.audit.append(record)
        logger.info("Audit %s on %s %s by %s", stored.action, resource_type, resource_id, actor_id)
        return stored

    def query(self, filters: AuditFilter | None = None, pagination: Pagination | None = None) -> Page:
        """Matching records newest first, with the total match count."""
        filters = filters or AuditFilter()
        pagination = pagination or Pagination()
        with self.store.transaction(read_only=True) as uow:
            records, total = uow.audit.query(filters, pagination)
        return Page(rows=records, total_count=total, page=pagination.page, limit=pagination.limit)
