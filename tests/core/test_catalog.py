"""Tests for neda.core.catalog.CatalogAdmin."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from neda.core.exceptions import NotFoundError
from neda.core.models import CatalogKind

MISSING_ENTRY = "00000000-0000-0000-0000-0000000000ee"


def _enabled(catalog, kind, entry_id):
    return next(e for e in catalog.list_entries(kind) if e.id == entry_id).is_enabled


class TestListEntries:
    def test_ordered_by_code(self, catalog, store):
        store.seed_token("USDT")
        store.seed_token("DAI", is_enabled=False)
        store.seed_currency("NGN")
        assert [e.code for e in catalog.list_entries(CatalogKind.TOKEN)] == ["DAI", "USDT"]
        assert [e.code for e in catalog.list_entries(CatalogKind.CURRENCY)] == ["NGN"]

    def test_empty(self, catalog):
        assert catalog.list_entries(CatalogKind.CURRENCY) == []


class TestSetEnabled:
    def test_disable_token(self, catalog, store, admin_id, audit_records):
        usdc = store.seed_token("USDC")
        updated = catalog.set_enabled(CatalogKind.TOKEN, usdc.id, False, admin_id, "depeg")

        assert updated.is_enabled is False
        assert updated.updated_at is not None
        assert _enabled(catalog, CatalogKind.TOKEN, usdc.id) is False

        (record,) = audit_records()
        assert record.action == "disable_token"
        assert record.actor_id == admin_id
        assert record.resource_type == "admin_action"
        assert record.resource_id == usdc.id
        assert record.reason == "depeg"
        assert record.details["token_id"] == usdc.id
        assert record.details["code"] == "USDC"
        assert record.details["enabled"] is False
        assert record.details["changed"] is True

    def test_enable_currency(self, catalog, store, admin_id, audit_records):
        kes = store.seed_currency("KES", is_enabled=False)
        assert catalog.set_enabled(CatalogKind.CURRENCY, kes.id, True, admin_id).is_enabled is True
        (record,) = audit_records()
        assert record.action == "enable_currency"
        assert record.details["currency_id"] == kes.id

    def test_same_state_is_audited_unchanged(self, catalog, store, admin_id, audit_records):
        usdc = store.seed_token("USDC")
        catalog.set_enabled(CatalogKind.TOKEN, usdc.id, True, admin_id)
        (record,) = audit_records()
        assert record.action == "enable_token"
        assert record.details["changed"] is False

    def test_unknown_entry(self, catalog, admin_id, audit_records):
        with pytest.raises(NotFoundError) as exc_info:
            catalog.set_enabled(CatalogKind.TOKEN, MISSING_ENTRY, False, admin_id)
        assert exc_info.value.resource_type == "Token"
        assert audit_records() == []

    def test_entry_of_other_catalog_is_not_found(self, catalog, store, admin_id):
        ngn = store.seed_currency("NGN")
        with pytest.raises(NotFoundError):
            catalog.set_enabled(CatalogKind.TOKEN, ngn.id, False, admin_id)
        assert _enabled(catalog, CatalogKind.CURRENCY, ngn.id) is True

    def test_audit_failure_rolls_back(self, catalog, store, admin_id, audit_records):
        usdc = store.seed_token("USDC")
        with patch.object(catalog.audit_log, "append", side_effect=RuntimeError("ledger down")):
            with pytest.raises(RuntimeError):
                catalog.set_enabled(CatalogKind.TOKEN, usdc.id, False, admin_id)
        assert _enabled(catalog, CatalogKind.TOKEN, usdc.id) is True
        assert audit_records() == []

    def test_dashboard_reflects_toggle(self, catalog, queries, store, admin_id):
        usdc = store.seed_token("USDC")
        store.seed_token("USDT")
        catalog.set_enabled(CatalogKind.TOKEN, usdc.id, False, admin_id)
        assert queries.dashboard_stats().active_tokens == 1
