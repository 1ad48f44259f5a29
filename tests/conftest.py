"""Global test fixtures for the NEDA test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import psycopg2
import pytest

from neda.core.audit import AdminActionLog
from neda.core.catalog import CatalogAdmin
from neda.core.config import CoreSettings, clear_config_cache
from neda.core.credentials import CredentialIssuer
from neda.core.db import generate_id
from neda.core.models import (
    AuditFilter,
    Pagination,
    Principal,
    ProfileKind,
    TransactionSummary,
    VerificationStatus,
)
from neda.core.queries import AdminQueryEngine
from neda.core.trust import TrustStateMachine
from neda.storage.memory import InMemoryStore

ADMIN_ID = "00000000-0000-0000-0000-00000000a0a0"


# ============================================================================
# PostgreSQL Availability Detection
# ============================================================================


def _check_postgres_available() -> tuple[bool, str | None]:
    """Try one connection with the NEDA_DB_* settings.

    Returns:
        Tuple of (is_available, error_message)
    """
    params = CoreSettings(_env_file=None).connection_params
    try:
        conn = psycopg2.connect(**params, connect_timeout=3)
    except psycopg2.OperationalError as e:
        return False, f"PostgreSQL connection failed: {e}"
    conn.close()
    return True, None


POSTGRES_AVAILABLE, POSTGRES_ERROR = _check_postgres_available()


def pytest_collection_modifyitems(config, items):
    """Skip tests marked requires_postgres when no database is reachable."""
    if POSTGRES_AVAILABLE:
        return

    skip_postgres = pytest.mark.skip(reason=f"PostgreSQL not available: {POSTGRES_ERROR}")
    for item in items:
        if "requires_postgres" in item.keywords:
            item.add_marker(skip_postgres)


@pytest.fixture
def admin_id() -> str:
    return ADMIN_ID


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all NEDA_ environment variables and the cached config."""
    for key in list(os.environ.keys()):
        if key.startswith("NEDA_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def settings(clean_env) -> CoreSettings:
    return CoreSettings(_env_file=None)


# ============================================================================
# Store and service fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def audit_log(store) -> AdminActionLog:
    return AdminActionLog(store)


@pytest.fixture
def issuer(store, settings, audit_log) -> CredentialIssuer:
    return CredentialIssuer(store, settings=settings, audit_log=audit_log)


@pytest.fixture
def trust(store, audit_log) -> TrustStateMachine:
    return TrustStateMachine(store, audit_log=audit_log)


@pytest.fixture
def queries(store) -> AdminQueryEngine:
    return AdminQueryEngine(store)


@pytest.fixture
def catalog(store, audit_log) -> CatalogAdmin:
    return CatalogAdmin(store, audit_log=audit_log)


@pytest.fixture
def make_principal(store):
    """Factory that inserts a principal into the in-memory store."""

    def _make(
        business_type: ProfileKind = ProfileKind.SENDER,
        status: VerificationStatus = VerificationStatus.PENDING,
        company_name: str | None = "Acme Ltd",
        email: str | None = "ops@acme.test",
        created_at: datetime | None = None,
    ) -> Principal:
        created_at = created_at or datetime.now(UTC)
        principal = Principal(
            id=generate_id(),
            business_type=business_type,
            verification_status=status,
            company_name=company_name,
            email=email,
            created_at=created_at,
            updated_at=created_at,
        )
        with store.transaction() as uow:
            return uow.principals.add(principal)

    return _make


@pytest.fixture
def make_transaction(store):
    """Factory that seeds a transaction record."""

    def _make(user_id: str, minutes_ago: int = 0, amount: float = 10.0) -> TransactionSummary:
        tx = TransactionSummary(
            id=generate_id(),
            user_id=user_id,
            transaction_type="onramp",
            status="completed",
            amount=amount,
            currency="USDC",
            created_at=datetime.now(UTC) - timedelta(minutes=minutes_ago),
        )
        store.seed_transaction(tx)
        return tx

    return _make


@pytest.fixture
def audit_records(store):
    """Callable returning every audit record in the store, oldest first."""

    def _records() -> list:
        with store.transaction(read_only=True) as uow:
            records, _ = uow.audit.query(AuditFilter(), Pagination(page=1, limit=200))
        return list(reversed(records))

    return _records
