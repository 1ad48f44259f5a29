"""Fixtures for tests against a real PostgreSQL database.

The schema is migrated once per module. Tests that use these fixtures carry
``@pytest.mark.requires_postgres`` and are skipped when no database is
reachable with the NEDA_DB_* settings.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from neda.core.config import CoreSettings
from neda.core.db import Database, generate_id
from neda.core.migrations import MigrationRunner
from neda.core.models import Principal, ProfileKind
from neda.storage.postgres import PostgresStore


@pytest.fixture(scope="module")
def pg_database() -> Generator[Database, None, None]:
    database = Database(CoreSettings(_env_file=None))
    MigrationRunner(database).up()
    yield database
    database.close()


@pytest.fixture
def pg_store(pg_database) -> PostgresStore:
    return PostgresStore(pg_database)


@pytest.fixture
def pg_principal(pg_store, pg_database) -> Generator[Principal, None, None]:
    """A fresh principal, removed again (with its profiles and keys) after the test."""
    with pg_store.transaction() as uow:
        principal = uow.principals.add(Principal(id=generate_id(), business_type=ProfileKind.SENDER))
    yield principal
    with pg_database.cursor() as cur:
        cur.execute("DELETE FROM user_profiles WHERE id = %s", (principal.id,))
