"""Migration framework for NEDA.

Provides sequential, versioned database migrations with:
- Auto-discovery from a migrations directory
- State tracking in a `_migrations` table
- Up/down support with checksums for drift detection
- Dry-run mode

Each migration file must define:
    version: str      e.g. "001"
    description: str  human-readable name
    def up(conn) -> None:   apply migration (receives psycopg2 connection)
    def down(conn) -> None: rollback migration

Usage:
    runner = MigrationRunner(Database(get_config()))
    runner.up()            # apply all pending
    runner.down(target="001")  # rollback to version 001
    runner.status()        # list applied/pending
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import ModuleType
from typing import Any, Protocol

from psycopg2.extras import RealDictCursor

from .db import Database

logger = logging.getLogger(__name__)

# The table used to track applied migrations
MIGRATIONS_TABLE = "_migrations"


class MigrationModule(Protocol):
    """Protocol defining what a migration module must expose."""

    version: str
    description: str

    def up(self, conn: Any) -> None: ...
    def down(self, conn: Any) -> None: ...


@dataclass
class MigrationInfo:
    """Metadata about a discovered migration."""

    version: str
    description: str
    checksum: str
    file_path: Path
    module: ModuleType

    def __lt__(self, other: MigrationInfo) -> bool:
        return self.version < other.version


@dataclass
class AppliedMigration:
    """Record of an applied migration from the DB."""

    version: str
    description: str
    checksum: str
    applied_at: datetime


@dataclass
class MigrationStatus:
    """Status of a single migration: applied, pending, or checksum mismatch."""

    version: str
    description: str
    state: str  # "applied", "pending", "checksum_mismatch"
    applied_at: datetime | None = None
    file_checksum: str | None = None
    db_checksum: str | None = None


class MigrationRunner:
    """Discovers, tracks, and applies database migrations.

    Args:
        database: Pool handle the runner borrows one raw connection from.
        migrations_dir: Path to directory containing NNN_description.py files.
    """

    def __init__(self, database: Database, migrations_dir: str | Path | None = None):
        if migrations_dir is None:
            # Default: <repo_root>/migrations
            migrations_dir = Path(__file__).resolve().parent.parent.parent.parent / "migrations"
        self.database = database
        self.migrations_dir = Path(migrations_dir)
        self._migrations: list[MigrationInfo] | None = None

    # ------------------------------------------------------------------
    # Migration discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _compute_checksum(file_path: Path) -> str:
        """Compute SHA-256 checksum of a migration file."""
        return hashlib.sha256(file_path.read_bytes()).hexdigest()[:16]

    @staticmethod
    def _load_module(file_path: Path) -> ModuleType:
        """Dynamically load a Python migration module."""
        module_name = f"neda_migration_{file_path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, file_path)
        if spec is None or spec.loader is None:
            raise ValueError(f"Cannot load migration: {file_path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def discover(self) -> list[MigrationInfo]:
        """Discover all migration files in migrations_dir, sorted by version."""
        if self._migrations is not None:
            return self._migrations

        if not self.migrations_dir.is_dir():
            logger.warning("Migrations directory not found: %s", self.migrations_dir)
            self._migrations = []
            return []

        migrations: list[MigrationInfo] = []
        for path in sorted(self.migrations_dir.glob("*.py")):
            if path.name.startswith("__"):
                continue
            # Expect NNN_description.py
            parts = path.stem.split("_", 1)
            if len(parts) < 2 or not parts[0].isdigit():
                logger.debug("Skipping non-migration file: %s", path.name)
                continue

            module = self._load_module(path)
            for attr in ("version", "description", "up", "down"):
                if not hasattr(module, attr):
                    raise ValueError(f"Migration {path.name} missing required attribute: {attr}")

            migrations.append(
                MigrationInfo(
                    version=module.version,
                    description=module.description,
                    checksum=self._compute_checksum(path),
                    file_path=path,
                    module=module,
                )
            )

        migrations.sort()
        self._migrations = migrations
        return migrations

    # ------------------------------------------------------------------
    # State tracking
    # ------------------------------------------------------------------

    def _ensure_table(self, conn: Any) -> None:
        """Create the _migrations tracking table if it doesn't exist."""
        with conn.cursor() as cur:
            cur.execute(f"""
                CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
                    version TEXT PRIMARY KEY,
                    description TEXT NOT NULL,
                    checksum TEXT NOT NULL,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)
        conn.commit()

    def _get_applied(self, conn: Any) -> list[AppliedMigration]:
        """Get list of applied migrations from the DB."""
        self._ensure_table(conn)
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"SELECT version, description, checksum, applied_at FROM {MIGRATIONS_TABLE} ORDER BY version")
            rows = cur.fetchall()
        return [
            AppliedMigration(
                version=row["version"],
                description=row["description"],
                checksum=row["checksum"],
                applied_at=row["applied_at"],
            )
            for row in rows
        ]

    def _record_applied(self, conn: Any, migration: MigrationInfo) -> None:
        with conn.cursor() as cur:
            cur.execute(
                f"INSERT INTO {MIGRATIONS_TABLE} (version, description, checksum) VALUES (%s, %s, %s)",
                (migration.version, migration.description, migration.checksum),
            )

    def _remove_applied(self, conn: Any, version: str) -> None:
        with conn.cursor() as cur:
            cur.execute(f"DELETE FROM {MIGRATIONS_TABLE} WHERE version = %s", (version,))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def status(self) -> list[MigrationStatus]:
        """Return status of all migrations (applied/pending/checksum_mismatch)."""
        migrations = self.discover()
        with self.database.connection() as conn:
            applied = {m.version: m for m in self._get_applied(conn)}

        result: list[MigrationStatus] = []
        for m in migrations:
            db_record = applied.get(m.version)
            if db_record is None:
                result.append(MigrationStatus(m.version, m.description, "pending", file_checksum=m.checksum))
                continue
            state = "applied" if db_record.checksum == m.checksum else "checksum_mismatch"
            result.append(
                MigrationStatus(
                    version=m.version,
                    description=m.description,
                    state=state,
                    applied_at=db_record.applied_at,
                    file_checksum=m.checksum,
                    db_checksum=db_record.checksum,
                )
            )
        return result

    def pending(self) -> list[MigrationInfo]:
        """Return list of pending (unapplied) migrations."""
        migrations = self.discover()
        with self.database.connection() as conn:
            applied_versions = {m.version for m in self._get_applied(conn)}
        return [m for m in migrations if m.version not in applied_versions]

    def up(self, *, target: str | None = None, dry_run: bool = False) -> list[str]:
        """Apply pending migrations, optionally up to a target version.

        Args:
            target: Stop after applying this version (inclusive). None = apply all.
            dry_run: If True, only report what would be applied without executing.

        Returns:
            List of applied version strings.
        """
        migrations = self.discover()
        applied_versions: list[str] = []

        with self.database.connection() as conn:
            applied = {m.version for m in self._get_applied(conn)}
            to_apply = [m for m in migrations if m.version not in applied]
            if target:
                to_apply = [m for m in to_apply if m.version <= target]

            if not to_apply:
                logger.info("No pending migrations to apply.")
                return []

            for migration in to_apply:
                if dry_run:
                    logger.info("[DRY RUN] Would apply: %s (%s)", migration.version, migration.description)
                    applied_versions.append(migration.version)
                    continue

                logger.info("Applying migration %s: %s", migration.version, migration.description)
                try:
                    migration.module.up(conn)
                    self._record_applied(conn, migration)
                    conn.commit()
                except Exception:
                    conn.rollback()
                    logger.error("Failed migration %s", migration.version, exc_info=True)
                    raise
                applied_versions.append(migration.version)

        return applied_versions

    def down(self, *, target: str | None = None, dry_run: bool = False) -> list[str]:
        """Rollback migrations, optionally down to a target version.

        Args:
            target: Roll back every version above this one (it stays applied).
                None = rollback only the latest migration.
            dry_run: If True, only report what would be rolled back.

        Returns:
            List of rolled-back version strings.
        """
        migration_map = {m.version: m for m in self.discover()}
        rolled_back: list[str] = []

        with self.database.connection() as conn:
            to_rollback = sorted((m.version for m in self._get_applied(conn)), reverse=True)
            to_rollback = [v for v in to_rollback if v > target] if target else to_rollback[:1]

            if not to_rollback:
                logger.info("No migrations to rollback.")
                return []

            for version in to_rollback:
                migration = migration_map.get(version)
                if migration is None:
                    logger.warning("Migration file for version %s not found, skipping rollback", version)
                    continue

                if dry_run:
                    logger.info("[DRY RUN] Would rollback: %s (%s)", version, migration.description)
                    rolled_back.append(version)
                    continue

                logger.info("Rolling back migration %s: %s", version, migration.description)
                try:
                    migration.module.down(conn)
                    self._remove_applied(conn, version)
                    conn.commit()
                except Exception:
                    conn.rollback()
                    logger.error("Failed rollback %s", version, exc_info=True)
                    raise
                rolled_back.append(version)

        return rolled_back
