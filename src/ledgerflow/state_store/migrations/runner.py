"""
Forward-only schema migrations for the state store.

A migration is a module named ``NNN_name.py`` in this package defining
``VERSION`` (int), ``NAME`` (str) and ``upgrade(conn)``. Versions must be
unique; each one runs in its own transaction together with the row that
records it in the ``migrations`` table, so a failed upgrade leaves no trace.
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATION_GLOB = "[0-9][0-9][0-9]_*.py"


@dataclass(frozen=True)
class Migration:
    """One versioned schema change."""

    version: int
    name: str
    upgrade: Callable[[sqlite3.Connection], None]


def get_all_migrations() -> list[Migration]:
    """
    Discover the migrations shipped with the package, ordered by version.

    Import errors propagate.

    Raises:
        ValueError: If two modules declare the same version
    """
    by_version: dict[int, Migration] = {}
    for path in sorted(Path(__file__).parent.glob(MIGRATION_GLOB)):
        module = importlib.import_module(f"{__package__}.{path.stem}")
        migration = Migration(module.VERSION, module.NAME, module.upgrade)
        if migration.version in by_version:
            raise ValueError(
                f"Duplicate migration version {migration.version}: "
                f"{by_version[migration.version].name} and {migration.name}"
            )
        by_version[migration.version] = migration
    return [by_version[v] for v in sorted(by_version)]


class MigrationRunner:
    """Applies pending migrations to one connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at TEXT NOT NULL
                )
            """
            )

    def get_applied_versions(self) -> set[int]:
        rows = self.conn.execute("SELECT version FROM migrations").fetchall()
        return {row[0] for row in rows}

    def get_current_version(self) -> int:
        """Highest applied version, 0 for a fresh database."""
        return max(self.get_applied_versions(), default=0)

    def apply(self, migration: Migration) -> None:
        """
        Run one upgrade and record it atomically.

        The connection is switched to manual transaction control for the
        duration so DDL inside the upgrade runs within the explicit BEGIN.
        """
        logger.info("Applying migration %03d_%s", migration.version, migration.name)
        applied_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        previous_isolation = self.conn.isolation_level
        self.conn.isolation_level = None
        try:
            self.conn.execute("BEGIN")
            try:
                migration.upgrade(self.conn)
                self.conn.execute(
                    "INSERT INTO migrations (version, name, applied_at) VALUES (?, ?, ?)",
                    (migration.version, migration.name, applied_at),
                )
                self.conn.execute("COMMIT")
            except Exception:
                self.conn.execute("ROLLBACK")
                logger.error("Migration %03d_%s failed", migration.version, migration.name)
                raise
        finally:
            self.conn.isolation_level = previous_isolation

    def run_pending(self) -> list[int]:
        """
        Apply every migration newer than what the database has seen.

        Returns:
            Versions applied by this call, in order
        """
        applied = self.get_applied_versions()
        pending = [m for m in get_all_migrations() if m.version not in applied]
        for migration in pending:
            self.apply(migration)

        versions = [m.version for m in pending]
        if versions:
            logger.info("Schema now at version %d (applied %s)", versions[-1], versions)
        else:
            logger.debug("No pending migrations")
        return versions
