"""
Database migrations module.

Versioned, ordered schema changes for the SQLite state store. Migrations are
applied in order and tracked in a migrations table.
"""

from .runner import Migration, MigrationRunner, get_all_migrations

__all__ = ["Migration", "MigrationRunner", "get_all_migrations"]
