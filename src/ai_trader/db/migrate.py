"""Simple SQL migration runner (sqlite-first)."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
from typing import Optional

from ai_trader.db.connection import get_connection
from ai_trader.utils.time import utc_now_s


logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    path: Path


def _ensure_schema_version(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            applied_at INTEGER NOT NULL
        );
        """
    )
    conn.commit()


def load_migrations(directory: Path = MIGRATIONS_DIR) -> list[Migration]:
    migrations = []
    for path in directory.glob("*.sql"):
        version_str, sep, name = path.stem.partition("_")
        if not sep or not version_str.isdigit():
            continue
        migrations.append(Migration(version=int(version_str), name=name, path=path))
    return sorted(migrations, key=lambda m: m.version)


def _applied_versions(conn: sqlite3.Connection) -> set[int]:
    rows = conn.execute("SELECT version FROM schema_version").fetchall()
    return {row["version"] for row in rows}


def apply_migrations(conn: sqlite3.Connection, directory: Path = MIGRATIONS_DIR) -> list[int]:
    """Apply pending migrations on an open connection. Returns applied versions."""
    _ensure_schema_version(conn)
    applied = _applied_versions(conn)
    newly_applied = []
    for migration in load_migrations(directory):
        if migration.version in applied:
            continue
        sql = migration.path.read_text(encoding="utf-8")
        conn.executescript(sql)
        conn.execute(
            "INSERT INTO schema_version (version, name, applied_at) VALUES (?, ?, ?)",
            (migration.version, migration.name, utc_now_s()),
        )
        conn.commit()
        logger.info("Applied migration %03d_%s", migration.version, migration.name)
        newly_applied.append(migration.version)
    return newly_applied


def migrate(database_url: Optional[str] = None) -> list[int]:
    if not MIGRATIONS_DIR.exists():
        raise FileNotFoundError(f"Missing migrations dir: {MIGRATIONS_DIR}")
    conn = get_connection(database_url)
    try:
        return apply_migrations(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    migrate()
