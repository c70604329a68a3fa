"""SQLite access for the trade journal, risk events and training runs.

``DATABASE_URL`` takes the form ``sqlite:///relative/path.db``,
``sqlite:////absolute/path.db`` or ``sqlite:///:memory:``. File databases get
their parent directory created on first use.
"""

from __future__ import annotations

from pathlib import Path
import sqlite3
from typing import Optional

from ai_trader.config import settings


SQLITE_SCHEMES = ("sqlite:///", "sqlite://")
MEMORY = ":memory:"


def sqlite_path(database_url: str) -> str:
    """Filesystem path (or ``:memory:``) named by a sqlite URL."""
    for scheme in SQLITE_SCHEMES:
        if database_url.startswith(scheme):
            path = database_url[len(scheme) :]
            return path or MEMORY
    raise ValueError(f"Unsupported DATABASE_URL: {database_url} (only sqlite is supported)")


def get_connection(database_url: Optional[str] = None) -> sqlite3.Connection:
    path = sqlite_path(database_url or settings.database_url)
    if path != MEMORY:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    # Journal readers address columns by name.
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn
