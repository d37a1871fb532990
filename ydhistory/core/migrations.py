"""
Versioned schema migrations for the history store.

Each migration is a list of statements applied in one BEGIN IMMEDIATE
transaction together with its schema_version row, so a version is either
fully applied and recorded or not applied at all.
"""

import logging
import sqlite3
from datetime import datetime, timezone

from ydhistory.core.constants import (
    SCHEMA_VERSION_TABLE,
    ID, VIDEO_INFO, VIDEO_ID, TITLE, AUTHOR, DURATION_SECONDS, THUMBNAIL,
    AUDIO_AVAILABLE, VIDEO_FORMAT, CONTAINER, WIDTH, HEIGHT, FPS, VIDEO_INFO_ID,
)
from ydhistory.core.error_codes import MigrationError

logger = logging.getLogger(__name__)

_CREATE_VERSION_TABLE = f"""
CREATE TABLE IF NOT EXISTS {SCHEMA_VERSION_TABLE} (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
)"""

# Children reference their parent but carry no ON DELETE action: deleting a
# video_info row leaves its video_format rows in place.
_V1_INITIAL = [
    f"""CREATE TABLE IF NOT EXISTS {VIDEO_INFO} (
        {ID} INTEGER PRIMARY KEY AUTOINCREMENT,
        {VIDEO_ID} TEXT NOT NULL,
        {TITLE} TEXT NOT NULL,
        {AUTHOR} TEXT NOT NULL,
        {DURATION_SECONDS} TEXT NOT NULL,
        {THUMBNAIL} TEXT,
        {AUDIO_AVAILABLE} BOOLEAN NOT NULL
    )""",
    f"""CREATE TABLE IF NOT EXISTS {VIDEO_FORMAT} (
        {ID} INTEGER PRIMARY KEY AUTOINCREMENT,
        {CONTAINER} TEXT NOT NULL,
        {WIDTH} TEXT NOT NULL,
        {HEIGHT} TEXT NOT NULL,
        {FPS} TEXT NOT NULL,
        {VIDEO_INFO_ID} INTEGER NOT NULL REFERENCES {VIDEO_INFO} ({ID})
    )""",
]

# (version, description, statements), ascending
MIGRATIONS: list[tuple[int, str, list[str]]] = [
    (1, "create video_info and video_format", _V1_INITIAL),
]

LATEST_VERSION = MIGRATIONS[-1][0]


def current_version(conn: sqlite3.Connection) -> int:
    """Highest applied migration, 0 for a fresh file."""
    exists = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        (SCHEMA_VERSION_TABLE,),
    ).fetchone()
    if not exists:
        return 0
    row = conn.execute(
        f"SELECT MAX(version) FROM {SCHEMA_VERSION_TABLE}"
    ).fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def apply_migrations(conn: sqlite3.Connection) -> int:
    """
    Apply every pending migration. Safe to call on every startup.
    `conn` must be in autocommit mode (isolation_level=None).
    Returns the schema version after applying.
    """
    try:
        conn.execute(_CREATE_VERSION_TABLE)
        for version, description, statements in MIGRATIONS:
            _apply_one(conn, version, description, statements)
        return current_version(conn)
    except MigrationError:
        raise
    except sqlite3.Error as e:
        logger.error("Migration bookkeeping failed: %s", e)
        raise MigrationError(str(e)) from e


def _apply_one(conn: sqlite3.Connection, version: int, description: str,
               statements: list[str]):
    conn.execute("BEGIN IMMEDIATE")
    try:
        # Re-checked under the write lock: another connection may have won
        done = conn.execute(
            f"SELECT 1 FROM {SCHEMA_VERSION_TABLE} WHERE version = ?",
            (version,),
        ).fetchone()
        if done:
            conn.execute("COMMIT")
            return
        for statement in statements:
            conn.execute(statement)
        conn.execute(
            f"INSERT INTO {SCHEMA_VERSION_TABLE} (version, applied_at) VALUES (?, ?)",
            (version, datetime.now(timezone.utc).isoformat()),
        )
        conn.execute("COMMIT")
    except sqlite3.Error as e:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        logger.error("Migration %d (%s) failed: %s", version, description, e)
        raise MigrationError(
            f"migration {version} ({description}) failed: {e}", version=version,
        ) from e
    logger.info("Applied migration %d: %s", version, description)
