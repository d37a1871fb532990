"""
Diagnostics: store health and engine details.
"""

import logging
import sqlite3

from ydhistory.core.db_sqlite import HistoryDatabase

logger = logging.getLogger(__name__)


def get_diagnostics(db: HistoryDatabase) -> dict:
    """Gather all diagnostic information."""
    info = {
        "db_path": str(db.db_path),
        "sqlite_version": sqlite3.sqlite_version,
        "schema_version": db.schema_version(),
        "journal_mode": db.journal_mode(),
        "record_count": db.count(),
        "orphaned_variants": db.count_orphaned_variants(),
    }
    if info["orphaned_variants"]:
        logger.info("%d variant row(s) have no parent record",
                    info["orphaned_variants"])
    return info
