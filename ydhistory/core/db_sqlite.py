"""
SQLite storage engine for the download history.
Thread-safe via a pool of check_same_thread=False connections, one handed
out per operation; multi-statement operations run in explicit transactions.
"""

import asyncio
import logging
import queue
import sqlite3
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from ydhistory.core.config import StoreConfig
from ydhistory.core.constants import (
    HISTORY_FILE_NAME, FIRST_ROW_ID, FetchOrder, ErrorCode,
    ID, VIDEO_INFO, VIDEO_ID, TITLE, AUTHOR, DURATION_SECONDS, THUMBNAIL,
    AUDIO_AVAILABLE, VIDEO_FORMAT, CONTAINER, WIDTH, HEIGHT, FPS, VIDEO_INFO_ID,
)
from ydhistory.core.error_codes import (
    StoreError, StoreConnectionError, StoreClosedError,
    RecordNotFoundError, WriteError,
)
from ydhistory.core.migrations import apply_migrations, current_version
from ydhistory.core.models_sqlite import (
    RecordInfo, RecordVariant, ManagedRecord,
    decode_info_row, decode_variant_row,
)

logger = logging.getLogger(__name__)

# ── Queries ───────────────────────────────────────────────────────────

_INFO_COLUMNS = (
    f"{ID}, {VIDEO_ID}, {TITLE}, {AUTHOR}, "
    f"{DURATION_SECONDS}, {THUMBNAIL}, {AUDIO_AVAILABLE}"
)

QUERY_INSERT_INFO = f"""
INSERT INTO {VIDEO_INFO}
    ({VIDEO_ID}, {TITLE}, {AUTHOR},
     {DURATION_SECONDS}, {THUMBNAIL}, {AUDIO_AVAILABLE})
VALUES (?, ?, ?, ?, ?, ?)"""

QUERY_INSERT_FORMAT = f"""
INSERT INTO {VIDEO_FORMAT}
    ({CONTAINER}, {WIDTH}, {HEIGHT}, {FPS}, {VIDEO_INFO_ID})
VALUES (?, ?, ?, ?, ?)"""

QUERY_FETCH_ONE_INFO = f"""
SELECT {_INFO_COLUMNS}
FROM {VIDEO_INFO}
WHERE {ID} = ?"""

QUERY_FETCH_FORMATS = f"""
SELECT {CONTAINER}, {WIDTH}, {HEIGHT}, {FPS}, {VIDEO_INFO_ID}
FROM {VIDEO_FORMAT}
WHERE {VIDEO_INFO_ID} = ?"""

QUERY_FETCH_CHUNK_GEQ = f"""
SELECT {_INFO_COLUMNS}
FROM {VIDEO_INFO}
WHERE {ID} >= ?
ORDER BY {ID} ASC
LIMIT ?"""

QUERY_FETCH_CHUNK_LEQ = f"""
SELECT {_INFO_COLUMNS}
FROM {VIDEO_INFO}
WHERE {ID} <= ?
ORDER BY {ID} DESC
LIMIT ?"""

# No known largest id to seed a bounded backward scan from
QUERY_FETCH_CHUNK_BOTTOM = f"""
SELECT {_INFO_COLUMNS}
FROM {VIDEO_INFO}
ORDER BY {ID} DESC
LIMIT ?"""

QUERY_DELETE_INFO = f"DELETE FROM {VIDEO_INFO} WHERE {ID} = ?"
QUERY_DELETE_ALL_INFO = f"DELETE FROM {VIDEO_INFO}"
QUERY_DELETE_FORMATS = f"DELETE FROM {VIDEO_FORMAT} WHERE {VIDEO_INFO_ID} = ?"
QUERY_DELETE_ALL_FORMATS = f"DELETE FROM {VIDEO_FORMAT}"

QUERY_COUNT_INFO = f"SELECT COUNT(*) FROM {VIDEO_INFO}"
QUERY_COUNT_ORPHANS = f"""
SELECT COUNT(*)
FROM {VIDEO_FORMAT} AS f
LEFT JOIN {VIDEO_INFO} AS i ON f.{VIDEO_INFO_ID} = i.{ID}
WHERE i.{ID} IS NULL"""

_CHUNK_QUERIES = {
    FetchOrder.GEQ_ASC: QUERY_FETCH_CHUNK_GEQ,
    FetchOrder.LEQ_DESC: QUERY_FETCH_CHUNK_LEQ,
}


# ── Connection pool ───────────────────────────────────────────────────

class ConnectionPool:
    """
    Hands out one sqlite3 connection per operation and takes it back when the
    operation finishes. Connections are opened lazily, at most `size` at once;
    callers beyond that block until one is returned.
    """

    def __init__(self, db_path: Path, size: int, busy_timeout_sec: float,
                 journal_mode: str):
        self.db_path = db_path
        self.size = size
        self.busy_timeout_sec = busy_timeout_sec
        self.journal_mode = journal_mode
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue()
        self._slots = threading.BoundedSemaphore(size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StoreClosedError()
        with self._slots:
            conn = self._checkout()
            try:
                yield conn
            finally:
                self._checkin(conn)

    def close(self):
        """Close idle connections; busy ones are closed when handed back."""
        self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()

    def _checkout(self) -> sqlite3.Connection:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            return self._connect()

    def _checkin(self, conn: sqlite3.Connection):
        if self._closed:
            conn.close()
            return
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        self._idle.put(conn)

    def _connect(self) -> sqlite3.Connection:
        conn = None
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_sec,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            # Enforcement stays off: parent rows are deleted without
            # touching the child rows that reference them
            conn.execute("PRAGMA foreign_keys=OFF")
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
            # Reads the header; fails here for a file that is not a database
            conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise StoreConnectionError(
                f"cannot open history store at {self.db_path}: {e}"
            ) from e
        logger.debug("Opened pooled connection to %s", self.db_path)
        return conn


# ── Storage engine ────────────────────────────────────────────────────

class HistoryDatabase:
    """Creates a pooled connection to a local SQLite file and offers CRUD."""

    def __init__(self, pool: ConnectionPool, config: StoreConfig):
        self._pool = pool
        self.config = config

    @classmethod
    def open(cls, path: Path | str,
             config: StoreConfig | None = None) -> "HistoryDatabase":
        """
        Open the store at `path`, creating the file if it does not exist,
        and apply migrations. The store is unusable if either step fails.
        """
        config = config or StoreConfig.defaults()
        db_path = Path(path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreConnectionError(
                f"cannot create directory for {db_path}: {e}"
            ) from e

        pool = ConnectionPool(
            db_path,
            size=config.pool_size,
            busy_timeout_sec=config.busy_timeout_sec,
            journal_mode=config.journal_mode,
        )
        db = cls(pool, config)
        try:
            version = db.apply_migrations()
        except StoreError:
            pool.close()
            raise
        logger.info("History store open at %s (schema v%d)", db_path, version)
        return db

    @classmethod
    def open_default(cls, config: StoreConfig | None = None) -> "HistoryDatabase":
        """Open the store at the configured path, else next to the program."""
        config = config or StoreConfig.defaults()
        return cls.open(config.db_path or cls.get_file_path(), config)

    @staticmethod
    def get_file_path() -> Path:
        """
        Default location of the history file: the directory of the running
        program (the bundled executable when frozen, else the launched script).
        """
        if getattr(sys, 'frozen', False):
            program = sys.executable
        else:
            main = sys.modules.get('__main__')
            program = getattr(main, '__file__', None) or (sys.argv[0] if sys.argv else "")
        if not program:
            raise StoreConnectionError(
                "cannot resolve the running program's location",
                code=ErrorCode.PROGRAM_LOCATION,
            )
        return Path(program).resolve().parent / HISTORY_FILE_NAME

    @property
    def db_path(self) -> Path:
        return self._pool.db_path

    @property
    def closed(self) -> bool:
        return self._pool.closed

    def apply_migrations(self) -> int:
        """Already called by open(); returns the resulting schema version."""
        with self._pool.connection() as conn:
            return apply_migrations(conn)

    def schema_version(self) -> int:
        with self._reading() as conn:
            return current_version(conn)

    def journal_mode(self) -> str:
        """Journal mode the pooled connections run in."""
        with self._reading() as conn:
            row = conn.execute("PRAGMA journal_mode").fetchone()
        return str(row[0]).upper() if row else "UNKNOWN"

    def close(self):
        if self._pool.closed:
            return
        self._pool.close()
        logger.info("History store at %s closed", self.db_path)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    # ── Transactions ──────────────────────────────────────────────────

    @contextmanager
    def _transaction(self, begin: str) -> Iterator[sqlite3.Connection]:
        with self._pool.connection() as conn:
            conn.execute(begin)
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        """
        Deferred transaction so parent and child reads see one snapshot.
        OverflowError comes from binding an int outside SQLite's 64-bit range.
        """
        try:
            with self._transaction("BEGIN") as conn:
                yield conn
        except (sqlite3.Error, OverflowError) as e:
            raise StoreError(ErrorCode.QUERY, str(e)) from e

    @contextmanager
    def _writing(self, action: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._transaction("BEGIN IMMEDIATE") as conn:
                yield conn
        except (sqlite3.Error, OverflowError) as e:
            logger.error("%s failed, transaction rolled back: %s", action, e)
            raise WriteError(f"{action} failed: {e}") from e

    # ── Fetch ─────────────────────────────────────────────────────────

    def fetch_one(self, record_id: int) -> ManagedRecord:
        """Fetch the record with matching `record_id`, variants included."""
        with self._reading() as conn:
            row = conn.execute(QUERY_FETCH_ONE_INFO, (record_id,)).fetchone()
            if row is None:
                raise RecordNotFoundError(record_id)
            return self._assemble(conn, row)

    def fetch_chunk_of(self, starting_id: int, num_entries: int,
                       order: str) -> list[ManagedRecord]:
        """
        Fetch up to `num_entries` records starting at `starting_id` inclusive.

        FetchOrder.GEQ_ASC walks ids >= starting_id upwards, LEQ_DESC walks
        ids <= starting_id downwards, nearest first. A short page is returned
        when fewer rows qualify; `starting_id` itself need not exist.

        With ids 1..5 stored:
            (1, 5, GEQ_ASC)  -> 1, 2, 3, 4, 5
            (1, 5, LEQ_DESC) -> 1
            (5, 5, GEQ_ASC)  -> 5
            (5, 5, LEQ_DESC) -> 5, 4, 3, 2, 1
            (3, 5, GEQ_ASC)  -> 3, 4, 5
            (3, 5, LEQ_DESC) -> 3, 2, 1
        """
        query = _CHUNK_QUERIES.get(order)
        if query is None:
            raise ValueError(f"unknown fetch order {order!r}")
        if num_entries < 0:
            raise ValueError(f"num_entries must be >= 0, got {num_entries}")

        with self._reading() as conn:
            rows = conn.execute(query, (starting_id, num_entries)).fetchall()
            records = [self._assemble(conn, row) for row in rows]
        logger.debug("Fetched %d record(s) from id %d (%s)",
                     len(records), starting_id, order)
        return records

    def fetch_chunk(self, starting_id: int, order: str) -> list[ManagedRecord]:
        """fetch_chunk_of with the configured default page size."""
        return self.fetch_chunk_of(starting_id, self.config.default_page_size, order)

    def fetch_first_chunk_from_top(self) -> list[ManagedRecord]:
        return self.fetch_chunk(FIRST_ROW_ID, FetchOrder.GEQ_ASC)

    def fetch_first_chunk_from_bottom(self) -> list[ManagedRecord]:
        """The newest page, newest first."""
        with self._reading() as conn:
            rows = conn.execute(
                QUERY_FETCH_CHUNK_BOTTOM, (self.config.default_page_size,)
            ).fetchall()
            return [self._assemble(conn, row) for row in rows]

    def _assemble(self, conn: sqlite3.Connection, row: sqlite3.Row) -> ManagedRecord:
        # One variant query per parent row; callers keep N to a page
        record_id, info = decode_info_row(row)
        info.variants = self._fetch_variants(conn, record_id)
        return ManagedRecord(record_id, info)

    @staticmethod
    def _fetch_variants(conn: sqlite3.Connection, record_id: int) -> list[RecordVariant]:
        rows = conn.execute(QUERY_FETCH_FORMATS, (record_id,)).fetchall()
        return [decode_variant_row(r) for r in rows]

    # ── Insert ────────────────────────────────────────────────────────

    def insert_record(self, info: RecordInfo) -> int:
        """Insert `info` and its variants atomically. Returns the row id."""
        with self._writing(f"insert of {info.video_id!r}") as conn:
            record_id = self._insert_one(conn, info)
        logger.debug("Inserted record %d (%s)", record_id, info.video_id)
        return record_id

    def insert_bulk(self, infos: Sequence[RecordInfo]) -> list[int]:
        """
        Insert every record in one transaction. Returns ids in input order.
        All or nothing: a failure on any record rolls back the whole batch.
        """
        if not infos:
            return []
        with self._writing(f"bulk insert of {len(infos)} record(s)") as conn:
            ids = [self._insert_one(conn, info) for info in infos]
        logger.debug("Bulk inserted %d record(s)", len(ids))
        return ids

    @staticmethod
    def _insert_one(conn: sqlite3.Connection, info: RecordInfo) -> int:
        cur = conn.execute(
            QUERY_INSERT_INFO,
            (info.video_id, info.title, info.author,
             info.duration_seconds, info.thumbnail, info.audio_available),
        )
        record_id = cur.lastrowid
        conn.executemany(
            QUERY_INSERT_FORMAT,
            [(v.container, v.width, v.height, v.fps, record_id)
             for v in info.variants],
        )
        return record_id

    # ── Delete ────────────────────────────────────────────────────────

    def delete_record(self, record_id: int) -> int:
        """
        Delete the record with matching `record_id`. Returns the number of
        records removed, 0 when none matched. Variant rows are kept unless
        cascade_delete is configured.
        """
        with self._writing(f"delete of record {record_id}") as conn:
            if self.config.cascade_delete:
                conn.execute(QUERY_DELETE_FORMATS, (record_id,))
            deleted = conn.execute(QUERY_DELETE_INFO, (record_id,)).rowcount
        logger.debug("Deleted %d record(s) with id %d", deleted, record_id)
        return deleted

    def delete_all(self) -> int:
        """Delete every record. Returns the number of records removed."""
        with self._writing("delete of all records") as conn:
            if self.config.cascade_delete:
                conn.execute(QUERY_DELETE_ALL_FORMATS)
            deleted = conn.execute(QUERY_DELETE_ALL_INFO).rowcount
        logger.info("Deleted all %d record(s)", deleted)
        return deleted

    # ── Counts ────────────────────────────────────────────────────────

    def count(self) -> int:
        with self._reading() as conn:
            return int(conn.execute(QUERY_COUNT_INFO).fetchone()[0])

    def count_orphaned_variants(self) -> int:
        """Variant rows whose parent record no longer exists."""
        with self._reading() as conn:
            return int(conn.execute(QUERY_COUNT_ORPHANS).fetchone()[0])


# ── asyncio facade ────────────────────────────────────────────────────

class AsyncHistoryDatabase:
    """
    Coroutine interface over HistoryDatabase for asyncio callers.
    Each call runs on a worker thread against the shared pool, so
    independent operations can be awaited concurrently.
    """

    def __init__(self, db: HistoryDatabase):
        self.db = db

    @classmethod
    async def open(cls, path: Path | str,
                   config: StoreConfig | None = None) -> "AsyncHistoryDatabase":
        return cls(await asyncio.to_thread(HistoryDatabase.open, path, config))

    @classmethod
    async def open_default(cls, config: StoreConfig | None = None) -> "AsyncHistoryDatabase":
        return cls(await asyncio.to_thread(HistoryDatabase.open_default, config))

    async def close(self):
        await asyncio.to_thread(self.db.close)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()
        return False

    async def fetch_one(self, record_id: int) -> ManagedRecord:
        return await asyncio.to_thread(self.db.fetch_one, record_id)

    async def fetch_chunk_of(self, starting_id: int, num_entries: int,
                             order: str) -> list[ManagedRecord]:
        return await asyncio.to_thread(
            self.db.fetch_chunk_of, starting_id, num_entries, order,
        )

    async def fetch_chunk(self, starting_id: int, order: str) -> list[ManagedRecord]:
        return await asyncio.to_thread(self.db.fetch_chunk, starting_id, order)

    async def fetch_first_chunk_from_top(self) -> list[ManagedRecord]:
        return await asyncio.to_thread(self.db.fetch_first_chunk_from_top)

    async def fetch_first_chunk_from_bottom(self) -> list[ManagedRecord]:
        return await asyncio.to_thread(self.db.fetch_first_chunk_from_bottom)

    async def insert_record(self, info: RecordInfo) -> int:
        return await asyncio.to_thread(self.db.insert_record, info)

    async def insert_bulk(self, infos: Sequence[RecordInfo]) -> list[int]:
        return await asyncio.to_thread(self.db.insert_bulk, infos)

    async def delete_record(self, record_id: int) -> int:
        return await asyncio.to_thread(self.db.delete_record, record_id)

    async def delete_all(self) -> int:
        return await asyncio.to_thread(self.db.delete_all)

    async def count(self) -> int:
        return await asyncio.to_thread(self.db.count)
