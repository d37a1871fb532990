"""
Shared constants for the download history store.
Single source of truth, imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "YDHistory"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_SUPPORT_DIR = HOME / "Library" / "Application Support" / APP_NAME
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"
LOG_DIR = HOME / "Library" / "Logs" / APP_NAME

# Resolved next to the running program, see HistoryDatabase.get_file_path
HISTORY_FILE_NAME = "history.db"

# ── Schema names ──────────────────────────────────────────────────────
ID = "id"

VIDEO_INFO = "video_info"
VIDEO_ID = "video_id"
TITLE = "title"
AUTHOR = "author"
DURATION_SECONDS = "duration_seconds"
THUMBNAIL = "thumbnail"
AUDIO_AVAILABLE = "audio_available"

VIDEO_FORMAT = "video_format"
CONTAINER = "container"
WIDTH = "width"
HEIGHT = "height"
FPS = "fps"
VIDEO_INFO_ID = "video_info_id"

SCHEMA_VERSION_TABLE = "schema_version"

# ── Pagination ────────────────────────────────────────────────────────
DEFAULT_PAGE_SIZE = 20
FIRST_ROW_ID = 1


class FetchOrder:
    # id >= starting id, ascending
    GEQ_ASC = "GEQ_ASC"
    # id <= starting id, descending
    LEQ_DESC = "LEQ_DESC"


# ── Connection pool defaults ──────────────────────────────────────────
DEFAULT_POOL_SIZE = 4
DEFAULT_BUSY_TIMEOUT_SEC = 5.0


class JournalMode:
    WAL = "WAL"
    DELETE = "DELETE"
    TRUNCATE = "TRUNCATE"


JOURNAL_MODES = (JournalMode.WAL, JournalMode.DELETE, JournalMode.TRUNCATE)

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Startup (fatal)
    STORE_CONNECTION = "ERR_STORE_CONNECTION"
    PROGRAM_LOCATION = "ERR_PROGRAM_LOCATION"
    MIGRATION = "ERR_MIGRATION"

    # Per-operation
    NOT_FOUND = "ERR_NOT_FOUND"
    WRITE = "ERR_WRITE"
    MALFORMED_ROW = "ERR_MALFORMED_ROW"
    QUERY = "ERR_QUERY"
    STORE_CLOSED = "ERR_STORE_CLOSED"


FATAL_ERRORS = {
    ErrorCode.STORE_CONNECTION,
    ErrorCode.PROGRAM_LOCATION,
    ErrorCode.MIGRATION,
}
