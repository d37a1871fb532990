"""
Standardised error handling for the history store.
"""

from ydhistory.core.constants import ErrorCode, FATAL_ERRORS


class StoreError(Exception):
    """Raised when the store encounters a known error condition."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")

    @property
    def fatal(self) -> bool:
        return is_fatal(self.code)


class StoreConnectionError(StoreError):
    """The store file could not be opened or is not a database."""

    def __init__(self, message: str, code: str = ErrorCode.STORE_CONNECTION):
        super().__init__(code, message)


class MigrationError(StoreError):
    """Schema migrations did not complete; the store must not be used."""

    def __init__(self, message: str, version: int | None = None):
        self.version = version
        super().__init__(ErrorCode.MIGRATION, message)


class RecordNotFoundError(StoreError):
    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(ErrorCode.NOT_FOUND, f"no record with id {record_id}")


class WriteError(StoreError):
    """A write failed and its transaction was rolled back."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.WRITE, message)


class MalformedRowError(StoreError):
    """A stored value cannot be mapped back into a record."""

    def __init__(self, table: str, column: str, message: str):
        self.table = table
        self.column = column
        super().__init__(ErrorCode.MALFORMED_ROW, f"{table}.{column}: {message}")


class StoreClosedError(StoreError):
    def __init__(self):
        super().__init__(ErrorCode.STORE_CLOSED, "history store is closed")


def is_fatal(code: str) -> bool:
    return code in FATAL_ERRORS
