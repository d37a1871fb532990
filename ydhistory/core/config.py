"""
Store configuration manager.
Stores settings in a JSON file under Application Support.
"""

import json
import logging
from pathlib import Path

from ydhistory.core.constants import (
    CONFIG_PATH, DEFAULT_PAGE_SIZE, DEFAULT_POOL_SIZE,
    DEFAULT_BUSY_TIMEOUT_SEC, JournalMode, JOURNAL_MODES,
)

# Validation bounds
_PAGE_SIZE_MIN = 1
_PAGE_SIZE_MAX = 500
_POOL_SIZE_MIN = 1
_POOL_SIZE_MAX = 32
_BUSY_TIMEOUT_MIN = 0.0
_BUSY_TIMEOUT_MAX = 60.0

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'db_path': None,
    'default_page_size': DEFAULT_PAGE_SIZE,
    'pool_size': DEFAULT_POOL_SIZE,
    'busy_timeout_sec': DEFAULT_BUSY_TIMEOUT_SEC,
    'journal_mode': JournalMode.WAL,
    'cascade_delete': False,
}


class StoreConfig:
    """Manages store configuration stored as JSON."""

    def __init__(self, config_path: Path | None = CONFIG_PATH):
        self.path = config_path
        self._data: dict = {}
        self.load()

    @classmethod
    def defaults(cls, **overrides) -> "StoreConfig":
        """In-memory config that never touches disk."""
        config = cls(config_path=None)
        for key, value in overrides.items():
            config.set(key, value)
        return config

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path is not None and self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except Exception as e:
                logger.warning("Failed to load config: %s", e)
                self._data = dict(_DEFAULTS)

    def save(self):
        """Persist config to disk."""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'default_page_size':
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid default_page_size %r, using default", value)
                return DEFAULT_PAGE_SIZE
            return max(_PAGE_SIZE_MIN, min(_PAGE_SIZE_MAX, value))

        if key == 'pool_size':
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid pool_size %r, using default", value)
                return DEFAULT_POOL_SIZE
            return max(_POOL_SIZE_MIN, min(_POOL_SIZE_MAX, value))

        if key == 'busy_timeout_sec':
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Invalid busy_timeout_sec %r, using default", value)
                return DEFAULT_BUSY_TIMEOUT_SEC
            return max(_BUSY_TIMEOUT_MIN, min(_BUSY_TIMEOUT_MAX, value))

        if key == 'journal_mode':
            mode = str(value).upper()
            if mode not in JOURNAL_MODES:
                logger.warning("Invalid journal_mode %r, using WAL", value)
                return JournalMode.WAL
            return mode

        if key == 'db_path':
            return str(value) if value is not None else None

        if key == 'cascade_delete':
            return bool(value)

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    @property
    def db_path(self) -> Path | None:
        value = self._data.get('db_path')
        return Path(value) if value else None

    @property
    def default_page_size(self) -> int:
        return self._data.get('default_page_size', DEFAULT_PAGE_SIZE)

    @property
    def pool_size(self) -> int:
        return self._data.get('pool_size', DEFAULT_POOL_SIZE)

    @property
    def busy_timeout_sec(self) -> float:
        return self._data.get('busy_timeout_sec', DEFAULT_BUSY_TIMEOUT_SEC)

    @property
    def journal_mode(self) -> str:
        return self._data.get('journal_mode', JournalMode.WAL)

    @property
    def cascade_delete(self) -> bool:
        return self._data.get('cascade_delete', False)

    @cascade_delete.setter
    def cascade_delete(self, value: bool):
        self.set('cascade_delete', value)
