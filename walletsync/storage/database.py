import os
import sys
import json
import sqlite3
import time
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from walletsync.utils.console import print_error


class StorageType(Enum):
    """Namespaces of the key/value store"""
    CLIENT = "client"
    NOTES = "txid"


class KeyValueStore(Protocol):
    def get(self, storage_type: StorageType, key: Optional[str]) -> Any:
        """Value of the key, every value of the type if key is None, or None."""

    def store(self, storage_type: StorageType, key: str, value: Any) -> bool:
        ...


def _safe_home_dir() -> str:
    home = os.path.expanduser("~")
    if home and home != "~":
        return home
    env_home = os.getenv("HOME") or os.getenv("USERPROFILE")
    if env_home:
        return env_home
    return os.getcwd()


def get_default_data_dir() -> str:
    """Resolve a writable default data directory across platforms."""
    override = os.getenv("WALLETSYNC_DATA_DIR")
    if override:
        return override

    home = _safe_home_dir()

    if os.name == "nt":
        base = os.getenv("APPDATA") or os.getenv("LOCALAPPDATA") or home
        return os.path.join(base, "walletsync")

    if sys.platform == "darwin":
        return os.path.join(home, "Library", "Application Support", "walletsync")

    xdg_base = os.getenv("XDG_DATA_HOME") or os.path.join(home, ".local", "share")
    return os.path.join(xdg_base, "walletsync")


def resolve_db_path(db_path: Optional[str] = None) -> str:
    if db_path:
        return db_path
    return os.path.join(get_default_data_dir(), "walletsync.db")


class KeyValueDatabase:
    """Local key/value store on sqlite, values saved as JSON"""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = resolve_db_path(db_path)
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._init_database()

    def _init_database(self):
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS kv_data (
                type TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT,
                updated REAL,
                PRIMARY KEY (type, key)
            )
        ''')
        conn.commit()
        conn.close()

    def get(self, storage_type: StorageType, key: Optional[str]) -> Any:
        try:
            conn = sqlite3.connect(self.db_path)
            cursor = conn.cursor()
            if key is None:
                cursor.execute('SELECT key, value FROM kv_data WHERE type = ?', (storage_type.value,))
                rows = cursor.fetchall()
                conn.close()
                return {row[0]: json.loads(row[1]) for row in rows}

            cursor.execute('SELECT value FROM kv_data WHERE type = ? AND key = ?', (storage_type.value, key))
            row = cursor.fetchone()
            conn.close()
            return json.loads(row[0]) if row else None
        except (sqlite3.Error, ValueError) as e:
            print_error(f"Storage read error: {e}")
            return None

    def store(self, storage_type: StorageType, key: str, value: Any) -> bool:
        try:
            conn = sqlite3.connect(self.db_path)
            cursor = conn.cursor()
            cursor.execute('''
                INSERT OR REPLACE INTO kv_data (type, key, value, updated)
                VALUES (?, ?, ?, ?)
            ''', (storage_type.value, key, json.dumps(value), time.time()))
            conn.commit()
            conn.close()
            return True
        except (sqlite3.Error, TypeError, ValueError) as e:
            print_error(f"Storage write error: {e}")
            return False

    def delete(self, storage_type: StorageType, key: str) -> bool:
        try:
            conn = sqlite3.connect(self.db_path)
            cursor = conn.cursor()
            cursor.execute('DELETE FROM kv_data WHERE type = ? AND key = ?', (storage_type.value, key))
            conn.commit()
            conn.close()
            return True
        except sqlite3.Error as e:
            print_error(f"Storage delete error: {e}")
            return False


class MemoryStore:
    """In-memory store, for one-shot runs and tests."""

    def __init__(self, data: Optional[Dict[str, Dict[str, Any]]] = None):
        self._data: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (data or {}).items()}

    def get(self, storage_type: StorageType, key: Optional[str]) -> Any:
        values = self._data.get(storage_type.value, {})
        if key is None:
            return dict(values)
        return values.get(key)

    def store(self, storage_type: StorageType, key: str, value: Any) -> bool:
        self._data.setdefault(storage_type.value, {})[key] = value
        return True
