"""Local key-value storage for CipherBridge.

This module provides the single persistent concern the engine has: a
string-to-string table holding cached display balances. SQLite keeps it in
memory by default; pointing ``database_path`` at a file keeps balances
across restarts.
"""

import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import StorageError
from ..logging import get_logger

logger = get_logger(__name__)

MEMORY_DATABASE = ":memory:"


@dataclass
class DatabaseConfig:
    """Database configuration."""

    database_path: str = MEMORY_DATABASE
    connection_timeout: float = 30.0
    synchronous: str = "NORMAL"  # OFF, NORMAL, FULL
    journal_mode: str = "WAL"  # DELETE, TRUNCATE, PERSIST, MEMORY, WAL, OFF

    @property
    def in_memory(self) -> bool:
        return self.database_path == MEMORY_DATABASE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "database_path": self.database_path,
            "connection_timeout": self.connection_timeout,
            "synchronous": self.synchronous,
            "journal_mode": self.journal_mode,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseConfig":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            database_path=data.get("database_path", defaults.database_path),
            connection_timeout=float(
                data.get("connection_timeout", defaults.connection_timeout)
            ),
            synchronous=data.get("synchronous", defaults.synchronous),
            journal_mode=data.get("journal_mode", defaults.journal_mode),
        )


class KeyValueStore:
    """SQLite-backed string key-value store."""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig()
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

        if not self.config.in_memory:
            Path(self.config.database_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def connect(self) -> None:
        """Open the database and create the table if needed."""
        with self._lock:
            if self._connection is not None:
                return

            try:
                self._connection = sqlite3.connect(
                    self.config.database_path,
                    timeout=self.config.connection_timeout,
                    isolation_level=None,
                    check_same_thread=False,
                )
                self._configure_sqlite()
                self._create_tables()
            except sqlite3.Error as e:
                self._connection = None
                raise StorageError(
                    f"Failed to open database: {e}",
                    storage_type="sqlite",
                    operation="connect",
                    cause=e,
                ) from e

            logger.info(f"Opened key-value store: {self.config.database_path}")

    def disconnect(self) -> None:
        """Close the database."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.debug("Closed key-value store")

    def _configure_sqlite(self) -> None:
        pragmas = [f"PRAGMA synchronous = {self.config.synchronous}"]
        if not self.config.in_memory:
            pragmas.append(f"PRAGMA journal_mode = {self.config.journal_mode}")
        for pragma in pragmas:
            self._connection.execute(pragma)

    def _create_tables(self) -> None:
        self._connection.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL
            )
            """
        )

    def _execute(self, query: str, params: Tuple = ()) -> List[Tuple]:
        if self._connection is None:
            self.connect()
        with self._lock:
            try:
                cursor = self._connection.execute(query, params)
                return cursor.fetchall()
            except sqlite3.Error as e:
                raise StorageError(
                    f"Query failed: {e}",
                    storage_type="sqlite",
                    operation=query.split()[0].lower(),
                    cause=e,
                ) from e

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        rows = self._execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        return rows[0][0] if rows else default

    def set(self, key: str, value: str) -> None:
        self._execute(
            "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
            "updated_at = excluded.updated_at",
            (key, value, time.time()),
        )

    def delete(self, key: str) -> bool:
        existed = self.get(key) is not None
        self._execute("DELETE FROM kv_store WHERE key = ?", (key,))
        return existed

    def keys(self, prefix: str = "") -> List[str]:
        # LIKE treats _ as a wildcard, so the prefix is matched in Python.
        rows = self._execute("SELECT key FROM kv_store ORDER BY key")
        return [row[0] for row in rows if row[0].startswith(prefix)]

    def items(self, prefix: str = "") -> Dict[str, str]:
        rows = self._execute("SELECT key, value FROM kv_store ORDER BY key")
        return {key: value for key, value in rows if key.startswith(prefix)}

    @contextmanager
    def transaction(self) -> Iterator["KeyValueStore"]:
        """Group writes atomically."""
        if self._connection is None:
            self.connect()
        with self._lock:
            self._connection.execute("BEGIN")
            try:
                yield self
            except BaseException:
                self._connection.execute("ROLLBACK")
                raise
            self._connection.execute("COMMIT")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
