"""SQLite key/value storage for persisted engine state."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from ..errors import StorageError

logger = logging.getLogger(__name__)


class StateStore:
    """Async SQLite store holding JSON documents under fixed keys."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._connection is not None

    async def connect(self):
        """Establish database connection and create tables."""
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self.db_path)
            try:
                await self._connection.execute("PRAGMA journal_mode=WAL")
                await self._connection.execute("PRAGMA busy_timeout=5000")
                await self._connection.commit()
            except aiosqlite.Error:
                pass
            await self._create_tables()
        except (OSError, aiosqlite.Error) as exc:
            await self.close()
            raise StorageError(f"Cannot open state store {self.db_path}: {exc}") from exc

    async def close(self):
        """Close database connection."""
        if self._connection:
            try:
                await self._connection.close()
            finally:
                self._connection = None

    async def _create_tables(self):
        async with self._lock:
            await self._connection.executescript(
                """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );
                """
            )
            await self._connection.commit()

    async def get(self, key: str) -> Optional[Any]:
        """Return the decoded document stored under key, or None."""
        if not self._connection:
            raise StorageError("State store is not connected")
        try:
            async with self._lock:
                async with self._connection.execute(
                    "SELECT value FROM kv WHERE key = ?", (key,)
                ) as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupt value for {key}: {exc}") from exc

    async def set(self, key: str, value: Any) -> None:
        """Store value (JSON-serializable) under key, replacing any previous one."""
        if not self._connection:
            raise StorageError("State store is not connected")
        try:
            encoded = json.dumps(value)
            async with self._lock:
                await self._connection.execute(
                    """
                    INSERT INTO kv (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, encoded),
                )
                await self._connection.commit()
        except (TypeError, ValueError, aiosqlite.Error) as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        if not self._connection:
            raise StorageError("State store is not connected")
        try:
            async with self._lock:
                await self._connection.execute("DELETE FROM kv WHERE key = ?", (key,))
                await self._connection.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
