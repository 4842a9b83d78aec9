"""
SQLite storage for subscribers and bot state.

Provides async database operations so subscriptions, user modes and
delivered articles survive restarts.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from rss_newsbot.exceptions import StorageError

logger = logging.getLogger(__name__)


class Storage:
    """
    Async SQLite key-value storage.

    Every failing database operation raises StorageError. Rows keep
    their insertion order so readers iterate subscribers in the order
    they joined.
    """

    def __init__(self, database_path: str | Path):
        """
        Initialize storage with database path.

        Parameters
        ----------
        database_path : str | Path
            Path to the SQLite database file.
        """
        self.database_path = Path(database_path)
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """
        Initialize the database connection and create tables.

        Creates the database file and parent directories if they don't exist.
        """
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Initializing database at %s", self.database_path)

        try:
            self._connection = await aiosqlite.connect(self.database_path)
            await self._create_tables()
        except aiosqlite.Error as e:
            raise StorageError(f"Cannot open database {self.database_path}: {e}") from e

    async def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        connection = self._require_connection()

        await connection.execute("""
            CREATE TABLE IF NOT EXISTS subscribers (
                chat_id INTEGER PRIMARY KEY,
                subscribed_at TEXT NOT NULL
            )
        """)

        await connection.execute("""
            CREATE TABLE IF NOT EXISTS user_modes (
                chat_id INTEGER PRIMARY KEY,
                category TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await connection.execute("""
            CREATE TABLE IF NOT EXISTS latest_articles (
                category TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                link TEXT NOT NULL,
                saved_at TEXT NOT NULL
            )
        """)

        await connection.execute("""
            CREATE TABLE IF NOT EXISTS watermarks (
                category TEXT PRIMARY KEY,
                published_at TEXT NOT NULL
            )
        """)

        await connection.commit()
        logger.debug("Database tables created/verified")

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database not initialized")
        return self._connection

    async def _write(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Run a modifying statement and commit. Returns the row count."""
        connection = self._require_connection()
        try:
            cursor = await connection.execute(sql, tuple(params))
            await connection.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Database write failed: {e}") from e
        return cursor.rowcount

    async def _fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[Any]:
        """Run a query and return all rows."""
        connection = self._require_connection()
        try:
            cursor = await connection.execute(sql, tuple(params))
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StorageError(f"Database read failed: {e}") from e

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # Subscribers

    async def add_subscriber(self, chat_id: int) -> bool:
        """
        Add a subscriber.

        Parameters
        ----------
        chat_id : int
            Telegram chat ID.

        Returns
        -------
        bool
            True if the subscriber was added, False if already present.
        """
        added = await self._write(
            "INSERT OR IGNORE INTO subscribers (chat_id, subscribed_at) VALUES (?, ?)",
            (chat_id, self._now()),
        )
        logger.debug("Add subscriber %s: %s", chat_id, "added" if added else "present")
        return added > 0

    async def remove_subscriber(self, chat_id: int) -> bool:
        """
        Remove a subscriber.

        Returns
        -------
        bool
            True if the subscriber existed.
        """
        removed = await self._write("DELETE FROM subscribers WHERE chat_id = ?", (chat_id,))
        return removed > 0

    async def has_subscriber(self, chat_id: int) -> bool:
        rows = await self._fetchall("SELECT 1 FROM subscribers WHERE chat_id = ?", (chat_id,))
        return bool(rows)

    async def get_subscribers(self) -> list[int]:
        """Return all subscriber chat IDs in subscription order."""
        rows = await self._fetchall("SELECT chat_id FROM subscribers ORDER BY rowid")
        return [row[0] for row in rows]

    # User modes

    async def set_user_mode(self, chat_id: int, category: str) -> None:
        """
        Store the category a user selected.

        An existing row is updated in place and keeps its position.
        """
        await self._write(
            """
            INSERT INTO user_modes (chat_id, category, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT (chat_id) DO UPDATE SET
                category = excluded.category,
                updated_at = excluded.updated_at
            """,
            (chat_id, category, self._now()),
        )

    async def get_user_mode(self, chat_id: int) -> str | None:
        rows = await self._fetchall(
            "SELECT category FROM user_modes WHERE chat_id = ?", (chat_id,)
        )
        return rows[0][0] if rows else None

    async def get_user_modes(self) -> dict[int, str]:
        """Return the chat ID to category mapping in insertion order."""
        rows = await self._fetchall("SELECT chat_id, category FROM user_modes ORDER BY rowid")
        return {chat_id: category for chat_id, category in rows}

    # Latest delivered articles

    async def save_latest_article(self, category: str, title: str, link: str) -> None:
        """Overwrite the latest delivered article of a category."""
        await self._write(
            """
            INSERT OR REPLACE INTO latest_articles (category, title, link, saved_at)
            VALUES (?, ?, ?, ?)
            """,
            (category, title, link, self._now()),
        )
        logger.debug("Saved latest %s article: %s", category, title[:50])

    async def get_latest_article(self, category: str) -> tuple[str, str] | None:
        """
        Return the latest delivered article of a category.

        Returns
        -------
        tuple[str, str] | None
            (title, link), or None if nothing was delivered yet.
        """
        rows = await self._fetchall(
            "SELECT title, link FROM latest_articles WHERE category = ?", (category,)
        )
        return (rows[0][0], rows[0][1]) if rows else None

    # Watermarks

    async def set_watermark(self, category: str, published_at: datetime) -> None:
        await self._write(
            "INSERT OR REPLACE INTO watermarks (category, published_at) VALUES (?, ?)",
            (category, published_at.isoformat()),
        )

    async def get_watermarks(self) -> dict[str, datetime]:
        rows = await self._fetchall("SELECT category, published_at FROM watermarks")
        return {category: datetime.fromisoformat(value) for category, value in rows}

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    async def __aenter__(self) -> "Storage":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
