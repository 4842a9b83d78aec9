"""
Per-category state owned by the poll pipeline.

WatermarkStore remembers the newest timestamp confirmed for each
category. LatestArticleStore remembers the last article handed to
subscribers, for the "latest article" command.
"""

import logging
from datetime import datetime

from rss_newsbot.exceptions import StorageError
from rss_newsbot.models import Article, Category
from rss_newsbot.storage import Storage

logger = logging.getLogger(__name__)


class WatermarkStore:
    """
    Newest confirmed publication time per category.

    Values live in memory. When a storage is given they are also written
    through and restored by load(), otherwise every restart starts with
    unset watermarks.
    """

    def __init__(self, storage: Storage | None = None):
        """
        Initialize the store.

        Parameters
        ----------
        storage : Storage | None
            Optional durable store for persistence across restarts.
        """
        self.storage = storage
        self._watermarks: dict[Category, datetime] = {}

    async def load(self) -> None:
        """Restore persisted watermarks."""
        if self.storage is None:
            return

        try:
            stored = await self.storage.get_watermarks()
        except (StorageError, ValueError) as e:
            logger.error("Failed to load watermarks, starting unset: %s", e)
            return

        for name, published_at in stored.items():
            try:
                self._watermarks[Category(name)] = published_at
            except ValueError:
                logger.warning("Ignoring watermark of unknown category '%s'", name)

        logger.info("Restored %d watermark(s)", len(self._watermarks))

    async def get(self, category: Category) -> datetime | None:
        return self._watermarks.get(category)

    async def set(self, category: Category, timestamp: datetime) -> None:
        """
        Record the newest confirmed timestamp of a category.

        Raises
        ------
        ValueError
            If the timestamp is older than the current watermark.
        """
        current = self._watermarks.get(category)
        if current is not None and timestamp < current:
            raise ValueError(
                f"Watermark of {category} cannot move back from {current} to {timestamp}"
            )

        self._watermarks[category] = timestamp
        logger.debug("Watermark of %s set to %s", category, timestamp.isoformat())

        if self.storage is not None:
            try:
                await self.storage.set_watermark(category.value, timestamp)
            except StorageError as e:
                logger.error("Failed to persist watermark of %s: %s", category, e)

    def snapshot(self) -> dict[Category, datetime]:
        return dict(self._watermarks)


class LatestArticleStore:
    """Last article delivered for each category, kept in the durable store."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def save(self, category: Category, article: Article) -> bool:
        """
        Overwrite the latest article of a category.

        Returns
        -------
        bool
            True if the article was stored.
        """
        try:
            await self.storage.save_latest_article(category.value, article.title, article.link)
        except StorageError as e:
            logger.error("Failed to save latest %s article: %s", category, e)
            return False
        return True

    async def get(self, category: Category) -> Article | None:
        try:
            row = await self.storage.get_latest_article(category.value)
        except StorageError as e:
            logger.error("Failed to load latest %s article: %s", category, e)
            return None

        if row is None:
            return None
        title, link = row
        return Article(title=title, link=link)
