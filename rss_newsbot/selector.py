"""
Selection of the one new entry a feed contributes per poll cycle.
"""

import logging
from collections.abc import Sequence

from rss_newsbot.models import Category, FeedEntry
from rss_newsbot.state import WatermarkStore

logger = logging.getLogger(__name__)


def newest_entry(entries: Sequence[FeedEntry]) -> FeedEntry | None:
    """
    Return the entry with the latest timestamp.

    Ties keep the first entry encountered. Returns None for no entries.
    """
    latest: FeedEntry | None = None
    for entry in entries:
        if latest is None or entry.timestamp > latest.timestamp:
            latest = entry
    return latest


class NewestEntrySelector:
    """
    Picks the newest entry of a feed if it is newer than the category watermark.

    The first entry observed for a category only sets the watermark. This
    warm-up keeps the backlog present at startup from being delivered.
    Entries without any date sit at the epoch and are therefore never new
    once a watermark exists.
    """

    def __init__(self, watermarks: WatermarkStore):
        self.watermarks = watermarks

    async def select(
        self, category: Category, entries: Sequence[FeedEntry]
    ) -> FeedEntry | None:
        """
        Return the new entry of a feed, advancing the watermark.

        Parameters
        ----------
        category : Category
            Category the feed belongs to.
        entries : Sequence[FeedEntry]
            Entries of the feed, in any order.

        Returns
        -------
        FeedEntry | None
            The newest entry if it is strictly newer than the watermark.
        """
        latest = newest_entry(entries)
        if latest is None:
            return None

        watermark = await self.watermarks.get(category)

        if watermark is None:
            await self.watermarks.set(category, latest.timestamp)
            logger.info(
                "Initial watermark of %s set to %s, nothing delivered",
                category,
                latest.timestamp.isoformat(),
            )
            return None

        if latest.timestamp > watermark:
            await self.watermarks.set(category, latest.timestamp)
            return latest

        logger.debug(
            "No news in %s: newest %s, watermark %s",
            category,
            latest.timestamp.isoformat(),
            watermark.isoformat(),
        )
        return None

    async def warm_up(self, category: Category, entries: Sequence[FeedEntry]) -> None:
        """
        Advance the watermark to the newest entry without selecting it.

        Used for every feed of a category during the cycle that first
        observes it, so later feeds of that cycle deliver no backlog either.
        """
        latest = newest_entry(entries)
        if latest is None:
            return

        watermark = await self.watermarks.get(category)
        if watermark is None or latest.timestamp > watermark:
            await self.watermarks.set(category, latest.timestamp)
            logger.info(
                "Warm-up watermark of %s set to %s, nothing delivered",
                category,
                latest.timestamp.isoformat(),
            )
