"""
Poll cycle: fetch, select, filter and dispatch for every configured feed.
"""

import asyncio
import logging

from rss_newsbot.config import AppConfig
from rss_newsbot.exceptions import FetchError
from rss_newsbot.fanout import DeliveryFanout, DeliveryReport
from rss_newsbot.filters import RelevanceFilter
from rss_newsbot.models import Article, Category
from rss_newsbot.registry import SubscriberRegistry
from rss_newsbot.rss_parser import FeedParser
from rss_newsbot.selector import NewestEntrySelector

logger = logging.getLogger(__name__)


class PollCycle:
    """
    Drives the news pipeline.

    One sweep walks the categories in fixed order and every feed of each
    category. Only one sweep runs at a time; a sweep requested while
    another is active waits for it to finish.
    """

    def __init__(
        self,
        config: AppConfig,
        parser: FeedParser,
        selector: NewestEntrySelector,
        relevance: RelevanceFilter,
        fanout: DeliveryFanout,
        registry: SubscriberRegistry,
    ):
        self.config = config
        self.parser = parser
        self.selector = selector
        self.relevance = relevance
        self.fanout = fanout
        self.registry = registry
        self._lock = asyncio.Lock()
        self._running = False

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> list[DeliveryReport]:
        """
        Run one sweep over all feeds.

        Failures of a single feed are logged and never stop the sweep.

        Returns
        -------
        list[DeliveryReport]
            One report per dispatched article.
        """
        async with self._lock:
            self.relevance.update_keywords(self.config.keywords.resolve())
            reports: list[DeliveryReport] = []

            # Categories without a watermark deliver nothing this cycle
            known = self.selector.watermarks.snapshot()
            warming_up = {c for c in self.config.active_categories if c not in known}

            for category in self.config.active_categories:
                urls = self.config.feeds_for(category)
                logger.debug("Checking %d %s feed(s)", len(urls), category)

                for url in urls:
                    try:
                        report = await self._process_feed(
                            category, url, warm_up=category in warming_up
                        )
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        logger.error("Error processing feed %s: %s", url, e, exc_info=True)
                        continue

                    if report is not None:
                        reports.append(report)

            logger.info("Poll cycle finished, %d article(s) dispatched", len(reports))
            return reports

    async def _process_feed(
        self, category: Category, url: str, warm_up: bool = False
    ) -> DeliveryReport | None:
        """
        Check one feed and dispatch its new entry if relevant.

        Parameters
        ----------
        category : Category
            Category the feed belongs to.
        url : str
            Feed URL.
        warm_up : bool
            Only advance the watermark, never dispatch.

        Returns
        -------
        DeliveryReport | None
            The dispatch report, or None when nothing was dispatched.
        """
        try:
            entries = await self.parser.fetch(url)
        except FetchError as e:
            logger.warning("%s", e)
            return None

        if warm_up:
            await self.selector.warm_up(category, entries)
            return None

        entry = await self.selector.select(category, entries)
        if entry is None:
            return None

        if not self.relevance.matches(entry):
            logger.info("New %s entry is not relevant: %s", category, entry.title)
            return None

        # Handlers may have changed subscriptions while the feed was fetched
        subscribers = await self.registry.all()
        user_modes = await self.registry.modes()

        return await self.fanout.dispatch(
            category, Article.from_entry(entry), subscribers, user_modes
        )

    async def run_forever(self) -> None:
        """Run a sweep now, then one every check interval until stopped."""
        interval = self.config.defaults.check_interval
        self._running = True
        logger.info("Polling feeds every %d seconds", interval)

        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Poll cycle failed: %s", e, exc_info=True)

            await asyncio.sleep(interval)

    def stop(self) -> None:
        self._running = False
