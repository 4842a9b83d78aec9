"""
Delivery of a confirmed article to the subscribers of its category.
"""

import asyncio
import logging
from collections.abc import Mapping, Set
from dataclasses import dataclass, field

from rss_newsbot.exceptions import DeliveryError
from rss_newsbot.models import Article, Category
from rss_newsbot.notifier import Notifier
from rss_newsbot.state import LatestArticleStore

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    """
    Outcome of one dispatch.

    Attributes
    ----------
    category : Category
        Category the article was dispatched in.
    article : Article
        The dispatched article.
    delivered : list[int]
        Chats that received the article.
    failed : list[tuple[int, str]]
        Chats whose send failed, with the reason.
    skipped : list[int]
        Chats not attempted because the dispatch was aborted.
    """

    category: Category
    article: Article
    delivered: list[int] = field(default_factory=list)
    failed: list[tuple[int, str]] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return bool(self.skipped)

    @property
    def recipient_count(self) -> int:
        return len(self.delivered) + len(self.failed) + len(self.skipped)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


def select_recipients(
    category: Category,
    subscribers: Set[int],
    user_modes: Mapping[int, Category],
) -> list[int]:
    """
    Return the chats that should receive an article of a category.

    A chat qualifies when it is subscribed and its mode is the category.
    The order of user_modes is kept.
    """
    return [
        chat_id
        for chat_id, mode in user_modes.items()
        if mode == category and chat_id in subscribers
    ]


class DeliveryFanout:
    """
    Sends an article to every subscriber whose mode matches its category.

    The latest article of the category is saved once, before the first
    send. With fail_fast, the first failed send aborts the remaining
    recipients of that article; otherwise each recipient is tried.
    """

    def __init__(
        self,
        notifier: Notifier,
        latest_articles: LatestArticleStore,
        fail_fast: bool = True,
        send_interval: float = 0.0,
    ):
        """
        Initialize the fan-out.

        Parameters
        ----------
        notifier : Notifier
            Chat delivery backend.
        latest_articles : LatestArticleStore
            Store of the latest article per category.
        fail_fast : bool
            Abort the dispatch on the first delivery error.
        send_interval : float
            Pause in seconds between two sends.
        """
        self.notifier = notifier
        self.latest_articles = latest_articles
        self.fail_fast = fail_fast
        self.send_interval = send_interval

    async def dispatch(
        self,
        category: Category,
        article: Article,
        subscribers: Set[int],
        user_modes: Mapping[int, Category],
    ) -> DeliveryReport:
        """
        Deliver an article to the subscribers of a category.

        Parameters
        ----------
        category : Category
            Category of the article.
        article : Article
            The article to deliver.
        subscribers : Set[int]
            Currently subscribed chats.
        user_modes : Mapping[int, Category]
            Mode selected by each chat.

        Returns
        -------
        DeliveryReport
            Which chats were reached, failed or skipped.
        """
        report = DeliveryReport(category=category, article=article)
        recipients = select_recipients(category, subscribers, user_modes)

        if not recipients:
            logger.info("No %s subscribers for '%s'", category, article.title[:50])
            return report

        await self.latest_articles.save(category, article)

        for index, chat_id in enumerate(recipients):
            if index and self.send_interval:
                await asyncio.sleep(self.send_interval)

            try:
                await self.notifier.send_article(chat_id, article)
            except DeliveryError as e:
                report.failed.append((chat_id, e.reason))
                logger.error("Error sending to %s: %s", chat_id, e.reason)
                if self.fail_fast:
                    report.skipped = recipients[index + 1 :]
                    logger.warning(
                        "Article not delivered to remaining %d subscriber(s): %s",
                        len(report.skipped),
                        article.title[:50],
                    )
                    break
                continue

            report.delivered.append(chat_id)

        logger.info(
            "Article sent to %d/%d %s subscriber(s): %s",
            len(report.delivered),
            len(recipients),
            category,
            article.title[:50],
        )
        return report
