"""
Core entry points behind the user and admin commands.

Each method performs one action on the shared registry and state and
returns a result the presentation layer turns into a reply.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from rss_newsbot.fanout import DeliveryFanout, DeliveryReport
from rss_newsbot.models import DEFAULT_CATEGORY, Article, Category
from rss_newsbot.poller import PollCycle
from rss_newsbot.registry import SubscriberRegistry
from rss_newsbot.state import LatestArticleStore

logger = logging.getLogger(__name__)


class TriggerResult(Enum):
    """Outcome of an admin request to run a poll cycle."""

    NOT_SUBSCRIBED = "not_subscribed"
    FORBIDDEN = "forbidden"
    ALREADY_RUNNING = "already_running"
    STARTED = "started"


class CommandError(ValueError):
    """A command was called with invalid arguments."""


@dataclass(frozen=True)
class PublishRequest:
    """Parsed arguments of the publish command."""

    category: Category
    title: str
    url: str


def parse_category(value: str) -> Category:
    """
    Parse a category name, ignoring case.

    Raises
    ------
    CommandError
        If the name is not a known category.
    """
    try:
        return Category(value.strip().lower())
    except ValueError:
        names = ", ".join(c.value for c in Category)
        raise CommandError(f"Unknown category '{value}', expected one of: {names}") from None


def parse_publish_command(text: str) -> PublishRequest:
    """
    Parse '/article <category> <title words...> <url>'.

    The first argument is the category, the last one the URL and
    everything in between the title.

    Raises
    ------
    CommandError
        If arguments are missing or the category is unknown.
    """
    args = text.split()
    if len(args) < 4:
        raise CommandError("Usage: /article <category> <title> <url>")

    category = parse_category(args[1])
    title = " ".join(args[2:-1])
    url = args[-1]

    return PublishRequest(category=category, title=title, url=url)


class BotCommands:
    """
    Actions users and admins can trigger.

    Shares the registry and the latest-article store with the poll cycle.
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        latest_articles: LatestArticleStore,
        fanout: DeliveryFanout,
        poll_cycle: PollCycle,
        admin_ids: list[int] | None = None,
    ):
        self.registry = registry
        self.latest_articles = latest_articles
        self.fanout = fanout
        self.poll_cycle = poll_cycle
        self.admin_ids = set(admin_ids or [])
        self._background: set[asyncio.Task] = set()

    def is_admin(self, chat_id: int) -> bool:
        return chat_id in self.admin_ids

    async def start(self, chat_id: int) -> bool:
        """
        Subscribe a chat, giving it the default mode if it has none.

        Returns
        -------
        bool
            True if newly subscribed, False if it already was.
        """
        await self.registry.ensure_mode(chat_id)

        if await self.registry.contains(chat_id):
            return False
        return await self.registry.add(chat_id)

    async def stop(self, chat_id: int) -> bool:
        """
        Unsubscribe a chat.

        Returns
        -------
        bool
            True if the chat was subscribed, False if already stopped.
        """
        return await self.registry.remove(chat_id)

    async def select_mode(self, chat_id: int, category: Category) -> bool:
        return await self.registry.set_mode(chat_id, category)

    async def latest_article(
        self, chat_id: int, category: Category | None = None
    ) -> Article | None:
        """
        Return the latest delivered article for a chat.

        Parameters
        ----------
        chat_id : int
            Requesting chat.
        category : Category | None
            Category to look up; defaults to the chat's mode.

        Returns
        -------
        Article | None
            The article, or None if nothing was delivered yet.
        """
        if category is None:
            category = await self.registry.get_mode(chat_id) or DEFAULT_CATEGORY
        return await self.latest_articles.get(category)

    async def trigger_cycle(self, chat_id: int) -> TriggerResult:
        """
        Start a poll cycle in the background on behalf of an admin.

        The chat must be subscribed and listed as an admin. No second
        cycle is started while one is running.
        """
        if not await self.registry.contains(chat_id):
            return TriggerResult.NOT_SUBSCRIBED
        if not self.is_admin(chat_id):
            logger.warning("Chat %s tried to trigger a poll cycle", chat_id)
            return TriggerResult.FORBIDDEN
        if self.poll_cycle.in_progress:
            return TriggerResult.ALREADY_RUNNING

        logger.info("Poll cycle triggered by %s", chat_id)
        task = asyncio.create_task(self.poll_cycle.run_once())
        self._background.add(task)
        task.add_done_callback(self._on_cycle_done)
        return TriggerResult.STARTED

    def _on_cycle_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Triggered poll cycle failed: %s", error, exc_info=error)

    async def publish_article(
        self, chat_id: int, category: Category, title: str, url: str
    ) -> DeliveryReport:
        """
        Send a hand-picked article to the subscribers of a category.

        Raises
        ------
        PermissionError
            If the chat is not an admin.
        """
        if not self.is_admin(chat_id):
            raise PermissionError(f"Chat {chat_id} is not an admin")

        article = Article(title=title, link=url)
        logger.info("Admin %s publishes %s article: %s", chat_id, category, title[:50])

        return await self.fanout.dispatch(
            category,
            article,
            await self.registry.all(),
            await self.registry.modes(),
        )
