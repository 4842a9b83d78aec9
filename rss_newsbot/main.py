"""
Main entry point for RSS News Bot.

Runs the Telegram command application and the feed poll loop on one
asyncio event loop.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from urllib.parse import urlparse

import coloredlogs
import yaml
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import Application

from rss_newsbot.bot import BotHandlers, build_application, register_handlers
from rss_newsbot.commands import BotCommands
from rss_newsbot.config import load_config
from rss_newsbot.exceptions import ConfigurationError, StorageError
from rss_newsbot.fanout import DeliveryFanout
from rss_newsbot.filters import RelevanceFilter
from rss_newsbot.poller import PollCycle
from rss_newsbot.registry import SubscriberRegistry
from rss_newsbot.rss_parser import FeedParser
from rss_newsbot.selector import NewestEntrySelector
from rss_newsbot.state import LatestArticleStore, WatermarkStore
from rss_newsbot.storage import Storage
from rss_newsbot.telegram import TelegramNotifier

logger = logging.getLogger(__name__)

START_BANNER = "<i>Bot server started. News delivery resumed</i>"
STOP_BANNER = "<i>Bot server stopped. News delivery paused</i>"


def redact_proxy_url(proxy_url: str) -> str:
    """
    Redact credentials from a proxy URL for safe logging.

    Parameters
    ----------
    proxy_url : str
        The proxy URL potentially containing credentials.

    Returns
    -------
    str
        The proxy URL with password redacted.
    """
    try:
        parsed = urlparse(proxy_url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:****@{netloc}"
            return f"{parsed.scheme}://{netloc}{parsed.path}"
        return proxy_url
    except ValueError:
        return "<proxy url>"


class NewsBot:
    """
    Main news bot application.

    Wires storage, feed parsing, fan-out, the poll cycle and the
    Telegram command handlers together and owns their lifecycle.
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the bot.

        Parameters
        ----------
        config_path : str | Path
            Path to the YAML configuration file.

        Raises
        ------
        ConfigurationError
            If the configuration is missing or invalid.
        """
        try:
            self.config = load_config(config_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(str(e)) from e

        self.storage: Storage | None = None
        self.parser: FeedParser | None = None
        self.notifier: TelegramNotifier | None = None
        self.application: Application | None = None
        self.registry: SubscriberRegistry | None = None
        self.watermarks: WatermarkStore | None = None
        self.latest_articles: LatestArticleStore | None = None
        self.poll_cycle: PollCycle | None = None
        self.commands: BotCommands | None = None
        self._running = False
        self._stop_task: asyncio.Future | None = None
        self._tasks: list[asyncio.Task] = []

    def build(self, storage: Storage, application: Application) -> None:
        """
        Create the pipeline components around a storage and an application.

        Parameters
        ----------
        storage : Storage
            Initialized durable store.
        application : Application
            Telegram application whose bot is used for delivery.
        """
        config = self.config
        self.storage = storage
        self.application = application

        self.parser = FeedParser(
            timeout=config.defaults.request_timeout,
            max_retries=config.defaults.max_retries,
            user_agent=config.defaults.user_agent,
            proxy_url=config.defaults.proxy,
        )
        self.notifier = TelegramNotifier(config.telegram, bot=application.bot)
        self.registry = SubscriberRegistry(storage)
        self.watermarks = WatermarkStore(storage if config.storage.persist_watermarks else None)
        self.latest_articles = LatestArticleStore(storage)

        fanout = DeliveryFanout(
            self.notifier,
            self.latest_articles,
            fail_fast=config.delivery.fail_fast,
            send_interval=config.delivery.send_interval,
        )
        self.poll_cycle = PollCycle(
            config,
            self.parser,
            NewestEntrySelector(self.watermarks),
            RelevanceFilter(config.keywords.resolve()),
            fanout,
            self.registry,
        )
        self.commands = BotCommands(
            self.registry,
            self.latest_articles,
            fanout,
            self.poll_cycle,
            admin_ids=config.telegram.admin_ids,
        )
        register_handlers(application, BotHandlers(self.commands, self.notifier))

    async def start(self) -> None:
        """Start the bot and poll until stopped."""
        logger.info("Starting RSS News Bot")

        proxy_url = self.config.defaults.proxy
        if proxy_url:
            logger.info("Using proxy: %s", redact_proxy_url(proxy_url))

        storage = Storage(self.config.storage.database_path)
        try:
            await storage.initialize()
        except StorageError as e:
            logger.error("%s", e)
            sys.exit(1)

        self.build(storage, build_application(self.config.telegram.bot_token, proxy_url))
        await self.watermarks.load()

        try:
            await self.application.initialize()
        except TelegramError as e:
            logger.error("Failed to initialize Telegram bot: %s", e)
            await self.stop()
            sys.exit(1)

        if not await self.notifier.test_connection():
            logger.error("Failed to connect to Telegram, exiting")
            await self.stop()
            sys.exit(1)

        await self.application.start()
        await self.application.updater.start_polling()
        self._running = True

        if self.config.telegram.notify_on_status:
            await self.notifier.broadcast(
                await self.registry.all(), START_BANNER, parse_mode=ParseMode.HTML
            )

        logger.info("Bot started (press Ctrl+C to stop)")

        self._tasks.append(asyncio.create_task(self.poll_cycle.run_forever()))

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Poll task cancelled")

    async def stop(self) -> None:
        """
        Stop the bot gracefully.

        Concurrent calls share one shutdown and all return once it is done.
        """
        if self._stop_task is None:
            self._stop_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._stop_task)

    async def _shutdown(self) -> None:
        logger.info("Stopping RSS News Bot")

        if self.poll_cycle:
            self.poll_cycle.stop()

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        # Best effort
        if self._running and self.config.telegram.notify_on_status:
            await self.notifier.broadcast(
                await self.registry.all(), STOP_BANNER, parse_mode=ParseMode.HTML
            )
        self._running = False

        if self.application:
            if self.application.updater and self.application.updater.running:
                await self.application.updater.stop()
            if self.application.running:
                await self.application.stop()
            await self.application.shutdown()
        if self.notifier:
            await self.notifier.close()
        if self.parser:
            await self.parser.close()
        if self.storage:
            await self.storage.close()

        logger.info("Bot stopped")


def setup_logging(verbose: bool = False) -> None:
    """
    Configure application logging.

    Parameters
    ----------
    verbose : bool
        If True, set log level to DEBUG.
    """
    level = logging.DEBUG if verbose else logging.INFO

    coloredlogs.install(
        level=level,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="RSS news bot with Telegram delivery",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to configuration file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        bot = NewsBot(args.config)
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(bot.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(bot.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        loop.run_until_complete(bot.stop())
        loop.close()


if __name__ == "__main__":
    main()
