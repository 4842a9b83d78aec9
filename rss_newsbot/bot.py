"""
Telegram command handlers.

Maps chat commands onto BotCommands and turns the results into replies.
"""

import html
import logging

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import Application, CommandHandler, ContextTypes

from rss_newsbot.commands import (
    BotCommands,
    CommandError,
    TriggerResult,
    parse_category,
    parse_publish_command,
)
from rss_newsbot.models import Category
from rss_newsbot.telegram import TelegramNotifier

logger = logging.getLogger(__name__)

MODE_LABELS = {
    Category.REGIONAL: "Regional news only",
    Category.GLOBAL: "News from all countries",
}

HELP_TEXT = (
    "<b>RSS News Bot</b>\n"
    "/start - subscribe to news\n"
    "/stop - unsubscribe\n"
    "/latest - show the latest article of your mode\n"
    "/mode &lt;regional|global&gt; - choose which news you receive\n"
    "/regional_mode - regional news only\n"
    "/global_mode - news from all countries"
)


class BotHandlers:
    """Telegram handlers bound to the command entry points."""

    def __init__(self, commands: BotCommands, notifier: TelegramNotifier):
        self.commands = commands
        self.notifier = notifier

    @staticmethod
    async def _reply(update: Update, text: str, parse_mode: str = ParseMode.HTML) -> None:
        if update.effective_message is not None:
            await update.effective_message.reply_text(text, parse_mode=parse_mode)

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if await self.commands.start(update.effective_chat.id):
            await self._reply(update, "<i>Bot started! News delivery enabled</i>")
        else:
            await self._reply(update, "<i>Already running</i>")

    async def stop(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if await self.commands.stop(update.effective_chat.id):
            await self._reply(
                update,
                "<i>News delivery disabled</i>\n"
                "You can still use /latest to get the most recent article",
            )
        else:
            await self._reply(update, "<i>Already stopped</i>")

    async def latest(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        article = await self.commands.latest_article(update.effective_chat.id)
        if article is None:
            await self._reply(update, "<i>No article delivered yet</i>")
            return
        await self._reply(update, self.notifier.format_article(article), self.notifier.parse_mode)

    async def help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self._reply(update, HELP_TEXT)

    async def mode(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not context.args:
            await self._reply(update, "<i>Usage: /mode regional|global</i>")
            return
        try:
            category = parse_category(context.args[0])
        except CommandError as e:
            await self._reply(update, f"<i>{html.escape(str(e))}</i>")
            return
        await self._select_mode(update, category)

    async def regional_mode(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self._select_mode(update, Category.REGIONAL)

    async def global_mode(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self._select_mode(update, Category.GLOBAL)

    async def _select_mode(self, update: Update, category: Category) -> None:
        if await self.commands.select_mode(update.effective_chat.id, category):
            await self._reply(update, f"Mode selected: <b>{MODE_LABELS[category]}</b>")
        else:
            await self._reply(update, "<i>Command temporarily unavailable</i>")

    async def check(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        result = await self.commands.trigger_cycle(update.effective_chat.id)
        if result is TriggerResult.STARTED:
            await self._reply(update, "<i>Updating news feeds</i>")
        elif result is TriggerResult.ALREADY_RUNNING:
            await self._reply(update, "<i>News feeds are already being updated</i>")
        elif result is TriggerResult.FORBIDDEN:
            await self._reply(update, "<i>Access denied. Command available to admins only.</i>")
        else:
            await self._reply(update, "<i>Bot is stopped</i>")

    async def article(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = update.effective_chat.id
        if not self.commands.is_admin(chat_id):
            await self._reply(update, "<i>Access denied. Command available to admins only.</i>")
            return

        try:
            request = parse_publish_command(update.effective_message.text or "")
        except CommandError as e:
            await self._reply(update, f"<i>{html.escape(str(e))}</i>")
            return

        report = await self.commands.publish_article(
            chat_id, request.category, request.title, request.url
        )
        await self._reply(
            update,
            f"<i>Sent to {len(report.delivered)}/{report.recipient_count} subscriber(s)</i>",
        )


def register_handlers(application: Application, handlers: BotHandlers) -> None:
    """Attach every command handler to the application."""
    for name, callback in (
        ("start", handlers.start),
        ("stop", handlers.stop),
        ("latest", handlers.latest),
        ("help", handlers.help),
        ("mode", handlers.mode),
        ("regional_mode", handlers.regional_mode),
        ("global_mode", handlers.global_mode),
        ("check", handlers.check),
        ("article", handlers.article),
    ):
        application.add_handler(CommandHandler(name, callback))


def build_application(bot_token: str, proxy_url: str | None = None) -> Application:
    """
    Create the Telegram application used for receiving commands.

    Parameters
    ----------
    bot_token : str
        Telegram Bot API token.
    proxy_url : str | None
        Optional SOCKS proxy URL for both sending and long polling.
    """
    builder = Application.builder().token(bot_token)
    if proxy_url:
        builder = builder.proxy(proxy_url).get_updates_proxy(proxy_url)
        logger.debug("Telegram application using proxy: %s", proxy_url.split("@")[-1])
    return builder.build()
