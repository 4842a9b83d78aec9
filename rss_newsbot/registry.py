"""
Subscriber registry shared by the command handlers and the poll cycle.

Reads always go to the durable store, so the poll cycle sees changes
made by command handlers between two feeds.
"""

import logging

from rss_newsbot.exceptions import StorageError
from rss_newsbot.models import DEFAULT_CATEGORY, Category
from rss_newsbot.storage import Storage

logger = logging.getLogger(__name__)


class SubscriberRegistry:
    """
    Set of subscribed chats plus the category each chat selected.

    Storage failures never propagate: reads fall back to empty values
    and failed writes are logged and reported through return values.
    """

    def __init__(self, storage: Storage, default_category: Category = DEFAULT_CATEGORY):
        """
        Initialize the registry.

        Parameters
        ----------
        storage : Storage
            Durable backing store.
        default_category : Category
            Mode given to subscribers that never selected one.
        """
        self.storage = storage
        self.default_category = default_category

    async def add(self, chat_id: int) -> bool:
        """
        Subscribe a chat.

        Returns
        -------
        bool
            True if the chat was added, False if it was already subscribed
            or could not be stored.
        """
        try:
            added = await self.storage.add_subscriber(chat_id)
        except StorageError as e:
            logger.error("Failed to add subscriber %s: %s", chat_id, e)
            return False

        if added:
            logger.info("New subscriber added: %s", chat_id)
        return added

    async def remove(self, chat_id: int) -> bool:
        """
        Unsubscribe a chat.

        Returns
        -------
        bool
            True if the chat was subscribed and has been removed.
        """
        try:
            removed = await self.storage.remove_subscriber(chat_id)
        except StorageError as e:
            logger.error("Failed to remove subscriber %s: %s", chat_id, e)
            return False

        if removed:
            logger.info("Subscriber removed: %s", chat_id)
        return removed

    async def contains(self, chat_id: int) -> bool:
        try:
            return await self.storage.has_subscriber(chat_id)
        except StorageError as e:
            logger.error("Failed to look up subscriber %s: %s", chat_id, e)
            return False

    async def all(self) -> set[int]:
        """Return every subscribed chat ID."""
        try:
            return set(await self.storage.get_subscribers())
        except StorageError as e:
            logger.error("Failed to load subscribers, using empty set: %s", e)
            return set()

    async def get_mode(self, chat_id: int) -> Category | None:
        """Return the category a chat selected, if any."""
        try:
            value = await self.storage.get_user_mode(chat_id)
        except StorageError as e:
            logger.error("Failed to load mode of %s: %s", chat_id, e)
            return None
        return self._to_category(chat_id, value)

    async def set_mode(self, chat_id: int, category: Category) -> bool:
        """
        Store the category a chat selected.

        Returns
        -------
        bool
            True if the mode was stored.
        """
        try:
            await self.storage.set_user_mode(chat_id, category.value)
        except StorageError as e:
            logger.error("Failed to store mode %s for %s: %s", category, chat_id, e)
            return False

        logger.info("Chat %s selected mode %s", chat_id, category)
        return True

    async def ensure_mode(self, chat_id: int) -> Category:
        """Give a chat the default mode unless it already has one."""
        current = await self.get_mode(chat_id)
        if current is not None:
            return current

        await self.set_mode(chat_id, self.default_category)
        return self.default_category

    async def modes(self) -> dict[int, Category]:
        """
        Return the chat ID to category mapping.

        The mapping keeps the order in which chats first chose a mode.
        Unknown categories are skipped.
        """
        try:
            raw = await self.storage.get_user_modes()
        except StorageError as e:
            logger.error("Failed to load user modes, using empty mapping: %s", e)
            return {}

        modes = {}
        for chat_id, value in raw.items():
            category = self._to_category(chat_id, value)
            if category is not None:
                modes[chat_id] = category
        return modes

    @staticmethod
    def _to_category(chat_id: int, value: str | None) -> Category | None:
        if value is None:
            return None
        try:
            return Category(value)
        except ValueError:
            logger.warning("Ignoring unknown mode '%s' for chat %s", value, chat_id)
            return None
