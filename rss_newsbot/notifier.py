"""
Protocol definition for chat delivery backends.

Defines the interface the fan-out uses to reach subscribers.
"""

from typing import Protocol, runtime_checkable

from rss_newsbot.models import Article


@runtime_checkable
class Notifier(Protocol):
    """
    Chat delivery backend used by the fan-out and the status banners.

    Implementations raise DeliveryError for a failed send and never
    retry beyond their own rate-limit handling.
    """

    async def test_connection(self) -> bool:
        """
        Test the connection to the chat backend.

        Returns
        -------
        bool
            True if the connection is working and messages can be sent.
        """
        ...

    async def send_article(self, chat_id: int, article: Article) -> None:
        """
        Send an article to one chat.

        Raises
        ------
        DeliveryError
            If the message could not be delivered.
        """
        ...

    async def send_text(
        self, chat_id: int, text: str, parse_mode: str | None = None
    ) -> None:
        """
        Send an already formatted message to one chat.

        parse_mode overrides the backend default when given.

        Raises
        ------
        DeliveryError
            If the message could not be delivered.
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the backend."""
        ...
