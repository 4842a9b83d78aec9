"""
Exception hierarchy for RSS News Bot.

Each error type maps to one recovery policy in the poll pipeline.
"""


class NewsBotError(Exception):
    """Base class for all bot errors."""


class FetchError(NewsBotError):
    """
    A feed could not be downloaded or parsed.

    Recovered locally: the poll cycle logs it and moves on to the next feed.
    """

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch feed {url}: {reason}")
        self.url = url
        self.reason = reason


class DeliveryError(NewsBotError):
    """A message could not be delivered to one chat."""

    def __init__(self, chat_id: int, reason: str):
        super().__init__(f"Failed to deliver to {chat_id}: {reason}")
        self.chat_id = chat_id
        self.reason = reason


class StorageError(NewsBotError):
    """A durable store read or write failed."""


class ConfigurationError(NewsBotError):
    """Required configuration is missing or invalid. Fatal at startup."""
