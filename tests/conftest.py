"""
Shared fixtures for RSS News Bot tests.

Provides common test fixtures for use across all test modules.
"""

import time
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from rss_newsbot.config import AppConfig, CategoryConfig, KeywordsConfig, TelegramConfig
from rss_newsbot.models import Category, FeedEntry
from rss_newsbot.registry import SubscriberRegistry
from rss_newsbot.state import LatestArticleStore, WatermarkStore
from rss_newsbot.storage import Storage


# Path to test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


def at(day: int, hour: int = 12) -> datetime:
    """Return a UTC datetime in January 2024."""
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


def make_entry(day: int, title: str = "", hour: int = 12, **kwargs: Any) -> FeedEntry:
    """Create a FeedEntry dated in January 2024."""
    return FeedEntry(
        title=title or f"Entry {day}",
        link=kwargs.pop("link", f"https://example.com/{day}"),
        timestamp=at(day, hour),
        **kwargs,
    )


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def sample_config_path(fixtures_dir: Path) -> Path:
    """Return path to sample config file."""
    return fixtures_dir / "sample_config.yaml"


@pytest.fixture
def sample_rss_content(fixtures_dir: Path) -> str:
    """Return contents of sample RSS feed."""
    return (fixtures_dir / "sample_rss.xml").read_text()


@pytest.fixture
def sample_atom_content(fixtures_dir: Path) -> str:
    """Return contents of sample Atom feed."""
    return (fixtures_dir / "sample_atom.xml").read_text()


@pytest.fixture
def minimal_telegram_config() -> TelegramConfig:
    """Create a minimal valid Telegram configuration."""
    return TelegramConfig(
        bot_token="1234567890:ABCdefGHIjklMNOpqrsTUVwxyz",
        admin_ids=[42],
    )


@pytest.fixture
def minimal_config_dict() -> dict[str, Any]:
    """
    Create a minimal valid configuration dictionary.

    Returns
    -------
    dict
        Configuration dictionary that can be used to create AppConfig.
    """
    return {
        "telegram": {
            "bot_token": "1234567890:ABCdefGHIjklMNOpqrsTUVwxyz",
        },
        "categories": {
            "global": {"feeds": ["https://example.com/feed.xml"]},
        },
    }


@pytest.fixture
def minimal_app_config(minimal_telegram_config: TelegramConfig) -> AppConfig:
    """Create an app configuration with one feed per category."""
    return AppConfig(
        telegram=minimal_telegram_config,
        keywords=KeywordsConfig(words=["earthquake", "flood"]),
        categories={
            Category.REGIONAL: CategoryConfig(feeds=["https://example.com/regional.xml"]),
            Category.GLOBAL: CategoryConfig(feeds=["https://example.com/world.xml"]),
        },
    )


@pytest_asyncio.fixture
async def in_memory_storage() -> AsyncGenerator[Storage, None]:
    """
    Create an in-memory SQLite storage for testing.

    Yields
    ------
    Storage
        An initialized in-memory storage instance.
    """
    storage = Storage(":memory:")
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
def registry(in_memory_storage: Storage) -> SubscriberRegistry:
    """Registry backed by the in-memory storage."""
    return SubscriberRegistry(in_memory_storage)


@pytest.fixture
def latest_articles(in_memory_storage: Storage) -> LatestArticleStore:
    """Latest-article store backed by the in-memory storage."""
    return LatestArticleStore(in_memory_storage)


@pytest.fixture
def watermarks() -> WatermarkStore:
    """In-memory watermark store."""
    return WatermarkStore()


@pytest.fixture
def mock_notifier() -> MagicMock:
    """
    Create a mock delivery backend.

    Returns
    -------
    MagicMock
        A notifier whose sends succeed.
    """
    notifier = MagicMock()
    notifier.send_article = AsyncMock()
    notifier.send_text = AsyncMock()
    notifier.test_connection = AsyncMock(return_value=True)
    notifier.close = AsyncMock()
    return notifier


@pytest.fixture
def mock_telegram_bot() -> MagicMock:
    """
    Create a mock Telegram bot.

    Returns
    -------
    MagicMock
        A mock Bot instance with common methods mocked.
    """
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.get_me = AsyncMock(return_value=MagicMock(username="test_bot"))
    bot.shutdown = AsyncMock()
    return bot


@pytest.fixture
def feedparser_entry() -> dict[str, Any]:
    """
    Create a sample feedparser entry dictionary.

    Returns
    -------
    dict
        A dictionary mimicking feedparser entry structure.
    """
    return {
        "title": "Test Entry",
        "link": "https://example.com/entry",
        "summary": "This is a test summary",
        "published_parsed": time.strptime("2024-01-03 08:30:00", "%Y-%m-%d %H:%M:%S"),
        "updated_parsed": time.strptime("2024-01-04 08:30:00", "%Y-%m-%d %H:%M:%S"),
    }
