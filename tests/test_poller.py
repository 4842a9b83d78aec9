"""
Unit tests for the poll cycle.

Feeds are served by a mocked parser; selection, filtering, registry
and fan-out are the real components.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import at, make_entry
from rss_newsbot.config import AppConfig
from rss_newsbot.exceptions import FetchError
from rss_newsbot.fanout import DeliveryFanout
from rss_newsbot.filters import RelevanceFilter
from rss_newsbot.models import Article, Category
from rss_newsbot.poller import PollCycle
from rss_newsbot.registry import SubscriberRegistry
from rss_newsbot.selector import NewestEntrySelector
from rss_newsbot.state import LatestArticleStore, WatermarkStore

REGIONAL_URL = "https://example.com/regional.xml"
GLOBAL_URL = "https://example.com/world.xml"
SECOND_GLOBAL_URL = "https://example.org/atom.xml"


@pytest.fixture
def feeds() -> dict[str, object]:
    """Entries (or an exception) served per feed URL."""
    return {REGIONAL_URL: [], GLOBAL_URL: [], SECOND_GLOBAL_URL: []}


@pytest.fixture
def mock_parser(feeds: dict[str, object]) -> MagicMock:
    async def fetch(url: str):
        result = feeds[url]
        if isinstance(result, Exception):
            raise result
        return result

    parser = MagicMock()
    parser.fetch = AsyncMock(side_effect=fetch)
    return parser


@pytest.fixture
def poll_cycle(
    minimal_app_config: AppConfig,
    mock_parser: MagicMock,
    watermarks: WatermarkStore,
    registry: SubscriberRegistry,
    latest_articles: LatestArticleStore,
    mock_notifier: MagicMock,
) -> PollCycle:
    return PollCycle(
        config=minimal_app_config,
        parser=mock_parser,
        selector=NewestEntrySelector(watermarks),
        relevance=RelevanceFilter(),
        fanout=DeliveryFanout(mock_notifier, latest_articles),
        registry=registry,
    )


async def subscribe(registry: SubscriberRegistry, chat_id: int, mode: Category) -> None:
    await registry.add(chat_id)
    await registry.set_mode(chat_id, mode)


class TestRunOnce:
    """Tests for PollCycle.run_once()."""

    async def test_warm_up_then_new_entry(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        registry: SubscriberRegistry,
        latest_articles: LatestArticleStore,
        watermarks: WatermarkStore,
        mock_notifier: MagicMock,
    ) -> None:
        """Test that only the entry published after startup is delivered."""
        await subscribe(registry, 7, Category.GLOBAL)
        feeds[GLOBAL_URL] = [
            make_entry(1, "Flood in the valley"),
            make_entry(3, "Earthquake hits the coast"),
        ]

        assert await poll_cycle.run_once() == []
        mock_notifier.send_article.assert_not_awaited()
        assert await watermarks.get(Category.GLOBAL) == at(3)

        feeds[GLOBAL_URL] = feeds[GLOBAL_URL] + [make_entry(5, "Second earthquake")]
        reports = await poll_cycle.run_once()

        assert len(reports) == 1
        mock_notifier.send_article.assert_awaited_once_with(
            7, Article("Second earthquake", "https://example.com/5")
        )
        assert (await latest_articles.get(Category.GLOBAL)).title == "Second earthquake"

        # Nothing new on the next sweep
        assert await poll_cycle.run_once() == []
        assert mock_notifier.send_article.await_count == 1

    async def test_warm_up_covers_every_feed_of_first_cycle(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        minimal_app_config: AppConfig,
        registry: SubscriberRegistry,
        watermarks: WatermarkStore,
        mock_notifier: MagicMock,
    ) -> None:
        """Test that a newer backlog in a later feed is not sent on the first cycle."""
        minimal_app_config.categories[Category.GLOBAL].feeds = [GLOBAL_URL, SECOND_GLOBAL_URL]
        feeds[GLOBAL_URL] = [make_entry(1, "Flood one")]
        feeds[SECOND_GLOBAL_URL] = [make_entry(3, "Flood backlog")]
        await subscribe(registry, 7, Category.GLOBAL)

        assert await poll_cycle.run_once() == []
        mock_notifier.send_article.assert_not_awaited()
        assert await watermarks.get(Category.GLOBAL) == at(3)

        feeds[GLOBAL_URL] = [make_entry(4, "Flood two")]
        reports = await poll_cycle.run_once()

        assert [report.article.title for report in reports] == ["Flood two"]

    async def test_empty_first_cycle_keeps_warming_up(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        registry: SubscriberRegistry,
        watermarks: WatermarkStore,
        mock_notifier: MagicMock,
    ) -> None:
        """Test that warm-up waits for the first cycle that sees entries."""
        await subscribe(registry, 7, Category.GLOBAL)
        feeds[GLOBAL_URL] = FetchError(GLOBAL_URL, "HTTP 503")

        await poll_cycle.run_once()
        feeds[GLOBAL_URL] = [make_entry(2, "Flood backlog")]
        await poll_cycle.run_once()

        mock_notifier.send_article.assert_not_awaited()
        assert await watermarks.get(Category.GLOBAL) == at(2)

    async def test_irrelevant_entry_consumes_watermark(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        registry: SubscriberRegistry,
        watermarks: WatermarkStore,
        mock_notifier: MagicMock,
    ) -> None:
        await subscribe(registry, 7, Category.GLOBAL)
        await watermarks.set(Category.GLOBAL, at(1))
        feeds[GLOBAL_URL] = [make_entry(2, "Local bake sale")]

        assert await poll_cycle.run_once() == []
        mock_notifier.send_article.assert_not_awaited()
        assert await watermarks.get(Category.GLOBAL) == at(2)

    async def test_relevance_uses_description(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        registry: SubscriberRegistry,
        watermarks: WatermarkStore,
        mock_notifier: MagicMock,
    ) -> None:
        await subscribe(registry, 7, Category.GLOBAL)
        await watermarks.set(Category.GLOBAL, at(1))
        feeds[GLOBAL_URL] = [
            make_entry(2, "Breaking", description="<p>Major <b>FLOOD</b> reported</p>")
        ]

        assert len(await poll_cycle.run_once()) == 1
        mock_notifier.send_article.assert_awaited_once()

    async def test_categories_routed_by_mode(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        registry: SubscriberRegistry,
        watermarks: WatermarkStore,
        mock_notifier: MagicMock,
    ) -> None:
        await subscribe(registry, 1, Category.REGIONAL)
        await subscribe(registry, 2, Category.GLOBAL)
        await watermarks.set(Category.REGIONAL, at(1))
        await watermarks.set(Category.GLOBAL, at(1))
        feeds[REGIONAL_URL] = [make_entry(2, "Regional flood")]
        feeds[GLOBAL_URL] = [make_entry(2, "Global earthquake")]

        await poll_cycle.run_once()

        sent = [call.args for call in mock_notifier.send_article.await_args_list]
        assert [(chat_id, article.title) for chat_id, article in sent] == [
            (1, "Regional flood"),
            (2, "Global earthquake"),
        ]

    async def test_fetch_error_continues(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        registry: SubscriberRegistry,
        watermarks: WatermarkStore,
        mock_notifier: MagicMock,
    ) -> None:
        """Test that a failing feed does not stop the other feeds."""
        await subscribe(registry, 2, Category.GLOBAL)
        await watermarks.set(Category.GLOBAL, at(1))
        feeds[REGIONAL_URL] = FetchError(REGIONAL_URL, "HTTP 500")
        feeds[GLOBAL_URL] = [make_entry(2, "Flood")]

        reports = await poll_cycle.run_once()

        assert len(reports) == 1
        assert await watermarks.get(Category.REGIONAL) is None

    async def test_unexpected_error_isolated(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        registry: SubscriberRegistry,
        watermarks: WatermarkStore,
    ) -> None:
        await subscribe(registry, 2, Category.GLOBAL)
        await watermarks.set(Category.GLOBAL, at(1))
        feeds[REGIONAL_URL] = KeyError("boom")
        feeds[GLOBAL_URL] = [make_entry(2, "Flood")]

        assert len(await poll_cycle.run_once()) == 1

    async def test_subscription_changes_seen(
        self,
        poll_cycle: PollCycle,
        feeds: dict,
        registry: SubscriberRegistry,
        watermarks: WatermarkStore,
        mock_parser: MagicMock,
        mock_notifier: MagicMock,
    ) -> None:
        """Test that a chat subscribing during a fetch receives the article."""
        await watermarks.set(Category.GLOBAL, at(1))
        feeds[GLOBAL_URL] = [make_entry(2, "Flood")]
        original_fetch = mock_parser.fetch.side_effect

        async def fetch_and_subscribe(url: str):
            if url == GLOBAL_URL:
                await subscribe(registry, 9, Category.GLOBAL)
            return await original_fetch(url)

        mock_parser.fetch.side_effect = fetch_and_subscribe

        await poll_cycle.run_once()

        mock_notifier.send_article.assert_awaited_once()
        assert mock_notifier.send_article.await_args.args[0] == 9

    async def test_keywords_refreshed_each_cycle(
        self,
        poll_cycle: PollCycle,
        minimal_app_config: AppConfig,
    ) -> None:
        minimal_app_config.keywords.words = ["wildfire"]

        await poll_cycle.run_once()

        assert poll_cycle.relevance.keywords == ["wildfire"]


class TestConcurrency:
    """Tests for serialized sweeps."""

    async def test_sweeps_do_not_overlap(
        self, poll_cycle: PollCycle, mock_parser: MagicMock
    ) -> None:
        active = 0
        peak = 0

        async def slow_fetch(url: str):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return []

        mock_parser.fetch.side_effect = slow_fetch

        await asyncio.gather(poll_cycle.run_once(), poll_cycle.run_once())

        assert peak == 1
        assert mock_parser.fetch.await_count == 4

    async def test_in_progress(self, poll_cycle: PollCycle, mock_parser: MagicMock) -> None:
        seen = []

        async def fetch(url: str):
            seen.append(poll_cycle.in_progress)
            return []

        mock_parser.fetch.side_effect = fetch

        assert not poll_cycle.in_progress
        await poll_cycle.run_once()
        assert seen and all(seen)
        assert not poll_cycle.in_progress


class TestRunForever:
    """Tests for the polling loop."""

    async def test_stop_ends_loop(self, poll_cycle: PollCycle) -> None:
        calls = 0

        async def run_once():
            nonlocal calls
            calls += 1
            poll_cycle.stop()
            return []

        poll_cycle.run_once = run_once
        poll_cycle.config.defaults.check_interval = 0.01

        await asyncio.wait_for(poll_cycle.run_forever(), timeout=1)

        assert calls == 1

    async def test_failed_sweep_does_not_end_loop(self, poll_cycle: PollCycle) -> None:
        calls = 0

        async def run_once():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            poll_cycle.stop()
            return []

        poll_cycle.run_once = run_once
        poll_cycle.config.defaults.check_interval = 0.01

        await asyncio.wait_for(poll_cycle.run_forever(), timeout=1)

        assert calls == 2
