"""
Core data types shared by the poll pipeline.

Defines feed categories, parsed feed entries and the article snapshot
that is delivered to subscribers.
"""

import calendar
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

UNTITLED = "Untitled"


class Category(str, Enum):
    """
    Feed category, also used as a subscriber's display mode.

    Each category is an independent track: it has its own feeds,
    its own watermark and its own latest delivered article.
    """

    REGIONAL = "regional"
    GLOBAL = "global"

    def __str__(self) -> str:
        return self.value


# Order in which a poll cycle walks the categories
CATEGORY_ORDER: tuple[Category, ...] = (Category.REGIONAL, Category.GLOBAL)

DEFAULT_CATEGORY = Category.GLOBAL


def struct_time_to_datetime(value: time.struct_time | None) -> datetime | None:
    """Convert a feedparser UTC struct_time to an aware datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)


@dataclass(frozen=True)
class FeedEntry:
    """
    Normalized RSS/Atom entry.

    Attributes
    ----------
    title : str | None
        Entry title, if the feed provides one.
    link : str | None
        Entry URL.
    description : str | None
        Entry summary or description, possibly containing HTML.
    timestamp : datetime
        Publication time, taken from the published field, then the
        updated field. Entries with neither are dated at the Unix epoch,
        which makes them stale as soon as a real watermark exists.
    """

    title: str | None = None
    link: str | None = None
    description: str | None = None
    timestamp: datetime = EPOCH

    @classmethod
    def from_feedparser(cls, entry: Any) -> "FeedEntry":
        """
        Create a FeedEntry from a feedparser entry.

        Parameters
        ----------
        entry : Any
            A feedparser entry object.

        Returns
        -------
        FeedEntry
            Normalized entry instance.
        """
        timestamp = (
            struct_time_to_datetime(entry.get("published_parsed"))
            or struct_time_to_datetime(entry.get("updated_parsed"))
            or EPOCH
        )

        description = entry.get("summary") or entry.get("description")
        content = entry.get("content")
        if not description and content:
            description = content[0].get("value")

        return cls(
            title=entry.get("title") or None,
            link=entry.get("link") or None,
            description=description or None,
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class Article:
    """
    Title and link of an article as delivered to subscribers.

    Attributes
    ----------
    title : str
        Article title.
    link : str
        Article URL, may be empty.
    """

    title: str
    link: str = ""

    @classmethod
    def from_entry(cls, entry: FeedEntry) -> "Article":
        """Build the delivered snapshot of a feed entry."""
        return cls(title=entry.title or UNTITLED, link=entry.link or "")

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "link": self.link}
