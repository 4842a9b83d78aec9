"""
Keyword relevance filtering for feed entries.

An entry is relevant when any configured keyword appears in its
article text, compared case-insensitively.
"""

import html
import logging
import re

from rss_newsbot.models import UNTITLED, FeedEntry

logger = logging.getLogger(__name__)

# Description characters taken into account for relevance
MAX_DESCRIPTION_LENGTH = 512

TAG_PATTERN = re.compile(r"<[^>]+>")
WHITESPACE_PATTERN = re.compile(r"[ \t\r\f\v]+")


def clean_text(text: str) -> str:
    """
    Reduce HTML content to plain text.

    Parameters
    ----------
    text : str
        Raw content possibly containing HTML.

    Returns
    -------
    str
        Text without tags, with entities decoded and spaces collapsed.
    """
    text = TAG_PATTERN.sub("", text)
    text = html.unescape(text).replace("\xa0", " ")
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def truncate(text: str, max_length: int) -> str:
    """Cut text to max_length characters, marking the cut with '...'."""
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def article_text(entry: FeedEntry) -> str:
    """
    Build the plain text an entry is judged on.

    The title comes first, followed by the start of the description.
    """
    title = entry.title or UNTITLED
    description = truncate(entry.description or "", MAX_DESCRIPTION_LENGTH)
    return clean_text(f"{title}\n{description}")


def is_relevant(text: str, keywords: list[str]) -> bool:
    """
    Check whether any keyword is a substring of the text.

    Parameters
    ----------
    text : str
        Text to search.
    keywords : list[str]
        Keywords; matching ignores case.

    Returns
    -------
    bool
        True if at least one keyword is found.
    """
    normalized = text.lower()
    return any(keyword.lower() in normalized for keyword in keywords if keyword)


class RelevanceFilter:
    """
    Keyword filter applied to new entries before delivery.

    The keyword list can be replaced between poll cycles, for example
    after its source file was edited.
    """

    def __init__(self, keywords: list[str] | None = None):
        """
        Initialize the filter.

        Parameters
        ----------
        keywords : list[str] | None
            Initial keyword list. An empty list matches nothing.
        """
        self.keywords: list[str] = []
        self.update_keywords(keywords or [])

    def update_keywords(self, keywords: list[str]) -> None:
        """Replace the keyword list."""
        self.keywords = [k.strip() for k in keywords if k and k.strip()]
        if not self.keywords:
            logger.warning("No relevance keywords configured, every entry will be dropped")

    def is_relevant(self, text: str) -> bool:
        """Check text against the current keyword list."""
        return is_relevant(text, self.keywords)

    def matches(self, entry: FeedEntry) -> bool:
        """
        Check if an entry's article text is relevant.

        Parameters
        ----------
        entry : FeedEntry
            The entry to check.

        Returns
        -------
        bool
            True if the entry matches a keyword.
        """
        result = self.is_relevant(article_text(entry))

        if result:
            logger.debug("Entry '%s' is relevant", (entry.title or UNTITLED)[:50])
        else:
            logger.debug("Entry '%s' filtered out", (entry.title or UNTITLED)[:50])

        return result
