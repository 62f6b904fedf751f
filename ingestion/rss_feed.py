"""
RSS feed fetching and normalization into news items.
"""

import calendar
import hashlib
from dataclasses import dataclass, field
from typing import List, Optional

import feedparser  # type: ignore
from html2text import html2text

from ingestion.errors import FetchError, ValidationError
from ingestion.models import FeedSource, NewsItem
from util.logging_util import setup_logger

logger = setup_logger(__name__)


@dataclass
class RawNewsItem:
    """Feed entry fields as the feed delivered them."""
    title: str = ""
    link: str = ""
    guid: str = ""
    content: str = ""
    content_snippet: str = ""
    published: str = ""
    published_at: Optional[int] = None


@dataclass
class ParsedFeed:
    title: str
    items: List[RawNewsItem] = field(default_factory=list)


def _to_text(html: str) -> str:
    if not html:
        return ""
    return html2text(html).strip()


def _extract_summary(entry: dict) -> str:
    """Extract and clean summary/description from an RSS entry."""
    summary = entry.get("summary", "") or entry.get("description", "")
    return _to_text(summary)


def _extract_content(entry: dict) -> str:
    """Extract the full content body, if the feed carries one."""
    content = entry.get("content") or []
    if isinstance(content, list) and content:
        first = content[0]
        value = first.get("value", "") if isinstance(first, dict) else str(first)
        return _to_text(value)
    return ""


def _published_epoch(entry: dict) -> Optional[int]:
    published_parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if published_parsed is None:
        return None
    return int(calendar.timegm(published_parsed))


def _to_raw_item(entry: dict) -> RawNewsItem:
    return RawNewsItem(
        title=(entry.get("title") or "").strip(),
        link=(entry.get("link") or "").strip(),
        guid=(entry.get("id") or "").strip(),
        content=_extract_content(entry),
        content_snippet=_extract_summary(entry),
        published=entry.get("published", "") or "",
        published_at=_published_epoch(entry),
    )


def fetch_feed(source: FeedSource, max_items: Optional[int] = None) -> ParsedFeed:
    """
    Fetch and parse one RSS feed.

    Args:
        source: The feed to fetch.
        max_items: Only keep the first N entries.

    Returns:
        The feed title and its raw items.

    Raises:
        FetchError: The feed could not be fetched or parsed.
    """
    try:
        rss_content = feedparser.parse(source.address)
    except Exception as e:
        raise FetchError(f"Error fetching RSS for {source.name}: {e}", source=source.address) from e

    status = rss_content.get("status")
    if status and status >= 400:
        raise FetchError(f"HTTP {status} for feed {source.name}", source=source.address)

    entries = rss_content.get("entries", [])
    if rss_content.get("bozo") and not entries:
        raise FetchError(
            f"Malformed feed {source.name}: {rss_content.get('bozo_exception')}",
            source=source.address,
        )

    if max_items is not None:
        entries = entries[:max_items]

    feed_title = (rss_content.get("feed") or {}).get("title") or source.address
    items = [_to_raw_item(entry) for entry in entries]
    logger.info(f"Fetched {len(items)} items from RSS feed {source.name}")
    return ParsedFeed(title=feed_title, items=items)


def generate_natural_key(item: RawNewsItem, feed_address: str) -> str:
    """Get the dedup key for a feed item.

    Uses the link if available, then the guid, otherwise a hash of the feed
    address and the title (or snippet).

    Raises:
        ValidationError: The item has nothing to derive a key from.
    """
    if item.link:
        return item.link
    if item.guid:
        return item.guid

    fallback = item.title or item.content_snippet
    if not fallback:
        raise ValidationError("Feed item has no link, guid, title or snippet", source=feed_address)

    hash_input = f"{feed_address}:{fallback}"
    return hashlib.sha256(hash_input.encode()).hexdigest()[:32]


def item_text(item: RawNewsItem) -> str:
    """All text of an item, used for classification."""
    return f"{item.title} {item.content_snippet} {item.content}"


def to_news_item(item: RawNewsItem, source: FeedSource, feed_title: str) -> NewsItem:
    """
    Normalize a raw feed item. Classification and summary are filled in later.

    Raises:
        ValidationError: No natural key can be derived, or the publish date
            is present but unparseable.
    """
    natural_key = generate_natural_key(item, source.address)

    if item.published and item.published_at is None:
        raise ValidationError(
            f"Malformed publish date {item.published!r}",
            source=source.address,
            record_id=natural_key,
        )

    return NewsItem(
        external_id=natural_key,
        title=item.title or "Untitled",
        url=item.link or None,
        content=item.content or item.content_snippet or None,
        source=feed_title,
        published_at=item.published_at,
        metadata={
            "feed_url": source.address,
            "feed_id": source.id,
            "feed_name": source.name,
            "guid": item.guid or None,
            "published": item.published or None,
        },
    )
