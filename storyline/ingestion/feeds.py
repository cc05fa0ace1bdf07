"""Feed normalizer: fetch one outlet's RSS 2.0 or Atom feed into CandidateItems.

- Fetch with a fixed User-Agent; any non-2xx response is fatal for the fetch
- Parse with feedparser (handles both dialects and single-entry feeds)
- Missing optional fields default to ""
- Image discovery: media:content, image enclosure, media:thumbnail, then the
  first <img> in the entry HTML
"""

from __future__ import annotations

import logging
import re
import xml.sax
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import requests

from storyline.ingestion.story_types import CandidateItem, ParsedFeed


logger = logging.getLogger(__name__)

USER_AGENT = "NewsAggregator/1.0"

_IMG_SRC_RE = re.compile(r"<img[^>]+src=[\"']([^\"'>]+)[\"']", re.IGNORECASE)


class FeedError(Exception):
    """A feed could not be fetched or parsed."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Feed {url}: {reason}")
        self.url = url
        self.reason = reason


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _struct_to_dt(parsed: Any) -> Optional[datetime]:
    # feedparser normalizes every date it understands to a UTC struct_time
    if not parsed:
        return None
    try:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _first_img_src(html: str) -> Optional[str]:
    if not html:
        return None
    m = _IMG_SRC_RE.search(html)
    return m.group(1) if m else None


def discover_image(entry: Any) -> Optional[str]:
    for media in entry.get("media_content") or []:
        url = media.get("url")
        if url:
            return url

    for enclosure in entry.get("enclosures") or []:
        if str(enclosure.get("type") or "").startswith("image") and enclosure.get("href"):
            return enclosure["href"]

    for thumb in entry.get("media_thumbnail") or []:
        url = thumb.get("url")
        if url:
            return url

    return _first_img_src(entry.get("summary") or "") or _first_img_src(_content_html(entry))


def _content_html(entry: Any) -> str:
    contents = entry.get("content") or []
    for c in contents:
        value = c.get("value")
        if value:
            return str(value)
    return ""


def _to_candidate(entry: Any) -> CandidateItem:
    description = _text(entry.get("summary"))
    link = _text(entry.get("link"))
    return CandidateItem(
        title=_text(entry.get("title")),
        link=link,
        raw_description=description,
        raw_content_html=_content_html(entry).strip() or description,
        published_at=_struct_to_dt(entry.get("published_parsed") or entry.get("updated_parsed")),
        image_url=discover_image(entry),
        guid=_text(entry.get("id")) or link,
    )


def parse_feed_document(url: str, payload: bytes) -> ParsedFeed:
    """Parse a fetched RSS/Atom payload; raises FeedError for anything else."""
    parsed = feedparser.parse(payload)
    # Encoding overrides also set bozo; only malformed XML is fatal.
    exc = parsed.get("bozo_exception") if parsed.get("bozo") else None
    if isinstance(exc, xml.sax.SAXException):
        raise FeedError(url, f"unparsable payload ({exc})")
    version = parsed.get("version") or ""
    if not version.startswith(("rss", "atom")):
        raise FeedError(url, "unrecognized feed format")

    feed = parsed.get("feed") or {}
    items: List[CandidateItem] = [_to_candidate(entry) for entry in parsed.entries or []]
    return ParsedFeed(
        items=items,
        title=_text(feed.get("title")),
        description=_text(feed.get("subtitle") or feed.get("description")),
    )


class FeedNormalizer:
    """Fetches and normalizes a single source's feed."""

    def __init__(self, *, timeout: float = 20.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, url: str) -> ParsedFeed:
        try:
            resp = self.session.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            raise FeedError(url, f"HTTP {status}") from e
        except requests.RequestException as e:
            raise FeedError(url, f"request failed ({e})") from e

        feed = parse_feed_document(url, resp.content)
        logger.info(f"Feed parsed: {url} ({len(feed.items)} items)")
        return feed
