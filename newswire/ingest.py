# newswire/ingest.py
#
# ROLE: fetch + parse ONE feed source into canonical NewsItem records.
#
#   pipeline  → ingest_all(sources)
#                 - every source fetched concurrently (asyncio.gather)
#                 - results merged back in CONFIG ORDER so first-seen-wins
#                   dedupe downstream stays deterministic
#   THIS FILE → ingest_feed(source)
#                 - GET feed with our bot UA + feed Accept header
#                 - non-2xx → FeedFetchError (status + first 160 chars of body)
#                 - feedparser.parse(); unusable document → FeedParseError
#                 - entry → NewsItem via extractors (link, image, excerpt, ...)
#                 - per-source category filter (FeedSource.requireCategory)
#
# FAILURE ISOLATION:
#   ingest_feed() NEVER raises. Any failure for a source becomes exactly one
#   IngestError and that source contributes zero items. Other sources carry on.

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any, List, Optional, Sequence, Tuple

import feedparser
import httpx

from newswire.config import Settings
from newswire.errors import FeedFetchError, FeedParseError
from newswire.extractors import (
    entry_timestamp,
    is_junk_image,
    pick_categories,
    pick_excerpt,
    pick_image,
    to_timestamp,
)
from newswire.models import FeedSource, IngestError, IngestResult, NewsItem
from newswire.urls import normalize_url

__all__ = [
    "FEED_ACCEPT",
    "item_id",
    "fetch_feed",
    "parse_feed",
    "build_item",
    "ingest_feed",
    "ingest_all",
]

log = logging.getLogger("newswire.ingest")

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml;q=0.9, */*;q=0.8"

# =====================================================================
# ID helpers
# =====================================================================

def item_id(source_id: str, link: str) -> str:
    return hashlib.sha1(f"{source_id}|{link}".encode("utf-8")).hexdigest()

# =====================================================================
# Fetch / parse
# =====================================================================

async def fetch_feed(client: httpx.AsyncClient, url: str, settings: Settings) -> bytes:
    r = await client.get(
        url,
        headers={"Accept": FEED_ACCEPT},
        # waiting for a pooled connection doesn't count against the feed
        timeout=httpx.Timeout(settings.feed_timeout, pool=None),
    )
    if not r.is_success:
        try:
            body = r.text
        except Exception:
            body = ""
        raise FeedFetchError(url, r.status_code, r.reason_phrase, body)
    return r.content


def parse_feed(body: bytes) -> List[Any]:
    """
    feedparser is lenient: it flags problems via `bozo` instead of raising.
    A bozo document that still yields entries is fine (wrong charset decl,
    stray entity, ...). No entries + bozo, or nothing feed-like at all, is
    a parse failure.
    """
    parsed = feedparser.parse(body)
    entries = list(parsed.get("entries") or [])
    if entries:
        return entries
    if parsed.get("bozo"):
        exc = parsed.get("bozo_exception")
        raise FeedParseError(f"Could not parse feed: {exc or 'malformed document'}")
    if not parsed.get("version"):
        raise FeedParseError("Could not parse feed: not an RSS/Atom document")
    return []

# =====================================================================
# Entry → NewsItem
# =====================================================================

def _published_raw(entry: Any) -> str:
    for k in ("published", "updated", "pubDate", "isoDate"):
        v = entry.get(k)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return ""


def build_item(entry: Any, source: FeedSource, settings: Settings) -> Optional[NewsItem]:
    """None when the entry has no usable link or fails the source's filter."""
    decode = settings.decode_url_entities

    link = normalize_url(entry.get("link") or entry.get("id") or entry.get("guid") or "", decode_entities=decode)
    if not link:
        return None

    categories = pick_categories(entry)
    if not source.accepts(categories):
        return None

    published = _published_raw(entry)
    published_ts = to_timestamp(published) or (entry_timestamp(entry) if published else 0)

    image = pick_image(entry, decode_entities=decode)
    if is_junk_image(image, settings.junk_image_patterns):
        image = ""

    return NewsItem(
        id=item_id(source.id, link),
        title=str(entry.get("title") or "").strip(),
        link=link,
        published=published,
        published_ts=published_ts,
        source_id=source.id,
        source_name=source.name,
        categories=categories,
        image=image,
        excerpt=pick_excerpt(entry),
    )

# =====================================================================
# Public entry points
# =====================================================================

async def ingest_feed(source: FeedSource, client: httpx.AsyncClient, settings: Settings) -> IngestResult:
    try:
        body = await fetch_feed(client, source.url, settings)
        entries = parse_feed(body)

        items: List[NewsItem] = []
        skipped = 0
        for entry in entries:
            it = build_item(entry, source, settings)
            if it is None:
                skipped += 1
                continue
            items.append(it)
    except Exception as e:
        msg = str(e) or type(e).__name__
        log.warning("feed failed id=%s url=%s: %s", source.id, source.url, msg)
        return IngestResult(
            items=[],
            error=IngestError(
                source_id=source.id,
                source_name=source.name,
                url=source.url,
                error=msg,
            ),
        )

    log.info("feed ok id=%s entries=%d items=%d skipped=%d", source.id, len(entries), len(items), skipped)
    return IngestResult(items=items)


async def ingest_all(
    sources: Sequence[FeedSource],
    client: httpx.AsyncClient,
    settings: Settings,
) -> Tuple[List[NewsItem], List[IngestError]]:
    results = await asyncio.gather(*(ingest_feed(s, client, settings) for s in sources))

    items: List[NewsItem] = []
    errors: List[IngestError] = []
    for res in results:
        items.extend(res.items)
        if res.error is not None:
            errors.append(res.error)
    return items, errors
