# newswire/enrich.py
#
# ROLE: best-effort page scraping for items whose feed entry had no usable
# image and/or no parseable date.
#
#   enrich_items(head)
#     - only items missing image (or carrying a junk one) or publishedTs == 0
#       ever touch the network
#     - at most `enrich_concurrency` page fetches in flight (asyncio.Semaphore)
#     - each fetch bounded by `fetch_timeout` (asyncio.wait_for); a hung page
#       gives its slot back when the deadline hits
#
#   enrich_item(item)
#     - og:image → og:image:url → twitter:image → twitter:image:src
#       absolutized against the article URL, junk-filtered again
#     - article:published_time → og:updated_time → article:modified_time
#       accepted only if it parses; published + publishedTs move together
#     - ANY failure → item comes back exactly as it went in. Nothing is
#       recorded in the payload for it.
#
# Only image / published / publishedTs are ever written here.

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence, Tuple

import httpx

from newswire.config import Settings
from newswire.errors import PageFetchError
from newswire.extractors import first_meta, is_junk_image, to_timestamp
from newswire.models import NewsItem
from newswire.urls import absolutize

__all__ = [
    "PAGE_ACCEPT",
    "IMAGE_META_KEYS",
    "DATE_META_KEYS",
    "needs_enrichment",
    "fetch_page",
    "page_metadata",
    "enrich_item",
    "enrich_items",
]

log = logging.getLogger("newswire.enrich")

PAGE_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

IMAGE_META_KEYS = ("og:image", "og:image:url", "twitter:image", "twitter:image:src")
DATE_META_KEYS = ("article:published_time", "og:updated_time", "article:modified_time")


def needs_enrichment(item: NewsItem, settings: Settings) -> Tuple[bool, bool]:
    """(needs_image, needs_date)"""
    needs_image = not item.image or is_junk_image(item.image, settings.junk_image_patterns)
    needs_date = not item.published_ts
    return needs_image, needs_date


async def fetch_page(client: httpx.AsyncClient, url: str, settings: Settings) -> str:
    r = await client.get(
        url,
        headers={"Accept": PAGE_ACCEPT},
        timeout=settings.fetch_timeout,
    )
    if not r.is_success:
        raise PageFetchError(f"Fetch failed {r.status_code} {r.reason_phrase}".rstrip())
    return r.text


def page_metadata(page_html: str, page_url: str, settings: Settings) -> Tuple[str, str, int]:
    """
    (image, published_raw, published_ts) found in the page's meta tags.
    Empty / 0 for anything missing, unparseable or junk.
    """
    image = ""
    raw_img = first_meta(page_html, IMAGE_META_KEYS)
    if raw_img:
        image = absolutize(raw_img, page_url, decode_entities=settings.decode_url_entities)
        if is_junk_image(image, settings.junk_image_patterns):
            image = ""

    published = first_meta(page_html, DATE_META_KEYS)
    ts = to_timestamp(published)
    if not ts:
        published = ""
    return image, published, ts


async def enrich_item(item: NewsItem, client: httpx.AsyncClient, settings: Settings) -> NewsItem:
    needs_image, needs_date = needs_enrichment(item, settings)
    if not needs_image and not needs_date:
        return item

    try:
        page_html = await asyncio.wait_for(
            fetch_page(client, item.link, settings),
            timeout=settings.fetch_timeout,
        )
        image, published, ts = page_metadata(page_html, item.link, settings)
    except Exception as e:
        # httpx.InvalidURL is not an HTTPError; nothing from one page may escape
        log.debug("enrich skipped link=%s: %s", item.link, str(e) or type(e).__name__)
        return item

    if needs_image and image:
        item.image = image
    if needs_date and ts:
        item.published = published
        item.published_ts = ts
    return item


async def enrich_items(
    items: Sequence[NewsItem],
    client: httpx.AsyncClient,
    settings: Settings,
) -> List[NewsItem]:
    """Enrich `items` under the concurrency cap. Output order == input order."""
    candidates = [it for it in items if any(needs_enrichment(it, settings))]
    limit = max(1, int(settings.enrich_concurrency))

    log.info(
        "enrich batch start items=%d candidates=%d max_concurrent=%d",
        len(items), len(candidates), limit,
    )
    if not candidates:
        return list(items)

    before = {id(it): (it.image, it.published_ts) for it in candidates}
    semaphore = asyncio.Semaphore(limit)

    async def _one(it: NewsItem) -> NewsItem:
        if id(it) not in before:
            return it
        async with semaphore:
            return await enrich_item(it, client, settings)

    out = list(await asyncio.gather(*(_one(it) for it in items)))

    got_image = sum(1 for it in candidates if it.image != before[id(it)][0])
    got_date = sum(1 for it in candidates if it.published_ts != before[id(it)][1])
    log.info("enrich batch complete candidates=%d images=%d dates=%d", len(candidates), got_image, got_date)
    return out
