# newswire/pipeline.py
#
# FULL BUILD (one run, one output file):
#
#   1. load_sources()            feed list (fatal if unreadable)
#   2. ingest_all()              every feed; failures → IngestError, never fatal
#   3. rank()                    dedupe by canonical link (first wins), newest first
#   4. split                     head = newest `enrich_limit`, tail untouched
#   5. enrich_items(head)        og:image / published_time, bounded concurrency
#   6. rank(head + tail)         filled-in dates move items to their real slot
#   7. truncate                  `max_items`
#   8. OutputPayload → write_payload()
#
# Steps 4-6 are skipped in fast mode (enrich_enabled = False).

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import httpx

from newswire.config import Settings, load_sources
from newswire.enrich import enrich_items
from newswire.ingest import ingest_all
from newswire.models import FeedSource, NewsItem, OutputPayload
from newswire.ranking import rank

__all__ = [
    "make_client",
    "utc_now_iso",
    "build_payload",
    "write_payload",
    "run",
]

log = logging.getLogger("newswire.pipeline")


def make_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.feed_timeout),
        limits=httpx.Limits(
            max_connections=max(20, settings.enrich_concurrency * 2),
            max_keepalive_connections=max(10, settings.enrich_concurrency),
        ),
        headers={
            "User-Agent": settings.user_agent,
            "Accept-Language": settings.accept_language,
        },
    )


def utc_now_iso() -> str:
    """2024-01-01T00:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def _build(
    sources: Sequence[FeedSource],
    settings: Settings,
    client: httpx.AsyncClient,
) -> OutputPayload:
    items, errors = await ingest_all(sources, client, settings)
    log.info("ingested sources=%d items=%d errors=%d", len(sources), len(items), len(errors))

    merged: List[NewsItem] = rank(items)

    if settings.enrich_enabled and settings.enrich_limit > 0:
        head = merged[: settings.enrich_limit]
        tail = merged[settings.enrich_limit:]
        head = await enrich_items(head, client, settings)
        merged = rank(head + tail)
    else:
        log.info("enrichment disabled; publishing feed data as-is")

    merged = merged[: max(0, settings.max_items)]

    return OutputPayload(
        generated_at=utc_now_iso(),
        total=len(merged),
        sources=list(sources),
        errors=errors,
        items=merged,
    )


async def build_payload(
    sources: Sequence[FeedSource],
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> OutputPayload:
    """Run ingest → rank → enrich → rank → truncate. Caller-owned client is not closed."""
    if client is not None:
        return await _build(sources, settings, client)
    async with make_client(settings) as own_client:
        return await _build(sources, settings, own_client)


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_payload(payload: OutputPayload, path: str) -> None:
    """Pretty-printed UTF-8 JSON, written via temp file + rename."""
    out_dir = os.path.dirname(os.path.abspath(path))
    os.makedirs(out_dir, exist_ok=True)

    data = json.dumps(payload.to_json_dict(), indent=2, ensure_ascii=False)
    fd, tmp_path = tempfile.mkstemp(prefix=".newswire-", suffix=".json", dir=out_dir)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        # mkstemp creates 0600; publish with the mode a plain open() would get
        os.chmod(tmp_path, 0o666 & ~_current_umask())
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


async def run(settings: Settings, client: Optional[httpx.AsyncClient] = None) -> OutputPayload:
    sources = load_sources(settings.feeds_file)
    payload = await build_payload(sources, settings, client=client)
    write_payload(payload, settings.output_file)
    log.info(
        "wrote %s total=%d errors=%d",
        settings.output_file, payload.total, len(payload.errors),
    )
    return payload
