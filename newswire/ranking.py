from __future__ import annotations

from typing import Iterable, List

from newswire.models import NewsItem

__all__ = ["dedupe_by_link", "rank"]


def dedupe_by_link(items: Iterable[NewsItem]) -> List[NewsItem]:
    """First item per canonical link wins; later duplicates are dropped whole."""
    seen = set()
    out: List[NewsItem] = []
    for it in items:
        if it.link in seen:
            continue
        seen.add(it.link)
        out.append(it)
    return out


def rank(items: Iterable[NewsItem]) -> List[NewsItem]:
    """
    Dedupe, then newest first. publishedTs == 0 (no date) sorts last.
    sorted() is stable with reverse=True, so ties keep merge order.
    """
    return sorted(dedupe_by_link(items), key=lambda it: it.published_ts, reverse=True)
