from __future__ import annotations


class NewswireError(Exception):
    """Base class for errors raised by the feed builder."""


class ConfigError(NewswireError):
    """Feed source list (or settings) could not be read. Fatal for the run."""


class FeedFetchError(NewswireError):
    """Feed URL answered with a non-success HTTP status."""

    def __init__(self, url: str, status_code: int, reason: str = "", body: str = ""):
        self.url = url
        self.status_code = status_code
        snippet = (body or "")[:160]
        msg = f"Fetch failed {status_code} {reason}".rstrip() + f" for {url}"
        if snippet:
            msg += f": {snippet}"
        super().__init__(msg)


class FeedParseError(NewswireError):
    """Feed body is not a usable RSS/Atom document."""


class PageFetchError(NewswireError):
    """Article page fetch failed during enrichment (never leaves enrich.py)."""
