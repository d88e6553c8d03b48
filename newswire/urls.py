from __future__ import annotations
"""
URL helpers
-----------
Canonical links are the dedupe key for the whole feed, so every URL that
enters a NewsItem (link, image) goes through normalize_url().

Public API:
    decode_url_entities(u)
    normalize_url(u, decode_entities=True)
    absolutize(u, base, decode_entities=True)
"""

import re
from typing import Optional
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

__all__ = [
    "decode_url_entities",
    "normalize_url",
    "absolutize",
]

# Feeds often html-escape query params (&amp; / &#038; / &#x26;)
_AMP_ENTITIES_RE = re.compile(r"&amp;|&#0*38;|&#x0*26;", re.I)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*$", re.I)
_HOST_BAD_CHARS_RE = re.compile(r"[\s<>\"{}|\\^`]")

# Characters that survive percent-encoding untouched in path / query.
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"
_QUERY_SAFE = _PATH_SAFE + "?"

_SPECIAL_SCHEMES = {"http", "https", "ftp", "ws", "wss"}


def decode_url_entities(u: Optional[str]) -> str:
    if not u:
        return ""
    return _AMP_ENTITIES_RE.sub("&", str(u))


def _canonical(u: str) -> Optional[str]:
    """Strict parse + canonical re-serialization. None when unparseable."""
    try:
        p = urlsplit(u)
        port = p.port  # raises ValueError on junk ports
    except ValueError:
        return None

    scheme = (p.scheme or "").lower()
    if not scheme or not _SCHEME_RE.match(scheme):
        return None

    netloc = p.netloc
    if scheme in _SPECIAL_SCHEMES:
        host = (p.hostname or "").strip()
        if not host or _HOST_BAD_CHARS_RE.search(host):
            return None
        # user:pass@ is kept verbatim; only the host part is case-folded
        userinfo = netloc.rpartition("@")[0]
        host = host.lower()
        if ":" in host:
            host = f"[{host}]"
        netloc = f"{userinfo}@{host}" if userinfo else host
        if port is not None:
            netloc = f"{netloc}:{port}"

    path = quote(p.path, safe=_PATH_SAFE)
    if scheme in _SPECIAL_SCHEMES and not path:
        path = "/"
    query = quote(p.query, safe=_QUERY_SAFE)
    fragment = quote(p.fragment, safe=_QUERY_SAFE)
    return urlunsplit((scheme, netloc, path, query, fragment))


def normalize_url(u: Optional[str], decode_entities: bool = True) -> str:
    """
    Best-effort canonical form of an absolute URL.

    Unparseable input comes back trimmed (and entity-decoded) instead of
    raising; callers decide whether an empty result means "drop".
    """
    cleaned = (u or "").strip()
    if decode_entities:
        cleaned = decode_url_entities(cleaned)
    if not cleaned:
        return ""
    return _canonical(cleaned) or cleaned


def absolutize(u: Optional[str], base: str, decode_entities: bool = True) -> str:
    """Resolve a possibly-relative URL (og:image etc.) against the page URL."""
    cleaned = normalize_url(u, decode_entities=decode_entities)
    if not cleaned:
        return ""
    try:
        joined = urljoin(base or "", cleaned)
    except ValueError:
        return cleaned
    return _canonical(joined) or cleaned
