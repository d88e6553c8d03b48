from __future__ import annotations
"""
Extractor layer
---------------
Pulls structured fields out of a loosely-shaped feed entry. Entries come from
feedparser (FeedParserDict) in production, but every helper here only relies
on `.get()` and tolerates missing / oddly-typed fields, so plain dicts shaped
like other parsers' output work too.

Public API:
    pick_image(entry), is_junk_image(url), pick_excerpt(entry),
    pick_categories(entry), to_timestamp(s), entry_timestamp(entry)
    strip_html(), first_image_from_html(), extract_meta(), first_meta()
"""

import calendar
import html
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from newswire.urls import normalize_url

__all__ = [
    "JUNK_IMAGE_PATTERNS",
    "MAX_CATEGORIES",
    "EXCERPT_MAX",
    "pick_image",
    "is_junk_image",
    "pick_excerpt",
    "pick_categories",
    "to_timestamp",
    "entry_timestamp",
    "strip_html",
    "first_image_from_html",
    "extract_meta",
    "first_meta",
]

# ============================== Config ===============================

# Substrings of known "fake thumbnails". WordPress emoji sprites are the
# usual offender; add more as they show up.
JUNK_IMAGE_PATTERNS: Sequence[str] = (
    "s.w.org/images/core/emoji",
)

MAX_CATEGORIES = 12
EXCERPT_MAX = 240
ELLIPSIS = "…"

_SCRIPT_RE = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.I)
_STYLE_RE = re.compile(r"<style[\s\S]*?>[\s\S]*?</style>", re.I)
_TAG_RE = re.compile(r"</?[^>]+>")
_WS_RE = re.compile(r"\s+")
_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.I)

# older fromisoformat() only takes "+HH:MM" offsets and 3 or 6 fraction digits
_ISO_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")
_ISO_FRACTION_RE = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")

# ============================== Entry access =========================

def _get(entry: Any, key: str) -> Any:
    if not hasattr(entry, "get"):
        return None
    try:
        return entry.get(key)
    except Exception:
        return None

def _first(entry: Any, *keys: str) -> Any:
    for k in keys:
        v = _get(entry, k)
        if v:
            return v
    return None

def _url_attr(val: Any) -> Optional[str]:
    """
    url attribute of a media / enclosure field. Handles:
      "https://..."                           (plain string)
      {"url": ...} / {"href": ...}            (feedparser)
      {"$": {"url": ...}}                     (xml2js-style attrs)
      [ any of the above, ... ]               (first usable wins)
    """
    if isinstance(val, str):
        return val.strip() or None
    if isinstance(val, dict) or hasattr(val, "get"):
        attrs = _get(val, "$")
        if hasattr(attrs, "get") and isinstance(_get(attrs, "url"), str):
            return _get(attrs, "url")
        for k in ("url", "href"):
            u = _get(val, k)
            if isinstance(u, str) and u.strip():
                return u
        return None
    if isinstance(val, (list, tuple)):
        for it in val:
            u = _url_attr(it)
            if u:
                return u
    return None

def _entry_html(entry: Any) -> str:
    """Best HTML body: encoded content → content → summary/description."""
    v = _first(entry, "contentEncoded", "content:encoded", "content_encoded")
    if isinstance(v, str) and v:
        return v

    content = _get(entry, "content")
    if isinstance(content, str) and content:
        return content
    if isinstance(content, (list, tuple)):
        for c in content:
            val = _get(c, "value") if hasattr(c, "get") else c
            if isinstance(val, str) and val:
                return val

    v = _first(entry, "summary", "description")
    return v if isinstance(v, str) else ""

# ============================== HTML helpers =========================

def strip_html(text: Optional[str]) -> str:
    if not text:
        return ""
    s = _SCRIPT_RE.sub("", str(text))
    s = _STYLE_RE.sub("", s)
    s = _TAG_RE.sub(" ", s)
    s = html.unescape(s)
    return _WS_RE.sub(" ", s).strip()

def first_image_from_html(text: Optional[str]) -> str:
    if not text:
        return ""
    m = _IMG_SRC_RE.search(str(text))
    return m.group(1) if m else ""

def extract_meta(page_html: Optional[str], key: str) -> str:
    """
    content of <meta property|name="key" content="...">, either attribute
    order. Regex only; we never build a DOM for enrichment.
    """
    if not page_html:
        return ""
    k = re.escape(key)
    patterns = (
        rf"""<meta[^>]+(?:property|name)=["']{k}["'][^>]+content=["']([^"']+)["'][^>]*>""",
        rf"""<meta[^>]+content=["']([^"']+)["'][^>]+(?:property|name)=["']{k}["'][^>]*>""",
    )
    for pat in patterns:
        m = re.search(pat, page_html, flags=re.I)
        if m and m.group(1).strip():
            return m.group(1).strip()
    return ""

def first_meta(page_html: Optional[str], keys: Iterable[str]) -> str:
    for key in keys:
        v = extract_meta(page_html, key)
        if v:
            return v
    return ""

# ============================== Images ===============================

def is_junk_image(url: Optional[str], patterns: Optional[Iterable[str]] = None) -> bool:
    u = (url or "").lower()
    if not u:
        return False
    pats = JUNK_IMAGE_PATTERNS if patterns is None else patterns
    return any(p.lower() in u for p in pats if p)

def pick_image(entry: Any, decode_entities: bool = True) -> str:
    """
    Strict priority, first hit wins:
      1) media:content url
      2) media:thumbnail url
      3) enclosure url
      4) first <img src> in the entry HTML
    """
    candidates = (
        _first(entry, "media_content", "mediaContent", "media:content"),
        _first(entry, "media_thumbnail", "mediaThumbnail", "media:thumbnail"),
        _first(entry, "enclosure", "enclosures"),
    )
    for field in candidates:
        u = _url_attr(field)
        if u:
            return normalize_url(u, decode_entities=decode_entities)

    img = first_image_from_html(_entry_html(entry))
    if img:
        return normalize_url(img, decode_entities=decode_entities)
    return ""

# ============================== Text fields ==========================

def pick_excerpt(entry: Any) -> str:
    text = strip_html(_entry_html(entry))
    if not text:
        return ""
    if len(text) > EXCERPT_MAX:
        return text[: EXCERPT_MAX - 3] + ELLIPSIS
    return text

def _category_label(c: Any) -> str:
    if isinstance(c, dict) or hasattr(c, "get"):
        for k in ("term", "label", "_", "name"):
            v = _get(c, k)
            if isinstance(v, str) and v.strip():
                return v
        return ""
    if isinstance(c, (list, tuple)):
        # feedparser's legacy `categories` view: (scheme, term)
        return str(c[-1] or "") if c else ""
    return str(c or "")

def pick_categories(entry: Any) -> List[str]:
    raw = _first(entry, "tags", "categories", "category") or []
    items = raw if isinstance(raw, list) else [raw]
    out: List[str] = []
    for c in items:
        label = _category_label(c).strip()
        if label:
            out.append(label)
    return out[:MAX_CATEGORIES]

# ============================== Time helpers =========================

def _to_millis(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return max(0, int(dt.timestamp() * 1000))

def _iso_compat(s: str) -> str:
    if s[-1] in "Zz":
        s = s[:-1] + "+00:00"
    if ":" in s:
        s = _ISO_OFFSET_RE.sub(r"\1:\2", s)
    return _ISO_FRACTION_RE.sub(lambda m: f"{m.group(1)}.{(m.group(2) + '000000')[:6]}", s)

def to_timestamp(value: Optional[str]) -> int:
    """Epoch millis for an RFC 2822 / ISO 8601 string; 0 when unusable."""
    s = str(value or "").strip()
    if not s:
        return 0

    try:
        return _to_millis(parsedate_to_datetime(s))
    except (TypeError, ValueError, IndexError, OverflowError):
        pass

    iso = _iso_compat(s)
    try:
        return _to_millis(datetime.fromisoformat(iso))
    except (ValueError, OverflowError, OSError):
        return 0

def entry_timestamp(entry: Dict[str, Any]) -> int:
    """feedparser's own *_parsed struct_time, for date formats we don't parse."""
    for k in ("published_parsed", "updated_parsed"):
        st = _get(entry, k)
        if st and hasattr(st, "tm_year"):
            try:
                return max(0, int(calendar.timegm(st)) * 1000)
            except (TypeError, ValueError, OverflowError):
                pass
    return 0
