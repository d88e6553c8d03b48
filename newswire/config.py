from __future__ import annotations

import json
import logging
import os
from typing import Any, List

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings

from newswire.errors import ConfigError
from newswire.models import FeedSource

log = logging.getLogger("newswire.config")


class Settings(BaseSettings):
    # inputs / outputs
    feeds_file: str = "feeds.json"
    output_file: str = "output/dj-news.json"

    # output size
    max_items: int = 200          # items published in the json

    # enrichment (og:image / published_time scraping)
    enrich_enabled: bool = True   # False = fast build, feed data only
    enrich_limit: int = 120       # only the newest N items get their page fetched
    enrich_concurrency: int = 4   # max page fetches in flight
    fetch_timeout: float = 9.0    # seconds, per article page

    feed_timeout: float = 20.0    # seconds, per feed document

    # url handling
    decode_url_entities: bool = True  # &amp; / &#038; / &#x26; → &

    # client identity
    user_agent: str = "Mozilla/5.0 (compatible; AlbashNewswireBot/1.0; +https://albash.es)"
    accept_language: str = "en-US,en;q=0.9"

    # known placeholder thumbnails (substring match, case-insensitive)
    junk_image_patterns: List[str] = ["s.w.org/images/core/emoji"]

    # observability
    log_level: str = "INFO"

    class Config:
        env_file = ".env"


def _read_document(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()
    if path.lower().endswith(".json"):
        return json.loads(raw)
    return yaml.safe_load(raw)


def load_sources(path: str) -> List[FeedSource]:
    """
    Read the feed list. Accepted shapes (JSON or YAML):
        [ {id, name, url, requireCategory?, enabled?}, ... ]
        { feeds: [ ... ] }
    Disabled entries are dropped here so the rest of the run never sees them.
    """
    try:
        data = _read_document(path)
    except FileNotFoundError as e:
        raise ConfigError(f"feed list not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"could not read feed list {path}: {e}") from e
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"could not parse feed list {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("feeds")
    if not isinstance(data, list):
        raise ConfigError(f"feed list {path} must be a list of sources (or a mapping with 'feeds')")

    sources: List[FeedSource] = []
    seen_ids = set()
    for idx, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ConfigError(f"feed list {path}: entry #{idx} is not a mapping")
        try:
            src = FeedSource.model_validate(entry)
        except ValidationError as e:
            raise ConfigError(f"feed list {path}: entry #{idx} is invalid: {e}") from e
        if not src.enabled:
            log.info("skipping disabled source id=%s", src.id)
            continue
        if src.id in seen_ids:
            log.warning("duplicate source id=%s in %s", src.id, path)
        seen_ids.add(src.id)
        sources.append(src)

    log.info("loaded %d sources from %s", len(sources), os.path.basename(path))
    return sources
