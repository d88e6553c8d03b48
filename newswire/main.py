# newswire/main.py
#
# Entry point: build the aggregated JSON feed once and exit.
#
#   newswire-build                      # settings from env / .env
#   newswire-build --no-enrich          # fast build: feed data only
#   newswire-build --feeds feeds.yml --out public/news.json
#
# Exit code 0 whenever the payload was written, even if some feeds failed
# (those failures live in payload["errors"]). Non-zero only when the run
# itself could not complete: unreadable feed list, unwritable output, bad
# settings.

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Any, Dict, List, Optional

from newswire.config import Settings
from newswire.errors import ConfigError
from newswire.pipeline import run

log = logging.getLogger("newswire")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="newswire-build",
        description="Aggregate RSS/Atom feeds into one deduplicated, ranked JSON feed.",
    )
    parser.add_argument("--feeds", dest="feeds_file", help="feed list (JSON or YAML)")
    parser.add_argument("--out", dest="output_file", help="output JSON path")
    parser.add_argument("--no-enrich", action="store_true", help="skip article page scraping")
    parser.add_argument("--max-items", type=int, help="items kept in the output")
    parser.add_argument("--enrich-limit", type=int, help="newest N items eligible for scraping")
    parser.add_argument("--concurrency", dest="enrich_concurrency", type=int, help="max page fetches in flight")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    update: Dict[str, Any] = {}
    for key in ("feeds_file", "output_file", "max_items", "enrich_limit", "enrich_concurrency"):
        val = getattr(args, key, None)
        if val is not None:
            update[key] = val
    if args.no_enrich:
        update["enrich_enabled"] = False
    if args.verbose:
        update["log_level"] = "DEBUG"
    return settings.model_copy(update=update) if update else settings


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        settings = _apply_overrides(Settings(), args)
    except Exception:
        _setup_logging("INFO")
        log.exception("invalid settings")
        return 2

    _setup_logging(settings.log_level)
    log.info(
        "boot: feeds=%s out=%s enrich=%s limit=%d concurrency=%d max_items=%d",
        settings.feeds_file,
        settings.output_file,
        settings.enrich_enabled,
        settings.enrich_limit,
        settings.enrich_concurrency,
        settings.max_items,
    )

    try:
        asyncio.run(run(settings))
    except ConfigError as e:
        log.error("fatal: %s", e)
        return 1
    except OSError as e:
        log.error("fatal: could not write %s: %s", settings.output_file, e)
        return 1
    except Exception:
        log.exception("fatal: build failed")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
