import json
import os
import tempfile
import unittest

import httpx

from newswire.config import Settings
from newswire.ingest import item_id
from newswire.main import main
from newswire.models import FeedSource
from newswire.pipeline import build_payload, run, write_payload


def rss(items_xml: str) -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel><title>t</title><link>https://feed.example/</link><description>d</description>
    {items_xml}
  </channel>
</rss>"""


FEED_A = rss("""
<item>
  <title>Dated A</title>
  <link>https://news.example/a</link>
  <pubDate>Tue, 02 Jan 2024 00:00:00 GMT</pubDate>
  <media:content url="https://cdn.example/a.jpg" medium="image" />
</item>
<item>
  <title>Undated, no image</title>
  <link>https://news.example/enrich-me</link>
</item>
<item>
  <title>Shared (A copy)</title>
  <link>https://news.example/shared?id=1&amp;amp;ref=rss</link>
  <pubDate>Mon, 01 Jan 2024 00:00:00 GMT</pubDate>
</item>
""")

FEED_B = rss("""
<item>
  <title>Shared (B copy)</title>
  <link>https://news.example/shared?id=1&amp;#038;ref=rss</link>
  <pubDate>Mon, 01 Jan 2024 00:00:00 GMT</pubDate>
</item>
<item>
  <title>Oldest B</title>
  <link>https://news.example/b-old</link>
  <pubDate>Sun, 31 Dec 2023 00:00:00 GMT</pubDate>
</item>
""")

FEED_MONDO = rss("""
<item>
  <title>Disco review</title>
  <link>https://mondo.example/disco</link>
  <pubDate>Wed, 03 Jan 2024 00:00:00 GMT</pubDate>
  <category>Discos</category>
</item>
<item>
  <title>Concert news</title>
  <link>https://mondo.example/news</link>
  <pubDate>Thu, 04 Jan 2024 00:00:00 GMT</pubDate>
  <category>Conciertos</category>
</item>
""")

ARTICLE = """<html><head>
<meta property="og:image" content="https://x/a.jpg">
<meta property="article:published_time" content="2024-01-05T00:00:00Z">
</head></html>"""

SOURCES = [
    FeedSource(id="a", name="Feed A", url="https://a.example/rss"),
    FeedSource(id="broken", name="Broken", url="https://broken.example/rss"),
    FeedSource(id="b", name="Feed B", url="https://b.example/rss"),
    FeedSource(id="mondo", name="Mondo", url="https://mondo.example/feed", requireCategory="discos"),
]

ROUTES = {
    "https://a.example/rss": lambda: httpx.Response(200, text=FEED_A),
    "https://broken.example/rss": lambda: httpx.Response(500, text="upstream exploded"),
    "https://b.example/rss": lambda: httpx.Response(200, text=FEED_B),
    "https://mondo.example/feed": lambda: httpx.Response(200, text=FEED_MONDO),
    "https://news.example/enrich-me": lambda: httpx.Response(200, text=ARTICLE),
}


def mock_client(requested=None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if requested is not None:
            requested.append(url)
        make = ROUTES.get(url)
        return make() if make else httpx.Response(404, text="missing")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


def _settings(**kw) -> Settings:
    return Settings(_env_file=None, **kw)


class TestBuildPayload(unittest.IsolatedAsyncioTestCase):
    async def test_full_build(self):
        async with mock_client() as client:
            payload = await build_payload(SOURCES, _settings(), client=client)

        links = [it.link for it in payload.items]
        self.assertEqual(payload.total, len(payload.items))

        # broken feed: one error, no items, others unaffected
        self.assertEqual([e.source_id for e in payload.errors], ["broken"])
        self.assertNotIn("broken", {it.source_id for it in payload.items})

        # category filter: dropped silently
        self.assertIn("https://mondo.example/disco", links)
        self.assertNotIn("https://mondo.example/news", links)

        # escaped duplicates collapse; feed A came first so it wins
        shared = [it for it in payload.items if "shared" in it.link]
        self.assertEqual(len(shared), 1)
        self.assertEqual(shared[0].source_id, "a")
        self.assertEqual(shared[0].link, "https://news.example/shared?id=1&ref=rss")
        self.assertEqual(shared[0].id, item_id("a", shared[0].link))

        # enrichment moved the undated item to the top
        top = payload.items[0]
        self.assertEqual(top.link, "https://news.example/enrich-me")
        self.assertEqual(top.image, "https://x/a.jpg")
        self.assertEqual(top.published_ts, 1704412800000)

        ts = [it.published_ts for it in payload.items]
        self.assertEqual(ts, sorted(ts, reverse=True))
        self.assertEqual(len(set(links)), len(links))

    async def test_fast_mode_skips_page_fetches(self):
        requested = []
        async with mock_client(requested) as client:
            payload = await build_payload(SOURCES, _settings(enrich_enabled=False), client=client)

        self.assertNotIn("https://news.example/enrich-me", requested)
        last = payload.items[-1]
        self.assertEqual(last.link, "https://news.example/enrich-me")
        self.assertEqual(last.published_ts, 0)
        self.assertEqual(last.image, "")

    async def test_enrich_limit_bounds_the_head(self):
        requested = []
        # undated item ranks last, outside a head of 2
        async with mock_client(requested) as client:
            payload = await build_payload(SOURCES, _settings(enrich_limit=2), client=client)
        self.assertNotIn("https://news.example/enrich-me", requested)
        self.assertEqual(payload.items[-1].published_ts, 0)

    async def test_truncation(self):
        async with mock_client() as client:
            payload = await build_payload(SOURCES, _settings(max_items=2), client=client)
        self.assertEqual(payload.total, 2)
        self.assertEqual(len(payload.items), 2)

    async def test_ids_are_stable_across_runs(self):
        async with mock_client() as client:
            one = await build_payload(SOURCES, _settings(), client=client)
        async with mock_client() as client:
            two = await build_payload(SOURCES, _settings(), client=client)
        self.assertEqual([it.id for it in one.items], [it.id for it in two.items])

    async def test_unfetchable_link_still_builds(self):
        feed = rss("""
<item><title>Odd</title><link>https://news.example\x7f/odd</link></item>
<item><title>Fine</title><link>https://news.example/enrich-me</link></item>
""")
        src = FeedSource(id="odd", name="Odd", url="https://odd.example/rss")

        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == src.url:
                return httpx.Response(200, text=feed)
            make = ROUTES.get(str(request.url))
            return make() if make else httpx.Response(404, text="missing")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True) as client:
            payload = await build_payload([src], _settings(), client=client)

        self.assertEqual(payload.errors, [])
        self.assertEqual(payload.total, 2)
        fine = payload.items[0]
        self.assertEqual(fine.link, "https://news.example/enrich-me")
        self.assertEqual(fine.image, "https://x/a.jpg")
        self.assertEqual(payload.items[1].published_ts, 0)


class TestRunAndWrite(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.feeds_path = os.path.join(self.tmp.name, "feeds.json")
        with open(self.feeds_path, "w", encoding="utf-8") as f:
            json.dump([s.model_dump(by_alias=True, exclude_defaults=True) for s in SOURCES], f)

    async def test_run_writes_payload(self):
        out_path = os.path.join(self.tmp.name, "output", "dj-news.json")
        settings = _settings(feeds_file=self.feeds_path, output_file=out_path)
        async with mock_client() as client:
            payload = await run(settings, client=client)

        with open(out_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        self.assertEqual(set(data), {"generatedAt", "total", "sources", "errors", "items"})
        self.assertTrue(data["generatedAt"].endswith("Z"))
        self.assertEqual(data["total"], payload.total)
        self.assertEqual(data["total"], len(data["items"]))
        self.assertEqual(data["sources"][0], {"id": "a", "name": "Feed A", "url": "https://a.example/rss"})
        self.assertEqual(data["sources"][3]["requireCategory"], "discos")
        self.assertEqual(
            data["errors"][0],
            {
                "sourceId": "broken",
                "sourceName": "Broken",
                "url": "https://broken.example/rss",
                "error": data["errors"][0]["error"],
            },
        )
        self.assertIn("500", data["errors"][0]["error"])
        self.assertEqual(
            set(data["items"][0]),
            {"id", "title", "link", "published", "publishedTs", "sourceId", "sourceName", "categories", "image", "excerpt"},
        )
        for it in data["items"]:
            self.assertLessEqual(len(it["excerpt"]), 240)
            self.assertLessEqual(len(it["categories"]), 12)
            self.assertTrue(it["link"])

    async def test_unwritable_output_raises(self):
        blocker = os.path.join(self.tmp.name, "file")
        with open(blocker, "w") as f:
            f.write("x")
        settings = _settings(feeds_file=self.feeds_path, output_file=os.path.join(blocker, "out.json"))
        async with mock_client() as client:
            with self.assertRaises(OSError):
                await run(settings, client=client)


class TestWritePayload(unittest.TestCase):
    def test_utf8_not_escaped(self):
        from newswire.models import NewsItem, OutputPayload

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "out.json")
            item = NewsItem(id="1", title="Canción nueva", link="https://x/", source_id="s", source_name="S")
            write_payload(OutputPayload(generated_at="2024-01-01T00:00:00.000Z", total=1, items=[item]), path)
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        self.assertIn("Canción nueva", text)
        self.assertIn('\n  "total": 1,', text)

    @unittest.skipIf(os.name != "posix", "POSIX file modes")
    def test_output_is_world_readable_under_umask(self):
        from newswire.models import OutputPayload

        old = os.umask(0o022)
        self.addCleanup(os.umask, old)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "out.json")
            write_payload(OutputPayload(generated_at="2024-01-01T00:00:00.000Z", total=0), path)
            mode = os.stat(path).st_mode & 0o777
            leftovers = [n for n in os.listdir(tmp) if n != "out.json"]
        self.assertEqual(mode, 0o644)
        self.assertEqual(leftovers, [])


class TestMain(unittest.TestCase):
    def test_missing_feed_list_exits_non_zero(self):
        with tempfile.TemporaryDirectory() as tmp:
            code = main([
                "--feeds", os.path.join(tmp, "missing.json"),
                "--out", os.path.join(tmp, "out.json"),
            ])
            self.assertEqual(code, 1)
            self.assertFalse(os.path.exists(os.path.join(tmp, "out.json")))


if __name__ == "__main__":
    unittest.main()
