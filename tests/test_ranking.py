import unittest

from newswire.models import NewsItem
from newswire.ranking import dedupe_by_link, rank


def item(link: str, ts: int = 0, source: str = "s", title: str = "") -> NewsItem:
    return NewsItem(
        id=f"{source}:{link}",
        title=title or link,
        link=link,
        published_ts=ts,
        source_id=source,
        source_name=source.upper(),
    )


class TestRanking(unittest.TestCase):
    def test_first_seen_wins(self):
        a = item("https://x/1", 10, source="a")
        b = item("https://x/1", 99, source="b")
        out = dedupe_by_link([a, b])
        self.assertEqual(len(out), 1)
        self.assertIs(out[0], a)

    def test_newest_first_and_undated_last(self):
        items = [item("https://x/nodate1"), item("https://x/old", 1), item("https://x/new", 5), item("https://x/nodate2")]
        links = [it.link for it in rank(items)]
        self.assertEqual(links, ["https://x/new", "https://x/old", "https://x/nodate1", "https://x/nodate2"])

    def test_ties_keep_merge_order(self):
        items = [item(f"https://x/{i}", 7) for i in range(5)]
        self.assertEqual([it.link for it in rank(items)], [it.link for it in items])

    def test_rank_is_idempotent(self):
        items = [item("https://x/a", 3), item("https://x/b", 9), item("https://x/a", 1)]
        once = rank(items)
        self.assertEqual([it.link for it in rank(once)], [it.link for it in once])


if __name__ == "__main__":
    unittest.main()
