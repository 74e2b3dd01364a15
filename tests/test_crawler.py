"""
Tests for the breadth-first crawler: scope, limits, failures and progress.
"""

import pytest

from scrapegoat.crawler import (
    STOP_FRONTIER_EXHAUSTED,
    STOP_MAX_TIME,
    STOP_MAX_URLS,
    CrawlConfig,
    Crawler,
    CrawlFrontier,
)
from scrapegoat.errors import FetchError
from scrapegoat.utils import extract_host

from conftest import FakeFetcher, page

SEED = "https://example.com/"


def make_crawler(fetcher, store, clock, **config):
    config.setdefault("request_delay", 0.0)
    return Crawler(fetcher, store, CrawlConfig(**config), clock=clock, sleep=clock.sleep)


class TestCrawlFrontier:

    def test_never_queues_twice(self):
        frontier = CrawlFrontier()
        assert frontier.push("https://a.com/")
        assert not frontier.push("https://a.com/")
        assert len(frontier) == 1

    def test_visited_not_requeued(self):
        frontier = CrawlFrontier()
        frontier.push("https://a.com/")
        url = frontier.pop()
        frontier.mark_visited(url)
        assert not frontier.push(url)
        assert len(frontier) == 0


class TestCrawlBasics:

    def test_breadth_first_and_recorded(self, store, job, clock):
        fetcher = FakeFetcher({
            SEED: page("Home", links=["/a", "/b"]),
            "https://example.com/a": page("A", links=["/a/deep"]),
            "https://example.com/b": page("B"),
            "https://example.com/a/deep": page("Deep"),
        })
        result = make_crawler(fetcher, store, clock).run(job.id, SEED)

        assert fetcher.calls == [
            SEED,
            "https://example.com/a",
            "https://example.com/b",
            "https://example.com/a/deep",
        ]
        pages = store.list_pages(job.id)
        assert [p.title for p in pages] == ["Home", "A", "B", "Deep"]
        assert result.stats["stop_reason"] == STOP_FRONTIER_EXHAUSTED

    def test_no_url_visited_twice(self, store, job, clock):
        fetcher = FakeFetcher({
            SEED: page("Home", links=["/a", "/a#x", "/"]),
            "https://example.com/a": page("A", links=["/", "/a"]),
        })
        visited = make_crawler(fetcher, store, clock).crawl(job.id, SEED)

        assert visited == {SEED, "https://example.com/a"}
        assert len(fetcher.calls) == len(set(fetcher.calls))

    def test_title_defaults_to_url(self, store, job, clock):
        fetcher = FakeFetcher({SEED: "<html><body><p>No title</p></body></html>"})
        make_crawler(fetcher, store, clock).run(job.id, SEED)
        assert store.list_pages(job.id)[0].title == SEED


class TestScope:

    LINKS = ["/local", "https://other.org/page", "https://sub.example.com/x"]

    def _fetcher(self):
        return FakeFetcher({
            SEED: page("Home", links=self.LINKS),
            "https://example.com/local": page("Local"),
            "https://other.org/page": page("Other"),
            "https://sub.example.com/x": page("Sub"),
        })

    def test_same_host_only(self, store, job, clock):
        make_crawler(self._fetcher(), store, clock).run(job.id, SEED)
        hosts = {extract_host(p.url) for p in store.list_pages(job.id)}
        assert hosts == {"example.com"}

    def test_follow_all_domains(self, store, job, clock):
        make_crawler(self._fetcher(), store, clock).run(job.id, SEED, follow_all_domains=True)
        urls = {p.url for p in store.list_pages(job.id)}
        assert "https://other.org/page" in urls
        assert "https://sub.example.com/x" in urls


class TestLimits:

    def test_max_urls_one(self, store, job, clock):
        links = [f"/p{i}" for i in range(10)]
        pages = {SEED: page("Home", links=links)}
        pages.update({f"https://example.com/p{i}": page(f"P{i}") for i in range(10)})
        fetcher = FakeFetcher(pages)

        result = make_crawler(fetcher, store, clock, max_urls=1).run(job.id, SEED)

        assert result.visited == {SEED}
        assert len(store.list_pages(job.id)) == 1
        assert result.stats["stop_reason"] == STOP_MAX_URLS

    def test_visited_never_exceeds_max_urls(self, store, job, clock):
        pages = {SEED: page("Home", links=[f"/p{i}" for i in range(20)])}
        pages.update({f"https://example.com/p{i}": page(f"P{i}") for i in range(20)})

        result = make_crawler(FakeFetcher(pages), store, clock, max_urls=5).run(job.id, SEED)
        assert len(result.visited) == 5

    def test_time_limit(self, store, job, clock):
        pages = {SEED: page("Home", links=[f"/p{i}" for i in range(10)])}
        pages.update({f"https://example.com/p{i}": page(f"P{i}") for i in range(10)})
        fetcher = FakeFetcher(pages, clock=clock, cost=0.4)

        crawler = make_crawler(fetcher, store, clock, max_crawl_time=2.0, request_delay=0.5)
        result = crawler.run(job.id, SEED)

        # fetch 0.4s + delay 0.5s per page: starts at 0.0, 0.9 and 1.8
        assert len(result.visited) == 3
        assert result.stats["stop_reason"] == STOP_MAX_TIME
        assert all(s <= 0.5 for s in clock.sleeps)

    def test_sleep_clipped_to_deadline(self, store, job, clock):
        pages = {SEED: page("Home", links=["/a", "/b"])}
        pages.update({"https://example.com/a": page("A"), "https://example.com/b": page("B")})

        crawler = make_crawler(FakeFetcher(pages), store, clock, max_crawl_time=0.7, request_delay=0.5)
        crawler.run(job.id, SEED)

        assert clock.now <= 0.7 + 1e-9
        assert clock.sleeps == pytest.approx([0.5, 0.2])


class TestFailures:

    def test_failed_fetch_is_skipped(self, store, job, clock):
        fetcher = FakeFetcher({
            SEED: page("Home", links=["/broken", "/ok", "/server-error"]),
            "https://example.com/broken": FetchError("https://example.com/broken", "Request timeout"),
            "https://example.com/server-error": ("<html>oops</html>", 500),
            "https://example.com/ok": page("OK"),
        })
        result = make_crawler(fetcher, store, clock).run(job.id, SEED)

        urls = [p.url for p in store.list_pages(job.id)]
        assert urls == [SEED, "https://example.com/ok"]
        assert {e["url"] for e in result.errors} == {
            "https://example.com/broken",
            "https://example.com/server-error",
        }
        assert result.stats["pages_failed"] == 2

    def test_seed_failure_records_nothing(self, store, job, clock):
        fetcher = FakeFetcher({SEED: ("<html>error</html>", 500)})
        result = make_crawler(fetcher, store, clock).run(job.id, SEED)
        assert store.list_pages(job.id) == []
        assert result.visited == {SEED}


class TestProgress:

    def test_progress_scaled_and_monotonic(self, store, job, clock):
        pages = {SEED: page("Home", links=[f"/p{i}" for i in range(3)])}
        pages.update({f"https://example.com/p{i}": page(f"P{i}") for i in range(3)})
        crawler = make_crawler(FakeFetcher(pages), store, clock, max_urls=4)

        reported = []
        crawler.set_progress_callback(lambda progress, visited, url: reported.append(progress))
        crawler.run(job.id, SEED)

        assert reported == [12, 25, 37, 50]

    def test_progress_capped(self, store, job, clock):
        crawler = make_crawler(FakeFetcher(), store, clock, max_urls=10)
        assert crawler.crawl_progress(50) == 50
        assert crawler.crawl_progress(0) == 0
