"""
Web Crawler
Breadth-first, polite site crawler bounded by scope, URL count and wall
clock. Every successfully fetched page is recorded in the job store.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Set

from .errors import FetchError
from .run_config import _DEFAULTS
from .scraper import extract_links
from .utils import ProgressTracker, URLNormalizer, extract_host, is_valid_url

logger = logging.getLogger(__name__)

# Share of overall job progress covered by the crawl phase
CRAWL_PROGRESS_SPAN = 50

STOP_FRONTIER_EXHAUSTED = "frontier_exhausted"
STOP_MAX_URLS = "max_urls"
STOP_MAX_TIME = "max_time"


@dataclass
class CrawlConfig:
    """
    Configuration for the web crawler.
    """
    max_urls: int = _DEFAULTS["max_urls"]
    max_crawl_time: float = _DEFAULTS["max_crawl_time"]   # seconds
    request_delay: float = _DEFAULTS["request_delay"]     # seconds between fetches
    fetch_timeout: float = _DEFAULTS["fetch_timeout"]


@dataclass
class CrawlFrontier:
    """
    FIFO queue of discovered URLs plus the set of URLs already dequeued.

    Owned by exactly one crawl loop. A URL is visited at most once and is
    never queued twice.
    """
    queue: Deque[str] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    queued: Set[str] = field(default_factory=set)

    def push(self, url: str) -> bool:
        if url in self.visited or url in self.queued:
            return False
        self.queue.append(url)
        self.queued.add(url)
        return True

    def pop(self) -> str:
        url = self.queue.popleft()
        self.queued.discard(url)
        return url

    def mark_visited(self, url: str) -> None:
        self.visited.add(url)

    def __len__(self) -> int:
        return len(self.queue)


@dataclass
class CrawlResult:
    """
    Result of a crawl operation.
    """
    visited: Set[str] = field(default_factory=set)
    pages: List[str] = field(default_factory=list)
    errors: List[Dict] = field(default_factory=list)
    stats: Dict = field(default_factory=dict)


class Crawler:
    """
    Breadth-first crawler writing discovered pages to a job store.

    One fetch is in flight at a time; a fixed delay separates fetch attempts.
    """

    def __init__(
        self,
        fetcher,
        store,
        config: CrawlConfig = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the crawler.

        Args:
            fetcher: Object with ``fetch(url, timeout=...)`` returning a FetchResult
            store: JobStore the discovered pages are appended to
            config: Crawler configuration
            clock: Monotonic time source (seconds)
            sleep: Sleep function used for the politeness delay
        """
        self.fetcher = fetcher
        self.store = store
        self.config = config or CrawlConfig()
        self.url_normalizer = URLNormalizer()
        self._clock = clock
        self._sleep = sleep
        self._progress_callback: Optional[Callable] = None

    def set_progress_callback(self, callback: Callable) -> None:
        """
        Set callback for progress updates.

        Args:
            callback: Function(progress_percent, visited_count, current_url)
        """
        self._progress_callback = callback

    def crawl_progress(self, visited_count: int) -> int:
        """Visited count scaled into the crawl share of job progress."""
        if self.config.max_urls <= 0:
            return CRAWL_PROGRESS_SPAN
        return min(
            CRAWL_PROGRESS_SPAN,
            (visited_count * CRAWL_PROGRESS_SPAN) // self.config.max_urls
        )

    def _in_scope(self, url: str, seed_host: str, follow_all_domains: bool) -> bool:
        return follow_all_domains or extract_host(url) == seed_host

    def crawl(self, job_id: str, seed_url: str, follow_all_domains: bool = False) -> Set[str]:
        """
        Crawl from *seed_url*, recording pages for *job_id*.

        Returns:
            The set of visited URLs
        """
        return self.run(job_id, seed_url, follow_all_domains).visited

    def run(self, job_id: str, seed_url: str, follow_all_domains: bool = False) -> CrawlResult:
        """Crawl and return the full CrawlResult (visited set, pages, errors, stats)."""
        if not is_valid_url(seed_url):
            raise ValueError(f"Invalid URL: {seed_url}")

        seed_url = self.url_normalizer.normalize(seed_url) or seed_url
        seed_host = extract_host(seed_url)

        frontier = CrawlFrontier()
        frontier.push(seed_url)
        result = CrawlResult(visited=frontier.visited)

        progress = ProgressTracker(clock=self._clock)
        progress.start()
        deadline = progress.start_time + self.config.max_crawl_time

        scope = "all domains" if follow_all_domains else seed_host
        logger.info(
            f"[CRAWL] Starting {seed_url} — scope={scope}, max_urls={self.config.max_urls}, "
            f"max_time={self.config.max_crawl_time:.0f}s"
        )

        stop_reason = STOP_FRONTIER_EXHAUSTED
        while frontier:
            if self._clock() >= deadline:
                logger.info(f"[CRAWL] Time limit reached after {self.config.max_crawl_time:.0f}s")
                stop_reason = STOP_MAX_TIME
                break
            if len(frontier.visited) >= self.config.max_urls:
                logger.info(f"[CRAWL] Reached max URLs limit: {self.config.max_urls}")
                stop_reason = STOP_MAX_URLS
                break

            url = frontier.pop()
            if url in frontier.visited:
                continue
            if not self._in_scope(url, seed_host, follow_all_domains):
                progress.increment_skipped()
                continue

            frontier.mark_visited(url)
            logger.info(f"[CRAWL] [{len(frontier.visited)}/{self.config.max_urls}] {url[:80]}")

            remaining = deadline - self._clock()
            timeout = max(0.1, min(self.config.fetch_timeout, remaining))
            try:
                fetched = self.fetcher.fetch(url, timeout=timeout)
            except FetchError as e:
                progress.increment_failed()
                result.errors.append({'url': url, 'error': e.message})
                logger.warning(f"[CRAWL] Skipping {url[:80]}: {e.message}")
            else:
                page = extract_links(fetched.html, url, self.url_normalizer)
                self.store.add_page(job_id, url, page.title)
                result.pages.append(url)
                progress.increment_crawled()

                enqueued = 0
                for link in page.links:
                    if link in frontier.visited:
                        continue
                    if not self._in_scope(link, seed_host, follow_all_domains):
                        continue
                    if frontier.push(link):
                        enqueued += 1
                logger.info(
                    f"[FRONTIER] {url[:60]} → links={len(page.links)} "
                    f"enqueued={enqueued} queue_size={len(frontier)}"
                )

            if self._progress_callback:
                self._progress_callback(
                    self.crawl_progress(len(frontier.visited)),
                    len(frontier.visited),
                    url
                )

            # Politeness delay, never past the deadline
            if frontier and self.config.request_delay > 0:
                pause = min(self.config.request_delay, deadline - self._clock())
                if pause > 0:
                    self._sleep(pause)

        progress.finish()
        result.stats = progress.get_stats()
        result.stats['visited'] = len(frontier.visited)
        result.stats['frontier_remaining'] = len(frontier)
        result.stats['stop_reason'] = stop_reason

        logger.info(f"[CRAWL] Complete. Found {len(result.pages)} pages. Stats: {result.stats}")
        return result
