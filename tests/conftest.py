"""
Shared fixtures: an in-memory fetcher and a controllable clock, so no test
touches the network or waits on real time.
"""

import pytest

from scrapegoat.errors import FetchError
from scrapegoat.fetcher import FetchResult
from scrapegoat.models import Job
from scrapegoat.run_config import JobRunConfig
from scrapegoat.store import MemoryJobStore


class FakeClock:
    """Monotonic clock advanced only by ``sleep`` and ``advance``."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeFetcher:
    """
    Serves canned responses.

    ``pages`` maps URL -> html, ``(html, status)`` or an exception instance.
    Unknown URLs raise a 404 ``FetchError``.
    """

    def __init__(self, pages=None, binaries=None, clock: FakeClock = None, cost: float = 0.0):
        self.pages = pages or {}
        self.binaries = binaries or {}
        self.clock = clock
        self.cost = cost
        self.calls = []

    def fetch(self, url, *, render=False, timeout=None, accept_error_status=False):
        self.calls.append(url)
        if self.clock is not None:
            self.clock.advance(self.cost)

        entry = self.pages.get(url)
        if entry is None:
            raise FetchError(url, "HTTP 404", 404)
        if isinstance(entry, Exception):
            raise entry
        html, status = entry if isinstance(entry, tuple) else (entry, 200)

        if not 200 <= status < 300 and not accept_error_status:
            raise FetchError(url, f"HTTP {status}", status)
        return FetchResult(url=url, html=html, status_code=status, content_type="text/html", rendered=render)

    def fetch_binary(self, url, timeout=None):
        if url not in self.binaries:
            raise FetchError(url, "HTTP 404", 404)
        return self.binaries[url]

    def close(self):
        pass


def page(title: str, body: str = "", links=()) -> str:
    """Minimal HTML page with a title, body markup and anchors."""
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body>{body}<div class='links'>{anchors}</div></body></html>"
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryJobStore()


@pytest.fixture
def job(store):
    return store.create_job(Job(id="job-1", url="https://example.com/"))


@pytest.fixture
def run_config(tmp_path):
    return JobRunConfig(
        request_delay=0.0,
        storage_dir=str(tmp_path / "jobs"),
        public_base_url="http://localhost:3000",
    )
