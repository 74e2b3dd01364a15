"""
Exceptions
Error taxonomy shared by the crawl, synthesis and packaging stages.
"""


class ScrapegoatError(Exception):
    """Base class for all scrapegoat errors."""


class FetchError(ScrapegoatError):
    """
    Transient fetch failure: timeout, DNS failure, non-2xx status or
    non-HTML content. The URL is logged and skipped.
    """

    def __init__(self, url: str, message: str, status_code: int = 0):
        super().__init__(f"Failed to fetch {url}: {message}")
        self.url = url
        self.message = message
        self.status_code = status_code


class JobStateError(ScrapegoatError):
    """Illegal job status transition, or mutation of a terminal job."""


class NoPagesError(ScrapegoatError):
    """A job produced no pages (or no documents) at all."""


class ArchiveError(ScrapegoatError):
    """The output tree could not be walked or the archive not written."""
