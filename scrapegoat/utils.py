"""
Utility Functions
URL normalization, slug / output-path derivation, crawl stats and helpers.
"""

import logging
import re
import time
from threading import Lock
from typing import Optional
from urllib.parse import urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)


class URLNormalizer:
    """
    Turns raw hrefs into absolute, comparable URLs.
    Drops fragments, non-HTTP(S) schemes and links to non-HTML assets.
    """

    # File extensions to skip (non-HTML resources)
    SKIP_EXTENSIONS = {
        '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp', '.ico',
        '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
        '.zip', '.rar', '.tar', '.gz', '.7z',
        '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv', '.webm',
        '.css', '.js', '.json', '.xml', '.rss', '.atom',
        '.woff', '.woff2', '.ttf', '.eot', '.otf'
    }

    def __init__(self, remove_fragments: bool = True, skip_assets: bool = True):
        """
        Initialize the URL normalizer.

        Args:
            remove_fragments: Remove URL fragments (#section)
            skip_assets: Reject URLs whose path ends in a non-HTML extension
        """
        self.remove_fragments = remove_fragments
        self.skip_assets = skip_assets

    def normalize(self, url: str, base_url: str = None) -> Optional[str]:
        """
        Normalize a URL for consistent comparison.

        Args:
            url: The URL to normalize
            base_url: Optional base URL for resolving relative URLs

        Returns:
            Normalized URL string or None if invalid
        """
        if not url:
            return None

        url = url.strip()

        # Skip javascript:, mailto:, tel:, data: URLs and bare fragments
        if url.lower().startswith(('javascript:', 'mailto:', 'tel:', 'data:', '#')):
            return None

        if base_url:
            url = urljoin(base_url, url)

        try:
            parsed = urlparse(url)
        except ValueError:
            return None

        if parsed.scheme.lower() not in ('http', 'https'):
            return None
        if not parsed.netloc:
            return None

        path = parsed.path or '/'

        if self.skip_assets:
            lower_path = path.lower()
            for ext in self.SKIP_EXTENSIONS:
                if lower_path.endswith(ext):
                    return None

        fragment = '' if self.remove_fragments else parsed.fragment

        return urlunparse((
            parsed.scheme.lower(),
            parsed.netloc.lower(),
            path,
            parsed.params,
            parsed.query,
            fragment
        ))


class ProgressTracker:
    """
    Tracks crawling progress for reporting.
    """

    def __init__(self, clock=time.monotonic):
        self.pages_crawled = 0
        self.pages_failed = 0
        self.pages_skipped = 0
        self.start_time = None
        self.end_time = None
        self._clock = clock
        self._lock = Lock()

    def start(self) -> None:
        """Mark crawl start."""
        self.start_time = self._clock()

    def finish(self) -> None:
        """Mark crawl end."""
        self.end_time = self._clock()

    def increment_crawled(self) -> int:
        with self._lock:
            self.pages_crawled += 1
            return self.pages_crawled

    def increment_failed(self) -> int:
        with self._lock:
            self.pages_failed += 1
            return self.pages_failed

    def increment_skipped(self) -> int:
        with self._lock:
            self.pages_skipped += 1
            return self.pages_skipped

    @property
    def elapsed_time(self) -> float:
        """Elapsed time in seconds."""
        if self.start_time is None:
            return 0
        end = self.end_time if self.end_time is not None else self._clock()
        return end - self.start_time

    @property
    def pages_per_second(self) -> float:
        elapsed = self.elapsed_time
        if elapsed == 0:
            return 0
        return self.pages_crawled / elapsed

    def get_stats(self) -> dict:
        """Get current statistics."""
        return {
            'pages_crawled': self.pages_crawled,
            'pages_failed': self.pages_failed,
            'pages_skipped': self.pages_skipped,
            'elapsed_time': round(self.elapsed_time, 2),
            'pages_per_second': round(self.pages_per_second, 2)
        }


def extract_host(url: str) -> str:
    """Extract the lower-cased hostname (no port) from a URL."""
    try:
        return (urlparse(url).hostname or '').lower()
    except ValueError:
        return ''


def is_valid_url(url: str) -> bool:
    """Check if URL is an absolute HTTP(S) URL."""
    try:
        parsed = urlparse(url)
        return all([parsed.scheme in ('http', 'https'), parsed.netloc])
    except (ValueError, AttributeError):
        return False


def clean_text(text: str) -> str:
    """Collapse whitespace runs and trim."""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


_XML_ILLEGAL_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f]')


def xml_safe(text: str) -> str:
    """Drop control characters that XML 1.0 (and so DOCX) cannot store."""
    if not text:
        return ""
    return _XML_ILLEGAL_RE.sub('', text)


# ---------------------------------------------------------------------------
# Output paths
# ---------------------------------------------------------------------------

SLUG_MAX_LENGTH = 100
SLUG_FALLBACK = 'index'

_NON_SLUG_RE = re.compile(r'[^a-z0-9]+')
_PAGE_EXT_RE = re.compile(r'\.(html|htm|php|asp|aspx|jsp|jspx)$', re.IGNORECASE)
_INDEX_SEGMENTS = {'index.html', 'index.htm'}


def slugify(text: str) -> str:
    """
    Lowercase, collapse non-alphanumeric runs to single hyphens, trim
    hyphens and cap at ``SLUG_MAX_LENGTH``. Idempotent.
    """
    slug = _NON_SLUG_RE.sub('-', (text or '').lower()).strip('-')
    if len(slug) > SLUG_MAX_LENGTH:
        slug = slug[:SLUG_MAX_LENGTH].rstrip('-')
    return slug or SLUG_FALLBACK


def url_to_slug(url: str) -> str:
    """
    File-name slug for a page URL.

    The final path component (page extension removed) is slugified; the
    root path uses the hostname instead.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return 'page'

    segments = [s for s in (parsed.path or '/').split('/') if s]
    if not segments:
        return slugify((parsed.hostname or '').replace('.', '-'))

    return slugify(_PAGE_EXT_RE.sub('', segments[-1]))


def folder_path_from_url(url: str) -> str:
    """
    Relative folder for a page's document: the host with dots turned into
    underscores, then the URL's path segments (``index.html`` dropped).
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return 'unknown'
    host = (parsed.hostname or '').replace('.', '_')
    if not host:
        return 'unknown'

    parts = [
        _safe_segment(s) for s in (parsed.path or '/').split('/')
        if s and s.lower() not in _INDEX_SEGMENTS
    ]
    return '/'.join([host] + [p for p in parts if p])


def _safe_segment(segment: str) -> str:
    """Make a single path segment safe to use as a folder name."""
    segment = re.sub(r'[<>:"\\|?*\x00-\x1f]', '_', segment)
    if segment in ('.', '..'):
        return ''
    return segment[:SLUG_MAX_LENGTH]
