"""
Fetcher
Retrieves page markup statically (requests) or as a fully rendered DOM
(Playwright), plus binary assets such as images.
"""

import logging
import platform
import threading
from dataclasses import dataclass

import requests
from playwright.sync_api import sync_playwright, Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from .errors import FetchError
from .run_config import _DEFAULTS

logger = logging.getLogger(__name__)


def _detect_platform() -> str:
    """Return the sec-ch-ua-platform value for the current OS."""
    system = platform.system()
    if system == "Darwin":
        return "macOS"
    elif system == "Windows":
        return "Windows"
    else:
        return "Linux"


@dataclass
class FetchConfig:
    """
    Configuration for the fetcher.
    """
    timeout: float = _DEFAULTS["fetch_timeout"]
    render_timeout: float = _DEFAULTS["render_timeout"]
    settle_delay: float = _DEFAULTS["settle_delay"]
    user_agent: str = _DEFAULTS["user_agent"]


@dataclass
class FetchResult:
    """Markup retrieved for one URL."""
    url: str
    html: str
    status_code: int = 200
    content_type: str = ""
    rendered: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Fetcher:
    """
    Fetches pages with a standard browser identity and hard timeouts.

    One ``requests.Session`` is kept per thread so a single fetcher can be
    shared by the document-generation worker pool.
    """

    def __init__(self, config: FetchConfig = None):
        self.config = config or FetchConfig()
        self._local = threading.local()
        self._sessions = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._create_session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _create_session(self) -> requests.Session:
        """Create configured requests session with realistic browser headers."""
        session = requests.Session()
        session.headers.update({
            'User-Agent': self.config.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
            'Accept-Encoding': 'gzip, deflate',
            'Connection': 'keep-alive',
            'Upgrade-Insecure-Requests': '1',
            'sec-ch-ua-mobile': '?0',
            'sec-ch-ua-platform': f'"{_detect_platform()}"',
        })
        return session

    # ------------------------------------------------------------------
    # Low-level fetches: (html, status_code, content_type, error)
    # ------------------------------------------------------------------

    def _fetch_page_static(self, url: str, timeout: float) -> tuple:
        """
        Fetch page using requests (static rendering).

        Returns:
            Tuple of (html, status_code, content_type, error)
        """
        try:
            response = self.session.get(url, timeout=timeout, allow_redirects=True)
        except requests.Timeout:
            return None, 0, "", "Request timeout"
        except requests.RequestException as e:
            return None, 0, "", str(e)

        content_type = response.headers.get('Content-Type', '')
        ct_lower = content_type.lower()
        is_html = (
            'text/html' in ct_lower or
            'xhtml' in ct_lower or
            not content_type  # No content-type header, try anyway
        )
        if not is_html:
            return None, response.status_code, content_type, "Not HTML content"

        return response.text, response.status_code, content_type, None

    def _fetch_page_js(self, url: str) -> tuple:
        """
        Fetch page using Playwright (JavaScript rendering).

        A browser is launched per call so renders can run on any thread.

        Returns:
            Tuple of (html, status_code, content_type, error)
        """
        timeout_ms = int(self.config.render_timeout * 1000)
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(
                    headless=True,
                    args=['--disable-gpu', '--no-sandbox', '--disable-dev-shm-usage']
                )
                try:
                    context = browser.new_context(
                        user_agent=self.config.user_agent,
                        viewport={'width': 1920, 'height': 1080},
                        locale='en-US',
                    )
                    page = context.new_page()
                    response = page.goto(url, timeout=timeout_ms, wait_until='load')
                    if response is None:
                        return None, 0, "", "No response from page"

                    # Let client-side frameworks finish rendering
                    page.wait_for_timeout(int(self.config.settle_delay * 1000))

                    html = page.content()
                    content_type = response.headers.get('content-type', 'text/html')
                    return html, response.status, content_type, None
                finally:
                    browser.close()
        except PlaywrightTimeout:
            return None, 0, "", "JS rendering timeout"
        except PlaywrightError as e:
            return None, 0, "", f"JS rendering error: {e}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch(
        self,
        url: str,
        *,
        render: bool = False,
        timeout: float = None,
        accept_error_status: bool = False
    ) -> FetchResult:
        """
        Fetch a page.

        Args:
            url: URL to fetch
            render: Use a headless browser instead of a plain HTTP GET
            timeout: Static fetch timeout override in seconds
            accept_error_status: Return the body of non-2xx responses
                instead of failing (a browser shows error pages too)

        Raises:
            FetchError: on timeout, network failure, non-HTML content or
                (unless accepted) a non-2xx status
        """
        if render:
            html, status, content_type, error = self._fetch_page_js(url)
        else:
            effective = self.config.timeout if timeout is None else timeout
            html, status, content_type, error = self._fetch_page_static(url, effective)

        if error:
            logger.warning(f"[FETCH] {url[:80]} failed: {error}")
            raise FetchError(url, error, status)

        result = FetchResult(
            url=url,
            html=html or "",
            status_code=status,
            content_type=content_type,
            rendered=render,
        )
        if not result.ok and not accept_error_status:
            logger.warning(f"[FETCH] {url[:80]} returned HTTP {status}")
            raise FetchError(url, f"HTTP {status}", status)

        logger.debug(f"[FETCH] {url[:80]} — HTTP {status}, {len(result.html):,} chars")
        return result

    def fetch_binary(self, url: str, timeout: float = None) -> bytes:
        """Download a binary asset (e.g. an image)."""
        effective = self.config.timeout if timeout is None else timeout
        try:
            response = self.session.get(url, timeout=effective)
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e
        if not response.ok:
            raise FetchError(url, f"HTTP {response.status_code}", response.status_code)
        return response.content

    def close(self) -> None:
        with self._sessions_lock:
            for session in self._sessions:
                session.close()
            self._sessions.clear()
        self._local = threading.local()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
