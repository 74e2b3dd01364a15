"""
Page Scraper
Parses markup into a soup and extracts a page's title and outbound links.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup

from .utils import URLNormalizer, clean_text

logger = logging.getLogger(__name__)

_BS_PARSER = "lxml"


def parse_html(html: str) -> BeautifulSoup:
    """
    Parse markup with lxml, retrying with html.parser when lxml produces
    an empty tree from a document that clearly has content.
    """
    soup = BeautifulSoup(html or "", _BS_PARSER)

    # lxml occasionally drops the whole body on malformed SSR markup
    body = soup.find('body')
    if (body is None or not body.get_text(strip=True)) and html and len(html) > 200:
        fallback = BeautifulSoup(html, 'html.parser')
        fallback_body = fallback.find('body') or fallback
        if fallback_body.get_text(strip=True):
            logger.info("[PARSER] lxml produced an empty body — retrying with html.parser")
            return fallback
    return soup


@dataclass
class PageLinks:
    """Title and absolute outbound links of one page."""
    url: str
    title: str = ""
    links: List[str] = field(default_factory=list)


def extract_title(soup: BeautifulSoup) -> str:
    """Return the ``<title>`` text, or an empty string."""
    title_tag = soup.find('title')
    if title_tag:
        return clean_text(title_tag.get_text())
    return ""


def extract_links(
    html: str,
    url: str,
    normalizer: Optional[URLNormalizer] = None
) -> PageLinks:
    """
    Extract the title and the absolute, de-duplicated outbound links of a page.

    Args:
        html: Page markup
        url: Page URL, used to resolve relative hrefs
        normalizer: URL normalizer (default drops fragments and assets)

    Returns:
        PageLinks; the title defaults to the URL itself
    """
    normalizer = normalizer or URLNormalizer()
    soup = parse_html(html)

    page = PageLinks(url=url, title=extract_title(soup) or url)

    seen = set()
    for anchor in soup.find_all('a', href=True):
        link = normalizer.normalize(anchor['href'], url)
        if link and link not in seen:
            seen.add(link)
            page.links.append(link)

    logger.debug(f"[SCRAPE] {url[:70]} — title='{page.title[:50]}', links={len(page.links)}")
    return page
