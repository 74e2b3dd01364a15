"""
Content Extractor
Isolates the main-content subtree of a page and strips non-content
elements before document synthesis.
"""

import copy
import logging
from typing import Optional

from bs4 import BeautifulSoup, Comment, Tag
from soupsieve import SelectorSyntaxError

from .scraper import parse_html

logger = logging.getLogger(__name__)

# Tags never carrying document content
STRIP_TAGS = ('script', 'style', 'noscript', 'template', 'nav', 'footer', 'header', 'aside')

# Class names marking layout chrome
STRIP_CLASSES = ('nav', 'footer', 'header', 'sidebar')


def _body_of(soup: BeautifulSoup) -> Tag:
    body = soup.find('body')
    if body is not None:
        return body
    # Fragments parsed without a <body> (rare with lxml)
    wrapper = soup.new_tag('body')
    for child in list(soup.contents):
        wrapper.append(child.extract())
    soup.append(wrapper)
    return wrapper


def _select_root(soup: BeautifulSoup, selector: Optional[str]) -> Optional[Tag]:
    if not selector:
        return None
    try:
        return soup.select_one(selector)
    except SelectorSyntaxError as e:
        logger.warning(f"[EXTRACT] Invalid content selector {selector!r}: {e}")
        return None


def strip_non_content(root: Tag) -> Tag:
    """Remove comments, scripts, navigation and other chrome from *root* in place."""
    for comment in root.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for element in root.find_all(STRIP_TAGS):
        if not element.decomposed:
            element.decompose()

    for class_name in STRIP_CLASSES:
        for element in root.find_all(class_=class_name):
            if not element.decomposed:
                element.decompose()
    return root


def extract_content(html: str, selector: Optional[str] = None) -> Tag:
    """
    Return the content root of a page.

    Args:
        html: Raw page markup
        selector: Optional CSS selector for the main content element

    Returns:
        The matched element (or ``<body>``) with non-content elements removed.
        When filtering leaves no text, the unfiltered body is returned.
    """
    soup = parse_html(html)
    body = _body_of(soup)
    pristine = copy.copy(body)

    root = _select_root(soup, selector)
    if root is None:
        if selector:
            logger.info(f"[EXTRACT] Selector {selector!r} matched nothing — using <body>")
        root = body

    strip_non_content(root)

    if not root.get_text(strip=True):
        logger.info("[EXTRACT] Filtered content is empty — falling back to unfiltered <body>")
        return pristine

    return root
