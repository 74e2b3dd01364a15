"""
Image collection for page documents.

Images inside the content root are downloaded into the page's ``images/``
folder; the returned map (``src`` attribute -> saved file name) is what the
synthesizer uses to emit image references.
"""

import logging
import posixpath
from pathlib import Path
from typing import Dict
from urllib.parse import urljoin, urlparse

from bs4 import Tag

from .errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_EXT = '.jpg'
IMAGES_DIRNAME = 'images'


def image_filename(index: int, image_url: str) -> str:
    """``image_<index><ext>`` with the extension taken from the URL path."""
    ext = posixpath.splitext(urlparse(image_url).path)[1]
    if not ext or len(ext) > 6:
        ext = DEFAULT_IMAGE_EXT
    return f"image_{index}{ext.lower()}"


def _write_new(folder: Path, filename: str, data: bytes) -> Path:
    """Write *data* under the first free ``-n`` variant of *filename* (exclusive create)."""
    stem, ext = posixpath.splitext(filename)
    path = folder / filename
    n = 2
    while True:
        try:
            with path.open('xb') as fh:
                fh.write(data)
            return path
        except FileExistsError:
            path = folder / f"{stem}-{n}{ext}"
            n += 1


def collect_images(fetcher, content_root: Tag, base_url: str, images_dir: Path) -> Dict[str, str]:
    """
    Download every ``<img src>`` under *content_root*.

    A failed download is logged and left out of the map, so the document
    simply carries no reference for it.

    Returns:
        Mapping of the raw ``src`` attribute to the saved file name
    """
    image_map: Dict[str, str] = {}
    images = content_root.find_all('img', src=True)
    if not images:
        return image_map

    images_dir = Path(images_dir)
    images_dir.mkdir(parents=True, exist_ok=True)

    for index, img in enumerate(images):
        src = img.get('src', '')
        if not src.strip() or src in image_map or src.strip().startswith('data:'):
            continue

        image_url = urljoin(base_url, src.strip())
        if urlparse(image_url).scheme not in ('http', 'https'):
            continue

        try:
            data = fetcher.fetch_binary(image_url)
        except FetchError as e:
            logger.warning(f"[IMAGES] Failed to download {image_url[:80]}: {e.message}")
            continue

        path = _write_new(images_dir, image_filename(index, image_url), data)
        image_map[src] = path.name

    logger.info(f"[IMAGES] {base_url[:70]} — saved {len(image_map)}/{len(images)} images")
    return image_map
