"""
Word Document Serializer
========================
Writes one ``StructuredDocument`` per page as a DOCX file.

Layout of every file:
- page title as Heading 1
- source URL as a hyperlink paragraph, followed by a spacing paragraph
- the body blocks in order (headings, paragraphs with inline links and
  emphasis, bulleted list items, italic image references, page breaks)

Files land at ``<output_root>/<host_with_underscores>/<path>/<slug>.docx``.
Two pages of one job that map to the same file get ``-2``, ``-3``, ...
suffixes instead of overwriting each other.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Set

from .document import Block, BlockType, StructuredDocument
from .utils import folder_path_from_url, url_to_slug, xml_safe

logger = logging.getLogger(__name__)

BULLET = "• "
LIST_INDENT_INCHES = 0.25
LINK_COLOR = "0563C1"


class DocumentSerializer:
    """
    Serializes page documents below one job's output root.

    Safe to share between generation threads: target paths are reserved
    under a lock.
    """

    def __init__(self, output_root):
        self.output_root = Path(output_root)
        self._reserved: Set[Path] = set()
        self._lock = threading.Lock()

    def reserve_path(self, page_url: str) -> Path:
        """Claim the document path for *page_url* (suffixed on collision)."""
        folder = self.output_root.joinpath(*folder_path_from_url(page_url).split('/'))
        slug = url_to_slug(page_url)
        with self._lock:
            path = folder / f"{slug}.docx"
            n = 2
            while path in self._reserved or path.exists():
                path = folder / f"{slug}-{n}.docx"
                n += 1
            self._reserved.add(path)
        return path

    def serialize(
        self,
        doc: StructuredDocument,
        page_title: str,
        page_url: str,
        path: Optional[Path] = None,
    ) -> Path:
        """
        Write *doc* to disk.

        Args:
            doc: Structured document for the page
            page_title: Title rendered as Heading 1 (the URL when empty)
            page_url: Source URL, rendered as a hyperlink
            path: Path from ``reserve_path``; reserved here when omitted

        Returns:
            Path of the written file
        """
        from docx import Document

        path = path or self.reserve_path(page_url)
        path.parent.mkdir(parents=True, exist_ok=True)

        document = Document()
        _set_margins(document)

        document.add_heading(xml_safe(page_title or page_url), level=1)
        url_para = document.add_paragraph()
        _add_hyperlink(url_para, page_url, page_url)
        document.add_paragraph()

        page_break_pending = False
        for block in doc:
            if block.type == BlockType.PAGE_BREAK:
                page_break_pending = True
                continue
            paragraph = _render_block(document, block)
            if page_break_pending:
                paragraph.paragraph_format.page_break_before = True
                page_break_pending = False

        document.save(str(path))
        logger.info(f"[DOCX] {page_url[:70]} → {path.relative_to(self.output_root)}")
        return path


# ---------------------------------------------------------------------------
# Block rendering
# ---------------------------------------------------------------------------

def _set_margins(document) -> None:
    from docx.shared import Inches

    for section in document.sections:
        section.top_margin = Inches(1)
        section.bottom_margin = Inches(1)
        section.left_margin = Inches(1)
        section.right_margin = Inches(1)


def _render_block(document, block: Block):
    """Append *block* and return the paragraph created for it."""
    from docx.shared import Inches

    if block.type == BlockType.HEADING:
        paragraph = document.add_heading(level=max(1, min(block.level, 6)))
        run = paragraph.add_run(xml_safe(block.text))
        if block.emphasized:
            run.bold = True
        return paragraph

    if block.type == BlockType.IMAGE:
        paragraph = document.add_paragraph()
        run = paragraph.add_run(xml_safe(block.text))
        run.italic = True
        return paragraph

    if block.type == BlockType.SPACING:
        return document.add_paragraph()

    paragraph = document.add_paragraph()
    if block.type == BlockType.LIST_ITEM:
        paragraph.paragraph_format.left_indent = Inches(LIST_INDENT_INCHES * (block.level + 1))
        paragraph.add_run(BULLET)

    for inline in block.runs:
        if inline.is_link:
            _add_hyperlink(paragraph, inline.href, inline.text, inline.bold, inline.italic)
        else:
            run = paragraph.add_run(xml_safe(inline.text))
            run.bold = inline.bold or None
            run.italic = inline.italic or None
    return paragraph


def _add_hyperlink(paragraph, url: str, text: str, bold: bool = False, italic: bool = False) -> None:
    """Append an external hyperlink run (python-docx has no public API for it)."""
    from docx.opc.constants import RELATIONSHIP_TYPE as RT
    from docx.oxml import OxmlElement
    from docx.oxml.ns import qn

    r_id = paragraph.part.relate_to(url, RT.HYPERLINK, is_external=True)

    hyperlink = OxmlElement("w:hyperlink")
    hyperlink.set(qn("r:id"), r_id)

    run = OxmlElement("w:r")
    rpr = OxmlElement("w:rPr")
    if bold:
        rpr.append(OxmlElement("w:b"))
    if italic:
        rpr.append(OxmlElement("w:i"))
    color = OxmlElement("w:color")
    color.set(qn("w:val"), LINK_COLOR)
    rpr.append(color)
    underline = OxmlElement("w:u")
    underline.set(qn("w:val"), "single")
    rpr.append(underline)
    run.append(rpr)

    text_el = OxmlElement("w:t")
    text_el.set(qn("xml:space"), "preserve")
    text_el.text = xml_safe(text)
    run.append(text_el)

    hyperlink.append(run)
    paragraph._p.append(hyperlink)
