"""
Document Synthesizer
====================
Walks an extracted content tree and produces a ``StructuredDocument``.

The walk is depth-first and preserves document order. Each subtree is
turned into a list of blocks by a function without side effects; callers
concatenate the lists and post-process them:

1. **Walk**: headings, paragraphs, list items, image references, with
   loose inline content grouped into paragraphs
2. **Top-level layout**: spacing between outermost containers, page
   breaks before large column containers
3. **Fallback**: re-scan or text-split when the walk found too little
4. **Layout optimisation**: cap spacing runs, break long runs of content
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import NavigableString, Tag
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from .document import Block, BlockType, InlineRun, StructuredDocument
from .heuristics import (
    ColumnPolicy,
    EmphasisPolicy,
    has_substantial_text,
    is_column_container,
    is_emphasized_heading,
    is_full_width_container,
)
from .utils import clean_text

logger = logging.getLogger(__name__)

HEADING_TAGS = {'h1', 'h2', 'h3', 'h4', 'h5', 'h6'}
LIST_TAGS = {'ul', 'ol'}
CONTAINER_TAGS = {
    'div', 'section', 'article', 'main', 'ul', 'ol', 'table', 'thead', 'tbody',
    'tfoot', 'tr', 'td', 'th', 'blockquote', 'figure', 'figcaption', 'dl', 'dt',
    'dd', 'details', 'summary', 'fieldset', 'center', 'address', 'hgroup', 'body',
}
INLINE_TAGS = {
    'a', 'abbr', 'b', 'bdi', 'bdo', 'br', 'button', 'cite', 'code', 'data', 'del',
    'dfn', 'em', 'font', 'i', 'ins', 'kbd', 'label', 'mark', 'q', 's', 'samp',
    'small', 'span', 'strike', 'strong', 'sub', 'sup', 'time', 'tt', 'u', 'var',
    'wbr',
}
BOLD_TAGS = {'strong', 'b'}
ITALIC_TAGS = {'em', 'i'}
# Elements whose text is never rendered
SKIP_TAGS = {
    'script', 'style', 'noscript', 'template', 'head', 'meta', 'link', 'title',
}
# Outermost containers that get a spacing block before them
SPACED_TOP_LEVEL_TAGS = {'div', 'section'}
# Tags picked up by the fallback re-scan
RESCAN_TAGS = ['p', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'li', 'td', 'th', 'blockquote']

_IGNORED_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)
_WS_RE = re.compile(r'\s+')
_BLANK_LINE_RE = re.compile(r'\n\s*\n')
_LINK_SCHEMES = ('http', 'https', 'mailto')


@dataclass(frozen=True)
class LayoutPolicy:
    """Post-pass spacing and page-break rules."""
    max_consecutive_spacing: int = 2
    page_break_every: int = 28       # non-empty blocks per forced page break
    lookahead: int = 5               # blocks inspected after the break point
    substantial_chars: int = 50


@dataclass(frozen=True)
class SynthesisPolicy:
    """All thresholds the synthesizer applies."""
    min_content_blocks: int = 5
    fallback_min_text: int = 100
    min_fragment_chars: int = 10
    page_break_min_preceding: int = 10
    emphasis: EmphasisPolicy = field(default_factory=EmphasisPolicy)
    columns: ColumnPolicy = field(default_factory=ColumnPolicy)
    layout: LayoutPolicy = field(default_factory=LayoutPolicy)


DEFAULT_POLICY = SynthesisPolicy()


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def _is_text(node) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, _IGNORED_STRINGS)


def _ancestors_within(string: NavigableString, root: Tag):
    for parent in string.parents:
        if parent is root:
            return
        yield parent


def _visible_nodes(node: Tag):
    for string in node.find_all(string=True):
        if not _is_text(string):
            continue
        if any(parent.name in SKIP_TAGS for parent in _ancestors_within(string, node)):
            continue
        yield string


def _visible_strings(node: Tag):
    """Text of *node* that is not inside skipped elements."""
    for string in _visible_nodes(node):
        yield str(string)


def _text_with_block_breaks(root: Tag) -> str:
    """Visible text with a blank line wherever the enclosing block element changes."""
    parts = []
    last_block = None
    for string in _visible_nodes(root):
        block = next(
            (p for p in _ancestors_within(string, root) if p.name not in INLINE_TAGS),
            root,
        )
        if last_block is not None and block is not last_block:
            parts.append("\n\n")
        parts.append(str(string))
        last_block = block
    return "".join(parts)


def visible_text(node: Tag, separator: str = ' ') -> str:
    """Whitespace-collapsed visible text of *node*."""
    if isinstance(node, NavigableString):
        return clean_text(str(node)) if _is_text(node) else ""
    return clean_text(separator.join(_visible_strings(node)))


def root_text(root: Tag) -> str:
    """
    Text the fallback thresholds are measured against.

    Matches what the extractor sees (``get_text``) when every string of the
    root sits inside skipped elements.
    """
    return visible_text(root) or clean_text(root.get_text(' '))


def _tidy_runs(runs: List[InlineRun]) -> List[InlineRun]:
    """Merge same-format neighbours, drop empty runs, trim the ends."""
    merged: List[InlineRun] = []
    for run in runs:
        if not run.text:
            continue
        prev = merged[-1] if merged else None
        if prev and (prev.bold, prev.italic, prev.href) == (run.bold, run.italic, run.href):
            if run.text == ' ' and prev.text.endswith((' ', '\n')):
                continue
            prev.text += run.text
        else:
            if run.text == ' ' and (prev is None or prev.text.endswith((' ', '\n'))):
                continue
            merged.append(InlineRun(run.text, run.bold, run.italic, run.href))

    while merged and not merged[0].text.strip():
        merged.pop(0)
    while merged and not merged[-1].text.strip():
        merged.pop()
    if merged:
        merged[0].text = merged[0].text.lstrip()
        merged[-1].text = merged[-1].text.rstrip()
    return merged


def _has_text(runs: List[InlineRun]) -> bool:
    return any(run.text.strip() for run in runs)


def resolve_link(href: str, base_url: str) -> Optional[str]:
    """Absolute hyperlink target, or None for script/anchor-only hrefs."""
    href = (href or '').strip()
    if not href or href.startswith('#') or href.lower().startswith('javascript:'):
        return None
    try:
        absolute = urljoin(base_url, href) if base_url else href
        scheme = urlparse(absolute).scheme.lower()
    except ValueError:
        return None
    return absolute if scheme in _LINK_SCHEMES else None


# ---------------------------------------------------------------------------
# Synthesizer
# ---------------------------------------------------------------------------

class DocumentSynthesizer:
    """
    Converts a content root into a structured document.

    Args:
        base_url: Page URL, used to make hyperlinks absolute
        include_images: Emit references for images present in ``image_map``
        image_map: Image ``src`` attribute -> file saved under ``images/``
        policy: Thresholds and heuristic policies
    """

    def __init__(
        self,
        base_url: str = "",
        include_images: bool = False,
        image_map: Optional[Dict[str, str]] = None,
        policy: SynthesisPolicy = DEFAULT_POLICY,
    ):
        self.base_url = base_url
        self.include_images = include_images
        self.image_map = image_map or {}
        self.policy = policy

    def synthesize(self, root: Tag) -> StructuredDocument:
        """Produce the structured document for *root*."""
        blocks = self.walk_children(root, list_level=0, top_level=True)

        if not any(b.is_content for b in blocks):
            text = visible_text(root)
            if text and not any(isinstance(c, Tag) for c in root.children):
                blocks.append(Block.text_paragraph(text))

        blocks = self.apply_fallback(root, blocks)
        blocks = optimize_layout(blocks, self.policy.layout)

        doc = StructuredDocument(blocks)
        logger.info(
            f"[SYNTH] {self.base_url[:70]} — headings={doc.count(BlockType.HEADING)}, "
            f"paragraphs={doc.count(BlockType.PARAGRAPH)}, "
            f"list_items={doc.count(BlockType.LIST_ITEM)}, images={doc.count(BlockType.IMAGE)}"
        )
        return doc

    # -- inline content ----------------------------------------------------

    def inline_runs(self, node, bold: bool = False, italic: bool = False) -> List[InlineRun]:
        """Flatten *node* into inline runs (text, bold, italic, hyperlinks)."""
        if _is_text(node):
            text = _WS_RE.sub(' ', str(node))
            return [InlineRun(text, bold, italic)] if text else []
        if not isinstance(node, Tag):
            return []

        name = (node.name or '').lower()
        if name in SKIP_TAGS or name == 'img':
            return []
        if name == 'br':
            return [InlineRun('\n', bold, italic)]

        if name == 'a':
            text = visible_text(node)
            href = resolve_link(node.get('href'), self.base_url)
            if not text:
                return []
            if href:
                return [InlineRun(text, bold, italic, href)]

        bold = bold or name in BOLD_TAGS
        italic = italic or name in ITALIC_TAGS

        runs: List[InlineRun] = []
        block_like = name not in INLINE_TAGS
        if block_like:
            runs.append(InlineRun(' ', bold, italic))
        for child in node.children:
            runs.extend(self.inline_runs(child, bold, italic))
        if block_like:
            runs.append(InlineRun(' ', bold, italic))
        return runs

    def _images_within(self, node: Tag) -> List[Block]:
        if not self.include_images or not isinstance(node, Tag):
            return []
        images = [node] if node.name == 'img' else node.find_all('img')
        blocks = []
        for img in images:
            block = self.image_block(img)
            if block:
                blocks.append(block)
        return blocks

    def image_block(self, img: Tag) -> Optional[Block]:
        """Reference to a downloaded image, or None."""
        if not self.include_images:
            return None
        src = img.get('src')
        filename = self.image_map.get(src) if src else None
        if not filename:
            return None
        return Block.image(clean_text(img.get('alt', '')) or 'Image', filename)

    def _flush_inline(self, nodes: list) -> List[Block]:
        if not nodes:
            return []
        runs: List[InlineRun] = []
        images: List[Block] = []
        for node in nodes:
            runs.extend(self.inline_runs(node))
            images.extend(self._images_within(node))
        runs = _tidy_runs(runs)
        blocks = [Block.paragraph(runs)] if _has_text(runs) else []
        return blocks + images

    # -- block content -----------------------------------------------------

    def heading_blocks(self, node: Tag) -> List[Block]:
        text = visible_text(node)
        if not text:
            return []
        level = int(node.name[1])
        return [Block.heading(text, level, is_emphasized_heading(text, self.policy.emphasis))]

    def paragraph_blocks(self, node: Tag) -> List[Block]:
        runs = _tidy_runs(self.inline_runs(node))
        blocks = []
        if _has_text(runs):
            blocks.append(Block.paragraph(runs))
        else:
            text = visible_text(node)
            if text:
                blocks.append(Block.text_paragraph(text))
        return blocks + self._images_within(node)

    def list_item_blocks(self, node: Tag, level: int) -> List[Block]:
        """A list item block, followed by its nested lists and images."""
        runs: List[InlineRun] = []
        nested: List[Block] = []
        for child in node.children:
            if isinstance(child, Tag) and child.name in LIST_TAGS:
                nested.extend(self.walk_children(child, list_level=level + 1))
            else:
                runs.extend(self.inline_runs(child))
                nested_images = self._images_within(child)
                nested.extend(nested_images)

        runs = _tidy_runs(runs)
        blocks = [Block.list_item(runs, level)] if _has_text(runs) else []
        return blocks + nested

    def preformatted_blocks(self, node: Tag) -> List[Block]:
        text = "".join(_visible_strings(node)).strip('\n')
        return [Block.text_paragraph(text)] if text.strip() else []

    def container_blocks(self, node: Tag, list_level: int) -> List[Block]:
        """Blocks for a container subtree, with column/full-width spacing."""
        has_child_tags = any(isinstance(c, Tag) for c in node.children)
        text = visible_text(node)
        if not text and not has_child_tags:
            return []

        blocks = self.walk_children(node, list_level=list_level)

        # Leaf container: keep its raw text rather than drop it
        if not blocks and text and not has_child_tags:
            blocks = [Block.text_paragraph(text)]

        class_attr, id_attr = node.get('class'), node.get('id')
        columns = self.policy.columns
        if is_full_width_container(class_attr, id_attr, columns) and len(blocks) > 5:
            blocks.extend([Block.spacing(), Block.spacing()])
        if is_column_container(class_attr, id_attr, columns) and blocks:
            blocks.append(Block.spacing())
        return blocks

    def walk_children(self, node: Tag, list_level: int = 0, top_level: bool = False) -> List[Block]:
        """
        Blocks for the children of *node*, in document order.

        At the top level, outermost ``div``/``section`` containers after the
        first are preceded by a spacing block, and a large column container
        is preceded by a page break.
        """
        blocks: List[Block] = []
        pending_inline: list = []
        seen_top_container = False

        for child in node.children:
            if not isinstance(child, Tag):
                if _is_text(child):
                    pending_inline.append(child)
                continue

            name = (child.name or '').lower()
            if name in INLINE_TAGS:
                pending_inline.append(child)
                continue

            blocks.extend(self._flush_inline(pending_inline))
            pending_inline = []

            if name in SKIP_TAGS:
                continue
            if name in HEADING_TAGS:
                blocks.extend(self.heading_blocks(child))
            elif name == 'p':
                blocks.extend(self.paragraph_blocks(child))
            elif name == 'li':
                blocks.extend(self.list_item_blocks(child, list_level))
            elif name == 'img':
                block = self.image_block(child)
                if block:
                    blocks.append(block)
            elif name == 'hr':
                blocks.append(Block.spacing())
            elif name == 'pre':
                blocks.extend(self.preformatted_blocks(child))
            else:
                # Known containers and unknown (custom) elements recurse
                if top_level:
                    blocks.extend(self._top_level_markers(child, blocks, seen_top_container))
                    if name in SPACED_TOP_LEVEL_TAGS:
                        seen_top_container = True
                blocks.extend(self.container_blocks(child, list_level))

        blocks.extend(self._flush_inline(pending_inline))
        return blocks

    def _top_level_markers(self, node: Tag, preceding: List[Block], seen_container: bool) -> List[Block]:
        if not seen_container:
            return []
        markers = []
        if node.name in SPACED_TOP_LEVEL_TAGS:
            markers.append(Block.spacing())

        columns = self.policy.columns
        if (
            is_column_container(node.get('class'), node.get('id'), columns)
            and has_substantial_text(visible_text(node), columns)
            and len(preceding) > self.policy.page_break_min_preceding
        ):
            markers.append(Block.page_break())
        return markers

    # -- fallback ----------------------------------------------------------

    def apply_fallback(self, root: Tag, blocks: List[Block]) -> List[Block]:
        """
        Guarantee a non-empty document when the root has meaningful text.

        Re-scans for paragraph-like tags first, then splits the full text on
        blank lines. Text already present in *blocks* is not repeated.
        """
        policy = self.policy
        content_count = sum(1 for b in blocks if b.is_content and not b.is_empty)
        text_of_root = root_text(root)
        if content_count >= policy.min_content_blocks or len(text_of_root) <= policy.fallback_min_text:
            return blocks

        logger.info(f"[SYNTH] Low content count ({content_count}) — re-scanning content tags")
        blocks = list(blocks)
        existing = {b.text.lower() for b in blocks if not b.is_empty}

        for element in root.find_all(RESCAN_TAGS):
            if self._has_rescan_ancestor(element, root):
                continue
            text = visible_text(element)
            if not text or text.lower() in existing:
                continue
            existing.add(text.lower())
            if element.name in HEADING_TAGS:
                blocks.append(Block.heading(
                    text, int(element.name[1]), is_emphasized_heading(text, policy.emphasis)
                ))
            elif element.name == 'li':
                blocks.append(Block.list_item([InlineRun(text)]))
            else:
                blocks.append(Block.text_paragraph(text))
            content_count += 1

        if content_count < policy.min_content_blocks:
            logger.info(f"[SYNTH] Still low content ({content_count}) — splitting full text")
            for chunk in _BLANK_LINE_RE.split(_text_with_block_breaks(root)):
                text = clean_text(chunk)
                if len(text) <= policy.min_fragment_chars or text.lower() in existing:
                    continue
                existing.add(text.lower())
                blocks.append(Block.text_paragraph(text))
                content_count += 1

        if not any(b.is_content and not b.is_empty for b in blocks):
            blocks.append(Block.text_paragraph(text_of_root))
        return blocks

    @staticmethod
    def _has_rescan_ancestor(element: Tag, root: Tag) -> bool:
        for parent in element.parents:
            if parent is root:
                return False
            if parent.name in RESCAN_TAGS:
                return True
        return False


# ---------------------------------------------------------------------------
# Layout optimisation
# ---------------------------------------------------------------------------

def _is_substantial(block: Block, policy: LayoutPolicy) -> bool:
    return not block.is_empty and len(block.text) > policy.substantial_chars


def optimize_layout(blocks: List[Block], policy: LayoutPolicy = LayoutPolicy()) -> List[Block]:
    """
    Cap runs of empty blocks and break long runs of content.

    - at most ``max_consecutive_spacing`` empty blocks in a row
    - after every ``page_break_every``-th non-empty block, a page break is
      inserted when a substantial block follows within ``lookahead`` blocks
      and at least ``lookahead`` blocks remain
    - page breaks never repeat, lead or trail the document
    """
    optimized: List[Block] = []
    consecutive_empty = 0
    content_count = 0
    total = len(blocks)

    for i, block in enumerate(blocks):
        if block.type == BlockType.PAGE_BREAK:
            if optimized and optimized[-1].type != BlockType.PAGE_BREAK:
                optimized.append(block)
            consecutive_empty = 0
            continue

        if block.is_empty:
            consecutive_empty += 1
            if consecutive_empty <= policy.max_consecutive_spacing:
                optimized.append(block)
            continue

        consecutive_empty = 0
        content_count += 1
        optimized.append(block)

        if content_count % policy.page_break_every == 0 and i < total - policy.lookahead:
            upcoming = blocks[i + 1:i + 1 + policy.lookahead]
            if any(_is_substantial(b, policy) for b in upcoming):
                optimized.append(Block.page_break())

    while optimized and optimized[-1].type == BlockType.PAGE_BREAK:
        optimized.pop()
    return optimized


def synthesize(
    content_root: Tag,
    include_images: bool = False,
    *,
    base_url: str = "",
    image_map: Optional[Dict[str, str]] = None,
    policy: SynthesisPolicy = DEFAULT_POLICY,
) -> StructuredDocument:
    """Convenience wrapper around ``DocumentSynthesizer.synthesize``."""
    synthesizer = DocumentSynthesizer(
        base_url=base_url,
        include_images=include_images,
        image_map=image_map,
        policy=policy,
    )
    return synthesizer.synthesize(content_root)
