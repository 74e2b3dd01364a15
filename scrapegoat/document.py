"""
Structured Document Model
=========================
Intermediate model between extracted HTML and a serialized document file.

A document is an ordered list of ``Block`` nodes. Text-bearing blocks
(headings, paragraphs, list items) hold ``InlineRun`` sequences; image
references, spacing and page breaks are markers.

The model is produced per page and discarded after serialization.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional


class BlockType(str, Enum):
    """Kind of block node."""
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST_ITEM = "list_item"
    IMAGE = "image"
    SPACING = "spacing"
    PAGE_BREAK = "page_break"


# Blocks that carry page content (as opposed to layout markers)
CONTENT_TYPES = frozenset({BlockType.HEADING, BlockType.PARAGRAPH, BlockType.LIST_ITEM})


@dataclass
class InlineRun:
    """A run of text with uniform formatting; ``href`` makes it a hyperlink."""
    text: str
    bold: bool = False
    italic: bool = False
    href: Optional[str] = None

    @property
    def is_link(self) -> bool:
        return self.href is not None


@dataclass
class Block:
    """One block node of a structured document."""
    type: BlockType
    runs: List[InlineRun] = field(default_factory=list)
    level: int = 0                   # heading level 1-6, list nesting depth
    emphasized: bool = False         # headings flagged by the emphasis policy
    image_alt: str = ""
    image_file: str = ""             # file name under the page's images/ folder

    @property
    def text(self) -> str:
        if self.type == BlockType.IMAGE:
            return f"[Image: {self.image_alt} - saved as images/{self.image_file}]"
        return "".join(run.text for run in self.runs).strip()

    @property
    def is_content(self) -> bool:
        return self.type in CONTENT_TYPES

    @property
    def is_empty(self) -> bool:
        """Layout markers and text blocks without visible text."""
        if self.type == BlockType.IMAGE:
            return False
        return not self.text

    # -- constructors ------------------------------------------------------

    @classmethod
    def heading(cls, text: str, level: int, emphasized: bool = False) -> "Block":
        return cls(BlockType.HEADING, [InlineRun(text)], level=level, emphasized=emphasized)

    @classmethod
    def paragraph(cls, runs: List[InlineRun]) -> "Block":
        return cls(BlockType.PARAGRAPH, list(runs))

    @classmethod
    def text_paragraph(cls, text: str) -> "Block":
        return cls(BlockType.PARAGRAPH, [InlineRun(text)])

    @classmethod
    def list_item(cls, runs: List[InlineRun], level: int = 0) -> "Block":
        return cls(BlockType.LIST_ITEM, list(runs), level=level)

    @classmethod
    def image(cls, alt: str, filename: str) -> "Block":
        return cls(BlockType.IMAGE, image_alt=alt or "Image", image_file=filename)

    @classmethod
    def spacing(cls) -> "Block":
        return cls(BlockType.SPACING)

    @classmethod
    def page_break(cls) -> "Block":
        return cls(BlockType.PAGE_BREAK)


@dataclass
class StructuredDocument:
    """Ordered block sequence for one page."""
    blocks: List[Block] = field(default_factory=list)

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    @property
    def content_blocks(self) -> List[Block]:
        return [b for b in self.blocks if b.is_content and not b.is_empty]

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if not b.is_empty)

    def count(self, block_type: BlockType) -> int:
        return sum(1 for b in self.blocks if b.type == block_type)
