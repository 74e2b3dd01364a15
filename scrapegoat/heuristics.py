"""
Layout Heuristics
=================
Pure classification functions used by the document synthesizer.

Both heuristics are pattern-matched guesses tuned on card/column style
marketing pages, so every pattern and threshold lives in a policy object
that callers (and tests) can replace.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Pattern


def _compile(pattern: str) -> Pattern:
    return re.compile(pattern)


@dataclass(frozen=True)
class EmphasisPolicy:
    """
    When a heading is rendered emphasized (bold).

    A heading is emphasized if it ends with a comma ("Measuring Care,"),
    starts with a capitalised gerund followed by a capitalised noun
    ("Enhancing Audits"), or is a short title-case phrase.
    """
    trailing_comma: bool = True
    gerund_pattern: Pattern = field(default_factory=lambda: _compile(r"^[A-Z][a-z]+ing\s+[A-Z][a-z]+"))
    title_case_min_words: int = 2
    title_case_max_words: int = 4
    title_word_pattern: Pattern = field(default_factory=lambda: _compile(r"^[A-Z]"))


@dataclass(frozen=True)
class ColumnPolicy:
    """How container class/id attributes are read as layout hints."""
    column_pattern: Pattern = field(default_factory=lambda: _compile(r"col|column|left|right|sidebar"))
    full_width_pattern: Pattern = field(default_factory=lambda: _compile(r"full|wide|container|wrapper|main-content"))
    substantial_text_chars: int = 500


DEFAULT_EMPHASIS_POLICY = EmphasisPolicy()
DEFAULT_COLUMN_POLICY = ColumnPolicy()


def is_emphasized_heading(text: str, policy: EmphasisPolicy = DEFAULT_EMPHASIS_POLICY) -> bool:
    """Classify heading text as an emphasized card-style phrase."""
    if not text:
        return False
    trimmed = text.strip()
    if not trimmed:
        return False

    if policy.trailing_comma and trimmed.endswith(','):
        return True

    if policy.gerund_pattern.search(trimmed):
        return True

    words = trimmed.split()
    if policy.title_case_min_words <= len(words) <= policy.title_case_max_words:
        if all(policy.title_word_pattern.search(word) for word in words):
            return True

    return False


def _hint(class_attr, id_attr) -> str:
    if isinstance(class_attr, (list, tuple)):
        class_attr = " ".join(class_attr)
    return f"{class_attr or ''} {id_attr or ''}".lower()


def is_column_container(class_attr, id_attr, policy: ColumnPolicy = DEFAULT_COLUMN_POLICY) -> bool:
    """Class/id hints at one column of a multi-column layout."""
    return bool(policy.column_pattern.search(_hint(class_attr, id_attr)))


def is_full_width_container(class_attr, id_attr, policy: ColumnPolicy = DEFAULT_COLUMN_POLICY) -> bool:
    """Class/id hints at a full-width wrapper section."""
    return bool(policy.full_width_pattern.search(_hint(class_attr, id_attr)))


def has_substantial_text(text: str, policy: ColumnPolicy = DEFAULT_COLUMN_POLICY) -> bool:
    return len((text or "").strip()) > policy.substantial_text_chars
