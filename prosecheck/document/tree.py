"""
Document Tree
=============
The structured document handed to the extractor: node kinds, nodes with
per-node source provenance, and source files with line/column conversion.
"""

import bisect
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from ..base import SourceLocation

__version__ = "1.0.0"


class NodeKind(Enum):
    """Kinds of document nodes the style rules are keyed by."""
    DOCUMENT = "document"
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    TEXT = "text"
    SPACE = "space"
    LINEBREAK = "linebreak"
    PARBREAK = "parbreak"
    STRONG = "strong"
    EMPH = "emph"
    BLOCK = "block"
    LIST_ITEM = "list_item"
    MATH_INLINE = "math_inline"
    MATH_BLOCK = "math_block"
    CITATION = "citation"
    BIBLIOGRAPHY = "bibliography"
    RAW_INLINE = "raw_inline"
    RAW_BLOCK = "raw_block"
    PAGEBREAK = "pagebreak"
    INCLUDE = "include"
    LANG = "lang"


# Kinds that end a paragraph-like block in the flattened text
BLOCK_KINDS = frozenset({
    NodeKind.HEADING,
    NodeKind.PARAGRAPH,
    NodeKind.LIST_ITEM,
    NodeKind.MATH_BLOCK,
    NodeKind.RAW_BLOCK,
    NodeKind.PARBREAK,
    NodeKind.PAGEBREAK,
    NodeKind.BIBLIOGRAPHY,
})

# Kinds without children whose rendering is their own text
LEAF_KINDS = frozenset({
    NodeKind.TEXT,
    NodeKind.SPACE,
    NodeKind.LINEBREAK,
    NodeKind.MATH_INLINE,
    NodeKind.MATH_BLOCK,
    NodeKind.CITATION,
    NodeKind.RAW_INLINE,
    NodeKind.RAW_BLOCK,
})


@dataclass
class DocumentNode:
    """
    One node of a resolved document tree.

    ``text`` is the rendered text of leaf nodes; ``verbatim`` is True when it
    is an exact copy of the node's source slice. ``lang``/``region`` are set
    on nodes created under a language rule and are inherited otherwise.
    ``level`` is the heading level.
    """
    kind: NodeKind
    location: SourceLocation
    text: str = ""
    children: List['DocumentNode'] = field(default_factory=list)
    lang: Optional[str] = None
    region: Optional[str] = None
    level: int = 0
    verbatim: bool = False

    def walk(self) -> Iterator['DocumentNode']:
        """Yield this node and all descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()


class SourceFile:
    """
    Text of one source file plus a line index.

    Columns are counted in characters, matching how the source is indexed.
    """

    def __init__(self, file_id: str, text: str):
        self.file_id = file_id
        self._text = text
        self._line_starts = self._index_lines(text)

    @staticmethod
    def _index_lines(text: str) -> List[int]:
        starts = [0]
        for i, ch in enumerate(text):
            if ch == '\n':
                starts.append(i + 1)
        return starts

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def position(self, offset: int) -> Tuple[int, int]:
        """Convert a character offset to a zero-based (line, column) pair."""
        offset = max(0, min(offset, len(self._text)))
        line = bisect.bisect_right(self._line_starts, offset) - 1
        return line, offset - self._line_starts[line]

    def offset(self, line: int, column: int) -> int:
        """Convert a zero-based (line, column) pair to a character offset."""
        if line >= len(self._line_starts):
            return len(self._text)
        start = self._line_starts[line]
        if line + 1 < len(self._line_starts):
            line_end = self._line_starts[line + 1] - 1
        else:
            line_end = len(self._text)
        return min(start + column, line_end)

    def utf16_offset(self, line: int, units: int) -> int:
        """Like ``offset`` but with the column in UTF-16 code units (LSP)."""
        offset = self.offset(line, 0)
        end = self.offset(line, len(self._text))
        while offset < end and units > 0:
            units -= 2 if ord(self._text[offset]) > 0xFFFF else 1
            offset += 1
        return offset

    def utf16_column(self, offset: int) -> Tuple[int, int]:
        """Zero-based line and UTF-16 column of a character offset."""
        line, column = self.position(offset)
        start = self._line_starts[line]
        prefix = self._text[start:start + column]
        return line, len(prefix.encode('utf-16-le')) // 2

    def edit(self, start: int, end: int, replacement: str):
        """Replace ``text[start:end]`` with ``replacement``."""
        if not 0 <= start <= end <= len(self._text):
            raise ValueError(f"Edit range {start}..{end} outside file {self.file_id}")
        self._text = self._text[:start] + replacement + self._text[end:]
        self._line_starts = self._index_lines(self._text)

    def replace(self, text: str):
        """Replace the whole content."""
        self._text = text
        self._line_starts = self._index_lines(text)

    def copy(self) -> 'SourceFile':
        return SourceFile(self.file_id, self._text)
