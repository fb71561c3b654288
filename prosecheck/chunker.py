"""
Chunker
=======
Splits a checkable text into size-bounded chunks for the checking service.

Split points are paragraph or sentence boundaries, whichever is nearest
before the limit, then plain whitespace. Page breaks always split. A chunk
that has to be cut at the limit itself is flagged as a hard split so
matches across the cut can be suppressed later.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

__version__ = "1.0.0"

_SENTENCE_END_RE = re.compile(r'[.!?]["\')\]]*\s')


@dataclass(frozen=True)
class Chunk:
    """
    A slice of a checkable text.

    ``base_offset`` is the offset of ``text[0]`` in the parent text. The first
    ``context_length`` characters are lookback context owned by the previous
    chunk. ``hard_split`` is True when the chunk starts at a forced cut.
    """
    text: str
    base_offset: int
    context_length: int = 0
    hard_split: bool = False

    @property
    def start(self) -> int:
        """First parent offset owned by this chunk."""
        return self.base_offset + self.context_length

    @property
    def end(self) -> int:
        return self.base_offset + len(self.text)

    @property
    def body(self) -> str:
        return self.text[self.context_length:]


class Chunker:
    """
    Args:
        max_size: Maximum chunk length in characters (context included)
        lookback: Characters of preceding context sent with each chunk
        boundary_window: Only look this far back from the limit for a
            boundary (None = anywhere in the chunk)
    """

    def __init__(self, max_size: int = 1000, lookback: int = 0,
                 boundary_window: Optional[int] = None):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if not 0 <= lookback < max_size:
            raise ValueError("lookback must be smaller than max_size")
        self.max_size = max_size
        self.lookback = lookback
        self.boundary_window = boundary_window

    def split(self, text: str, page_breaks: Sequence[int] = ()) -> List[Chunk]:
        """
        Cover ``text`` with chunks, in order, without gaps.

        A chunk, lookback context included, never crosses one of
        ``page_breaks``, so each page is checked and cached on its own.
        """
        bounds = [0] + sorted({b for b in page_breaks if 0 < b < len(text)}) + [len(text)]
        chunks: List[Chunk] = []
        for page_start, page_end in zip(bounds, bounds[1:]):
            chunks.extend(self._split_page(text, page_start, page_end))
        return chunks

    def _split_page(self, text: str, page_start: int, page_end: int) -> List[Chunk]:
        chunks: List[Chunk] = []
        start = page_start
        hard = False
        while start < page_end:
            context_start = max(page_start, start - self.lookback)
            context = start - context_start
            limit = start + (self.max_size - context)

            next_hard = False
            if limit >= page_end:
                end = page_end
            else:
                end = self._boundary(text, start, limit)
                if end is None:
                    end = limit
                    next_hard = True

            chunks.append(Chunk(
                text=text[context_start:end],
                base_offset=context_start,
                context_length=context,
                hard_split=hard,
            ))
            hard = next_hard
            start = end
        return chunks

    def _boundary(self, text: str, start: int, limit: int) -> Optional[int]:
        """End offset of the best split in (start, limit], or None."""
        low = start
        if self.boundary_window is not None:
            low = max(start, limit - self.boundary_window)

        candidates = []
        paragraph = text.rfind('\n\n', low, limit)
        if paragraph >= 0:
            candidates.append(paragraph + 2)

        sentence_end = None
        for m in _SENTENCE_END_RE.finditer(text, low, limit):
            sentence_end = m.end()
        if sentence_end is not None:
            candidates.append(sentence_end)

        candidates = [c for c in candidates if start < c <= limit]
        if candidates:
            return max(candidates)

        for i in range(limit - 1, low - 1, -1):
            if text[i].isspace() and i + 1 > start:
                return i + 1
        return None


def hard_split_offsets(chunks: List[Chunk]) -> List[int]:
    """Parent offsets where a chunk was cut at the size limit."""
    return [chunk.start for chunk in chunks if chunk.hard_split]
