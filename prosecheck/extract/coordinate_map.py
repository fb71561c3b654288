"""
Coordinate Map
==============
Append-only mapping from ranges of a checkable text to source locations.

Entries are non-overlapping and ordered by their text start. Separator
ranges (inserted between segments) map to no source location at all.
"""

import bisect
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from ..base import SourceLocation
from ..config_logging import MappingInconsistency

__version__ = "1.0.0"


@dataclass(frozen=True)
class MapEntry:
    """
    One mapped segment.

    ``exact`` entries are verbatim copies of their source range, so text
    offsets translate char-for-char. Other entries map as a whole.
    """
    text_start: int
    text_end: int
    location: SourceLocation
    exact: bool = False
    placeholder: bool = False

    def covers(self, offset: int) -> bool:
        return self.text_start <= offset < self.text_end

    def project(self, start: int, end: int) -> SourceLocation:
        """Source range of the intersection of [start, end) with this entry."""
        if not self.exact:
            return self.location
        lo = max(start, self.text_start)
        hi = min(end, self.text_end)
        delta = self.location.start - self.text_start
        return SourceLocation(self.location.file_id, lo + delta, max(lo, hi) + delta)


class CoordinateMap:
    """Ordered (text range -> source location) entries of one checkable text."""

    def __init__(self):
        self._entries: List[MapEntry] = []
        self._starts: List[int] = []
        self._separators: List[Tuple[int, int]] = []
        self._separator_starts: List[int] = []
        self._end = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[MapEntry]:
        return iter(self._entries)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CoordinateMap):
            return NotImplemented
        return self._entries == other._entries and self._separators == other._separators

    @property
    def entries(self) -> List[MapEntry]:
        return list(self._entries)

    @property
    def separators(self) -> List[Tuple[int, int]]:
        return list(self._separators)

    @property
    def end(self) -> int:
        """Length of the text covered so far."""
        return self._end

    def add(self, length: int, location: SourceLocation,
            exact: bool = False, placeholder: bool = False) -> MapEntry:
        """Append an entry for the next ``length`` characters."""
        if length <= 0:
            raise ValueError("Map entries must be non-empty")
        if exact and length != location.length:
            raise ValueError("Exact entries must have the length of their source range")
        entry = MapEntry(self._end, self._end + length, location, exact, placeholder)
        self._entries.append(entry)
        self._starts.append(entry.text_start)
        self._end = entry.text_end
        return entry

    def add_separator(self, length: int):
        """Append an unmapped range."""
        if length <= 0:
            return
        self._separators.append((self._end, self._end + length))
        self._separator_starts.append(self._end)
        self._end += length

    def entry_at(self, offset: int) -> Optional[MapEntry]:
        """Entry covering ``offset``, or None for separators / out of range."""
        i = bisect.bisect_right(self._starts, offset) - 1
        if i >= 0 and self._entries[i].covers(offset):
            return self._entries[i]
        return None

    def overlapping(self, start: int, end: int) -> List[MapEntry]:
        """Entries intersecting [start, end). An empty span uses the entry at ``start``."""
        if end <= start:
            entry = self.entry_at(start)
            return [entry] if entry else []
        i = max(0, bisect.bisect_right(self._starts, start) - 1)
        result = []
        while i < len(self._entries) and self._entries[i].text_start < end:
            entry = self._entries[i]
            if entry.text_end > start:
                result.append(entry)
            i += 1
        return result

    def touches_separator(self, start: int, end: int) -> bool:
        """True when [start, end) intersects a separator range."""
        # sorted and disjoint: only the last separator starting before end can reach start
        i = bisect.bisect_left(self._separator_starts, end) - 1
        return i >= 0 and self._separators[i][1] > start

    def project(self, start: int, end: int) -> List[SourceLocation]:
        """
        Source ranges covered by [start, end).

        Ranges in the same file that overlap or touch are merged.

        Raises:
            MappingInconsistency: no entry overlaps the span
        """
        entries = self.overlapping(start, end)
        if not entries:
            raise MappingInconsistency(
                f"Span {start}..{end} does not map to any source range",
                start=start, end=end,
            )
        return merge_locations([entry.project(start, end) for entry in entries])


def merge_locations(locations: List[SourceLocation]) -> List[SourceLocation]:
    """Merge overlapping/adjacent ranges per file, keeping first-seen file order."""
    by_file: dict = {}
    for loc in locations:
        by_file.setdefault(loc.file_id, []).append(loc)

    merged: List[SourceLocation] = []
    for file_id, locs in by_file.items():
        locs.sort(key=lambda loc: (loc.start, loc.end))
        current = locs[0]
        for loc in locs[1:]:
            if loc.start <= current.end:
                current = SourceLocation(file_id, current.start, max(current.end, loc.end))
            else:
                merged.append(current)
                current = loc
        merged.append(current)
    return merged
