"""
Result Mapper & Filter
======================
Turns backend matches into source diagnostics.

Steps, per checkable text:
1. Chunk-local offsets become absolute (lookback context matches discarded)
2. Dictionary filter for spelling rules
3. Disabled-rule filter
4. Matches touching a separator or crossing a hard split are dropped
5. Matches lying only on placeholder text are dropped
6. The span is projected to source ranges, one diagnostic per range
"""

import re
from typing import FrozenSet, Iterable, List, Sequence

from .base import Diagnostic, LanguageProfile, Match
from .chunker import Chunk
from .config_logging import MappingInconsistency, get_logger
from .extract.extractor import CheckableText

__version__ = "1.0.0"

logger = get_logger(__name__)

SPELLING_CATEGORIES = frozenset({'TYPOS'})
SPELLING_ISSUE_TYPES = frozenset({'misspelling'})
_SPELLER_RULE_RE = re.compile(r'MORFOLOGIK|HUNSPELL|SPELLER|SPELLING_RULE', re.IGNORECASE)


def is_spelling_rule(match: Match) -> bool:
    """True for matches reported by a speller rule."""
    return (
        match.issue_type in SPELLING_ISSUE_TYPES
        or match.category in SPELLING_CATEGORIES
        or bool(_SPELLER_RULE_RE.search(match.rule_id))
    )


def translate_matches(chunk: Chunk, matches: Iterable[Match]) -> List[Match]:
    """
    Move chunk-local matches to parent text offsets.

    Matches starting in the lookback context belong to the previous chunk
    and are discarded.
    """
    translated = []
    for match in matches:
        if match.offset < chunk.context_length:
            continue
        translated.append(match.shifted(chunk.base_offset))
    return translated


def _contains_token(suggestion: str, token: str) -> bool:
    if token.isalnum():
        return re.search(rf'(?<!\w){re.escape(token)}(?!\w)', suggestion) is not None
    return token in suggestion


class ResultMapper:
    """
    Maps and filters the matches of one checkable text.

    Args:
        placeholder_tokens: Tokens written by rewrite rules; suggestions
            containing one are suppressed
        dictionary_case_sensitive: Compare dictionary words exactly
    """

    def __init__(self, placeholder_tokens: Iterable[str] = (), dictionary_case_sensitive: bool = True):
        self.placeholder_tokens: FrozenSet[str] = frozenset(t for t in placeholder_tokens if t)
        self.dictionary_case_sensitive = dictionary_case_sensitive

    def in_dictionary(self, word: str, profile: LanguageProfile) -> bool:
        if not profile.dictionary:
            return False
        if self.dictionary_case_sensitive:
            return word in profile.dictionary
        folded = word.casefold()
        return any(folded == entry.casefold() for entry in profile.dictionary)

    def keep(self, match: Match, text: CheckableText, hard_splits: Sequence[int] = ()) -> bool:
        """Apply every filter to one absolute match."""
        profile = text.profile
        start, end = match.offset, match.end

        if is_spelling_rule(match) and self.in_dictionary(text.text[start:end], profile):
            return False
        if match.rule_id in profile.disabled_rules:
            return False

        cmap = text.coordinate_map
        if cmap.touches_separator(start, end):
            return False
        if any(start < boundary < end for boundary in hard_splits):
            return False

        entries = cmap.overlapping(start, end)
        if entries and all(entry.placeholder for entry in entries):
            return False
        return True

    def suggestions(self, match: Match) -> List[str]:
        return [
            value for value in match.replacements
            if not any(_contains_token(value, token) for token in self.placeholder_tokens)
        ]

    def map(self, text: CheckableText, matches: Iterable[Match],
            hard_splits: Sequence[int] = ()) -> List[Diagnostic]:
        """
        Diagnostics for absolute matches of ``text``.

        Args:
            text: The checkable text the matches refer to
            matches: Matches with offsets into ``text.text``
            hard_splits: Offsets where the text was cut at the size limit

        Returns:
            Diagnostics ordered by source position
        """
        diagnostics = []
        for match in matches:
            if not self.keep(match, text, hard_splits):
                continue
            try:
                locations = text.coordinate_map.project(match.offset, match.end)
            except MappingInconsistency as e:
                logger.warning(f"Dropping unmappable match: {e.message}",
                               rule_id=match.rule_id, language=text.profile.tag)
                continue

            replacements = self.suggestions(match)
            for location in locations:
                diagnostics.append(Diagnostic(
                    location=location,
                    rule_id=match.rule_id,
                    message=match.message,
                    replacements=list(replacements),
                    language=text.profile.tag,
                ))

        diagnostics.sort(key=lambda d: (d.location.file_id, d.location.start, d.location.end, d.rule_id))
        return diagnostics
