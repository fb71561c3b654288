"""
Tests for the Result Mapper & Filter
====================================
"""

import pytest

from prosecheck.base import LanguageProfile, Match, SourceLocation
from prosecheck.chunker import Chunk
from prosecheck.extract.coordinate_map import CoordinateMap
from prosecheck.extract.extractor import CheckableText
from prosecheck.mapper import ResultMapper, is_spelling_rule, translate_matches


def loc(start, end):
    return SourceLocation('main.typ', start, end)


def make_text(profile=None) -> CheckableText:
    """'Hello wrold X.\\n\\nNext' where X stands for source 12..17."""
    cmap = CoordinateMap()
    cmap.add(12, loc(0, 12), exact=True)          # "Hello wrold "
    cmap.add(1, loc(12, 17), placeholder=True)    # "X"
    cmap.add(1, loc(17, 18), exact=True)          # "."
    cmap.add_separator(2)
    cmap.add(4, loc(30, 34), exact=True)          # "Next"
    return CheckableText(
        profile=profile or LanguageProfile("en", "US"),
        text="Hello wrold X.\n\nNext",
        coordinate_map=cmap,
    )


def speller_match(offset=6, length=5, replacements=None):
    return Match(
        offset=offset,
        length=length,
        rule_id='MORFOLOGIK_RULE_EN_US',
        message='Possible spelling mistake found.',
        replacements=replacements if replacements is not None else ['world'],
        category='TYPOS',
        issue_type='misspelling',
    )


@pytest.fixture
def mapper() -> ResultMapper:
    return ResultMapper(placeholder_tokens={'X', '[1]'})


class TestIsSpellingRule:
    """Tests for is_spelling_rule."""

    def test_by_issue_type(self):
        assert is_spelling_rule(Match(0, 1, 'SOME_RULE', '', issue_type='misspelling'))

    def test_by_rule_id(self):
        assert is_spelling_rule(Match(0, 1, 'HUNSPELL_RULE', ''))
        assert is_spelling_rule(Match(0, 1, 'GERMAN_SPELLER_RULE', ''))

    def test_grammar_rule(self):
        assert not is_spelling_rule(Match(0, 1, 'EN_A_VS_AN', '', category='GRAMMAR', issue_type='grammar'))


class TestTranslateMatches:
    """Tests for translate_matches."""

    def test_shift_by_base_offset(self):
        chunk = Chunk("abc def", base_offset=100)
        [moved] = translate_matches(chunk, [Match(4, 3, 'R', '')])
        assert (moved.offset, moved.length) == (104, 3)

    def test_context_matches_discarded(self):
        chunk = Chunk("xyz abc", base_offset=50, context_length=4)
        moved = translate_matches(chunk, [Match(1, 2, 'R', ''), Match(4, 3, 'R', '')])
        assert [m.offset for m in moved] == [54]


class TestResultMapper:
    """Tests for ResultMapper.map."""

    def test_maps_to_source(self, mapper):
        [diagnostic] = mapper.map(make_text(), [speller_match()])
        assert diagnostic.location == loc(6, 11)
        assert diagnostic.rule_id == 'MORFOLOGIK_RULE_EN_US'
        assert diagnostic.replacements == ['world']
        assert diagnostic.language == 'en-US'

    def test_dictionary_word_suppressed(self, mapper):
        text = make_text(LanguageProfile("en", "US", dictionary=frozenset({"wrold"})))
        assert mapper.map(text, [speller_match()]) == []

    def test_dictionary_case_sensitive_by_default(self, mapper):
        text = make_text(LanguageProfile("en", "US", dictionary=frozenset({"Wrold"})))
        assert len(mapper.map(text, [speller_match()])) == 1

    def test_dictionary_case_folding(self):
        mapper = ResultMapper(dictionary_case_sensitive=False)
        text = make_text(LanguageProfile("en", "US", dictionary=frozenset({"WROLD"})))
        assert mapper.map(text, [speller_match()]) == []

    def test_dictionary_only_applies_to_spelling(self, mapper):
        text = make_text(LanguageProfile("en", "US", dictionary=frozenset({"wrold"})))
        grammar = Match(6, 5, 'SOME_GRAMMAR_RULE', 'Odd word order.', category='GRAMMAR')
        assert len(mapper.map(text, [grammar])) == 1

    def test_disabled_rule_suppressed(self, mapper):
        text = make_text(LanguageProfile("en", "US", disabled_rules=frozenset({'MORFOLOGIK_RULE_EN_US'})))
        assert mapper.map(text, [speller_match()]) == []

    def test_separator_match_dropped(self, mapper):
        """A match reaching into the separator is a junction artifact."""
        match = Match(13, 4, 'PUNCT', 'Check punctuation.')
        assert mapper.map(make_text(), [match]) == []

    def test_hard_split_straddle_dropped(self, mapper):
        assert mapper.map(make_text(), [speller_match()], hard_splits=[8]) == []
        assert len(mapper.map(make_text(), [speller_match()], hard_splits=[6, 11])) == 1

    def test_placeholder_only_match_dropped(self, mapper):
        match = Match(12, 1, 'UPPERCASE_SENTENCE_START', 'Capitalize.')
        assert mapper.map(make_text(), [match]) == []

    def test_match_over_placeholder_covers_whole_construct(self, mapper):
        match = Match(6, 8, 'SOME_RULE', 'Rephrase.')
        [diagnostic] = mapper.map(make_text(), [match])
        assert diagnostic.location == loc(6, 18)

    def test_placeholder_suggestions_removed(self, mapper):
        match = speller_match(replacements=['X', 'world', 'see [1]', 'Xylophone'])
        [diagnostic] = mapper.map(make_text(), [match])
        assert diagnostic.replacements == ['world', 'Xylophone']

    def test_unmappable_match_dropped(self, mapper):
        match = Match(40, 2, 'R', 'Out of range.')
        assert mapper.map(make_text(), [match]) == []

    def test_results_sorted_by_position(self, mapper):
        second = Match(16, 4, 'R2', 'Second.')
        first = speller_match()
        diagnostics = mapper.map(make_text(), [second, first])
        assert [d.location.start for d in diagnostics] == [6, 30]
