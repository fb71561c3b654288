"""
Tests for the Extractor
=======================
Per-language checkable texts, coordinate map coverage and determinism.
"""

import pytest

from prosecheck.base import SourceLocation
from prosecheck.extract.extractor import SEPARATOR, Extractor, LanguageResolver
from prosecheck.extract.style import RuleTable


@pytest.fixture
def extract(read_markup):
    """extract(files, languages=...) -> ExtractionResult"""
    def _extract(files, languages=(), dictionary=None, disabled_checks=None, table=None):
        tree, _ = read_markup(files)
        resolver = LanguageResolver(languages, dictionary, disabled_checks)
        return Extractor(table or RuleTable.check_mode(), resolver).extract(tree)
    return _extract


def covered_offsets(text):
    """Map each text offset to the number of entries covering it."""
    counts = [0] * len(text.text)
    for entry in text.coordinate_map:
        for i in range(entry.text_start, entry.text_end):
            counts[i] += 1
    return counts


class TestLanguageResolver:
    """Tests for LanguageResolver."""

    def test_region_from_preferences(self):
        resolver = LanguageResolver(["en-GB", "de-DE"])
        assert resolver.profile("de").tag == "de-DE"
        assert resolver.profile("en").tag == "en-GB"
        assert resolver.profile("fr").tag == "fr"

    def test_first_matching_preference_decides(self):
        """A bare code listed first means no region, even with a regional entry later."""
        assert LanguageResolver(["de", "de-CH"]).profile("de").region is None
        assert LanguageResolver(["de-CH", "de"]).profile("de").tag == "de-CH"

    def test_explicit_region_wins(self):
        resolver = LanguageResolver(["de-DE"])
        assert resolver.profile("de", "CH").tag == "de-CH"

    def test_dictionary_and_rules_by_code_and_tag(self):
        resolver = LanguageResolver(
            ["de-DE"],
            dictionary={"de": ["Typst"], "de-DE": ["Kaffee"]},
            disabled_checks={"de": ["RULE_A"]},
        )
        profile = resolver.profile("de")
        assert profile.dictionary == {"Typst", "Kaffee"}
        assert profile.disabled_rules == {"RULE_A"}

    def test_unknown_code_is_unresolved(self):
        profile = LanguageResolver().profile("xx")
        assert not profile.resolved


class TestExtractor:
    """Tests for Extractor."""

    def test_paragraphs_joined_with_separator(self, extract):
        result = extract({'main.typ': "Hello world.\n\nSecond para."})
        assert len(result.texts) == 1
        text = result.texts[0]
        assert text.text == "Hello world." + SEPARATOR + "Second para."
        assert text.coordinate_map.separators == [(12, 14)]

    def test_every_offset_covered_once(self, extract):
        """Offsets outside separators belong to exactly one entry."""
        result = extract({'main.typ': "A *b* $c$ @d.\n\n- item one\n- item two\n\n= Head"})
        text = result.texts[0]
        separators = set()
        for start, end in text.coordinate_map.separators:
            separators.update(range(start, end))
        for offset, count in enumerate(covered_offsets(text)):
            assert count == (0 if offset in separators else 1)

    def test_exact_entries_copy_source(self, extract):
        source = "Plain words *and bold* here."
        text = extract({'main.typ': source}).texts[0]
        for entry in text.coordinate_map:
            if entry.exact:
                assert text.text[entry.text_start:entry.text_end] == \
                    source[entry.location.start:entry.location.end]

    def test_no_separator_at_edges(self, extract):
        text = extract({'main.typ': "\n\n= Title\n\nBody.\n\n#pagebreak()\n\n"}).texts[0]
        assert not text.text.startswith(SEPARATOR)
        assert not text.text.endswith(SEPARATOR)
        assert SEPARATOR * 2 not in text.text

    def test_german_text_with_region(self, extract):
        """Text under a language rule goes to its own checkable text."""
        source = '#set text(lang:"de") Der the Hund ist schön.'
        result = extract({'main.typ': source}, languages=["de-DE"])
        text = result.text_for("de")
        assert text is not None
        assert text.profile.tag == "de-DE"
        assert text.text == "Der the Hund ist schön."
        start = source.index("the")
        assert text.coordinate_map.project(4, 7) == [SourceLocation('main.typ', start, start + 3)]

    def test_mixed_languages(self, extract):
        source = 'English here.\n\n#text(lang: "de")[Deutsch hier.]\n\nMore English.'
        result = extract({'main.typ': source})
        assert result.text_for("en").text == "English here." + SEPARATOR + "More English."
        assert result.text_for("de").text == "Deutsch hier."

    def test_inline_language_switch_is_separated(self, extract):
        """Text interrupted by another language does not run together."""
        result = extract({'main.typ': 'Before #text(lang: "fr")[milieu] after.'})
        assert result.text_for("en").text == "Before " + SEPARATOR + "after."
        assert result.text_for("fr").text == "milieu"

    def test_set_rule_inside_block_stays_there(self, extract):
        source = '#block[#set text(lang: "de") Hallo Welt.]\n\nEnglish again.'
        result = extract({'main.typ': source})
        assert result.text_for("de").text == "Hallo Welt."
        assert result.text_for("en").text == "English again."

    def test_paginated_headings_start_pages(self, extract):
        result = extract({'main.typ': "= One\n\nBody one.\n\n= Two\n\n== Sub\n\nBody two."})
        text = result.text_for("en")
        assert text.text == SEPARATOR.join(["One", "Body one.", "Two", "Sub", "Body two."])
        assert text.page_breaks == [text.text.index("Two")]

    def test_math_placeholder(self, extract):
        text = extract({'main.typ': "Let $x$ be big."}).texts[0]
        assert text.text == "Let X be big."
        entry = text.coordinate_map.entry_at(4)
        assert entry.placeholder
        assert (entry.location.start, entry.location.end) == (4, 7)

    def test_included_file_mapped_to_its_own_id(self, extract):
        files = {
            'main.typ': 'Intro.\n\n#include "chapter.typ"',
            'chapter.typ': 'Chapter body.',
        }
        text = extract(files).texts[0]
        assert text.text == "Intro." + SEPARATOR + "Chapter body."
        offset = text.text.index("body")
        assert text.coordinate_map.project(offset, offset + 4) == [SourceLocation('chapter.typ', 8, 12)]

    def test_unresolved_language_warning(self, extract):
        result = extract({'main.typ': 'Hi #text(lang: "xx")[zork] #text(lang: "xx")[zork]'})
        warnings = [w for w in result.warnings if w.kind == 'unresolved_language']
        assert len(warnings) == 1
        unresolved = [t for t in result.texts if not t.profile.resolved]
        assert [t.text for t in unresolved] == ["zork" + SEPARATOR + "zork"]

    def test_deterministic(self, extract):
        files = {'main.typ': "= T\n\nSome *text* with $m$ and @ref.\n\n#text(lang: \"de\")[Hallo]"}
        first, second = extract(files), extract(files)
        assert [t.text for t in first.texts] == [t.text for t in second.texts]
        assert [t.coordinate_map for t in first.texts] == [t.coordinate_map for t in second.texts]
