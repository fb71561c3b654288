"""
Tests for the Markup Reader
===========================
Tests for parsing, provenance, language scopes and includes.
"""

from prosecheck.document.reader import split_language_tag
from prosecheck.document.tree import NodeKind


def leaves(tree):
    return [n for n in tree.walk() if n.kind in (NodeKind.TEXT, NodeKind.SPACE)]


class TestSplitLanguageTag:
    """Tests for split_language_tag."""

    def test_with_region(self):
        assert split_language_tag("de-CH") == ("de", "CH")
        assert split_language_tag("en_gb") == ("en", "GB")

    def test_without_region(self):
        assert split_language_tag("FR") == ("fr", None)


class TestMarkupReader:
    """Tests for MarkupReader."""

    def test_paragraphs_and_provenance(self, read_markup):
        """Every text node points at its exact source slice."""
        source = "Hello world.\n\nSecond para."
        tree, warnings = read_markup({'main.typ': source})
        assert warnings == []
        assert [c.kind for c in tree.children] == [NodeKind.PARAGRAPH, NodeKind.PARAGRAPH]
        for node in leaves(tree):
            if node.kind == NodeKind.TEXT:
                assert source[node.location.start:node.location.end] == node.text

    def test_heading_levels(self, read_markup):
        tree, _ = read_markup({'main.typ': "= One\n== Two\n"})
        headings = [c for c in tree.children if c.kind == NodeKind.HEADING]
        assert [h.level for h in headings] == [1, 2]

    def test_list_items(self, read_markup):
        tree, _ = read_markup({'main.typ': "- first\n- second\n"})
        assert [c.kind for c in tree.children] == [NodeKind.LIST_ITEM, NodeKind.LIST_ITEM]

    def test_set_rule_changes_language(self, read_markup):
        """Text after #set text(lang: ...) carries the new language."""
        tree, _ = read_markup({'main.typ': '#set text(lang:"de") Der Hund.'})
        texts = [n for n in tree.walk() if n.kind == NodeKind.TEXT]
        assert [t.text for t in texts] == ["Der", "Hund."]
        assert all(t.lang == "de" for t in texts)

    def test_text_call_scopes_language(self, read_markup):
        tree, _ = read_markup({'main.typ': 'Hi #text(lang: "fr", region: "ca")[Bonjour] there'})
        by_text = {n.text: n for n in tree.walk() if n.kind == NodeKind.TEXT}
        assert by_text["Bonjour"].lang == "fr"
        assert by_text["Bonjour"].region == "CA"
        assert by_text["there"].lang is None

    def test_set_rule_ends_with_content_block(self, read_markup):
        """A set rule inside a content block does not leak past its closing bracket."""
        tree, _ = read_markup({'main.typ': '#block[#set text(lang: "de") Hallo Welt.]\n\nEnglish again.'})
        by_text = {n.text: n for n in tree.walk() if n.kind == NodeKind.TEXT}
        assert by_text["Hallo"].lang == "de"
        assert by_text["English"].lang is None
        assert by_text["again."].lang is None

    def test_comments_and_labels_skipped(self, read_markup):
        tree, _ = read_markup({'main.typ': "Text <intro> here // note\nmore /* x */ end"})
        words = [n.text for n in tree.walk() if n.kind == NodeKind.TEXT]
        assert words == ["Text", "here", "more", "end"]

    def test_escape_is_not_verbatim(self, read_markup):
        tree, _ = read_markup({'main.typ': r"50\% off"})
        escaped = [n for n in tree.walk() if n.kind == NodeKind.TEXT and n.text == "%"]
        assert len(escaped) == 1
        assert not escaped[0].verbatim

    def test_raw_inline_and_block(self, read_markup):
        tree, _ = read_markup({'main.typ': "Use `ls` here.\n\n```sh\necho hi\n```\n"})
        kinds = [n.kind for n in tree.walk()]
        assert NodeKind.RAW_INLINE in kinds
        raw_block = next(n for n in tree.walk() if n.kind == NodeKind.RAW_BLOCK)
        assert raw_block.text == "echo hi"

    def test_include(self, read_markup):
        """Included files keep their own file id."""
        files = {
            'main.typ': 'Intro.\n\n#include "chapter.typ"\n',
            'chapter.typ': 'Chapter text.',
        }
        tree, warnings = read_markup(files)
        assert warnings == []
        chapter = [n for n in tree.walk() if n.location.file_id == 'chapter.typ' and n.kind == NodeKind.TEXT]
        assert [n.text for n in chapter] == ["Chapter", "text."]
        assert chapter[0].location.start == 0

    def test_missing_include_warns(self, read_markup):
        tree, warnings = read_markup({'main.typ': '#include "missing.typ"\n\nBody.'})
        assert tree is not None
        assert [w.kind for w in warnings] == ['missing_include']

    def test_include_cycle_refused(self, read_markup):
        files = {
            'main.typ': '#include "a.typ"',
            'a.typ': 'A text.\n\n#include "main.typ"',
        }
        tree, warnings = read_markup(files)
        assert [w.kind for w in warnings] == ['include_cycle']
        words = [n.text for n in tree.walk() if n.kind == NodeKind.TEXT]
        assert words == ["A", "text."]

    def test_missing_main(self, read_markup):
        tree, warnings = read_markup({}, main='main.typ')
        assert tree is None
        assert warnings[0].kind == 'missing_include'

    def test_deterministic(self, read_markup):
        files = {'main.typ': "= T\n\nSome *text* with $m$ and @ref."}
        assert read_markup(files) == read_markup(files)
