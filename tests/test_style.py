"""
Tests for the Style Transform
=============================
"""

import pytest

from prosecheck.config_logging import ConfigurationError
from prosecheck.document.tree import NodeKind
from prosecheck.extract.style import (
    CITATION_PLACEHOLDER,
    Effect,
    Rule,
    RuleTable,
    transform,
)


def texts(segments):
    return ['|' if s.separator else s.text for s in segments]


class TestRule:
    """Tests for Rule.parse."""

    @pytest.mark.parametrize("rule_text,expected", [
        ("drop", Rule(Effect.DROP)),
        ("unwrap", Rule(Effect.UNWRAP)),
        ("identity", Rule(Effect.IDENTITY)),
        ("rewrite", Rule(Effect.REWRITE, token="X")),
        ("rewrite:[?]", Rule(Effect.REWRITE, token="[?]")),
        ("paginate-before:2", Rule(Effect.PAGINATE_BEFORE, level=2)),
        ("paginate_before", Rule(Effect.PAGINATE_BEFORE, level=1)),
    ])
    def test_parse(self, rule_text, expected):
        assert Rule.parse(rule_text) == expected

    def test_parse_unknown_effect(self):
        with pytest.raises(ConfigurationError):
            Rule.parse("shout")

    def test_parse_bad_level(self):
        with pytest.raises(ConfigurationError):
            Rule.parse("paginate-before:two")


class TestRuleTable:
    """Tests for RuleTable."""

    def test_must_cover_every_kind(self):
        with pytest.raises(ConfigurationError):
            RuleTable({NodeKind.TEXT: Rule(Effect.IDENTITY)})

    def test_check_mode_defaults(self):
        table = RuleTable.check_mode()
        assert table.rule_for(NodeKind.MATH_INLINE) == Rule(Effect.REWRITE, token="X")
        assert table.rule_for(NodeKind.BIBLIOGRAPHY).effect == Effect.DROP
        assert table.rule_for(NodeKind.CITATION).token == CITATION_PLACEHOLDER
        assert table.rule_for(NodeKind.STRONG).effect == Effect.UNWRAP
        assert table.rule_for(NodeKind.HEADING).effect == Effect.PAGINATE_BEFORE
        assert table.placeholder_tokens == {"X", "[1]"}

    def test_spellcheck_flag_selects_table(self):
        """Without spellcheck the plain rendering table is used."""
        assert RuleTable.resolve(spellcheck=False) == RuleTable.identity()
        assert RuleTable.resolve(spellcheck=True) == RuleTable.check_mode()

    def test_overrides(self):
        table = RuleTable.resolve(overrides={'citation': 'drop', 'math_inline': 'rewrite:Y'})
        assert table.rule_for(NodeKind.CITATION).effect == Effect.DROP
        assert table.rule_for(NodeKind.MATH_INLINE).token == "Y"

    def test_override_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            RuleTable.check_mode().with_overrides({'footnote': 'drop'})


class TestTransform:
    """Tests for transform over parsed documents."""

    def test_math_rewritten_and_block_math_dropped(self, read_markup):
        tree, _ = read_markup({'main.typ': "Let $x$ be.\n\n$ y = 2 $\n\nDone."})
        segments = list(transform(tree, RuleTable.check_mode()))
        assert texts(segments) == ['Let', ' ', 'X', ' ', 'be.', '|', 'Done.', '|']
        placeholder = segments[2]
        assert placeholder.placeholder and not placeholder.exact
        assert (placeholder.location.start, placeholder.location.end) == (4, 7)

    def test_identity_table_keeps_math_text(self, read_markup):
        tree, _ = read_markup({'main.typ': "Let $x$ be."})
        segments = list(transform(tree, RuleTable.identity()))
        assert texts(segments) == ['Let', ' ', 'x', ' ', 'be.', '|']

    def test_strong_unwrapped_without_separator(self, read_markup):
        tree, _ = read_markup({'main.typ': "A *bold* claim."})
        segments = list(transform(tree, RuleTable.check_mode()))
        assert texts(segments) == ['A', ' ', 'bold', ' ', 'claim.', '|']
        assert all(s.exact for s in segments if not s.separator)

    def test_heading_paginated_by_level(self, read_markup):
        """Only headings up to the configured level get a break before them."""
        tree, _ = read_markup({'main.typ': "= Top\n\n== Sub\n"})
        segments = list(transform(tree, RuleTable.check_mode(paginate_level=1)))
        assert texts(segments) == ['|', 'Top', '|', 'Sub', '|']
        assert [s.page_break for s in segments] == [True, False, False, False, False]

    def test_bibliography_dropped(self, read_markup):
        tree, _ = read_markup({'main.typ': "See @knuth.\n\n#bibliography(\"refs.bib\")"})
        segments = list(transform(tree, RuleTable.check_mode()))
        assert texts(segments) == ['See', ' ', '[1]', '.', '|']

    def test_deterministic(self, read_markup):
        tree, _ = read_markup({'main.typ': "One *two* $3$."})
        table = RuleTable.check_mode()
        assert list(transform(tree, table)) == list(transform(tree, table))
