"""
Style Transform
===============
Turns a document tree into a linear sequence of checkable segments.

What happens to each node is looked up in a rule table keyed by node kind:

- drop             contribute nothing (bibliography, block math)
- unwrap           contribute the children, without the node's own effects
- rewrite          replace the node by a fixed placeholder token (inline math)
- paginate-before  insert a page break before headings up to a level
- identity         render normally

The table is configuration. ``RuleTable.resolve(spellcheck=...)`` gives the
check-mode table or the plain rendering table for the same document.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterator, Mapping, Optional, Tuple

from ..base import SourceLocation
from ..config_logging import ConfigurationError
from ..document.tree import BLOCK_KINDS, LEAF_KINDS, DocumentNode, NodeKind

__version__ = "1.0.0"

DEFAULT_PLACEHOLDER = "X"
CITATION_PLACEHOLDER = "[1]"


class Effect(Enum):
    DROP = "drop"
    UNWRAP = "unwrap"
    REWRITE = "rewrite"
    PAGINATE_BEFORE = "paginate-before"
    IDENTITY = "identity"


@dataclass(frozen=True)
class Rule:
    """Effect for one node kind. ``token`` is used by rewrite, ``level`` by paginate-before."""
    effect: Effect
    token: str = ""
    level: int = 1

    @classmethod
    def parse(cls, rule_text: str) -> 'Rule':
        """
        Parse a rule from configuration.

        Accepted forms: ``drop``, ``unwrap``, ``identity``, ``rewrite``,
        ``rewrite:TOKEN``, ``paginate-before`` and ``paginate-before:LEVEL``.
        """
        name, _, arg = rule_text.strip().partition(':')
        name = name.strip().lower().replace('_', '-')
        try:
            effect = Effect(name)
        except ValueError:
            raise ConfigurationError(f"Unknown style rule: {rule_text!r}", option='rules')

        if effect == Effect.REWRITE:
            return cls(effect, token=arg or DEFAULT_PLACEHOLDER)
        if effect == Effect.PAGINATE_BEFORE:
            try:
                return cls(effect, level=int(arg) if arg else 1)
            except ValueError:
                raise ConfigurationError(f"Invalid heading level in rule: {rule_text!r}", option='rules')
        return cls(effect)


IDENTITY = Rule(Effect.IDENTITY)


@dataclass(frozen=True)
class CheckableSegment:
    """
    A run of checkable text and where it came from.

    ``separator`` segments mark block boundaries; they carry no location and
    never map to source. A ``page_break`` separator also starts a new page.
    """
    text: str
    location: Optional[SourceLocation]
    language: str
    region: Optional[str] = None
    exact: bool = False
    placeholder: bool = False
    separator: bool = False
    page_break: bool = False


class RuleTable:
    """Complete mapping of node kinds to rules."""

    def __init__(self, rules: Mapping[NodeKind, Rule]):
        missing = [kind.value for kind in NodeKind if kind not in rules]
        if missing:
            raise ConfigurationError(f"Style rules missing for: {', '.join(missing)}", option='rules')
        self._rules: Dict[NodeKind, Rule] = dict(rules)

    def __eq__(self, other) -> bool:
        return isinstance(other, RuleTable) and self._rules == other._rules

    def rule_for(self, kind: NodeKind) -> Rule:
        return self._rules[kind]

    @property
    def placeholder_tokens(self) -> FrozenSet[str]:
        """Tokens produced by rewrite rules."""
        return frozenset(
            rule.token for rule in self._rules.values()
            if rule.effect == Effect.REWRITE and rule.token
        )

    def with_overrides(self, overrides: Mapping[str, str]) -> 'RuleTable':
        """Copy with per-kind rules from configuration (``{'citation': 'drop'}``)."""
        rules = dict(self._rules)
        for kind_name, rule_text in overrides.items():
            try:
                kind = NodeKind(kind_name.strip().lower())
            except ValueError:
                raise ConfigurationError(f"Unknown node kind in rules: {kind_name!r}", option='rules')
            rules[kind] = Rule.parse(rule_text)
        return RuleTable(rules)

    @classmethod
    def identity(cls) -> 'RuleTable':
        """Render everything normally."""
        return cls({kind: IDENTITY for kind in NodeKind})

    @classmethod
    def check_mode(cls, paginate_level: int = 1) -> 'RuleTable':
        """Default rules used while checking."""
        rules = {kind: IDENTITY for kind in NodeKind}
        rules.update({
            NodeKind.MATH_INLINE: Rule(Effect.REWRITE, token=DEFAULT_PLACEHOLDER),
            NodeKind.MATH_BLOCK: Rule(Effect.DROP),
            NodeKind.CITATION: Rule(Effect.REWRITE, token=CITATION_PLACEHOLDER),
            NodeKind.BIBLIOGRAPHY: Rule(Effect.DROP),
            NodeKind.RAW_INLINE: Rule(Effect.REWRITE, token=DEFAULT_PLACEHOLDER),
            NodeKind.RAW_BLOCK: Rule(Effect.DROP),
            NodeKind.STRONG: Rule(Effect.UNWRAP),
            NodeKind.EMPH: Rule(Effect.UNWRAP),
            NodeKind.BLOCK: Rule(Effect.UNWRAP),
            NodeKind.HEADING: Rule(Effect.PAGINATE_BEFORE, level=paginate_level),
        })
        return cls(rules)

    @classmethod
    def resolve(cls, spellcheck: bool = True, overrides: Optional[Mapping[str, str]] = None,
                paginate_level: int = 1) -> 'RuleTable':
        """Table for the ``spellcheck`` flag, with configured overrides in check mode."""
        if not spellcheck:
            return cls.identity()
        table = cls.check_mode(paginate_level)
        if overrides:
            table = table.with_overrides(overrides)
        return table


def _context(node: DocumentNode, parent: Tuple[str, Optional[str]]) -> Tuple[str, Optional[str]]:
    if node.lang:
        return node.lang, node.region
    if node.region:
        return parent[0], node.region
    return parent


def transform(
    node: DocumentNode,
    table: RuleTable,
    language: Tuple[str, Optional[str]] = ("en", None)
) -> Iterator[CheckableSegment]:
    """
    Yield the checkable segments of ``node`` and its descendants in document order.

    Args:
        node: Subtree to render
        table: Rule table in force
        language: (code, region) inherited from the enclosing nodes
    """
    lang, region = _context(node, language)
    rule = table.rule_for(node.kind)

    def separator() -> CheckableSegment:
        return CheckableSegment(text="", location=None, language=lang, region=region, separator=True)

    if rule.effect == Effect.DROP:
        return

    if rule.effect == Effect.PAGINATE_BEFORE and (node.kind != NodeKind.HEADING or node.level <= rule.level):
        yield CheckableSegment(text="", location=None, language=lang, region=region,
                               separator=True, page_break=True)

    if rule.effect == Effect.REWRITE:
        if not rule.token:
            return
        yield CheckableSegment(
            text=rule.token,
            location=node.location,
            language=lang,
            region=region,
            placeholder=True,
        )
    elif node.kind in LEAF_KINDS:
        if node.text:
            yield CheckableSegment(
                text=node.text,
                location=node.location,
                language=lang,
                region=region,
                exact=node.verbatim and len(node.text) == node.location.length,
            )
    else:
        for child in node.children:
            yield from transform(child, table, (lang, region))

    if node.kind in BLOCK_KINDS and rule.effect != Effect.UNWRAP:
        yield separator()
