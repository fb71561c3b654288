"""
Markup Reader
=============
Reads a Typst-like markup subset into a DocumentNode tree with exact
per-node source provenance.

Supported constructs:
- Headings (``= Title``), list items (``- item``), blank-line paragraphs
- ``*strong*``, ``_emph_``, escapes, ``// comments`` and ``/* comments */``
- Inline math ``$x$`` and block math ``$ x $``
- Inline raw (`` `x` ``) and fenced raw blocks
- Citations ``@key`` and ``#cite(<key>)``, ``#bibliography(...)``
- ``#pagebreak()``, ``#linebreak()``, ``#parbreak()``
- ``#set text(lang: "de", region: "CH")`` language rules
- ``#text(lang: "en")[...]``, ``#strong[...]``, ``#emph[...]``, ``#block[...]``
- ``#include "chapter.typ"`` (resolved relative to the including file)

Anything else starting with ``#`` is treated as layout code and skipped.
"""

import os
import re
from typing import Callable, List, Optional, Tuple

from ..base import ExtractionWarning, SourceLocation
from .tree import DocumentNode, NodeKind

__version__ = "1.0.0"

_IDENT_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_-]*')
_CITE_RE = re.compile(r'@([A-Za-z0-9_][A-Za-z0-9_:.\-]*)')
_LABEL_RE = re.compile(r'<[A-Za-z0-9_:.\-]+>')
_STRING_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
_LANG_ARG_RE = re.compile(r'\blang\s*:\s*"([^"]*)"')
_REGION_ARG_RE = re.compile(r'\bregion\s*:\s*"([^"]*)"')
_HEADING_RE = re.compile(r'(=+)[ \t]+')
_LIST_RE = re.compile(r'[-+][ \t]+')

_WHITESPACE = ' \t\r\n'
_SPECIAL = set('\\$`*_@#</')

# Functions that only carry layout and are skipped to the end of the line
_LINE_RULES = {'show', 'let', 'import'}

# Nodes that stand alone when they are the only content of a paragraph
_STANDALONE = {
    NodeKind.INCLUDE, NodeKind.BLOCK, NodeKind.BIBLIOGRAPHY, NodeKind.PAGEBREAK,
    NodeKind.PARBREAK, NodeKind.MATH_BLOCK, NodeKind.RAW_BLOCK,
}

# Inline parsing modes
_LINE = 'line'            # headings, list items: stop at end of line
_PARAGRAPH = 'paragraph'  # stop at blank line or block marker
_BRACKET = 'bracket'      # content block: only the closing bracket stops


def split_language_tag(tag: str) -> Tuple[str, Optional[str]]:
    """Split ``de-CH`` / ``de_CH`` into ``('de', 'CH')``."""
    parts = re.split(r'[-_]', tag.strip(), maxsplit=1)
    code = parts[0].lower()
    region = parts[1].upper() if len(parts) > 1 and parts[1] else None
    return code, region


def default_resolve(base_file_id: str, path: str) -> str:
    """Resolve an include path relative to the including file."""
    return os.path.normpath(os.path.join(os.path.dirname(base_file_id), path))


class MarkupReader:
    """
    Parses a main file and everything it includes.

    Args:
        load: Returns the text of a file id, or None when it does not exist
        resolve: Maps (including file id, include path) to a file id
    """

    def __init__(
        self,
        load: Callable[[str], Optional[str]],
        resolve: Optional[Callable[[str, str], str]] = None
    ):
        self._load = load
        self._resolve = resolve or default_resolve
        self._stack: List[str] = []
        self.warnings: List[ExtractionWarning] = []

    def read(self, file_id: str) -> Tuple[Optional[DocumentNode], List[ExtractionWarning]]:
        """
        Read a document tree.

        Returns:
            (root node or None when the main file is missing, warnings)
        """
        self._stack = []
        self.warnings = []
        root = self._read_file(file_id, None)
        return root, list(self.warnings)

    def _read_file(self, file_id: str, at: Optional[SourceLocation],
                   scope: Tuple[Optional[str], Optional[str]] = (None, None)) -> Optional[DocumentNode]:
        if file_id in self._stack:
            self.warnings.append(ExtractionWarning(
                kind='include_cycle',
                message=f"Include cycle detected: {file_id}",
                location=at,
            ))
            return None

        text = self._load(file_id)
        if text is None:
            self.warnings.append(ExtractionWarning(
                kind='missing_include',
                message=f"File not found: {file_id}",
                location=at,
            ))
            return None

        self._stack.append(file_id)
        try:
            parser = _Parser(self, file_id, text, scope)
            children = parser.parse_blocks()
        finally:
            self._stack.pop()

        return DocumentNode(
            kind=NodeKind.DOCUMENT,
            location=SourceLocation(file_id, 0, len(text)),
            children=children,
        )

    def include(self, base_file_id: str, path: str, at: SourceLocation,
                scope: Tuple[Optional[str], Optional[str]]) -> Optional[DocumentNode]:
        return self._read_file(self._resolve(base_file_id, path), at, scope)


class _Parser:
    """Recursive-descent parser over one file."""

    def __init__(self, reader: MarkupReader, file_id: str, text: str,
                 scope: Tuple[Optional[str], Optional[str]]):
        self.reader = reader
        self.file_id = file_id
        self.text = text
        self.pos = 0
        # Language scopes: (lang, region), None = inherited
        self._scopes: List[Tuple[Optional[str], Optional[str]]] = [scope]
        # Open literal '[' per content block
        self._depths: List[int] = [0]

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @property
    def _scope(self) -> Tuple[Optional[str], Optional[str]]:
        return self._scopes[-1]

    def _loc(self, start: int, end: int) -> SourceLocation:
        return SourceLocation(self.file_id, start, end)

    def _node(self, kind: NodeKind, start: int, end: int, text: str = "",
              verbatim: bool = False, **kwargs) -> DocumentNode:
        lang, region = kwargs.pop('scope', self._scope)
        return DocumentNode(
            kind=kind,
            location=self._loc(start, end),
            text=text,
            verbatim=verbatim,
            lang=lang,
            region=region,
            **kwargs
        )

    def _peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        return self.text[i] if 0 <= i < len(self.text) else ''

    def _at_line_start(self) -> bool:
        line_begin = self.text.rfind('\n', 0, self.pos) + 1
        return self.text[line_begin:self.pos].strip() == ''

    def _rstrip_pos(self, start: int, end: int) -> int:
        while end > start and self.text[end - 1] in _WHITESPACE:
            end -= 1
        return end

    def _skip_balanced(self, pos: int, open_ch: str, close_ch: str) -> int:
        """Return the index just past the bracket matching ``text[pos]``."""
        depth = 0
        i = pos
        while i < len(self.text):
            ch = self.text[i]
            if ch == '"':
                m = _STRING_RE.match(self.text, i)
                if m:
                    i = m.end()
                    continue
            elif ch == '\\':
                i += 2
                continue
            elif ch == open_ch:
                depth += 1
            elif ch == close_ch:
                depth -= 1
                if depth == 0:
                    return i + 1
            i += 1
        return len(self.text)

    def _find_closer(self, ch: str, start: int) -> int:
        """Find an unescaped ``ch`` before the next blank line."""
        i = start
        while i < len(self.text):
            c = self.text[i]
            if c == '\\':
                i += 2
                continue
            if c == ch:
                return i
            if c == '\n':
                j = i + 1
                while j < len(self.text) and self.text[j] in ' \t\r':
                    j += 1
                if j < len(self.text) and self.text[j] == '\n':
                    return -1
            i += 1
        return -1

    def _is_inert(self, i: int, stop: Optional[str]) -> bool:
        """True when a special character at ``i`` is plain text."""
        ch = self.text[i]
        nxt = self.text[i + 1] if i + 1 < len(self.text) else ''
        prev = self.text[i - 1] if i > 0 else ''
        if ch == stop:
            return False
        if ch == '/':
            return nxt not in ('/', '*')
        if ch == '*':
            return self._find_closer('*', i + 1) < 0
        if ch == '_':
            return prev.isalnum() or self._find_closer('_', i + 1) < 0
        if ch == '@':
            return prev.isalnum() or not _CITE_RE.match(self.text, i)
        if ch == '#':
            return not _IDENT_RE.match(self.text, i + 1)
        if ch == '<':
            return not _LABEL_RE.match(self.text, i)
        if ch == '$':
            return self._find_closer('$', i + 1) < 0
        if ch == '`':
            return self.text.find('`', i + 1) < 0
        return False

    # ------------------------------------------------------------------
    # blocks
    # ------------------------------------------------------------------

    def parse_blocks(self, stop: Optional[str] = None) -> List[DocumentNode]:
        nodes: List[DocumentNode] = []
        while self.pos < len(self.text):
            while self.pos < len(self.text) and self.text[self.pos] in _WHITESPACE:
                self.pos += 1
            if self.pos >= len(self.text):
                break
            if stop and self.text[self.pos] == stop:
                break

            before = self.pos
            if self._at_line_start():
                heading = _HEADING_RE.match(self.text, self.pos)
                if heading:
                    nodes.append(self._parse_line_block(NodeKind.HEADING, heading, stop))
                    continue
                item = _LIST_RE.match(self.text, self.pos)
                if item:
                    nodes.append(self._parse_line_block(NodeKind.LIST_ITEM, item, stop))
                    continue

            paragraph = self._parse_paragraph(stop)
            if paragraph is not None:
                nodes.append(paragraph)
            if self.pos == before:
                # Nothing consumed, skip the offending character
                self.pos += 1
        return nodes

    def _parse_line_block(self, kind: NodeKind, marker, stop: Optional[str]) -> DocumentNode:
        start = self.pos
        scope = self._scope
        self.pos = marker.end()
        children = _strip_spaces(self._parse_inline(_LINE, stop))
        end = self._rstrip_pos(start, self.pos)
        level = len(marker.group(1)) if kind == NodeKind.HEADING else 0
        return self._node(kind, start, end, children=children, level=level, scope=scope)

    def _parse_paragraph(self, stop: Optional[str]) -> Optional[DocumentNode]:
        start = self.pos
        scope = self._scope
        children = _strip_spaces(self._parse_inline(_PARAGRAPH, stop))
        if not children:
            return None
        if len(children) == 1 and children[0].kind in _STANDALONE:
            return children[0]
        end = self._rstrip_pos(start, self.pos)
        return self._node(NodeKind.PARAGRAPH, start, end, children=children, scope=scope)

    # ------------------------------------------------------------------
    # inline content
    # ------------------------------------------------------------------

    def _ends_at_whitespace(self, mode: str) -> bool:
        j = self.pos
        newlines = 0
        while j < len(self.text) and self.text[j] in _WHITESPACE:
            if self.text[j] == '\n':
                newlines += 1
            j += 1
        if j >= len(self.text):
            return True
        if mode == _LINE:
            return newlines > 0
        if mode == _PARAGRAPH:
            if newlines >= 2:
                return True
            if newlines == 1:
                return bool(
                    _HEADING_RE.match(self.text, j)
                    or _LIST_RE.match(self.text, j)
                    or self.text.startswith('```', j)
                )
        return False

    def _parse_inline(self, mode: str, stop: Optional[str] = None) -> List[DocumentNode]:
        nodes: List[DocumentNode] = []
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if stop and ch == stop and not (stop == ']' and self._depths[-1] > 0):
                break
            if ch in _WHITESPACE:
                if self._ends_at_whitespace(mode):
                    break
                nodes.append(self._parse_space())
                continue
            if ch in _SPECIAL and not self._is_inert(self.pos, stop):
                nodes.extend(self._parse_special(ch, mode))
                continue
            nodes.append(self._parse_text(stop))
        return nodes

    def _parse_special(self, ch: str, mode: str) -> List[DocumentNode]:
        if ch == '\\':
            return [self._parse_escape()]
        if ch == '/':
            self._skip_comment()
            return []
        if ch == '$':
            return [self._parse_math()]
        if ch == '`':
            return [self._parse_raw()]
        if ch in '*_':
            return [self._parse_markup(ch, mode)]
        if ch == '@':
            return [self._parse_citation()]
        if ch == '<':
            self.pos = _LABEL_RE.match(self.text, self.pos).end()
            return []
        return self._parse_hash()

    def _parse_space(self) -> DocumentNode:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] in _WHITESPACE:
            self.pos += 1
        run = self.text[start:self.pos]
        return self._node(NodeKind.SPACE, start, self.pos, text=' ', verbatim=(run == ' '))

    def _parse_text(self, stop: Optional[str]) -> DocumentNode:
        start = self.pos
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch in _WHITESPACE:
                break
            if ch == '[':
                self._depths[-1] += 1
            elif ch == ']':
                if self._depths[-1] == 0 and stop == ']':
                    break
                self._depths[-1] = max(0, self._depths[-1] - 1)
            elif stop and ch == stop and self.pos > start:
                break
            elif ch in _SPECIAL and self.pos > start and not self._is_inert(self.pos, stop):
                break
            self.pos += 1
        if self.pos == start:
            self.pos += 1
        return self._node(NodeKind.TEXT, start, self.pos, text=self.text[start:self.pos], verbatim=True)

    def _parse_escape(self) -> DocumentNode:
        start = self.pos
        nxt = self._peek(1)
        if nxt == '' or nxt in _WHITESPACE:
            self.pos += 1
            return self._node(NodeKind.LINEBREAK, start, self.pos, text=' ')
        self.pos += 2
        return self._node(NodeKind.TEXT, start, self.pos, text=nxt)

    def _skip_comment(self):
        if self._peek(1) == '/':
            end = self.text.find('\n', self.pos)
            self.pos = len(self.text) if end < 0 else end
        else:
            end = self.text.find('*/', self.pos + 2)
            self.pos = len(self.text) if end < 0 else end + 2

    def _parse_math(self) -> DocumentNode:
        start = self.pos
        close = self._find_closer('$', start + 1)
        content = self.text[start + 1:close]
        self.pos = close + 1
        is_block = (
            len(content) >= 2
            and content[0] in _WHITESPACE
            and content[-1] in _WHITESPACE
        )
        kind = NodeKind.MATH_BLOCK if is_block else NodeKind.MATH_INLINE
        return self._node(kind, start, self.pos, text=content.strip())

    def _parse_raw(self) -> DocumentNode:
        start = self.pos
        if self.text.startswith('```', start):
            close = self.text.find('```', start + 3)
            close = len(self.text) if close < 0 else close
            body = self.text[start + 3:close]
            # Drop the language tag line
            newline = body.find('\n')
            if newline >= 0 and body[:newline].strip().isidentifier():
                body = body[newline + 1:]
            self.pos = min(len(self.text), close + 3)
            return self._node(NodeKind.RAW_BLOCK, start, self.pos, text=body.strip('\n'))
        close = self.text.find('`', start + 1)
        self.pos = close + 1
        return self._node(NodeKind.RAW_INLINE, start, self.pos, text=self.text[start + 1:close])

    def _parse_markup(self, ch: str, mode: str) -> DocumentNode:
        start = self.pos
        scope = self._scope
        self.pos += 1
        children = self._parse_inline(mode, stop=ch)
        if self._peek() == ch:
            self.pos += 1
        kind = NodeKind.STRONG if ch == '*' else NodeKind.EMPH
        return self._node(kind, start, self.pos, children=children, scope=scope)

    def _parse_citation(self) -> DocumentNode:
        start = self.pos
        m = _CITE_RE.match(self.text, start)
        key = m.group(1).rstrip('.:')
        self.pos = start + 1 + len(key)
        return self._node(NodeKind.CITATION, start, self.pos, text=self.text[start:self.pos], verbatim=True)

    # ------------------------------------------------------------------
    # function calls
    # ------------------------------------------------------------------

    def _skip_spaces(self):
        while self.pos < len(self.text) and self.text[self.pos] in ' \t':
            self.pos += 1

    def _read_args(self) -> str:
        """Consume an optional ``(...)`` argument list and return its text."""
        if self._peek() != '(':
            return ''
        end = self._skip_balanced(self.pos, '(', ')')
        args = self.text[self.pos + 1:end - 1]
        self.pos = end
        return args

    def _read_content(self, as_blocks: bool = False) -> Optional[List[DocumentNode]]:
        """Consume an optional ``[...]`` content block; set rules inside end with it."""
        if self._peek() != '[':
            return None
        self.pos += 1
        self._depths.append(0)
        self._scopes.append(self._scope)
        try:
            if as_blocks:
                children = self.parse_blocks(stop=']')
            else:
                children = _strip_spaces(self._parse_inline(_BRACKET, stop=']'))
        finally:
            self._scopes.pop()
            self._depths.pop()
        if self._peek() == ']':
            self.pos += 1
        return children

    def _parse_hash(self) -> List[DocumentNode]:
        start = self.pos
        ident = _IDENT_RE.match(self.text, start + 1)
        name = ident.group(0)
        self.pos = ident.end()

        if name == 'set':
            self._parse_set_rule()
            return []
        if name in _LINE_RULES:
            end = self.text.find('\n', self.pos)
            self.pos = len(self.text) if end < 0 else end
            return []
        if name == 'include':
            return self._parse_include(start)
        if name == 'text':
            return [self._parse_text_call(start)]
        if name in ('strong', 'emph'):
            scope = self._scope
            self._read_args()
            children = self._read_content() or []
            kind = NodeKind.STRONG if name == 'strong' else NodeKind.EMPH
            return [self._node(kind, start, self.pos, children=children, scope=scope)]
        if name == 'block':
            scope = self._scope
            self._read_args()
            children = self._read_content(as_blocks=True) or []
            return [self._node(NodeKind.BLOCK, start, self.pos, children=children, scope=scope)]

        simple = {
            'pagebreak': NodeKind.PAGEBREAK,
            'linebreak': NodeKind.LINEBREAK,
            'parbreak': NodeKind.PARBREAK,
            'bibliography': NodeKind.BIBLIOGRAPHY,
            'cite': NodeKind.CITATION,
        }
        if name in simple:
            self._read_args()
            kind = simple[name]
            text = ' ' if kind == NodeKind.LINEBREAK else self.text[start:self.pos]
            if kind in (NodeKind.PAGEBREAK, NodeKind.PARBREAK, NodeKind.BIBLIOGRAPHY):
                text = ''
            return [self._node(kind, start, self.pos, text=text, verbatim=(kind == NodeKind.CITATION))]

        # Layout code: skip arguments and trailing content blocks
        self._read_args()
        while self._peek() == '[':
            self.pos = self._skip_balanced(self.pos, '[', ']')
        return []

    def _parse_set_rule(self):
        self._skip_spaces()
        target = _IDENT_RE.match(self.text, self.pos)
        if not target:
            return
        self.pos = target.end()
        args = self._read_args()
        if target.group(0) != 'text':
            return
        lang, region = _language_args(args)
        if lang is None and region is None:
            return
        current_lang, current_region = self._scope
        if lang is not None:
            self._scopes[-1] = (lang, region)
        else:
            self._scopes[-1] = (current_lang, region)

    def _parse_text_call(self, start: int) -> DocumentNode:
        args = self._read_args()
        lang, region = _language_args(args)
        outer_lang, outer_region = self._scope
        if lang is not None:
            scope = (lang, region)
        elif region is not None:
            scope = (outer_lang, region)
        else:
            scope = (outer_lang, outer_region)

        self._scopes.append(scope)
        try:
            children = self._read_content() or []
        finally:
            self._scopes.pop()
        return self._node(NodeKind.LANG, start, self.pos, children=children, scope=scope)

    def _parse_include(self, start: int) -> List[DocumentNode]:
        self._skip_spaces()
        m = _STRING_RE.match(self.text, self.pos)
        if not m:
            return []
        self.pos = m.end()
        at = self._loc(start, self.pos)
        scope = self._scope
        document = self.reader.include(self.file_id, m.group(1), at, scope)
        children = document.children if document is not None else []
        return [self._node(NodeKind.INCLUDE, start, self.pos, children=children, scope=scope)]


def _language_args(args: str) -> Tuple[Optional[str], Optional[str]]:
    lang_match = _LANG_ARG_RE.search(args)
    region_match = _REGION_ARG_RE.search(args)
    lang = region = None
    if lang_match:
        lang, region = split_language_tag(lang_match.group(1))
    if region_match:
        region = region_match.group(1).upper() or None
    return lang, region


def _strip_spaces(nodes: List[DocumentNode]) -> List[DocumentNode]:
    """Remove leading/trailing whitespace nodes."""
    start, end = 0, len(nodes)
    while start < end and nodes[start].kind == NodeKind.SPACE:
        start += 1
    while end > start and nodes[end - 1].kind == NodeKind.SPACE:
        end -= 1
    return nodes[start:end]
