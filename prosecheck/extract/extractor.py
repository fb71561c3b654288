"""
Extractor
=========
Drives the style transform over a whole document tree and emits one flat
checkable text (with its coordinate map) per (language, region) pair.

Text of the same language from non-contiguous parts of the document is
joined with a separator that maps to no source location.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..base import UNRESOLVED_PROFILE, ExtractionWarning, LanguageProfile
from ..config_logging import get_logger
from ..document.reader import split_language_tag
from ..document.tree import DocumentNode
from .coordinate_map import CoordinateMap
from .style import CheckableSegment, RuleTable, transform

__version__ = "1.0.0"

logger = get_logger(__name__)

SEPARATOR = "\n\n"
DEFAULT_LANGUAGE = ("en", None)

# Language codes the LanguageTool service can check
SUPPORTED_LANGUAGES = frozenset({
    'ar', 'ast', 'be', 'br', 'ca', 'crh', 'da', 'de', 'el', 'en', 'eo', 'es',
    'fa', 'fr', 'ga', 'gl', 'it', 'ja', 'km', 'nl', 'pl', 'pt', 'ro', 'ru',
    'sk', 'sl', 'sv', 'ta', 'tl', 'uk', 'zh',
})


class LanguageResolver:
    """
    Builds LanguageProfiles from configuration.

    Args:
        preferences: Ordered language tags (``["de-DE", "en-GB"]``); the first
            one whose code matches provides the region of nodes without one
        dictionary: Allowed words keyed by language code or full tag
        disabled_checks: Disabled rule ids keyed by language code or full tag
        supported: Language codes considered resolvable
    """

    def __init__(
        self,
        preferences: Sequence[str] = (),
        dictionary: Optional[Mapping[str, Iterable[str]]] = None,
        disabled_checks: Optional[Mapping[str, Iterable[str]]] = None,
        supported: Iterable[str] = SUPPORTED_LANGUAGES
    ):
        self._preferences: List[Tuple[str, Optional[str]]] = [
            split_language_tag(tag) for tag in preferences if tag
        ]
        self._dictionary = {key.lower(): set(words) for key, words in (dictionary or {}).items()}
        self._disabled = {key.lower(): set(rules) for key, rules in (disabled_checks or {}).items()}
        self._supported = frozenset(code.lower() for code in supported)
        self._cache: Dict[Tuple[str, Optional[str]], LanguageProfile] = {}

    def region_for(self, code: str) -> Optional[str]:
        for pref_code, pref_region in self._preferences:
            if pref_code == code:
                return pref_region
        return None

    def profile(self, code: str, region: Optional[str] = None) -> LanguageProfile:
        """Profile for a node's language; the unresolved sentinel for unknown codes."""
        code = (code or '').lower()
        if code not in self._supported:
            return UNRESOLVED_PROFILE

        region = region.upper() if region else self.region_for(code)
        key = (code, region)
        if key not in self._cache:
            lookup = [code]
            if region:
                lookup.append(f"{code}-{region}".lower())
            self._cache[key] = LanguageProfile(
                code=code,
                region=region,
                dictionary=frozenset(w for k in lookup for w in self._dictionary.get(k, ())),
                disabled_rules=frozenset(r for k in lookup for r in self._disabled.get(k, ())),
            )
        return self._cache[key]


@dataclass
class CheckableText:
    """
    Flattened text for one language plus its coordinate map.

    ``page_breaks`` are offsets in ``text`` where a paginated heading starts
    a new page.
    """
    profile: LanguageProfile
    text: str
    coordinate_map: CoordinateMap
    segments: List[CheckableSegment] = field(default_factory=list)
    page_breaks: List[int] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return self.profile.key


@dataclass
class ExtractionResult:
    """Everything one extraction pass produced."""
    texts: List[CheckableText] = field(default_factory=list)
    segments: List[CheckableSegment] = field(default_factory=list)
    warnings: List[ExtractionWarning] = field(default_factory=list)

    def text_for(self, code: str, region: Optional[str] = None) -> Optional[CheckableText]:
        for text in self.texts:
            if text.profile.code == code and (region is None or text.profile.region == region):
                return text
        return None


class _TextBuilder:
    """Accumulates the text and map of one language key."""

    def __init__(self, profile: LanguageProfile):
        self.profile = profile
        self.parts: List[str] = []
        self.map = CoordinateMap()
        self.segments: List[CheckableSegment] = []
        self.pending_separator = False
        self.pending_page_break = False
        self.page_breaks: List[int] = []
        self._last_char = ''

    def append(self, segment: CheckableSegment):
        blank = segment.text.isspace()
        if self.pending_separator and self.map.end:
            if blank:
                return
            self.parts.append(SEPARATOR)
            self.map.add_separator(len(SEPARATOR))
            self._last_char = SEPARATOR[-1]
            if self.pending_page_break:
                self.page_breaks.append(self.map.end)
        self.pending_separator = False
        self.pending_page_break = False

        # Whitespace never starts a text and never doubles up
        if blank and (not self.map.end or self._last_char.isspace()):
            return

        self.map.add(len(segment.text), segment.location,
                     exact=segment.exact, placeholder=segment.placeholder)
        self.parts.append(segment.text)
        self.segments.append(segment)
        self._last_char = segment.text[-1]

    def build(self) -> CheckableText:
        return CheckableText(
            profile=self.profile,
            text=''.join(self.parts),
            coordinate_map=self.map,
            segments=self.segments,
            page_breaks=self.page_breaks,
        )


class Extractor:
    """
    Produces per-language checkable texts from a document tree.

    Pure: extracting the same tree twice gives identical results.
    """

    def __init__(self, table: RuleTable, resolver: LanguageResolver,
                 default_language: Tuple[str, Optional[str]] = DEFAULT_LANGUAGE):
        self.table = table
        self.resolver = resolver
        self.default_language = default_language

    def extract(self, root: DocumentNode) -> ExtractionResult:
        result = ExtractionResult()
        builders: Dict[Tuple[str, Optional[str]], _TextBuilder] = {}
        last: Optional[_TextBuilder] = None
        unresolved: Set[str] = set()

        for segment in transform(root, self.table, self.default_language):
            if segment.separator:
                for builder in builders.values():
                    builder.pending_separator = True
                    builder.pending_page_break |= segment.page_break
                continue

            profile = self.resolver.profile(segment.language, segment.region)
            if not profile.resolved and segment.language not in unresolved:
                unresolved.add(segment.language)
                result.warnings.append(ExtractionWarning(
                    kind='unresolved_language',
                    message=f"Unsupported language code {segment.language!r}; text is not checked",
                    location=segment.location,
                ))
                logger.warning(f"Unsupported language code: {segment.language}", language=segment.language)

            builder = builders.get(profile.key)
            if builder is None:
                builder = builders[profile.key] = _TextBuilder(profile)
            if last is not None and last is not builder:
                builder.pending_separator = True
            builder.append(segment)
            last = builder
            result.segments.append(segment)

        result.texts = [builder.build() for builder in builders.values() if builder.map.end]
        return result
