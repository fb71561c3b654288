"""
Extraction
==========
Style transform, coordinate map and the extractor that turns a document tree
into per-language checkable texts.
"""

from .coordinate_map import CoordinateMap, MapEntry, merge_locations
from .style import CheckableSegment, Effect, Rule, RuleTable, transform
from .extractor import (
    SEPARATOR,
    SUPPORTED_LANGUAGES,
    CheckableText,
    ExtractionResult,
    Extractor,
    LanguageResolver,
)

__version__ = "1.0.0"
__all__ = [
    'CoordinateMap',
    'MapEntry',
    'merge_locations',
    'CheckableSegment',
    'Effect',
    'Rule',
    'RuleTable',
    'transform',
    'SEPARATOR',
    'SUPPORTED_LANGUAGES',
    'CheckableText',
    'ExtractionResult',
    'Extractor',
    'LanguageResolver',
]
