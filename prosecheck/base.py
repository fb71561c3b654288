"""
ProseCheck Base Types
=====================
Data classes shared by every pipeline stage: source locations, backend
matches, source diagnostics, language profiles and extraction warnings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

__version__ = "1.0.0"


@dataclass(frozen=True, order=True)
class SourceLocation:
    """
    A contiguous range in one source file.

    Offsets are half-open character (code point) offsets into the decoded
    source text of the file identified by ``file_id``.
    """
    file_id: str
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid source range {self.start}..{self.end}")

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        return {'file_id': self.file_id, 'start': self.start, 'end': self.end}


@dataclass
class Match:
    """
    A finding returned by a checking backend.

    ``offset``/``length`` are relative to the text that was sent (chunk-local)
    until the session translates them to checkable-text coordinates.
    """
    offset: int
    length: int
    rule_id: str
    message: str
    replacements: List[str] = field(default_factory=list)
    category: str = ""
    issue_type: str = ""

    @property
    def end(self) -> int:
        return self.offset + self.length

    def shifted(self, delta: int) -> 'Match':
        """Return a copy moved by ``delta`` characters."""
        return Match(
            offset=self.offset + delta,
            length=self.length,
            rule_id=self.rule_id,
            message=self.message,
            replacements=list(self.replacements),
            category=self.category,
            issue_type=self.issue_type,
        )


@dataclass
class Diagnostic:
    """A match translated to an absolute source location."""
    location: SourceLocation
    rule_id: str
    message: str
    replacements: List[str] = field(default_factory=list)
    severity: str = "information"
    language: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'location': self.location.to_dict(),
            'rule_id': self.rule_id,
            'message': self.message,
            'replacements': list(self.replacements),
            'severity': self.severity,
            'language': self.language,
        }


@dataclass(frozen=True)
class LanguageProfile:
    """
    Per-language checking settings, looked up per segment.

    ``resolved`` is False only for the sentinel used for language codes the
    checking service does not know.
    """
    code: str
    region: Optional[str] = None
    dictionary: FrozenSet[str] = frozenset()
    disabled_rules: FrozenSet[str] = frozenset()
    resolved: bool = True

    @property
    def tag(self) -> str:
        """Language tag sent to the backend (``de-DE`` or ``de``)."""
        if self.region:
            return f"{self.code}-{self.region}"
        return self.code

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return (self.code, self.region)


UNRESOLVED_PROFILE = LanguageProfile(code="und", resolved=False)


@dataclass
class ExtractionWarning:
    """Non-fatal problem found while extracting checkable text."""
    kind: str  # 'unresolved_language', 'missing_include', 'include_cycle', 'compile'
    message: str
    location: Optional[SourceLocation] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'message': self.message,
            'location': self.location.to_dict() if self.location else None,
        }


class CheckStatus(Enum):
    """Coarse status signal for the document currently processed."""
    IDLE = "idle"
    CHECKING = "checking"
    ERROR = "error"
