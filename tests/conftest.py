"""
Shared fixtures: in-memory documents, a scripted checking backend, a
stand-in for language_tool_python and a manual clock.
"""

import re
from typing import Dict, List

import pytest
from language_tool_python.match import Match as ToolMatch

from prosecheck.base import LanguageProfile, Match
from prosecheck.config_logging import BackendConnectionError
from prosecheck.document.reader import MarkupReader
from prosecheck.languagetool.backends import Backend


class FakeBackend(Backend):
    """Reports every occurrence of a listed word, like a tiny speller."""

    name = "fake"

    def __init__(self, words: Dict[str, str] = None):
        super().__init__()
        # word -> replacement
        self.words = words if words is not None else {'teh': 'the'}
        self.calls: List[tuple] = []
        self.failing = set()
        # language code -> exception raised instead of checking
        self.errors: Dict[str, Exception] = {}
        self.closed = False

    def _check(self, text: str, profile: LanguageProfile) -> List[Match]:
        self.calls.append((profile.tag, text))
        if profile.code in self.failing:
            raise BackendConnectionError(f"{profile.tag} unavailable")
        if profile.code in self.errors:
            raise self.errors[profile.code]
        matches = []
        for word, replacement in self.words.items():
            for m in re.finditer(rf'\b{re.escape(word)}\b', text):
                matches.append(Match(
                    offset=m.start(),
                    length=len(word),
                    rule_id='FAKE_SPELLER_RULE',
                    message=f"Possible spelling mistake: {word}",
                    replacements=[replacement],
                    category='TYPOS',
                    issue_type='misspelling',
                ))
        return matches

    def close(self):
        self.closed = True


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def read_markup():
    """Parse in-memory files: read_markup({'main.typ': '...'}) -> (tree, warnings)."""
    def _read(files: Dict[str, str], main: str = 'main.typ'):
        reader = MarkupReader(files.get)
        return reader.read(main)
    return _read


def tool_match_payload(text: str, offset: int, length: int, rule_id: str = 'MORFOLOGIK_RULE_EN_US',
                       replacements=('the',)) -> dict:
    """A /v2/check match as the LanguageTool server returns it."""
    return {
        'message': 'Possible spelling mistake found.',
        'shortMessage': 'Spelling mistake',
        'replacements': [{'value': r} for r in replacements],
        'offset': offset,
        'length': length,
        'context': {'text': text, 'offset': offset, 'length': length},
        'sentence': text,
        'type': {'typeName': 'UnknownWord'},
        'rule': {
            'id': rule_id,
            'description': 'Possible spelling mistake',
            'issueType': 'misspelling',
            'category': {'id': 'TYPOS', 'name': 'Possible Typo'},
        },
        'ignoreForIncompleteResults': False,
        'contextForSureMatch': 0,
    }


class FakeLanguageTool:
    """
    Stands in for ``language_tool_python.LanguageTool``.

    Reports every "teh" as a library ``Match``; ``errors`` maps a language
    tag to the exception its checks raise.
    """

    def __init__(self, language: str = "en-US"):
        self.language = language
        self.disabled_rules = set()
        self.requests: List[tuple] = []
        self.errors: Dict[str, Exception] = {}
        self.closed = False

    def check(self, text: str):
        self.requests.append((self.language, set(self.disabled_rules), text))
        if self.language in self.errors:
            raise self.errors[self.language]
        return [
            ToolMatch(tool_match_payload(text, m.start(), 3), text)
            for m in re.finditer(r'\bteh\b', text)
        ]

    def close(self):
        self.closed = True


@pytest.fixture
def language_tool() -> FakeLanguageTool:
    return FakeLanguageTool()
