"""
LanguageTool HTTP Client
========================
Talks to a LanguageTool server over its HTTP API (``/v2/check``).

Used both for remote servers and for the server process started from a
local JAR. LanguageTool reports offsets in UTF-16 code units; they are
converted to Python string offsets before matches leave this module.

Requires: pip install requests
"""

import bisect
from typing import Any, Dict, Iterable, List, Optional

import requests

from ..base import Match
from ..config_logging import BackendConnectionError, get_logger
from .retry import RetryPolicy

__version__ = "1.0.0"

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


class Utf16Index:
    """Converts UTF-16 code unit offsets of a string to code point offsets."""

    def __init__(self, text: str):
        self._starts: List[int] = []
        units = 0
        for ch in text:
            self._starts.append(units)
            units += 2 if ord(ch) > 0xFFFF else 1
        self._starts.append(units)
        self.identity = units == len(text)

    def to_index(self, units: int, round_up: bool = False) -> int:
        """
        Code point offset for ``units``.

        An offset that falls inside a surrogate pair is rounded down, or up
        when ``round_up`` is set.
        """
        last = len(self._starts) - 1
        if units >= self._starts[last]:
            return last
        if self.identity:
            return max(0, units)
        i = bisect.bisect_left(self._starts, units)
        if self._starts[i] == units:
            return i
        return i if round_up else i - 1


def parse_matches(payload: Dict[str, Any], text: str) -> List[Match]:
    """
    Convert a ``/v2/check`` response body to Match objects.

    Args:
        payload: Decoded JSON response
        text: The text that was checked

    Returns:
        List of Match objects with code point offsets
    """
    index = Utf16Index(text)
    matches = []
    for item in payload.get('matches', []):
        rule = item.get('rule') or {}
        category = rule.get('category') or {}
        start_units = int(item.get('offset', 0))
        end_units = start_units + int(item.get('length', 0))
        start = index.to_index(start_units)
        end = index.to_index(end_units, round_up=True)

        matches.append(Match(
            offset=start,
            length=max(0, end - start),
            rule_id=rule.get('id', ''),
            message=item.get('message', ''),
            replacements=[r['value'] for r in item.get('replacements', []) if r.get('value') is not None],
            category=category.get('id', ''),
            issue_type=rule.get('issueType', ''),
        ))
    return matches


class LanguageToolHttpClient:
    """
    Minimal LanguageTool HTTP API client.

    Connection errors and timeouts are retried according to ``retry``; when
    all attempts fail a BackendConnectionError is raised.
    """

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT,
                 retry: Optional[RetryPolicy] = None,
                 session: Optional[requests.Session] = None):
        """
        Args:
            base_url: Server URL without the API path (``http://localhost:8081``)
            timeout: Per-request timeout in seconds
            retry: Retry policy for connection errors and timeouts
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self.session = session or requests.Session()
        self.session.headers.setdefault('Accept', 'application/json')

    def check(self, text: str, language: str,
              disabled_rules: Iterable[str] = ()) -> List[Match]:
        """
        Check ``text`` in ``language``.

        Args:
            text: Text to check
            language: Language tag (``en-US``, ``de``)
            disabled_rules: Rule ids the server should skip

        Returns:
            List of Match objects, offsets relative to ``text``
        """
        data = {'text': text, 'language': language}
        disabled = sorted(disabled_rules)
        if disabled:
            data['disabledRules'] = ','.join(disabled)

        response = self._request('post', '/v2/check', data=data)
        try:
            payload = response.json()
        except ValueError as e:
            raise BackendConnectionError(f"Invalid response from {self.base_url}: {e}")
        return parse_matches(payload, text)

    def is_ready(self) -> bool:
        """True when the server answers its languages endpoint."""
        try:
            response = self.session.get(f"{self.base_url}/v2/languages", timeout=min(self.timeout, 5.0))
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def _request(self, method: str, path: str, attempts: Optional[int] = None, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        attempts = attempts or self.retry.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.exceptions.Timeout as e:
                last_error = e
                logger.warning(f"Request timed out ({attempt}/{attempts}): {url}", url=url, attempt=attempt)
            except requests.exceptions.ConnectionError as e:
                last_error = e
                logger.warning(f"Connection failed ({attempt}/{attempts}): {url}", url=url, attempt=attempt)
            else:
                if response.status_code != 200:
                    raise BackendConnectionError(
                        f"LanguageTool returned HTTP {response.status_code}: {response.text[:200]}",
                        attempts=attempt, status_code=response.status_code,
                    )
                return response

            if attempt < attempts:
                self.retry.wait(attempt)

        raise BackendConnectionError(
            f"LanguageTool server unreachable at {self.base_url}: {last_error}",
            attempts=attempts,
        )

    def close(self):
        self.session.close()
