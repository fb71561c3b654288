"""
Check Session
=============
One complete check cycle over a workspace:

snapshot -> read markup -> extract -> chunk -> backend -> map -> report

Per-language backend calls run concurrently. Backend results are cached by
chunk text so that unchanged parts of a document are not sent again. A
language whose backend call fails keeps the diagnostics of the previous
run. Configuration changes take effect at the start of the next run.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import CheckStatus, Diagnostic, ExtractionWarning, LanguageProfile, Match
from .chunker import Chunker, hard_split_offsets
from .config import ProseCheckConfig
from .config_logging import (
    ConfigurationError,
    LaunchError,
    ProseCheckError,
    StructuredLogger,
    get_logger,
)
from .document.tree import SourceFile
from .document.workspace import Snapshot, Workspace
from .extract.extractor import CheckableText, Extractor, LanguageResolver
from .extract.style import RuleTable
from .languagetool.backends import Backend, BackendConfig, create_backend
from .mapper import ResultMapper, translate_matches

__version__ = "1.0.0"

logger = get_logger(__name__)

CacheKey = Tuple[str, Tuple[str, ...], str]


@dataclass
class LanguageResult:
    """Outcome of checking one language."""
    profile: LanguageProfile
    diagnostics: List[Diagnostic] = field(default_factory=list)
    chunks: int = 0
    backend_calls: int = 0
    error: Optional[str] = None
    stale: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'language': self.profile.tag,
            'diagnostics': len(self.diagnostics),
            'chunks': self.chunks,
            'backend_calls': self.backend_calls,
            'error': self.error,
            'stale': self.stale,
        }


@dataclass
class CheckReport:
    """Result of one run, ready to publish."""
    run_id: int
    status: CheckStatus
    diagnostics: Dict[str, List[Diagnostic]] = field(default_factory=dict)
    languages: Dict[str, LanguageResult] = field(default_factory=dict)
    warnings: List[ExtractionWarning] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    duration_ms: float = 0.0
    sources: Dict[str, SourceFile] = field(default_factory=dict, repr=False)

    @property
    def all_diagnostics(self) -> List[Diagnostic]:
        return [d for file_id in sorted(self.diagnostics) for d in self.diagnostics[file_id]]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'run_id': self.run_id,
            'status': self.status.value,
            'diagnostics': {
                file_id: [d.to_dict() for d in diagnostics]
                for file_id, diagnostics in self.diagnostics.items()
            },
            'languages': {tag: result.to_dict() for tag, result in self.languages.items()},
            'warnings': [w.to_dict() for w in self.warnings],
            'errors': list(self.errors),
            'duration_ms': self.duration_ms,
        }


class _Pipeline:
    """Everything derived from one configuration."""

    def __init__(self, config: ProseCheckConfig):
        self.config = config
        self.backend_config: Optional[BackendConfig] = None
        self.backend_error: Optional[ConfigurationError] = None
        try:
            self.backend_config = config.backend_config()
        except ConfigurationError as e:
            self.backend_error = e
        self.table = RuleTable.resolve(config.spellcheck, config.rules, config.paginate_level)
        self.resolver = LanguageResolver(config.languages, config.dictionary, config.disabled_checks)
        self.extractor = Extractor(self.table, self.resolver)
        self.chunker = Chunker(config.chunk_size, config.lookback, config.boundary_window)
        self.mapper = ResultMapper(self.table.placeholder_tokens, config.dictionary_case_sensitive)


class CheckSession:
    """
    Runs check cycles for one workspace.

    Args:
        workspace: Project files (with editor shadows)
        config: Initial configuration
        backend_factory: Builds a backend from a BackendConfig (injectable)
        max_workers: Concurrent per-language backend calls
    """

    def __init__(self, workspace: Workspace, config: ProseCheckConfig,
                 backend_factory: Optional[Callable[[BackendConfig, str], Backend]] = None,
                 max_workers: int = 4):
        self.workspace = workspace
        self._factory = backend_factory or create_backend
        self._max_workers = max(1, max_workers)
        self._run_lock = threading.Lock()
        self._cache_lock = threading.Lock()
        self._config_lock = threading.Lock()

        self._pending_config: Optional[ProseCheckConfig] = None
        self._pipeline = _Pipeline(config)
        self._backend: Optional[Backend] = None
        self._launch_failed: Optional[str] = None

        self._cache: Dict[CacheKey, List[Match]] = {}
        self._next_cache: Dict[CacheKey, List[Match]] = {}
        self._previous: Dict[Tuple[str, Optional[str]], List[Diagnostic]] = {}
        self._published_files: set = set()
        self._runs = 0
        self.status = CheckStatus.IDLE

    @property
    def config(self) -> ProseCheckConfig:
        return self._pipeline.config

    @property
    def backend(self) -> Optional[Backend]:
        return self._backend

    def update_config(self, config: ProseCheckConfig):
        """Replace the configuration; applied when the next run starts."""
        with self._config_lock:
            self._pending_config = config

    def _apply_pending_config(self):
        with self._config_lock:
            config, self._pending_config = self._pending_config, None
        if config is None:
            return

        pipeline = _Pipeline(config)
        if pipeline.backend_config != self._pipeline.backend_config and self._backend is not None:
            logger.info("Backend configuration changed; replacing backend")
            self._backend.close()
            self._backend = None
        self._launch_failed = None
        self._cache.clear()
        self._pipeline = pipeline

        if config.main:
            self.workspace.update(config.main, config.root)
        elif config.root:
            self.workspace.update(self.workspace.main, config.root)

    def _ensure_backend(self) -> Backend:
        if self._pipeline.backend_error is not None:
            raise self._pipeline.backend_error
        if self._launch_failed is not None:
            raise LaunchError(self._launch_failed)
        if self._backend is None:
            self._backend = self._factory(self._pipeline.backend_config,
                                          self.config.default_language_tag())
        return self._backend

    def run(self) -> CheckReport:
        """Run one full check cycle. Runs never overlap."""
        with self._run_lock:
            self._runs += 1
            StructuredLogger.new_correlation_id()
            self.status = CheckStatus.CHECKING
            start = time.time()
            try:
                report = self._run()
            except Exception:
                # keep the previous cache; the status must not stay CHECKING
                self._next_cache = {}
                self.status = CheckStatus.ERROR
                raise
            self._cache, self._next_cache = self._next_cache, {}
            report.duration_ms = round((time.time() - start) * 1000, 2)
            self.status = report.status
            return report

    def _run(self) -> CheckReport:
        self._apply_pending_config()
        pipeline = self._pipeline
        report = CheckReport(run_id=self._runs, status=CheckStatus.IDLE)

        with logger.log_operation("check", run_id=self._runs):
            snapshot = self.workspace.snapshot()
            tree, warnings = snapshot.compile()
            report.warnings.extend(warnings)
            if tree is None:
                report.status = CheckStatus.ERROR
                report.errors.append({'code': 'MAIN_NOT_FOUND',
                                      'message': f"Main file not readable: {snapshot.main_id}"})
                self._next_cache = dict(self._cache)
                return self._finish(report, snapshot)

            extraction = pipeline.extractor.extract(tree)
            report.warnings.extend(extraction.warnings)
            texts = [text for text in extraction.texts if text.profile.resolved]

            try:
                backend = self._ensure_backend()
            except LaunchError as e:
                self._launch_failed = e.message
                return self._fail_all(report, texts, e, snapshot)
            except ConfigurationError as e:
                return self._fail_all(report, texts, e, snapshot)

            results = self._check_texts(backend, texts)

        current = {}
        for text, (result, error) in zip(texts, results):
            if error is not None:
                report.status = CheckStatus.ERROR
                report.errors.append({'language': text.profile.tag, **error.to_dict()['error']})
                if isinstance(error, LaunchError):
                    self._launch_failed = error.message
                result.diagnostics = list(self._previous.get(text.key, []))
                result.error = error.message
                result.stale = True
            current[text.key] = result.diagnostics
            report.languages[text.profile.tag] = result

        self._previous = current
        return self._finish(report, snapshot)

    def _check_texts(self, backend: Backend, texts: List[CheckableText]):
        if len(texts) <= 1 or self._max_workers == 1:
            return [self._check_text_safely(backend, text) for text in texts]
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(texts))) as executor:
            futures = [executor.submit(self._check_text_safely, backend, text) for text in texts]
            return [future.result() for future in futures]

    def _check_text_safely(self, backend: Backend, text: CheckableText):
        result = LanguageResult(profile=text.profile)
        try:
            self._check_text(backend, text, result)
        except ProseCheckError as e:
            logger.error(f"Checking {text.profile.tag} failed: {e.message}", language=text.profile.tag)
            return result, e
        except Exception as e:
            logger.exception(f"Checking {text.profile.tag} failed", language=text.profile.tag)
            return result, ProseCheckError(f"Checking {text.profile.tag} failed: {e}", code="CHECK_ERROR")
        return result, None

    def _check_text(self, backend: Backend, text: CheckableText, result: LanguageResult):
        pipeline = self._pipeline
        profile = text.profile
        chunks = pipeline.chunker.split(text.text, text.page_breaks)
        rules_key = tuple(sorted(profile.disabled_rules))
        matches: List[Match] = []

        for chunk in chunks:
            key = (profile.tag, rules_key, chunk.text)
            with self._cache_lock:
                cached = self._next_cache.get(key, self._cache.get(key))
            if cached is None:
                cached = backend.check(chunk.text, profile)
                result.backend_calls += 1
            with self._cache_lock:
                self._next_cache[key] = cached
            matches.extend(translate_matches(chunk, cached))

        result.chunks = len(chunks)
        result.diagnostics = pipeline.mapper.map(text, matches, hard_split_offsets(chunks))
        logger.debug(f"{profile.tag}: {len(chunks)} chunks, {len(result.diagnostics)} diagnostics",
                     language=profile.tag, count=len(result.diagnostics))

    def _fail_all(self, report: CheckReport, texts: List[CheckableText],
                  error: ProseCheckError, snapshot: Snapshot) -> CheckReport:
        """Backend unavailable: keep every language's previous diagnostics."""
        logger.error(f"Backend unavailable: {error.message}", error_code=error.code)
        report.status = CheckStatus.ERROR
        report.errors.append(error.to_dict()['error'])
        self._next_cache = dict(self._cache)
        for text in texts:
            report.languages[text.profile.tag] = LanguageResult(
                profile=text.profile,
                diagnostics=list(self._previous.get(text.key, [])),
                error=error.message,
                stale=True,
            )
        return self._finish(report, snapshot)

    def _finish(self, report: CheckReport, snapshot: Snapshot) -> CheckReport:
        """Group diagnostics by file; files published before but clean now get an empty list."""
        by_file: Dict[str, List[Diagnostic]] = {file_id: [] for file_id in snapshot.file_ids}
        for file_id in self._published_files:
            by_file.setdefault(file_id, [])
        for result in report.languages.values():
            for diagnostic in result.diagnostics:
                by_file.setdefault(diagnostic.location.file_id, []).append(diagnostic)
        for diagnostics in by_file.values():
            diagnostics.sort(key=lambda d: (d.location.start, d.location.end, d.rule_id))

        report.diagnostics = by_file
        for file_id in by_file:
            source = snapshot.source(file_id)
            if source is not None:
                report.sources[file_id] = source
        self._published_files = {file_id for file_id, diags in by_file.items() if diags}
        return report

    def close(self):
        """Shut down the backend."""
        with self._run_lock:
            if self._backend is not None:
                self._backend.close()
                self._backend = None
