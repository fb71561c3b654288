"""
Presentation
============
Shapes check results for their consumers:

- editor clients: LSP ``publishDiagnostics`` params and "Replace with" quick fixes
- terminals: a plain-text report

Diagnostics are informational; the rule id is the diagnostic code and the
suggestions travel in ``data`` so code actions can be built from the
diagnostic alone.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import CheckStatus, Diagnostic
from .document.tree import SourceFile
from .session import CheckReport

__version__ = "1.0.0"

SOURCE_NAME = "prosecheck"

# LSP DiagnosticSeverity
SEVERITY_CODES = {
    'error': 1,
    'warning': 2,
    'information': 3,
    'hint': 4,
}


def path_to_uri(file_id: str) -> str:
    return Path(file_id).as_uri()


def uri_to_path(uri: str) -> str:
    """Inverse of ``path_to_uri`` for ``file://`` URIs."""
    from urllib.parse import unquote, urlparse
    parsed = urlparse(uri)
    if parsed.scheme not in ('', 'file'):
        raise ValueError(f"Not a file URI: {uri}")
    return unquote(parsed.path)


def lsp_position(source: SourceFile, offset: int) -> Dict[str, int]:
    """Zero-based line and UTF-16 character of a code point offset."""
    line, character = source.utf16_column(offset)
    return {'line': line, 'character': character}


def lsp_range(source: SourceFile, start: int, end: int) -> Dict[str, Dict[str, int]]:
    return {'start': lsp_position(source, start), 'end': lsp_position(source, end)}


def to_lsp_diagnostic(diagnostic: Diagnostic, source: SourceFile) -> Dict[str, Any]:
    """One diagnostic in LSP shape."""
    return {
        'range': lsp_range(source, diagnostic.location.start, diagnostic.location.end),
        'severity': SEVERITY_CODES.get(diagnostic.severity, 3),
        'code': diagnostic.rule_id,
        'source': SOURCE_NAME,
        'message': diagnostic.message,
        'data': list(diagnostic.replacements),
    }


def publish_diagnostics_params(uri: str, diagnostics: List[Diagnostic], source: SourceFile) -> Dict[str, Any]:
    """``textDocument/publishDiagnostics`` params for one file."""
    return {
        'uri': uri,
        'diagnostics': [to_lsp_diagnostic(d, source) for d in diagnostics],
    }


def report_notifications(report: CheckReport) -> List[Dict[str, Any]]:
    """Publish params for every file of a report, cleared files included."""
    notifications = []
    for file_id in sorted(report.diagnostics):
        source = report.sources.get(file_id)
        if source is None:
            continue
        notifications.append(publish_diagnostics_params(
            path_to_uri(file_id), report.diagnostics[file_id], source
        ))
    return notifications


def code_actions(uri: str, diagnostic: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Quick fixes for an LSP diagnostic.

    Args:
        uri: Document URI
        diagnostic: Diagnostic as published (suggestions in ``data``)

    Returns:
        One ``Replace with "..."`` action per suggestion; the first is preferred
    """
    if diagnostic.get('source') not in (None, SOURCE_NAME):
        return []
    actions = []
    for i, value in enumerate(diagnostic.get('data') or []):
        actions.append({
            'title': f'Replace with "{value}"',
            'kind': 'quickfix',
            'diagnostics': [diagnostic],
            'isPreferred': i == 0,
            'edit': {
                'changes': {
                    uri: [{'range': diagnostic['range'], 'newText': value}],
                },
            },
        })
    return actions


def status_params(status: CheckStatus, message: Optional[str] = None) -> Dict[str, Any]:
    """Coarse status signal for clients that show one."""
    params: Dict[str, Any] = {'status': status.value}
    if message:
        params['message'] = message
    return params


def format_report(report: CheckReport, base: Optional[Path] = None, max_suggestions: int = 3) -> str:
    """
    Human-readable report.

    Args:
        report: Result of a check run
        base: Paths are shown relative to this directory when possible
        max_suggestions: Suggestions listed per diagnostic
    """
    lines = []

    def display(file_id: str) -> str:
        if base is not None:
            try:
                return str(Path(file_id).relative_to(base))
            except ValueError:
                pass
        return file_id

    total = 0
    for file_id in sorted(report.diagnostics):
        source = report.sources.get(file_id)
        for diagnostic in report.diagnostics[file_id]:
            total += 1
            if source is not None:
                line, column = source.position(diagnostic.location.start)
                where = f"{display(file_id)}:{line + 1}:{column + 1}"
            else:
                where = f"{display(file_id)}@{diagnostic.location.start}"
            text = f"{where}: [{diagnostic.rule_id}] {diagnostic.message}"
            if diagnostic.replacements:
                text += f" (suggestions: {', '.join(diagnostic.replacements[:max_suggestions])})"
            lines.append(text)

    for warning in report.warnings:
        lines.append(f"warning: {warning.message}")
    for error in report.errors:
        prefix = f"{error['language']}: " if error.get('language') else ""
        lines.append(f"error: {prefix}{error.get('message', '')}")

    stale = sorted(tag for tag, result in report.languages.items() if result.stale)
    summary = f"{total} issue{'s' if total != 1 else ''} in {len(report.languages)} language(s)"
    if stale:
        summary += f"; stale results for {', '.join(stale)}"
    lines.append(summary)
    return '\n'.join(lines)
