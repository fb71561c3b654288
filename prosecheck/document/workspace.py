"""
Workspace
=========
Project files as seen by the checker: the main file and project root,
editor "shadow" contents that override what is on disk, and consistent
per-run snapshots.
"""

import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..base import ExtractionWarning
from ..config_logging import get_logger
from .reader import MarkupReader
from .tree import DocumentNode, SourceFile

__version__ = "1.0.0"

logger = get_logger(__name__)


def file_id_for(path) -> str:
    """Stable file id: the absolute, normalized path."""
    return str(Path(path).expanduser().resolve())


def resolve_project(path, main=None, root=None) -> Tuple[Path, Path]:
    """
    Resolve the main file and project root for a checked path.

    The main file defaults to the checked path and the root defaults to the
    main file's parent directory. Relative paths are made absolute against
    the current working directory.
    """
    main_path = Path(main) if main else Path(path)
    main_path = main_path if main_path.is_absolute() else Path.cwd() / main_path
    if root:
        root_path = Path(root)
        root_path = root_path if root_path.is_absolute() else Path.cwd() / root_path
    else:
        root_path = main_path.parent
    return main_path.resolve(), root_path.resolve()


class Snapshot:
    """
    Immutable view of the workspace for one check run.

    Shadow files are copied when the snapshot is taken; files on disk are
    read at most once per snapshot.
    """

    def __init__(self, main_id: str, root: Path, shadows: Dict[str, str]):
        self.main_id = main_id
        self.root = root
        self._texts: Dict[str, Optional[str]] = dict(shadows)
        self._sources: Dict[str, SourceFile] = {}
        self._compiled: List[str] = []

    def load(self, file_id: str) -> Optional[str]:
        if file_id not in self._texts:
            try:
                self._texts[file_id] = Path(file_id).read_text(encoding='utf-8')
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Could not read {file_id}: {e}", path=file_id)
                self._texts[file_id] = None
        return self._texts[file_id]

    @property
    def file_ids(self) -> List[str]:
        """Files the compiled document was read from, main file first."""
        return list(self._compiled)

    def resolve_include(self, base_file_id: str, path: str) -> str:
        if path.startswith('/'):
            return file_id_for(self.root / path.lstrip('/'))
        return file_id_for(Path(base_file_id).parent / path)

    def source(self, file_id: str) -> Optional[SourceFile]:
        """SourceFile of a file read during this run."""
        if file_id not in self._sources:
            text = self.load(file_id)
            if text is None:
                return None
            self._sources[file_id] = SourceFile(file_id, text)
        return self._sources[file_id]

    def compile(self) -> Tuple[Optional[DocumentNode], List[ExtractionWarning]]:
        """Read the main file and everything it includes."""
        def load(file_id: str) -> Optional[str]:
            text = self.load(file_id)
            if text is not None and file_id not in self._compiled:
                self._compiled.append(file_id)
            return text

        reader = MarkupReader(load, self.resolve_include)
        return reader.read(self.main_id)


class Workspace:
    """
    Files of one project.

    Thread-safe: editor events may arrive while a check run reads its
    snapshot.
    """

    def __init__(self, main, root=None):
        self._lock = threading.Lock()
        self._shadows: Dict[str, SourceFile] = {}
        self.main, self.root = resolve_project(main, root=root)

    def update(self, main, root=None):
        """Switch main file / root (configuration change)."""
        with self._lock:
            self.main, self.root = resolve_project(main, root=root)
        logger.info(f"Project main={self.main} root={self.root}")

    @property
    def main_id(self) -> str:
        return str(self.main)

    def open(self, path, text: str):
        """Use editor content instead of the file on disk."""
        file_id = file_id_for(path)
        with self._lock:
            self._shadows[file_id] = SourceFile(file_id, text)

    def close(self, path):
        """Go back to the file on disk."""
        with self._lock:
            self._shadows.pop(file_id_for(path), None)

    def shadow(self, path) -> Optional[SourceFile]:
        with self._lock:
            return self._shadows.get(file_id_for(path))

    def apply_changes(self, path, changes: Iterable[Dict[str, Any]]):
        """
        Apply editor content changes to a shadow file.

        Each change is either ``{'text': ...}`` (full replacement) or
        ``{'range': {'start': {'line', 'character'}, 'end': {...}}, 'text': ...}``
        with characters in UTF-16 code units. A file that is not open yet is opened from disk first.
        """
        file_id = file_id_for(path)
        with self._lock:
            source = self._shadows.get(file_id)
            if source is None:
                try:
                    text = Path(file_id).read_text(encoding='utf-8')
                except (OSError, UnicodeDecodeError):
                    text = ''
                source = SourceFile(file_id, text)
                self._shadows[file_id] = source

            for change in changes:
                new_text = change.get('text', '')
                change_range = change.get('range')
                if change_range is None:
                    source.replace(new_text)
                    continue
                start = source.utf16_offset(change_range['start']['line'], change_range['start']['character'])
                end = source.utf16_offset(change_range['end']['line'], change_range['end']['character'])
                source.edit(start, max(start, end), new_text)

    def snapshot(self) -> Snapshot:
        """Freeze the current state for one check run."""
        with self._lock:
            shadows = {file_id: source.text for file_id, source in self._shadows.items()}
            return Snapshot(self.main_id, self.root, shadows)
