"""
ProseCheck
==========
Version: 1.0.0

Grammar and spell checking for markup documents through LanguageTool, with
every finding mapped back to its exact place in the source files.

Pipeline:
- Document: markup reader and workspace (includes, editor buffers)
- Extract: style transform, coordinate map, per-language checkable text
- Chunker: size-bounded requests cut on sentence/paragraph boundaries
- LanguageTool: bundled, local JAR or remote server backends
- Mapper: filters and source projection of matches
- Session / Scheduler: check runs and debounced re-checks

Uses lazy loading - submodules only import when accessed.
"""

__version__ = "1.0.0"
__author__ = "ProseCheck"

_MODULES = {
    'document': 'prosecheck.document',
    'extract': 'prosecheck.extract',
    'languagetool': 'prosecheck.languagetool',
    'chunker': 'prosecheck.chunker',
    'mapper': 'prosecheck.mapper',
    'session': 'prosecheck.session',
    'scheduler': 'prosecheck.scheduler',
    'presentation': 'prosecheck.presentation',
    'config': 'prosecheck.config',
}

_loaded_modules = {}


def __getattr__(name):
    """Lazy load submodules on first access."""
    if name in _MODULES:
        if name not in _loaded_modules:
            import importlib
            _loaded_modules[name] = importlib.import_module(_MODULES[name])
        return _loaded_modules[name]
    raise AttributeError(f"module 'prosecheck' has no attribute '{name}'")


def __dir__():
    """List available submodules."""
    return list(_MODULES.keys()) + ['base', 'config_logging', 'check_file']


def check_file(path, **options):
    """
    Check one document and return the CheckReport.

    Example: check_file('paper.typ', host='localhost', port=8081)
    """
    from .config import load_config
    from .document.workspace import Workspace
    from .session import CheckSession

    config = load_config(options=options)
    session = CheckSession(Workspace(config.main or path, config.root), config)
    try:
        return session.run()
    finally:
        session.close()
