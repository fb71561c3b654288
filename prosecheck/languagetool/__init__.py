"""
LanguageTool Integration for ProseCheck
=======================================
Backends that send checkable text to LanguageTool and return its matches.

Variants:
- Bundled (language-tool-python manages a local server)
- External artifact (server started from a local JAR)
- Remote (HTTP server at host:port)

Requires: pip install language-tool-python requests
Note: The bundled variant downloads the LanguageTool distribution on first use
"""

from .backends import (
    BUNDLED,
    EXTERNAL,
    REMOTE,
    Backend,
    BackendConfig,
    BundledBackend,
    ExternalArtifactBackend,
    RemoteBackend,
    create_backend,
)
from .client import LanguageToolHttpClient, parse_matches
from .retry import RetryPolicy

__version__ = "1.0.0"


def get_status(backend: Backend) -> dict:
    """Status of a backend, never raising."""
    try:
        return backend.get_status()
    except Exception as e:
        return {'backend': getattr(backend, 'name', None), 'error': str(e)}


__all__ = [
    'BUNDLED',
    'EXTERNAL',
    'REMOTE',
    'Backend',
    'BackendConfig',
    'BundledBackend',
    'ExternalArtifactBackend',
    'RemoteBackend',
    'create_backend',
    'LanguageToolHttpClient',
    'parse_matches',
    'RetryPolicy',
    'get_status',
]
