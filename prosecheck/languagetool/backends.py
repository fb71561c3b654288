"""
Checking Backends
=================
One ``check(text, profile)`` operation over three ways of reaching
LanguageTool:

- Bundled: ``language_tool_python`` manages a local server for us
- External artifact: a server process started from a configured JAR
- Remote: an already running server reached over HTTP

Every backend serializes access to its underlying resource with a lock, so
one instance can be shared by concurrent per-language checks.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..base import LanguageProfile, Match
from ..config_logging import BackendConnectionError, ConfigurationError, LaunchError, get_logger
from .client import DEFAULT_TIMEOUT, LanguageToolHttpClient
from .process import DEFAULT_PORT, LanguageToolServer
from .retry import RetryPolicy

__version__ = "1.0.0"

logger = get_logger(__name__)

BUNDLED = "bundled"
EXTERNAL = "external"
REMOTE = "remote"


@dataclass(frozen=True)
class BackendConfig:
    """
    Which backend to use and how to reach it.

    Exactly one variant is selected; the selection does not change for the
    life of a backend instance.
    """
    kind: str
    jar_location: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    request_timeout: float = DEFAULT_TIMEOUT
    max_retries: int = 2
    launch_attempts: int = 3
    startup_timeout: float = 60.0
    retry_delay: float = 0.5

    @classmethod
    def select(cls, bundled: bool = False, jar_location: Optional[str] = None,
               host: Optional[str] = None, port: Optional[int] = None, **options) -> 'BackendConfig':
        """
        Pick the variant from configuration values.

        Remote wins when a host is given, then a JAR location, then the
        bundled flag.

        Raises:
            ConfigurationError: No variant is configured, or a remote host
                comes without a port
        """
        if host:
            if port is None:
                raise ConfigurationError("A remote host needs a port", option='port')
            return cls(kind=REMOTE, host=host, port=int(port), **options)
        if jar_location:
            return cls(kind=EXTERNAL, jar_location=jar_location,
                       port=int(port) if port is not None else DEFAULT_PORT, **options)
        if bundled:
            return cls(kind=BUNDLED, **options)
        raise ConfigurationError(
            "No checking backend configured: set bundled, jar_location or host/port",
            option='backend',
        )

    def retry_policy(self, attempts: int) -> RetryPolicy:
        return RetryPolicy(max_attempts=attempts, base_delay=self.retry_delay)


class Backend(ABC):
    """Base class for checking backends."""

    name = "backend"
    # Whether disabled rules are honoured by the service itself
    supports_rule_suppression = True

    def __init__(self):
        self._lock = threading.Lock()

    def start(self):
        """Acquire the underlying resource ahead of the first check."""

    def check(self, text: str, profile: LanguageProfile) -> List[Match]:
        """
        Check one chunk of text.

        Args:
            text: Chunk text
            profile: Language of the text, with its disabled rules

        Returns:
            Matches with offsets relative to ``text``

        Raises:
            BackendConnectionError: The service could not be reached
            LaunchError: The service could not be started
        """
        with self._lock:
            return self._check(text, profile)

    @abstractmethod
    def _check(self, text: str, profile: LanguageProfile) -> List[Match]:
        raise NotImplementedError

    def close(self):
        """Release the underlying resource."""

    def get_status(self) -> Dict[str, Any]:
        return {'backend': self.name, 'supports_rule_suppression': self.supports_rule_suppression}

    def __enter__(self) -> 'Backend':
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _default_tool_factory(language: str):
    import language_tool_python
    return language_tool_python.LanguageTool(
        language,
        config={'cacheSize': 1000, 'pipelineCaching': True}
    )


def _library_errors():
    """
    Exceptions raised by language_tool_python.

    Returns:
        (errors meaning the server cannot run, all library errors)
    """
    from language_tool_python.exceptions import JavaError, LanguageToolError, PathError
    return (JavaError, PathError), (LanguageToolError,)


class BundledBackend(Backend):
    """
    LanguageTool through ``language_tool_python``.

    The library downloads (once) and runs a local server. The tool is
    created lazily, so the first check is slow.
    """

    name = BUNDLED

    def __init__(self, language: str = "en-US", tool_factory: Optional[Callable[[str], Any]] = None):
        super().__init__()
        self.language = language
        self._factory = tool_factory or _default_tool_factory
        self._tool = None
        self._launch_errors: Tuple[type, ...] = ()
        self._tool_errors: Tuple[type, ...] = ()

    def _init_tool(self):
        """Initialize LanguageTool (starts the local server)."""
        try:
            self._launch_errors, self._tool_errors = _library_errors()
            self._tool = self._factory(self.language)
        except ImportError as e:
            raise ConfigurationError(f"language-tool-python not installed: {e}", option='bundled')
        except self._tool_errors + (OSError, RuntimeError, ValueError) as e:
            raise LaunchError(f"LanguageTool initialization failed: {e}", attempts=1)

    def start(self):
        with self._lock:
            if self._tool is None:
                self._init_tool()

    def _check(self, text: str, profile: LanguageProfile) -> List[Match]:
        if self._tool is None:
            self._init_tool()

        try:
            # the language setter rejects tags the server does not know
            self._tool.language = profile.tag
            self._tool.disabled_rules = set(profile.disabled_rules)
            matches = self._tool.check(text)
        except self._launch_errors as e:
            raise LaunchError(f"LanguageTool server unavailable: {e}", attempts=1)
        except self._tool_errors + (OSError, RuntimeError, ValueError) as e:
            raise BackendConnectionError(f"Check failed for {profile.tag}: {e}", language=profile.tag)

        results = []
        for match in matches:
            results.append(Match(
                offset=match.offset,
                length=match.error_length,
                rule_id=match.rule_id,
                message=match.message,
                replacements=list(match.replacements) if match.replacements else [],
                category=match.category or '',
                issue_type=match.rule_issue_type or '',
            ))
        return results

    def close(self):
        """Shut down the LanguageTool server."""
        with self._lock:
            if self._tool is not None:
                self._tool.close()
                self._tool = None


class RemoteBackend(Backend):
    """A LanguageTool server that is already running somewhere."""

    name = REMOTE

    def __init__(self, config: BackendConfig, client: Optional[LanguageToolHttpClient] = None):
        super().__init__()
        host = config.host or ''
        base = host if host.startswith(('http://', 'https://')) else f"http://{host}"
        self.url = f"{base}:{config.port}"
        self.client = client or LanguageToolHttpClient(
            self.url,
            timeout=config.request_timeout,
            retry=config.retry_policy(config.max_retries + 1),
        )

    def _check(self, text: str, profile: LanguageProfile) -> List[Match]:
        return self.client.check(text, profile.tag, profile.disabled_rules)

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status['url'] = self.url
        return status

    def close(self):
        with self._lock:
            self.client.close()


class ExternalArtifactBackend(Backend):
    """A LanguageTool server process started from a local JAR."""

    name = EXTERNAL

    def __init__(self, config: BackendConfig, server: Optional[LanguageToolServer] = None):
        super().__init__()
        port = config.port or DEFAULT_PORT
        if server is None:
            client = LanguageToolHttpClient(
                f"http://127.0.0.1:{port}",
                timeout=config.request_timeout,
                retry=config.retry_policy(config.max_retries + 1),
            )
            server = LanguageToolServer(
                config.jar_location or '',
                port=port,
                client=client,
                launch_attempts=config.launch_attempts,
                startup_timeout=config.startup_timeout,
                retry=config.retry_policy(config.launch_attempts),
            )
        self.server = server

    def start(self):
        self.server.ensure_running()

    def _check(self, text: str, profile: LanguageProfile) -> List[Match]:
        self.server.ensure_running()
        return self.server.client.check(text, profile.tag, profile.disabled_rules)

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update({'jar': str(self.server.jar_path), 'running': self.server.is_running})
        return status

    def close(self):
        with self._lock:
            self.server.stop()
            self.server.client.close()


def create_backend(config: BackendConfig, language: str = "en-US") -> Backend:
    """
    Build the backend for ``config``.

    Raises:
        ConfigurationError: Invalid parameters (missing JAR, no Java, unknown kind)
    """
    logger.info(f"Creating {config.kind} backend", backend=config.kind)
    if config.kind == BUNDLED:
        return BundledBackend(language)
    if config.kind == EXTERNAL:
        return ExternalArtifactBackend(config)
    if config.kind == REMOTE:
        return RemoteBackend(config)
    raise ConfigurationError(f"Unknown backend kind: {config.kind!r}", option='backend')
