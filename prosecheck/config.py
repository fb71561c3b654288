"""
ProseCheck Configuration Module
===============================
Centralized configuration for checking runs.

Configuration can be set via:
1. Config file (prosecheck.json in the project root or working directory)
2. Environment variables (PROSECHECK_HOST=localhost)
3. Editor initialization options, command line options and
   dot-notation assignments (config.set('dictionary.de', 'Typst'))

Later sources override earlier ones. Unknown keys are logged and ignored.
"""

import json
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .config_logging import ConfigurationError, get_logger

__version__ = "1.0.0"

logger = get_logger(__name__)

CONFIG_FILE_NAME = "prosecheck.json"

_DURATION_PART_RE = re.compile(r'(\d+(?:\.\d+)?)\s*(ms|sec|min|s|m|h)?', re.IGNORECASE)
_DURATION_UNITS = {None: 1.0, 'ms': 0.001, 's': 1.0, 'sec': 1.0, 'm': 60.0, 'min': 60.0, 'h': 3600.0}


def parse_duration(value: Any) -> Optional[float]:
    """
    Parse a debounce duration into seconds.

    Accepts numbers (seconds) and strings like ``"300ms"``, ``"1.5s"``,
    ``"2m"`` or ``"1s 500ms"``. None, False and ``""`` mean disabled.

    Raises:
        ConfigurationError: Unparseable or negative value
    """
    if value is None or value is False or value == "":
        return None
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}", option='on_change')
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigurationError(f"Duration must not be negative: {value!r}", option='on_change')
        return float(value)

    text = str(value).strip()
    total = 0.0
    pos = 0
    for m in _DURATION_PART_RE.finditer(text):
        if text[pos:m.start()].strip():
            break
        total += float(m.group(1)) * _DURATION_UNITS[(m.group(2) or '').lower() or None]
        pos = m.end()
    if pos == 0 or text[pos:].strip():
        raise ConfigurationError(f"Invalid duration: {value!r}", option='on_change')
    return total


def _parse_bool(value: Any) -> bool:
    """Parse boolean from string."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ('true', '1', 'yes', 'on')


def _parse_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(',') if part.strip()]
    return [str(part) for part in value]


def _parse_optional_int(value: Any) -> Optional[int]:
    return None if value is None or value == "" else int(value)


def _parse_word_lists(value: Any) -> Dict[str, List[str]]:
    if not isinstance(value, Mapping):
        raise ValueError("expected an object of language -> list")
    return {str(key): _parse_list(words) for key, words in value.items()}


def _parse_rules(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        raise ValueError("expected an object of node kind -> rule")
    return {str(key): str(rule) for key, rule in value.items()}


@dataclass
class ProseCheckConfig:
    """All options of a checking run."""
    # Language settings
    dictionary: Dict[str, List[str]] = field(default_factory=dict)
    disabled_checks: Dict[str, List[str]] = field(default_factory=dict)
    languages: List[str] = field(default_factory=list)

    # Backend selection
    bundled: bool = False
    jar_location: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None

    # Pipeline
    chunk_size: int = 1000
    lookback: int = 0
    boundary_window: Optional[int] = None
    on_change: Optional[float] = None  # debounce in seconds, None = open/save only
    root: Optional[str] = None
    main: Optional[str] = None
    spellcheck: bool = True
    rules: Dict[str, str] = field(default_factory=dict)
    paginate_level: int = 1
    dictionary_case_sensitive: bool = True

    # Retries and timeouts
    max_retries: int = 2
    launch_attempts: int = 3
    request_timeout: float = 30.0
    startup_timeout: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def copy(self) -> 'ProseCheckConfig':
        return ProseCheckConfig(**json.loads(json.dumps(self.to_dict())))

    def validate(self):
        """
        Raises:
            ConfigurationError: An option is out of range
        """
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive", option='chunk_size')
        if not 0 <= self.lookback < self.chunk_size:
            raise ConfigurationError("lookback must be between 0 and chunk_size", option='lookback')
        if self.boundary_window is not None and self.boundary_window <= 0:
            raise ConfigurationError("boundary_window must be positive", option='boundary_window')
        if self.paginate_level < 1:
            raise ConfigurationError("paginate_level must be at least 1", option='paginate_level')
        if self.log_format not in ('text', 'json'):
            raise ConfigurationError(f"Unknown log format: {self.log_format}", option='log_format')
        if self.max_retries < 0 or self.launch_attempts < 1:
            raise ConfigurationError("Retry bounds must not be negative", option='max_retries')

    def make_absolute(self, cwd: Optional[Path] = None):
        """Resolve path options against ``cwd`` (default: working directory)."""
        base = Path(cwd) if cwd else Path.cwd()
        for name in ('root', 'main', 'jar_location'):
            value = getattr(self, name)
            if value and not Path(value).is_absolute():
                setattr(self, name, str((base / value).resolve()))

    def backend_config(self):
        """The BackendConfig selected by these options."""
        from .languagetool.backends import BackendConfig
        return BackendConfig.select(
            bundled=self.bundled,
            jar_location=self.jar_location,
            host=self.host,
            port=self.port,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            launch_attempts=self.launch_attempts,
            startup_timeout=self.startup_timeout,
        )

    def default_language_tag(self) -> str:
        return self.languages[0] if self.languages else "en-US"

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get an option by dot-notation key.

        Example: get('dictionary.en') -> ['ProseCheck']
        """
        name, _, sub = key.partition('.')
        if name not in _CONVERTERS:
            return default
        value = getattr(self, name)
        for part in sub.split('.') if sub else ():
            if not isinstance(value, Mapping) or part not in value:
                return default
            value = value[part]
        return value

    def set(self, key: str, value: Any):
        """
        Set an option by dot-notation key, converted like any other option.

        Example: set('chunk_size', 500) or set('dictionary.de', 'Typst,Markup')

        Raises:
            ConfigurationError: Unknown key or invalid value
        """
        name, _, sub = key.partition('.')
        if name not in _CONVERTERS:
            raise ConfigurationError(f"Unknown config key: {name}", option=name)
        if sub:
            container = getattr(self, name)
            if not isinstance(container, dict):
                raise ConfigurationError(f"Config key {name} has no sub-keys", option=name)
            value = {**container, sub: value}
        apply_options(self, {name: value})


# Option name -> converter applied to incoming values
_CONVERTERS = {
    'dictionary': _parse_word_lists,
    'disabled_checks': _parse_word_lists,
    'languages': _parse_list,
    'bundled': _parse_bool,
    'jar_location': lambda v: str(v) if v else None,
    'host': lambda v: str(v) if v else None,
    'port': _parse_optional_int,
    'chunk_size': int,
    'lookback': int,
    'boundary_window': _parse_optional_int,
    'on_change': parse_duration,
    'root': lambda v: str(v) if v else None,
    'main': lambda v: str(v) if v else None,
    'spellcheck': _parse_bool,
    'rules': _parse_rules,
    'paginate_level': int,
    'dictionary_case_sensitive': _parse_bool,
    'max_retries': int,
    'launch_attempts': int,
    'request_timeout': float,
    'startup_timeout': float,
    'log_level': lambda v: str(v).upper(),
    'log_format': lambda v: str(v).lower(),
}

_ENV_MAPPINGS = {
    'PROSECHECK_BUNDLED': 'bundled',
    'PROSECHECK_JAR_LOCATION': 'jar_location',
    'PROSECHECK_HOST': 'host',
    'PROSECHECK_PORT': 'port',
    'PROSECHECK_LANGUAGES': 'languages',
    'PROSECHECK_CHUNK_SIZE': 'chunk_size',
    'PROSECHECK_ON_CHANGE': 'on_change',
    'PROSECHECK_SPELLCHECK': 'spellcheck',
    'PROSECHECK_MAX_RETRIES': 'max_retries',
    'PROSECHECK_REQUEST_TIMEOUT': 'request_timeout',
    'PROSECHECK_LOG_LEVEL': 'log_level',
    'PROSECHECK_LOG_FORMAT': 'log_format',
}


def apply_options(config: ProseCheckConfig, options: Mapping[str, Any]) -> List[str]:
    """
    Apply option values to ``config``.

    Keys may use camelCase (``chunkSize``) as editors send them.

    Returns:
        Names of unknown keys (logged and ignored)

    Raises:
        ConfigurationError: A known option has an invalid value
    """
    unknown = []
    for raw_key, value in options.items():
        key = _snake_case(raw_key)
        converter = _CONVERTERS.get(key)
        if converter is None:
            unknown.append(raw_key)
            logger.warning(f"Unknown configuration option: {raw_key}", option=raw_key)
            continue
        try:
            setattr(config, key, converter(value))
        except ConfigurationError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value for {key}: {value!r} ({e})", option=key)
    return unknown


def _snake_case(key: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', key).lower()


def _apply_env(config: ProseCheckConfig, environ: Mapping[str, str]):
    """Apply environment variables to config."""
    for env_var, key in _ENV_MAPPINGS.items():
        value = environ.get(env_var)
        if value is None:
            continue
        try:
            setattr(config, key, _CONVERTERS[key](value))
        except (ConfigurationError, ValueError) as e:
            logger.warning(f"Invalid env var {env_var}={value}: {e}", env_var=env_var)


def find_config_file(*directories: Optional[Path]) -> Optional[Path]:
    """First ``prosecheck.json`` found in ``directories`` (then the working directory)."""
    for directory in (*directories, Path.cwd()):
        if directory is None:
            continue
        candidate = Path(directory) / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Optional[Path] = None, options: Optional[Mapping[str, Any]] = None,
                environ: Optional[Mapping[str, str]] = None,
                cwd: Optional[Path] = None) -> ProseCheckConfig:
    """
    Build a configuration from file, environment and explicit options.

    Args:
        path: JSON config file (default: ``prosecheck.json`` lookup)
        options: Explicit options, highest precedence
        environ: Environment mapping (default: ``os.environ``)
        cwd: Directory relative paths are resolved against

    Raises:
        ConfigurationError: Invalid file or option values
    """
    config = ProseCheckConfig()

    if path is None:
        path = find_config_file(cwd)
    if path is not None:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigurationError(f"Could not load config file {path}: {e}", option='config')
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file {path} must hold a JSON object", option='config')
        apply_options(config, file_config)
        logger.debug("Loaded config file", path=str(path))

    _apply_env(config, os.environ if environ is None else environ)

    if options:
        apply_options(config, options)

    config.make_absolute(cwd)
    config.validate()
    return config
