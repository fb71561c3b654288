#!/usr/bin/env python3
"""
ProseCheck Logging & Errors Module
==================================
Structured logging and the error hierarchy shared by every stage of the
checking pipeline.

Logs always go to stderr (stdout is reserved for reports and protocol
traffic). Optionally a rotating log file is written as well.
"""

import os
import sys
import json
import logging
import uuid
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from pathlib import Path
from dataclasses import dataclass
from contextlib import contextmanager
import threading

__version__ = "1.0.0"
VERSION = __version__
APP_NAME = "ProseCheck"

# =============================================================================
# CONFIGURATION CONSTANTS
# =============================================================================
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024  # 5MB max per log file
LOG_BACKUP_COUNT = 5                # Number of log backup files to keep

# LogRecord attributes that must not be copied into JSON output
_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'thread', 'threadName', 'exc_info', 'exc_text',
    'message', 'taskName',
))


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

@dataclass
class LogConfig:
    """Logging settings."""
    log_level: str = "INFO"
    log_format: str = "text"  # Options: json, text
    log_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> 'LogConfig':
        """Load logging settings from environment variables."""
        log_file = os.environ.get('PROSECHECK_LOG_FILE')
        return cls(
            log_level=os.environ.get('PROSECHECK_LOG_LEVEL', 'INFO'),
            log_format=os.environ.get('PROSECHECK_LOG_FORMAT', 'text'),
            log_file=Path(log_file) if log_file else None,
        )


_log_config: Optional[LogConfig] = None
_loggers: Dict[str, 'StructuredLogger'] = {}
_loggers_lock = threading.Lock()


def get_log_config() -> LogConfig:
    """Get or create the global logging configuration."""
    global _log_config
    if _log_config is None:
        _log_config = LogConfig.from_env()
    return _log_config


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None,
                      log_file: Optional[Path] = None):
    """
    Update logging settings and re-initialize every logger handed out so far.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        fmt: 'json' or 'text'
        log_file: Optional path of a rotating log file
    """
    config = get_log_config()
    if level:
        config.log_level = level.upper()
    if fmt:
        config.log_format = fmt
    if log_file is not None:
        config.log_file = Path(log_file)
    with _loggers_lock:
        for logger in _loggers.values():
            logger.config = config
            logger._setup_logger()


def reset_log_config():
    """Reset the global logging configuration (for testing)."""
    global _log_config
    _log_config = None


# =============================================================================
# STRUCTURED LOGGING
# =============================================================================

class StructuredLogger:
    """Thread-safe structured logger with correlation IDs."""

    _local = threading.local()

    def __init__(self, name: str, config: Optional[LogConfig] = None):
        self.name = name
        self.config = config or get_log_config()
        self._setup_logger()

    def _setup_logger(self):
        """Configure the underlying Python logger."""
        self.logger = logging.getLogger(self.name)
        self.logger.setLevel(getattr(logging, self.config.log_level.upper(), logging.INFO))
        self.logger.handlers.clear()

        if self.config.log_format == 'json':
            formatter = JsonFormatter()
        else:
            formatter = logging.Formatter(
                '%(asctime)s [%(levelname)s] %(name)s - %(message)s'
            )

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if self.config.log_file:
            from logging.handlers import RotatingFileHandler
            file_handler = RotatingFileHandler(
                self.config.log_file,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    @classmethod
    def set_correlation_id(cls, correlation_id: str):
        """Set correlation ID for current thread."""
        cls._local.correlation_id = correlation_id

    @classmethod
    def get_correlation_id(cls) -> str:
        """Get correlation ID for current thread."""
        return getattr(cls._local, 'correlation_id', None) or str(uuid.uuid4())[:8]

    @classmethod
    def new_correlation_id(cls) -> str:
        """Generate and set a new correlation ID (one per check run)."""
        correlation_id = str(uuid.uuid4())[:12]
        cls.set_correlation_id(correlation_id)
        return correlation_id

    def _build_log_record(self, level: str, message: str, **kwargs) -> Dict[str, Any]:
        """Build a structured log record."""
        return {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': level,
            'logger': self.name,
            'correlation_id': self.get_correlation_id(),
            'message': message,
            **kwargs
        }

    def _render(self, level: str, message: str, **kwargs) -> str:
        if self.config.log_format == 'json':
            return json.dumps(self._build_log_record(level, message, **kwargs), default=str)
        return message

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self.logger.debug(self._render('DEBUG', message, **kwargs), extra=kwargs)

    def info(self, message: str, **kwargs):
        """Log info message."""
        self.logger.info(self._render('INFO', message, **kwargs), extra=kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self.logger.warning(self._render('WARNING', message, **kwargs), extra=kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs):
        """Log error message with optional exception info."""
        self.logger.error(self._render('ERROR', message, **kwargs), exc_info=exc_info, extra=kwargs)

    def exception(self, message: str, **kwargs):
        """Log exception with full traceback."""
        self.error(message, exc_info=True, **kwargs)

    @contextmanager
    def log_operation(self, operation: str, **context):
        """Context manager for logging operation start/end with timing."""
        start_time = time.time()
        self.debug(f"{operation} started", operation=operation, status='started', **context)
        try:
            yield
            duration_ms = (time.time() - start_time) * 1000
            self.info(f"{operation} completed", operation=operation, status='completed',
                      duration_ms=round(duration_ms, 2), **context)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.error(f"{operation} failed: {e}", operation=operation, status='failed',
                       duration_ms=round(duration_ms, 2), **context)
            raise


class JsonFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        # StructuredLogger already rendered a JSON document
        if message.startswith('{') and not record.exc_info:
            return message

        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': message,
        }

        if record.exc_info:
            log_data['traceback'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance (cached per name)."""
    with _loggers_lock:
        logger = _loggers.get(name)
        if logger is None:
            logger = StructuredLogger(name, get_log_config())
            _loggers[name] = logger
        return logger


# =============================================================================
# ERROR HANDLING
# =============================================================================

class ProseCheckError(Exception):
    """Base exception for ProseCheck."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR",
                 details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a report/response dict."""
        return {
            'success': False,
            'error': {
                'code': self.code,
                'message': self.message,
                'details': self.details
            }
        }


class ConfigurationError(ProseCheckError):
    """Invalid or missing backend parameters. Fatal, never retried."""
    def __init__(self, message: str, option: Optional[str] = None, **kwargs):
        super().__init__(message, code="CONFIG_ERROR",
                         details={'option': option, **kwargs})


class LaunchError(ProseCheckError):
    """Checking-service process could not be started after all attempts."""
    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(message, code="LAUNCH_ERROR",
                         details={'attempts': attempts, **kwargs})


class BackendConnectionError(ProseCheckError):
    """Checking service unreachable or dropped mid-request."""
    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(message, code="CONNECTION_ERROR",
                         details={'attempts': attempts, **kwargs})


class MappingInconsistency(ProseCheckError):
    """A match span cannot be projected to any source range."""
    def __init__(self, message: str, start: int = -1, end: int = -1, **kwargs):
        super().__init__(message, code="MAPPING_ERROR",
                         details={'start': start, 'end': end, **kwargs})
