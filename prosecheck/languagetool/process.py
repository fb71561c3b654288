"""
LanguageTool Server Process
===========================
Starts and supervises a LanguageTool HTTP server from a local JAR.

The launch is retried with exponential backoff; when every attempt fails a
LaunchError is raised. A process that died is restarted on the next
``ensure_running`` call.
"""

import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

from ..config_logging import ConfigurationError, LaunchError, get_logger
from .client import LanguageToolHttpClient
from .retry import RetryPolicy

__version__ = "1.0.0"

logger = get_logger(__name__)

SERVER_CLASS = "org.languagetool.server.HTTPServer"
DEFAULT_PORT = 8081


def find_java() -> Optional[str]:
    """Path of the Java runtime on PATH, if any."""
    return shutil.which('java')


class LanguageToolServer:
    """
    One LanguageTool server process.

    Args:
        jar_path: LanguageTool JAR (``languagetool-server.jar``)
        port: Port the server listens on
        client: HTTP client used for readiness probes
        java: Java executable (default: found on PATH)
        launch_attempts: Launch attempts before giving up
        startup_timeout: Seconds to wait for readiness per attempt
        retry: Backoff between launch attempts
        popen: Process factory (injectable for tests)
        clock: Monotonic clock (injectable for tests)
    """

    POLL_INTERVAL = 0.25

    def __init__(self, jar_path: str, port: int = DEFAULT_PORT,
                 client: Optional[LanguageToolHttpClient] = None,
                 java: Optional[str] = None,
                 launch_attempts: int = 3,
                 startup_timeout: float = 60.0,
                 retry: Optional[RetryPolicy] = None,
                 popen: Callable[..., subprocess.Popen] = subprocess.Popen,
                 clock: Callable[[], float] = time.monotonic):
        self.jar_path = Path(jar_path)
        if not self.jar_path.is_file():
            raise ConfigurationError(f"LanguageTool JAR not found: {jar_path}", option='jar_location')

        self.java = java or find_java()
        if not self.java:
            raise ConfigurationError("No Java runtime found on PATH", option='jar_location')

        self.port = port
        self.client = client or LanguageToolHttpClient(f"http://127.0.0.1:{port}")
        self.launch_attempts = max(1, launch_attempts)
        self.startup_timeout = startup_timeout
        self.retry = retry or RetryPolicy(max_attempts=self.launch_attempts, base_delay=1.0)
        self._popen = popen
        self._clock = clock
        self._process: Optional[subprocess.Popen] = None
        self._launches = 0
        self._lock = threading.Lock()

    @property
    def command(self) -> List[str]:
        return [self.java, '-cp', str(self.jar_path), SERVER_CLASS, '--port', str(self.port)]

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def ensure_running(self):
        """Start the server, or restart it if the process exited."""
        with self._lock:
            if self.is_running:
                return
            if self._process is not None:
                logger.warning("LanguageTool server exited unexpectedly; restarting",
                               returncode=self._process.returncode)
                self._process = None
            self._start()

    def _start(self):
        for attempt in range(1, self.launch_attempts + 1):
            self._launches += 1
            logger.info(f"Starting LanguageTool server (attempt {attempt}/{self.launch_attempts})",
                        port=self.port, attempt=attempt)
            try:
                process = self._popen(
                    self.command,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as e:
                logger.warning(f"Could not launch Java: {e}", attempt=attempt)
                process = None

            if process is not None and self._wait_ready(process):
                self._process = process
                logger.info("LanguageTool server ready", port=self.port)
                return

            if process is not None:
                self._terminate(process)
            if attempt < self.launch_attempts:
                self.retry.wait(attempt)

        raise LaunchError(
            f"LanguageTool server did not start after {self.launch_attempts} attempts",
            attempts=self.launch_attempts, port=self.port,
        )

    def _wait_ready(self, process: subprocess.Popen) -> bool:
        deadline = self._clock() + self.startup_timeout
        while True:
            if process.poll() is not None:
                return False
            if self.client.is_ready():
                return True
            if self._clock() >= deadline:
                return False
            time.sleep(self.POLL_INTERVAL)

    @staticmethod
    def _terminate(process: subprocess.Popen):
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    @property
    def launches(self) -> int:
        """Number of launch attempts made so far."""
        return self._launches

    def stop(self):
        """Stop the server process."""
        with self._lock:
            if self._process is not None:
                self._terminate(self._process)
                self._process = None
