"""
Retry Policy
============
Bounded retries with exponential backoff for talking to the checking
service and for starting its server process.
"""

import time
from dataclasses import dataclass, field
from typing import Callable

__version__ = "1.0.0"


@dataclass
class RetryPolicy:
    """
    Retry settings.

    Attributes:
        max_attempts: Total attempts, the first one included
        base_delay: Delay after the first failed attempt (seconds)
        max_delay: Upper bound for any single delay
        sleep: Sleep function (injectable for tests)
    """
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            self.max_attempts = 1

    def delay(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def wait(self, attempt: int):
        delay = self.delay(attempt)
        if delay > 0:
            self.sleep(delay)
