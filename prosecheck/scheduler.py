"""
Incremental Scheduler
=====================
Decides when a document is re-checked.

States:
- idle: nothing to do
- pending: a check is due at ``deadline`` (debounced edits)
- checking: a run is in progress

Open, save and explicit check requests start a run right away. Edits start
(or restart) the debounce timer; without a debounce they are ignored. Events
that arrive during a run are remembered and handled once it finishes. Runs
are never cancelled.

The scheduler works synchronously (``handle``/``poll`` run checks inline,
useful with a fake clock) or on its own thread (``start``/``submit``/``stop``).
"""

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Optional, Union

from .config_logging import get_logger

__version__ = "1.0.0"

logger = get_logger(__name__)


class State(Enum):
    IDLE = "idle"
    PENDING = "pending"
    CHECKING = "checking"


class Event(Enum):
    OPEN = "open"
    SAVE = "save"
    CHECK = "check"      # explicit request
    CHANGE = "change"    # document edited
    FINISHED = "finished"


IMMEDIATE_EVENTS = frozenset({Event.OPEN, Event.SAVE, Event.CHECK})

_STOP = object()


class CheckScheduler:
    """
    Debounced check scheduler.

    Args:
        check_fn: Runs one check (its return value is passed to ``on_result``)
        debounce: Seconds to wait after the last edit (None = edits do not
            trigger checks)
        clock: Monotonic clock
        on_result: Called with each run's result
    """

    def __init__(self, check_fn: Callable[[], Any], debounce: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic,
                 on_result: Optional[Callable[[Any], None]] = None):
        self.check_fn = check_fn
        self.debounce = debounce
        self.clock = clock
        self.on_result = on_result

        self.state = State.IDLE
        self.deadline: Optional[float] = None
        self.runs = 0
        self._rerun = False
        self._rerun_now = False

        self._threaded = False
        self._queue: 'queue.Queue' = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._worker: Optional[ThreadPoolExecutor] = None
        self._idle = threading.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def handle(self, event: Union[Event, str], now: Optional[float] = None):
        """Feed one event into the state machine."""
        event = Event(event)
        now = self.clock() if now is None else now

        if event == Event.FINISHED:
            self._complete(now)
            return

        if self.state == State.CHECKING:
            if event in IMMEDIATE_EVENTS:
                self._rerun_now = True
            elif self.debounce is not None:
                self._rerun = True
            return

        if event in IMMEDIATE_EVENTS:
            self._begin()
        elif self.debounce is not None:
            self._set_pending(now + self.debounce)

    def poll(self, now: Optional[float] = None) -> bool:
        """
        Fire a due pending check.

        Returns:
            True if a run was started
        """
        now = self.clock() if now is None else now
        if self.state == State.PENDING and self.deadline is not None and now >= self.deadline:
            self._begin()
            return True
        return False

    def _set_pending(self, deadline: float):
        self.state = State.PENDING
        self.deadline = deadline
        self._idle.clear()

    def _begin(self):
        self.state = State.CHECKING
        self.deadline = None
        self._idle.clear()
        self.runs += 1
        if self._threaded:
            self._worker.submit(self._run_and_post)
        else:
            self._execute()
            self._complete(self.clock())

    def _complete(self, now: float):
        if self._rerun_now:
            self._set_pending(now)
        elif self._rerun:
            self._set_pending(now + (self.debounce or 0.0))
        else:
            self.state = State.IDLE
            self._idle.set()
        self._rerun = self._rerun_now = False

        if not self._threaded:
            self.poll(now)

    def _execute(self):
        try:
            result = self.check_fn()
        except Exception:
            logger.exception("Check run failed")
            return
        if self.on_result is not None:
            self.on_result(result)

    def _run_and_post(self):
        try:
            self._execute()
        finally:
            self._queue.put(Event.FINISHED)

    # ------------------------------------------------------------------
    # Threaded operation
    # ------------------------------------------------------------------

    def start(self):
        """Run the state machine on a background thread."""
        if self._thread is not None:
            return
        self._threaded = True
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix='prosecheck-check')
        self._thread = threading.Thread(target=self._loop, name='prosecheck-scheduler', daemon=True)
        self._thread.start()

    def submit(self, event: Union[Event, str]):
        """Queue an event (thread-safe). Handled inline when not started."""
        if self._threaded:
            self._queue.put(Event(event))
        else:
            self.handle(event)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is pending or running."""
        return self._idle.wait(timeout)

    def stop(self):
        """Stop the loop after the current run finishes."""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join()
        self._worker.shutdown(wait=True)
        self._thread = None
        self._worker = None
        self._threaded = False

    def _loop(self):
        while True:
            timeout = None
            if self.state == State.PENDING and self.deadline is not None:
                timeout = max(0.0, self.deadline - self.clock())
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                self.poll()
                continue
            if item is _STOP:
                break
            self.handle(item)
