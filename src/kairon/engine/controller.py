"""
Auto-Advance / Auto-Start Controller

A background loop that drives one SessionState once per second:

    tick()        refresh elapsed time and auto-advance finished slots
    auto-start    force-start the timer when the program's scheduled date
                  and start time arrive (at second 0 of that minute)

Auto-start is best effort: if the process is suspended through the
trigger second, the start is missed and not retried.

A controller is bound to the program that was loaded when it was
created. Once the session's program id changes it stops on its own, so a
superseded program can never be mutated by a stale loop.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from ..interfaces.program import Program
from ..timing import clock
from .session import SessionState

logger = logging.getLogger(__name__)


def should_auto_start(program: Program, now: datetime) -> bool:
    """
    True when `now` is second 0 of the program's scheduled start minute.

    The date is compared with the local calendar date; programs without a
    date or without slots never auto-start.
    """
    if not program.date or not program.slots:
        return False
    if now.date().isoformat() != program.date:
        return False
    if now.second != 0:
        return False
    return now.hour * 60 + now.minute == clock.time_to_minutes(program.start_time)


class AutoController:
    """1-second tick and auto-start poller for one session."""

    def __init__(
        self,
        session: SessionState,
        auto_start: bool = True,
        interval: float = 1.0,
        datetime_fn: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            session: Session to drive
            auto_start: Evaluate the scheduled auto-start
            interval: Seconds between evaluations
            datetime_fn: Local wall clock (injectable for tests)
        """
        self.session = session
        self.auto_start = auto_start and not session.read_only
        self.interval = interval
        self._datetime = datetime_fn

        self.program_id = session.program_id
        self.running = False
        self._stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None
        self._last_auto_start: Optional[str] = None

        self.stats = {
            'ticks': 0,
            'auto_advances': 0,
            'auto_starts': 0,
        }

    def step(self) -> bool:
        """
        One evaluation.

        Returns:
            False once the session has moved to another program
        """
        if self.session.program_id != self.program_id:
            logger.info(f"Program changed from {self.program_id}, controller retiring")
            return False

        self.stats['ticks'] += 1
        if self.session.tick() is not None:
            self.stats['auto_advances'] += 1

        if self.auto_start:
            self._check_auto_start()
        return True

    def _check_auto_start(self):
        now = self._datetime()
        if not should_auto_start(self.session.program, now):
            return
        # At most once per trigger minute, even if the loop runs twice in second 0.
        key = now.strftime("%Y-%m-%dT%H:%M")
        if key == self._last_auto_start:
            return
        self._last_auto_start = key
        if self.session.force_start():
            self.stats['auto_starts'] += 1
            logger.info(f"Auto-started '{self.session.program.title}' at {key}")

    def _loop(self):
        logger.debug(f"Controller loop started for {self.program_id}")
        while self.running and not self._stop_event.is_set():
            try:
                if not self.step():
                    break
            except Exception as e:
                logger.exception(f"Controller step failed: {e}")
            self._stop_event.wait(self.interval)
        self.running = False
        logger.debug(f"Controller loop stopped for {self.program_id}")

    def start(self):
        if self.running:
            logger.warning("Controller already running")
            return
        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(
            target=self._loop,
            name="SessionTick",
            daemon=True
        )
        self.thread.start()

    def stop(self):
        self.running = False
        self._stop_event.set()
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=2.0)
        self.thread = None
