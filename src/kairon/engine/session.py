"""
Session State

The in-memory timer state of one client for one program, and the state
machine that moves it:

    IDLE      no slots; the timer cannot run
    PAUSED    (index, seconds_elapsed)
    RUNNING   (index, timer_start_timestamp)
    COMPLETE  index == slot count

Local transitions (start, pause, next, prev, auto-advance, auto-start,
program load) notify timer listeners with the resulting TimerState; the
live session forwards those to the sync channel. Remote snapshots are
applied with apply_remote() and are never re-published.

A read-only session (viewer) ignores every mutating entry point and never
advances on its own; it only follows remote snapshots and refreshes its
displayed elapsed time on tick().

All mutation happens under one lock. Listeners run after the lock is
released so that a listener may call back into another session. Local
transitions are additionally serialized with their notifications, so
listeners see states in the order they were produced; remote snapshots
never take that lock.
"""

import functools
import logging
import threading
from typing import Callable, List, Optional, Tuple

from ..interfaces.program import Program, Slot
from ..interfaces.timer_state import TimerState, SessionPhase
from ..timing import clock

logger = logging.getLogger(__name__)

TimerListener = Callable[[TimerState], None]
ProgramListener = Callable[[Program], None]
# (slot, actual_duration_minutes, automatic)
SlotCompleteListener = Callable[[Slot, int, bool], None]


def _publishes(method):
    """Run a local transition and its notifications as one step."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._publish_lock:
            return method(self, *args, **kwargs)
    return wrapper


class SessionState:
    """Authoritative local timer state for one connected client."""

    def __init__(
        self,
        program: Program,
        read_only: bool = False,
        now_fn: Callable[[], int] = clock.now_ms,
    ):
        """
        Args:
            program: Program to load (reset to first slot, paused)
            read_only: Viewer session; local transitions become no-ops
            now_fn: Wall clock in epoch milliseconds (injectable for tests)
        """
        self.read_only = read_only
        self._now = now_fn
        self._lock = threading.RLock()
        self._publish_lock = threading.RLock()

        self.program = program.copy()
        self.current_slot_index = 0
        self.is_timer_active = False
        self.seconds_elapsed = 0
        self.timer_start_timestamp: Optional[int] = None

        self._timer_listeners: List[TimerListener] = []
        self._program_listeners: List[ProgramListener] = []
        self._slot_complete_listeners: List[SlotCompleteListener] = []

    # --- Listeners -------------------------------------------------------

    def add_timer_listener(self, listener: TimerListener):
        self._timer_listeners.append(listener)

    def add_program_listener(self, listener: ProgramListener):
        self._program_listeners.append(listener)

    def add_slot_complete_listener(self, listener: SlotCompleteListener):
        self._slot_complete_listeners.append(listener)

    def _emit_timer(self, state: TimerState):
        for listener in list(self._timer_listeners):
            try:
                listener(state)
            except Exception as e:
                logger.exception(f"Timer listener failed: {e}")

    def _emit_program(self, program: Program):
        for listener in list(self._program_listeners):
            try:
                listener(program)
            except Exception as e:
                logger.exception(f"Program listener failed: {e}")

    def _emit_slot_complete(self, slot: Slot, actual: int, automatic: bool):
        for listener in list(self._slot_complete_listeners):
            try:
                listener(slot, actual, automatic)
            except Exception as e:
                logger.exception(f"Slot-complete listener failed: {e}")

    # --- Queries ---------------------------------------------------------

    @property
    def program_id(self) -> str:
        return self.program.id

    @property
    def phase(self) -> SessionPhase:
        with self._lock:
            count = self.program.slot_count
            if count == 0:
                return SessionPhase.IDLE
            if self.current_slot_index >= count:
                return SessionPhase.COMPLETE
            if self.is_timer_active:
                return SessionPhase.RUNNING
            return SessionPhase.PAUSED

    @property
    def current_slot(self) -> Optional[Slot]:
        with self._lock:
            if 0 <= self.current_slot_index < self.program.slot_count:
                return self.program.slots[self.current_slot_index]
            return None

    @property
    def next_slot(self) -> Optional[Slot]:
        with self._lock:
            index = self.current_slot_index + 1
            if 0 <= index < self.program.slot_count:
                return self.program.slots[index]
            return None

    def program_snapshot(self) -> Program:
        """Independent copy of the loaded program."""
        with self._lock:
            return self.program.copy()

    def snapshot(self) -> TimerState:
        with self._lock:
            return TimerState(
                program_id=self.program.id,
                is_timer_active=self.is_timer_active,
                current_slot_index=self.current_slot_index,
                seconds_elapsed=self.seconds_elapsed,
                timer_start_timestamp=self.timer_start_timestamp,
            )

    def sync_snapshot(self) -> TimerState:
        """
        Snapshot for answering a late joiner.

        A running timer without a cached start timestamp gets one backdated
        from seconds_elapsed, so the joiner's elapsed computation from the
        timestamp matches ours.
        """
        with self._lock:
            start = self.timer_start_timestamp
            if self.is_timer_active and start is None:
                start = clock.backdated_start(self._now(), self.seconds_elapsed)
            return TimerState(
                program_id=self.program.id,
                is_timer_active=self.is_timer_active,
                current_slot_index=self.current_slot_index,
                seconds_elapsed=self.seconds_elapsed,
                timer_start_timestamp=start if self.is_timer_active else None,
            )

    def current_elapsed(self) -> int:
        """Elapsed seconds on the current slot as of now."""
        with self._lock:
            if self.is_timer_active and self.timer_start_timestamp is not None:
                return clock.elapsed_while_active(self._now(), self.timer_start_timestamp)
            return self.seconds_elapsed

    def remaining_seconds(self) -> int:
        slot = self.current_slot
        if slot is None:
            return 0
        return clock.remaining_seconds(slot.duration_minutes, self.current_elapsed())

    def progress(self) -> float:
        slot = self.current_slot
        if slot is None:
            return 0.0
        return clock.progress_fraction(slot.duration_minutes, self.current_elapsed())

    # --- Internal helpers (lock held) -------------------------------------

    def _set_paused(self, index: int, elapsed: int):
        self.current_slot_index = index
        self.is_timer_active = False
        self.seconds_elapsed = max(0, elapsed)
        self.timer_start_timestamp = None

    def _set_running(self, index: int, start_timestamp: int):
        self.current_slot_index = index
        self.is_timer_active = True
        self.timer_start_timestamp = start_timestamp
        self.seconds_elapsed = clock.elapsed_while_active(self._now(), start_timestamp)

    def _record_actual(self, index: int, minutes: int) -> Slot:
        slot = self.program.slots[index]
        slot.actual_duration = minutes
        return slot

    # --- Local transitions -------------------------------------------------

    @_publishes
    def start(self) -> bool:
        """PAUSED(i, e) -> RUNNING(i, now - e*1000)."""
        if self.read_only:
            return False
        with self._lock:
            if self.phase != SessionPhase.PAUSED:
                return False
            now = self._now()
            self._set_running(self.current_slot_index, clock.backdated_start(now, self.seconds_elapsed))
            state = self.snapshot()
        logger.info(f"Timer started on slot {state.current_slot_index} at {state.seconds_elapsed}s")
        self._emit_timer(state)
        return True

    @_publishes
    def pause(self) -> bool:
        """RUNNING(i, ts) -> PAUSED(i, floor((now - ts) / 1000))."""
        if self.read_only:
            return False
        with self._lock:
            if self.phase != SessionPhase.RUNNING:
                return False
            self._set_paused(self.current_slot_index, self.current_elapsed())
            state = self.snapshot()
        logger.info(f"Timer paused on slot {state.current_slot_index} at {state.seconds_elapsed}s")
        self._emit_timer(state)
        return True

    def toggle(self) -> bool:
        if self.phase == SessionPhase.RUNNING:
            return self.pause()
        return self.start()

    @_publishes
    def force_start(self) -> bool:
        """
        Start the current slot from zero (scheduled auto-start).

        Only from PAUSED; the slot index is left as it is.
        """
        if self.read_only:
            return False
        with self._lock:
            if self.phase != SessionPhase.PAUSED:
                return False
            self._set_running(self.current_slot_index, self._now())
            state = self.snapshot()
        logger.info(f"Auto-start: timer started on slot {state.current_slot_index}")
        self._emit_timer(state)
        return True

    @_publishes
    def next(self) -> bool:
        """
        Manual advance.

        Records the true elapsed minutes on the current slot, then moves to
        PAUSED(i + 1, 0). From the last slot this enters COMPLETE.
        """
        if self.read_only:
            return False
        with self._lock:
            index = self.current_slot_index
            if index >= self.program.slot_count:
                return False
            elapsed = self.current_elapsed()
            completed = self._record_actual(index, int(elapsed / 60 + 0.5))
            self._set_paused(index + 1, 0)
            state = self.snapshot()
            program = self.program.copy()
        logger.info(f"Advanced to slot {state.current_slot_index} ('{completed.title}' took {completed.actual_duration} min)")
        self._emit_slot_complete(completed, completed.actual_duration, False)
        self._emit_timer(state)
        self._emit_program(program)
        return True

    @_publishes
    def prev(self) -> bool:
        """PAUSED(i - 1, 0) when i > 0; actual durations are left alone."""
        if self.read_only:
            return False
        with self._lock:
            index = min(self.current_slot_index, self.program.slot_count)
            if index <= 0:
                return False
            self._set_paused(index - 1, 0)
            state = self.snapshot()
        logger.info(f"Moved back to slot {state.current_slot_index}")
        self._emit_timer(state)
        return True

    @_publishes
    def tick(self) -> Optional[TimerState]:
        """
        One-second evaluation while running.

        Refreshes seconds_elapsed from the start timestamp. When the slot
        has run its full duration, records the planned duration as the
        actual one and either continues on the next slot or completes the
        program. At most one slot completes per tick, so a zero-length slot
        is still entered before the one after it.

        Returns:
            The new TimerState if a slot completed, else None
        """
        with self._lock:
            if self.phase != SessionPhase.RUNNING:
                return None
            if self.timer_start_timestamp is None:
                self.timer_start_timestamp = clock.backdated_start(self._now(), self.seconds_elapsed)
            self.seconds_elapsed = self.current_elapsed()

            if self.read_only:
                return None

            index = self.current_slot_index
            slot = self.program.slots[index]
            if self.seconds_elapsed < slot.duration_seconds:
                return None

            completed = self._record_actual(index, slot.duration_minutes)
            if index + 1 < self.program.slot_count:
                self._set_running(index + 1, self._now())
            else:
                self._set_paused(self.program.slot_count, 0)
            state = self.snapshot()
            program = self.program.copy()

        if state.is_timer_active:
            logger.info(f"Slot '{completed.title}' finished, auto-advancing to slot {state.current_slot_index}")
        else:
            logger.info(f"Slot '{completed.title}' finished, program complete")
        self._emit_slot_complete(completed, completed.actual_duration, True)
        self._emit_timer(state)
        self._emit_program(program)
        return state

    # --- Program content ---------------------------------------------------

    @_publishes
    def load_program(self, program: Program, publish: bool = True) -> TimerState:
        """
        Replace the timeline and reset to PAUSED(0, 0).

        The reset state is published even if nothing changed locally, so
        peers cannot miss a program swap. Read-only sessions load silently.
        Pass publish=False when the caller announces the reset itself (on
        the new program's channel).
        """
        with self._lock:
            self.program = program.copy()
            self._set_paused(0, 0)
            state = self.snapshot()
        logger.info(f"Loaded program '{program.title}' ({program.id}, {program.slot_count} slots)")
        if publish and not self.read_only:
            self._emit_timer(state)
        return state

    @_publishes
    def update_program(self, program: Program) -> bool:
        """
        Apply an edit to the loaded program (same id).

        Timer fields are left as they are; the index may now point past the
        end, which reads as COMPLETE.
        """
        if self.read_only:
            return False
        with self._lock:
            if program.id != self.program.id:
                raise ValueError(f"update for {program.id} does not match loaded program {self.program.id}")
            self.program = program.copy()
            snapshot = self.program.copy()
        self._emit_program(snapshot)
        return True

    # --- Remote snapshots ------------------------------------------------

    def apply_remote(self, state: TimerState) -> bool:
        """
        Overwrite local timer fields with a peer's snapshot.

        Last write wins; snapshots for another program are discarded.
        """
        with self._lock:
            if state.program_id != self.program.id:
                logger.debug(f"Discarding timer state for {state.program_id} (loaded {self.program.id})")
                return False
            now = self._now()
            self.current_slot_index = state.current_slot_index
            self.is_timer_active = state.is_timer_active
            if state.is_timer_active:
                start = state.timer_start_timestamp
                if start is None:
                    start = clock.backdated_start(now, state.seconds_elapsed)
                self.timer_start_timestamp = start
                self.seconds_elapsed = clock.elapsed_while_active(now, start)
            else:
                self.timer_start_timestamp = None
                self.seconds_elapsed = state.seconds_elapsed
        logger.debug(f"Applied remote state: {state.as_record()}")
        return True

    def apply_remote_program(self, program: Program) -> bool:
        """Replace program content wholesale if it is the loaded program."""
        with self._lock:
            if program.id != self.program.id:
                logger.debug(f"Discarding program update for {program.id}")
                return False
            self.program = program.copy()
        return True

    def describe(self) -> Tuple[SessionPhase, Optional[Slot], int]:
        """(phase, current slot, remaining seconds) in one consistent read."""
        with self._lock:
            return self.phase, self.current_slot, self.remaining_seconds()
