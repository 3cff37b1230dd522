"""
Live Session

One connected client: its SessionState, the sync channel for the loaded
program, the auto-advance/auto-start controller and debounced autosave.

    local action ──▶ SessionState ──▶ timer/program listeners ──▶ SyncChannel ──▶ peers
    peers ──▶ SyncChannel ──▶ apply_remote / apply_remote_program (never re-published)

Modes:
    editor     full control; answers late joiners' sync requests
    coeditor   like editor, restricted to the live/list/editor/tv views
    viewer     read-only; follows broadcasts and never publishes timer state

Switching programs tears down the old channel and controller and opens
new ones scoped to the new program id; the reset state is announced on
the new program's topic.

Usage:
    live = LiveSession(transport, program, mode="editor", store=store)
    live.start()
    live.start_timer()
    ...
    live.stop()
"""

import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from ..interfaces.program import Program, Slot
from ..interfaces.timer_state import TimerState
from ..share.routes import Mode
from ..storage.program_store import PersistenceError, ProgramStore
from ..sync.channel import ChannelHandlers, SyncChannel, new_client_id
from ..sync.transport import Transport
from ..timing import clock, timeline
from .controller import AutoController
from .session import SessionState

logger = logging.getLogger(__name__)


class LiveSession:
    """
    Per-client orchestrator.

    Session state is the single logical timeline; the controller thread,
    transport receive thread and caller all go through SessionState's lock.
    """

    def __init__(
        self,
        transport: Transport,
        program: Program,
        mode: Union[Mode, str] = Mode.EDITOR,
        store: Optional[ProgramStore] = None,
        now_fn: Callable[[], int] = clock.now_ms,
        datetime_fn: Callable[[], datetime] = datetime.now,
        auto_start: bool = True,
        tick_interval: float = 1.0,
        autosave_delay: float = 2.0,
        notify: Optional[Callable[[str], None]] = None,
        client_id: Optional[str] = None,
    ):
        """
        Args:
            transport: Broadcast transport (started by the caller)
            program: Program to join
            mode: editor, coeditor or viewer
            store: Program store for autosave (None disables saving)
            now_fn: Wall clock in epoch ms
            datetime_fn: Local wall clock for auto-start
            auto_start: Start the timer at the program's scheduled start
            tick_interval: Controller period in seconds (0 = caller drives tick())
            autosave_delay: Debounce before saving edits (0 = save immediately)
            notify: Called with a message when a save fails
            client_id: Sender id on the sync channel
        """
        self.transport = transport
        self.mode = mode if isinstance(mode, Mode) else Mode.parse(mode)
        self.read_only = self.mode.read_only
        self.store = store
        self.auto_start = auto_start
        self.tick_interval = tick_interval
        self.autosave_delay = autosave_delay
        self.notify = notify
        self.client_id = client_id or new_client_id()
        self._datetime = datetime_fn

        self.session = SessionState(program, read_only=self.read_only, now_fn=now_fn)
        self.session.add_timer_listener(self._on_local_timer)
        self.session.add_program_listener(self._on_local_program)
        self.session.add_slot_complete_listener(self._on_slot_complete)

        self.channel = self._make_channel(program.id)
        self.controller: Optional[AutoController] = None
        self.running = False

        self._switch_lock = threading.RLock()
        self._save_lock = threading.Lock()
        self._autosave_timer: Optional[threading.Timer] = None
        self._pending_save: Optional[Program] = None
        self.last_save_error: Optional[str] = None

        self.stats = {
            'start_time': 0.0,
            'programs_loaded': 1,
            'slots_completed': 0,
            'sync_requests_answered': 0,
            'saves': 0,
            'save_failures': 0,
        }

        logger.info("=" * 60)
        logger.info("LiveSession initializing")
        logger.info(f"  Program: '{program.title}' ({program.id})")
        logger.info(f"  Mode: {self.mode.value}")
        logger.info(f"  Client: {self.client_id[:8]}")
        logger.info(f"  Autosave: {'enabled' if store and not self.read_only else 'disabled'}")
        logger.info("=" * 60)

    # --- Wiring ------------------------------------------------------------

    def _make_channel(self, program_id: str) -> SyncChannel:
        handlers = ChannelHandlers(
            on_timer_update=self.session.apply_remote,
            on_program_update=self.session.apply_remote_program,
            on_sync_request=self._on_sync_request,
            on_sync_response=self.session.apply_remote,
        )
        return SyncChannel(self.transport, program_id, handlers, client_id=self.client_id)

    def _on_local_timer(self, state: TimerState):
        self.channel.send_timer_update(state)

    def _on_local_program(self, program: Program):
        self.channel.send_program_update(program)
        self._schedule_autosave(program)

    def _on_slot_complete(self, slot: Slot, actual: int, automatic: bool):
        self.stats['slots_completed'] += 1
        logger.debug(f"Slot '{slot.title}' complete: {actual} of {slot.duration_minutes} min (automatic={automatic})")

    def _on_sync_request(self, sender: str):
        """Only authoritative clients answer; viewers stay silent."""
        if self.read_only:
            return
        channel = self.channel
        channel.send_program_update(self.session.program_snapshot())
        channel.send_sync_response(self.session.sync_snapshot())
        self.stats['sync_requests_answered'] += 1
        logger.info(f"Answered sync request from {sender[:8]}")

    def _start_controller(self):
        if self.tick_interval <= 0:
            return
        self.controller = AutoController(
            self.session,
            auto_start=self.auto_start,
            interval=self.tick_interval,
            datetime_fn=self._datetime,
        )
        self.controller.start()

    def _stop_controller(self):
        if self.controller is not None:
            self.controller.stop()
            self.controller = None

    # --- Lifecycle -----------------------------------------------------------

    def start(self):
        """Join the program's channel and start the controller."""
        if self.running:
            logger.warning("LiveSession already running")
            return
        self.stats['start_time'] = time.time()
        self.running = True
        with self._switch_lock:
            self.channel.open()
            self._start_controller()
        logger.info(f"LiveSession started on {self.channel.topic}")

    def stop(self):
        logger.info("Stopping LiveSession...")
        self.running = False
        with self._switch_lock:
            self._stop_controller()
            self.flush_autosave()
            self.channel.close()

        uptime = time.time() - self.stats['start_time'] if self.stats['start_time'] else 0.0
        logger.info("LiveSession stopped")
        logger.info(f"  Uptime: {uptime:.1f}s")
        logger.info(f"  Messages sent: {self.channel.stats['sent']}")
        logger.info(f"  Messages received: {self.channel.stats['received']}")
        logger.info(f"  Saves: {self.stats['saves']} ({self.stats['save_failures']} failed)")

    def run(self):
        """Run the session (blocking)."""
        import signal

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}")
            self.running = False

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

        self.start()
        try:
            while self.running:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    # --- Program switching ---------------------------------------------------

    @property
    def program(self) -> Program:
        return self.session.program_snapshot()

    def load_program(self, program: Program) -> TimerState:
        """
        Replace the loaded program and reset the timer.

        A new program id gets a new channel; the reset is announced on it
        (not on the old one) unless this client is read-only.
        """
        with self._switch_lock:
            self.flush_autosave()
            self._stop_controller()

            switching = program.id != self.session.program_id
            if switching:
                self.channel.close()
            state = self.session.load_program(program, publish=False)
            self.stats['programs_loaded'] += 1
            announce = None if self.read_only else state

            if switching:
                self.channel = self._make_channel(program.id)
                if self.running:
                    self.channel.open(announce=announce)
            elif announce is not None:
                self.channel.send_timer_update(announce)

            if self.running:
                self._start_controller()

        if not self.read_only:
            self._schedule_autosave(program.copy())
        return state

    # --- Local actions -------------------------------------------------------

    def start_timer(self) -> bool:
        return self.session.start()

    def pause_timer(self) -> bool:
        return self.session.pause()

    def toggle_timer(self) -> bool:
        return self.session.toggle()

    def next_slot(self) -> bool:
        return self.session.next()

    def prev_slot(self) -> bool:
        return self.session.prev()

    def update_program(self, program: Program) -> bool:
        return self.session.update_program(program)

    def edit(self, transform: Callable[..., Program], *args, **kwargs) -> bool:
        """
        Apply a timeline transform to the loaded program.

            live.edit(timeline.move_slot, 3, 0)
        """
        if self.read_only:
            return False
        return self.update_program(transform(self.session.program_snapshot(), *args, **kwargs))

    def apply_draft(self, draft: Optional[Program], program_id: Optional[str] = None) -> bool:
        """
        Replace the loaded program's content with a generated draft.

        The program keeps its id and date. A draft that arrives after the
        client moved to another program, or a failed draft (None), leaves
        the program untouched.
        """
        if draft is None or self.read_only:
            return False
        current = self.session.program_snapshot()
        if program_id is not None and program_id != current.id:
            logger.info(f"Discarding draft for {program_id}: program changed")
            return False
        merged = draft.copy()
        merged.id = current.id
        merged.date = current.date
        return self.update_program(merged)

    def request_draft(self, generator, raw_text: str):
        """Generate a draft off-thread and apply it when it arrives."""
        program_id = self.session.program_id
        return generator.generate_async(raw_text, lambda draft: self.apply_draft(draft, program_id))

    # --- Persistence -----------------------------------------------------------

    def _schedule_autosave(self, program: Program):
        if self.read_only or self.store is None:
            return
        if program.is_placeholder():
            return
        if self.autosave_delay <= 0:
            self.save(program)
            return
        with self._save_lock:
            if self._autosave_timer is not None:
                self._autosave_timer.cancel()
            self._pending_save = program
            self._autosave_timer = threading.Timer(self.autosave_delay, self._autosave_fire)
            self._autosave_timer.daemon = True
            self._autosave_timer.start()

    def _autosave_fire(self):
        with self._save_lock:
            program = self._pending_save
            self._pending_save = None
            self._autosave_timer = None
        if program is not None:
            self.save(program)

    def flush_autosave(self):
        """Write a pending autosave now."""
        with self._save_lock:
            if self._autosave_timer is not None:
                self._autosave_timer.cancel()
                self._autosave_timer = None
            program = self._pending_save
            self._pending_save = None
        if program is not None:
            self.save(program)

    def save(self, program: Optional[Program] = None) -> bool:
        """
        Upsert the program into the store.

        Failures are logged and passed to notify; the in-memory program is
        kept as it is.
        """
        if self.store is None:
            return False
        program = program or self.session.program_snapshot()
        try:
            self.store.upsert(program)
        except PersistenceError as e:
            self.stats['save_failures'] += 1
            self.last_save_error = str(e)
            logger.error(f"Failed to save program '{program.title}': {e}")
            if self.notify:
                self.notify(f"Could not save '{program.title}': {e}")
            return False
        self.stats['saves'] += 1
        self.last_save_error = None
        return True

    # --- Status --------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Snapshot for the status endpoint."""
        phase, slot, remaining = self.session.describe()
        state = self.session.snapshot()
        program = self.session.program_snapshot()
        next_slot = self.session.next_slot

        return {
            'timestamp': time.time(),
            'mode': self.mode.value,
            'client_id': self.client_id,
            'program': {
                'id': program.id,
                'title': program.title,
                'subtitle': program.subtitle,
                'date': program.date,
                'start_time': program.start_time,
                'end_time': program.end_time,
                'slot_count': program.slot_count,
            },
            'phase': phase.value,
            'current_slot': slot.to_dict() if slot else None,
            'next_slot': next_slot.to_dict() if next_slot else None,
            'remaining_seconds': remaining,
            'countdown': clock.format_countdown(remaining),
            'progress': self.session.progress(),
            'budget_delta_minutes': timeline.budget_delta(program),
            'timer': state.to_dict(),
            'channel': {
                'topic': self.channel.topic,
                'open': self.channel.is_open,
                'joined': self.channel.joined,
                'stats': dict(self.channel.stats),
            },
            'last_save_error': self.last_save_error,
            'stats': dict(self.stats),
            'uptime_seconds': time.time() - self.stats['start_time'] if self.stats['start_time'] else 0.0,
        }
