"""
Sync Channel

A disposable subscription to one program's broadcast topic. It is opened
when a program is loaded and closed when the client moves to another
program, so stale subscriptions never outlive their program.

Protocol:
    timer_update(TimerState)    pushed after every local transition
    program_update(Program)     pushed after every content edit
    sync_request()              sent automatically once the join is confirmed
    sync_response(TimerState)   reply from an authoritative client

Sends are fire-and-forget. Sending on a closed channel is logged and
dropped; the local state has already moved on, so nothing is retried.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from ..interfaces.program import Program
from ..interfaces.timer_state import TimerState
from .messages import (
    Envelope,
    PROGRAM_UPDATE,
    SYNC_REQUEST,
    SYNC_RESPONSE,
    TIMER_UPDATE,
    topic_for,
)
from .transport import Subscription, Transport

logger = logging.getLogger(__name__)


@dataclass
class ChannelHandlers:
    """Callbacks for inbound messages. Unset handlers ignore the kind."""
    on_timer_update: Optional[Callable[[TimerState], None]] = None
    on_program_update: Optional[Callable[[Program], None]] = None
    on_sync_request: Optional[Callable[[str], None]] = None
    on_sync_response: Optional[Callable[[TimerState], None]] = None


def new_client_id() -> str:
    return uuid.uuid4().hex


class SyncChannel:
    """Per-program broadcast channel for one client."""

    def __init__(
        self,
        transport: Transport,
        program_id: str,
        handlers: ChannelHandlers,
        client_id: Optional[str] = None,
        request_sync_on_join: bool = True,
    ):
        """
        Args:
            transport: Broadcast medium shared by all channels of this client
            program_id: Program whose topic this channel serves
            handlers: Inbound message callbacks
            client_id: Sender id used to drop our own echoes
            request_sync_on_join: Send sync_request once the join is confirmed
        """
        self.transport = transport
        self.program_id = program_id
        self.topic = topic_for(program_id)
        self.handlers = handlers
        self.client_id = client_id or new_client_id()
        self.request_sync_on_join = request_sync_on_join

        self._subscription: Optional[Subscription] = None
        self.is_open = False
        self.joined = False

        self.stats = {
            'sent': 0,
            'received': 0,
            'dropped': 0,
            'discarded': 0,
        }

    # --- Lifecycle -------------------------------------------------------

    def open(self, announce: Optional[TimerState] = None):
        """
        Subscribe to the program topic.

        Args:
            announce: State published before subscribing (a program swap's
                reset), so it reaches peers ahead of any sync_request reply
        """
        if self.is_open:
            return
        self.is_open = True
        logger.info(f"Opening sync channel {self.topic}")
        if announce is not None:
            self.send_timer_update(announce)
        self._subscription = self.transport.subscribe(self.topic, self._on_raw, self._on_joined)

    def close(self):
        if not self.is_open:
            return
        self.is_open = False
        self.joined = False
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        logger.info(f"Closed sync channel {self.topic}")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _on_joined(self):
        self.joined = True
        logger.info(f"Joined {self.topic}")
        if self.request_sync_on_join:
            self.request_sync()

    # --- Outbound ----------------------------------------------------------

    def _send(self, kind: str, payload: dict):
        if not self.is_open:
            self.stats['dropped'] += 1
            logger.warning(f"Cannot send {kind}: no active channel for {self.program_id}")
            return
        envelope = Envelope(type=kind, sender=self.client_id, payload=payload)
        try:
            self.transport.publish(self.topic, envelope.encode())
        except Exception as e:
            self.stats['dropped'] += 1
            logger.warning(f"Send of {kind} on {self.topic} failed: {e}")
            return
        self.stats['sent'] += 1
        logger.debug(f"Sent {kind} on {self.topic}")

    def send_timer_update(self, state: TimerState):
        self._send(TIMER_UPDATE, state.to_dict())

    def send_program_update(self, program: Program):
        self._send(PROGRAM_UPDATE, program.to_dict())

    def request_sync(self):
        self._send(SYNC_REQUEST, {})

    def send_sync_response(self, state: TimerState):
        self._send(SYNC_RESPONSE, state.to_dict())

    # --- Inbound -----------------------------------------------------------

    def _on_raw(self, topic: str, data: bytes):
        if not self.is_open or topic != self.topic:
            return
        try:
            envelope = Envelope.decode(data)
        except (ValueError, TypeError) as e:
            self.stats['discarded'] += 1
            logger.warning(f"Discarding malformed message on {topic}: {e}")
            return

        if envelope.sender == self.client_id:
            return
        self.stats['received'] += 1

        try:
            self._dispatch(envelope)
        except (ValueError, TypeError) as e:
            self.stats['discarded'] += 1
            logger.warning(f"Discarding invalid {envelope.type} from {envelope.sender[:8]}: {e}")

    def _dispatch(self, envelope: Envelope):
        kind = envelope.type
        if kind in (TIMER_UPDATE, SYNC_RESPONSE):
            state = TimerState.from_dict(envelope.payload)
            if state.program_id != self.program_id:
                self.stats['discarded'] += 1
                logger.debug(f"Discarding {kind} for program {state.program_id}")
                return
            handler = (self.handlers.on_timer_update if kind == TIMER_UPDATE
                       else self.handlers.on_sync_response)
            if handler:
                handler(state)

        elif kind == PROGRAM_UPDATE:
            program = Program.from_dict(envelope.payload)
            if program.id != self.program_id:
                self.stats['discarded'] += 1
                logger.debug(f"Discarding program_update for {program.id}")
                return
            if self.handlers.on_program_update:
                self.handlers.on_program_update(program)

        elif kind == SYNC_REQUEST:
            if self.handlers.on_sync_request:
                self.handlers.on_sync_request(envelope.sender)
