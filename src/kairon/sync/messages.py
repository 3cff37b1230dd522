"""
Sync message envelope.

Every message on a program topic is a JSON envelope:

    {"type": "timer_update", "sender": "<client id>", "sentAt": <epoch ms>,
     "payload": {...}}

Kinds:
    timer_update     TimerState snapshot after a local transition
    program_update   full Program after a content edit
    sync_request     sent by a client right after it joins (no payload)
    sync_response    TimerState reply from an authoritative client
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict

from ..timing.clock import now_ms

TIMER_UPDATE = "timer_update"
PROGRAM_UPDATE = "program_update"
SYNC_REQUEST = "sync_request"
SYNC_RESPONSE = "sync_response"

MESSAGE_KINDS = {TIMER_UPDATE, PROGRAM_UPDATE, SYNC_REQUEST, SYNC_RESPONSE}

TOPIC_PREFIX = "program:"


def topic_for(program_id: str) -> str:
    """Broadcast topic of one program. Topics are per program, never global."""
    return f"{TOPIC_PREFIX}{program_id}"


@dataclass
class Envelope:
    type: str
    sender: str
    payload: Dict[str, Any] = field(default_factory=dict)
    sent_at: int = field(default_factory=now_ms)

    def encode(self) -> bytes:
        return json.dumps({
            "type": self.type,
            "sender": self.sender,
            "sentAt": self.sent_at,
            "payload": self.payload,
        }, separators=(",", ":")).encode("utf-8")

    @classmethod
    def decode(cls, raw: bytes) -> "Envelope":
        """
        Raises:
            ValueError: on invalid JSON, unknown kind or missing fields
        """
        try:
            data = json.loads(raw.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise ValueError(f"envelope is not UTF-8: {e}") from e
        except RecursionError as e:
            raise ValueError("envelope nested too deeply") from e
        if not isinstance(data, dict):
            raise ValueError("envelope must be an object")
        kind = data.get("type")
        if kind not in MESSAGE_KINDS:
            raise ValueError(f"unknown message type {kind!r}")
        sender = data.get("sender")
        if not isinstance(sender, str):
            raise ValueError("envelope sender missing")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("envelope payload must be an object")
        sent_at = data.get("sentAt") or 0
        if isinstance(sent_at, bool) or not isinstance(sent_at, (int, float)) or not math.isfinite(sent_at):
            raise ValueError(f"envelope sentAt must be a finite number, got {sent_at!r}")
        return cls(type=kind, sender=sender, payload=payload, sent_at=int(sent_at))
