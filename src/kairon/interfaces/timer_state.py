"""
Timer State Wire Model

TimerState is the full-state snapshot exchanged on a program's sync
channel. Every timer message carries the complete state, so receivers
can overwrite their local session unconditionally; duplicates and
reordering only ever show a stale value until the next snapshot.

While the timer is running, timer_start_timestamp (epoch ms) is the
source of truth for elapsed time. While paused, seconds_elapsed is.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional
import json
import math


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class SessionPhase(str, Enum):
    """Coarse state of a client's session."""
    IDLE = "IDLE"           # No slots, timer cannot run
    PAUSED = "PAUSED"       # On a slot, timer stopped
    RUNNING = "RUNNING"     # On a slot, timer running
    COMPLETE = "COMPLETE"   # Index == slot count


@dataclass(frozen=True)
class TimerState:
    """Immutable timer snapshot for one program."""
    program_id: str
    is_timer_active: bool = False
    current_slot_index: int = 0
    seconds_elapsed: int = 0
    timer_start_timestamp: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "programId": self.program_id,
            "isTimerActive": self.is_timer_active,
            "currentSlotIndex": self.current_slot_index,
            "secondsElapsed": self.seconds_elapsed,
            "timerStartTimestamp": self.timer_start_timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimerState":
        """Validate and build a TimerState from its wire form.

        Raises:
            ValueError: if the payload is malformed
        """
        if not isinstance(data, dict):
            raise ValueError("timer state must be an object")

        program_id = data.get("programId")
        if not isinstance(program_id, str) or not program_id:
            raise ValueError("'programId' must be a non-empty string")

        active = data.get("isTimerActive", False)
        if not isinstance(active, bool):
            raise ValueError("'isTimerActive' must be a boolean")

        index = data.get("currentSlotIndex", 0)
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise ValueError(f"'currentSlotIndex' must be an integer >= 0, got {index!r}")

        elapsed = data.get("secondsElapsed", 0) or 0
        if not _is_finite_number(elapsed):
            raise ValueError("'secondsElapsed' must be a finite number")

        start = data.get("timerStartTimestamp")
        if start is not None:
            if not _is_finite_number(start):
                raise ValueError("'timerStartTimestamp' must be a finite number or null")
            start = int(start)

        return cls(
            program_id=program_id,
            is_timer_active=active,
            current_slot_index=index,
            seconds_elapsed=max(0, int(elapsed)),
            timer_start_timestamp=start,
        )

    @classmethod
    def reset(cls, program_id: str) -> "TimerState":
        """State of a freshly loaded program: first slot, paused, zero elapsed."""
        return cls(program_id=program_id)

    def as_record(self) -> dict:
        """Snake-case view for logs and status output."""
        return asdict(self)
