"""
kairon: Synchronized live timer for multi-session event programs

An event program (conference day, service, festival stage) is an ordered
list of timed slots. One editor drives the clock; any number of viewers,
stage monitors and co-editors follow it live over a per-program
broadcast channel, including clients that join mid-session.

Architecture:
    editor ──▶ SyncChannel (program:<id>) ──▶ relay ──▶ viewers / TV displays

There is no authoritative server. Every message is a full-state
snapshot, and a running timer is carried as a start timestamp, so every
client computes the same countdown from its own clock.

Version: 1.0.0
"""

__version__ = "1.0.0"

from .interfaces.program import Program, Slot
from .interfaces.timer_state import TimerState, SessionPhase

__all__ = [
    "Program",
    "Slot",
    "TimerState",
    "SessionPhase",
    "__version__",
]
