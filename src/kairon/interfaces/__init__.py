"""Shared data contracts: programs, slots and the timer wire state."""

from .program import Program, Slot, SLOT_PRESETS, new_id
from .timer_state import TimerState, SessionPhase

__all__ = ['Program', 'Slot', 'SLOT_PRESETS', 'new_id', 'TimerState', 'SessionPhase']
