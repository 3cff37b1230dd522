"""
Program Timeline

Schedule arithmetic over the ordered slot sequence of a Program, and the
pure transformations the editor applies to it (add, update, reorder,
insert, duplicate, remove). Transformations never mutate their input;
they return a new Program with the same identity.

Times are minutes since local midnight.
"""

from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

import numpy as np

from ..interfaces.program import Program, Slot, new_id
from .clock import format_time_of_day, time_to_minutes


COPY_SUFFIX = " (Copy)"


def _durations(program: Program) -> np.ndarray:
    return np.array([s.duration_minutes for s in program.slots], dtype=np.int64)


def start_minutes(program: Program) -> int:
    return time_to_minutes(program.start_time)


def total_duration(program: Program) -> int:
    """Sum of planned slot durations in minutes."""
    return int(_durations(program).sum())


def slot_start_times(program: Program) -> List[int]:
    """Start minute of every slot, in schedule order."""
    durations = _durations(program)
    if durations.size == 0:
        return []
    offsets = np.concatenate(([0], np.cumsum(durations)[:-1]))
    return [int(v) for v in offsets + start_minutes(program)]


def slot_start_minutes(program: Program, index: int) -> int:
    """
    Start minute of slot `index`.

    index may equal the slot count, giving the program end.
    """
    if index < 0 or index > program.slot_count:
        raise IndexError(f"slot index {index} out of range 0..{program.slot_count}")
    return start_minutes(program) + int(_durations(program)[:index].sum())


def slot_end_minutes(program: Program, index: int) -> int:
    return slot_start_minutes(program, index) + program.slots[index].duration_minutes


def program_end_minutes(program: Program) -> int:
    return start_minutes(program) + total_duration(program)


def budget_delta(program: Program) -> Optional[int]:
    """
    Minutes of slack before the target end time.

    Positive means time remaining in the budget, negative means over
    budget. None when the program has no end_time.
    """
    if not program.end_time:
        return None
    return time_to_minutes(program.end_time) - program_end_minutes(program)


def current_and_next(program: Program, index: int) -> Tuple[Optional[Slot], Optional[Slot]]:
    """The slot at index and the one after it (either may be None)."""
    current = program.slots[index] if 0 <= index < program.slot_count else None
    following = program.slots[index + 1] if 0 <= index + 1 < program.slot_count else None
    return current, following


# --- Transformations ---------------------------------------------------

def _with_slots(program: Program, slots: List[Slot]) -> Program:
    return replace(program, slots=slots)


def add_slot(program: Program, slot: Optional[Slot] = None) -> Program:
    """Append a slot (a default 15-minute talk when none is given)."""
    if slot is None:
        slot = Slot(id=new_id(), title="New Session", speaker="", duration_minutes=15, type="Talk")
    return _with_slots(program, list(program.slots) + [slot])


def insert_slot(program: Program, index: int, slot: Slot) -> Program:
    slots = list(program.slots)
    slots.insert(max(0, min(index, len(slots))), slot)
    return _with_slots(program, slots)


def update_slot(program: Program, slot_id: str, **changes) -> Program:
    """Replace fields of the slot with the given id."""
    index = program.slot_index(slot_id)
    slots = list(program.slots)
    slots[index] = replace(slots[index], **changes)
    return _with_slots(program, slots)


def remove_slot(program: Program, slot_id: str) -> Program:
    return _with_slots(program, [s for s in program.slots if s.id != slot_id])


def duplicate_slot(program: Program, index: int) -> Program:
    """Copy slot `index` with a new id and "(Copy)" title, right after the source."""
    source = program.slots[index]
    clone = replace(source, id=new_id(), title=f"{source.title}{COPY_SUFFIX}")
    return insert_slot(program, index + 1, clone)


def move_slot(program: Program, from_index: int, to_index: int) -> Program:
    """Reorder: take the slot at from_index and place it at to_index."""
    count = program.slot_count
    if not (0 <= from_index < count) or not (0 <= to_index < count):
        raise IndexError(f"move {from_index}->{to_index} out of range for {count} slots")
    slots = list(program.slots)
    slot = slots.pop(from_index)
    slots.insert(to_index, slot)
    return _with_slots(program, slots)


def duplicate_program(program: Program) -> Program:
    """New program identity with fresh slot ids and a "(Copy)" title."""
    return replace(
        program,
        id=new_id(),
        title=f"{program.title}{COPY_SUFFIX}",
        slots=[replace(s, id=new_id()) for s in program.slots],
    )


# --- Listings ------------------------------------------------------------

def split_upcoming(programs: Iterable[Program], today: str) -> Tuple[List[Program], List[Program]]:
    """(upcoming, past) by ISO date, each sorted by date then start time."""
    ordered = sorted(programs, key=lambda p: (p.date, time_to_minutes(p.start_time)))
    upcoming = [p for p in ordered if p.date >= today]
    past = [p for p in ordered if p.date < today]
    return upcoming, past


def programs_on(programs: Iterable[Program], date: str) -> List[Program]:
    return [p for p in programs if p.date == date]


def render_schedule_text(
    program: Program,
    include_speakers: bool = True,
    include_details: bool = True,
) -> str:
    """Plain-text export of the schedule."""
    lines = [program.title]
    if program.subtitle:
        lines.append(program.subtitle)
    lines.append(f"Date: {program.date} | Start: {program.start_time}")
    lines.append("-" * 40)
    lines.append("")

    for slot, start in zip(program.slots, slot_start_times(program)):
        heading = f"{format_time_of_day(start)} - {slot.title}"
        if slot.is_break:
            heading += " (Break)"
        lines.append(heading)
        if include_speakers and slot.speaker:
            lines.append(f"Speaker: {slot.speaker}")
        lines.append(f"Duration: {slot.duration_minutes} mins")
        if include_details and slot.details:
            lines.append(f"Details: {slot.details}")
        lines.append("")

    return "\n".join(lines)
