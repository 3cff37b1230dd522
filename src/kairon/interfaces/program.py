"""
Program Data Models

These dataclasses define the schedule shared between kairon clients.
A Program is serialized to JSON (camelCase keys) for the sync channel,
the program store and the legacy shareable-link format.

Slot order is significant: it is the schedule sequence, and the
current slot index of every connected client points into it.
"""

from dataclasses import dataclass, field, replace
from datetime import date as _date
from typing import Any, Dict, List, Optional
import json
import math
import re
import uuid


# Suggested slot types. The type field is free text; these are presets only.
SLOT_PRESETS = (
    "Talk",
    "Break",
    "Keynote",
    "Panel",
    "Worship",
    "Sermon",
    "Music",
)

BREAK_TYPE = "Break"
DEFAULT_START_TIME = "09:00"
PLACEHOLDER_TITLE = "New Event"

_TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")


def new_id() -> str:
    """Client-generated identity for programs and slots."""
    return str(uuid.uuid4())


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string or null")
    return value


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number or null")
    if not math.isfinite(value):
        raise ValueError(f"'{key}' must be finite, got {value!r}")
    return int(value)


@dataclass
class Slot:
    """
    One session of a program.

    actual_duration is filled in when the slot is completed (minutes)
    and is only used for reporting.
    """
    id: str
    title: str
    speaker: str = ""
    duration_minutes: int = 15
    type: str = "Talk"
    details: Optional[str] = None
    actual_duration: Optional[int] = None

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def is_break(self) -> bool:
        return self.type.strip().lower() == BREAK_TYPE.lower()

    def to_dict(self) -> dict:
        result = {
            "id": self.id,
            "title": self.title,
            "speaker": self.speaker,
            "durationMinutes": self.duration_minutes,
            "type": self.type,
        }
        if self.details is not None:
            result["details"] = self.details
        if self.actual_duration is not None:
            result["actualDuration"] = self.actual_duration
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Slot":
        if not isinstance(data, dict):
            raise ValueError("slot must be an object")
        duration = _optional_int(data, "durationMinutes")
        if duration is None:
            raise ValueError("'durationMinutes' is required")
        if duration < 0:
            raise ValueError(f"'durationMinutes' must not be negative, got {duration}")
        return cls(
            id=_require_str(data, "id"),
            title=_require_str(data, "title"),
            speaker=_optional_str(data, "speaker") or "",
            duration_minutes=duration,
            type=_optional_str(data, "type") or "",
            details=_optional_str(data, "details"),
            actual_duration=_optional_int(data, "actualDuration"),
        )


@dataclass
class Program:
    """
    A timed, multi-session event schedule.

    date is an ISO calendar date (YYYY-MM-DD, no time zone); start_time
    and end_time are local HH:MM (24h). end_time is the target finish
    used for budget calculations.
    """
    id: str
    title: str
    subtitle: str = ""
    date: str = ""
    start_time: str = DEFAULT_START_TIME
    end_time: Optional[str] = None
    slots: List[Slot] = field(default_factory=list)

    @classmethod
    def new(cls, date: Optional[str] = None, subtitle: str = "") -> "Program":
        """Fresh placeholder program with a new identity."""
        return cls(
            id=new_id(),
            title=PLACEHOLDER_TITLE,
            subtitle=subtitle,
            date=date or _date.today().isoformat(),
            start_time=DEFAULT_START_TIME,
        )

    @property
    def slot_count(self) -> int:
        return len(self.slots)

    def is_placeholder(self) -> bool:
        """True for an untouched program that is not worth saving."""
        return (
            not self.slots
            and self.title == PLACEHOLDER_TITLE
            and self.subtitle == ""
        )

    def slot_index(self, slot_id: str) -> int:
        for index, slot in enumerate(self.slots):
            if slot.id == slot_id:
                return index
        raise KeyError(slot_id)

    def copy(self) -> "Program":
        """Independent snapshot (slots are copied too)."""
        return replace(self, slots=[replace(s) for s in self.slots])

    def to_dict(self) -> dict:
        result = {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "date": self.date,
            "startTime": self.start_time,
            "slots": [s.to_dict() for s in self.slots],
        }
        if self.end_time is not None:
            result["endTime"] = self.end_time
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Program":
        """Build a Program from its camelCase dictionary form.

        Raises:
            ValueError: if required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise ValueError("program must be an object")
        start_time = _optional_str(data, "startTime") or DEFAULT_START_TIME
        if not _TIME_RE.match(start_time):
            raise ValueError(f"'startTime' must be HH:MM, got {start_time!r}")
        end_time = _optional_str(data, "endTime") or None
        if end_time is not None and not _TIME_RE.match(end_time):
            raise ValueError(f"'endTime' must be HH:MM, got {end_time!r}")
        slots_data = data.get("slots") or []
        if not isinstance(slots_data, list):
            raise ValueError("'slots' must be a list")
        return cls(
            id=_require_str(data, "id"),
            title=_optional_str(data, "title") or "",
            subtitle=_optional_str(data, "subtitle") or "",
            date=_optional_str(data, "date") or "",
            start_time=start_time,
            end_time=end_time,
            slots=[Slot.from_dict(s) for s in slots_data],
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Program":
        return cls.from_dict(json.loads(json_str))
