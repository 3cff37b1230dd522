"""
Run analytics: planned versus actual slot durations.

Only slots that were completed (actual_duration > 0) are counted.
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np

from ..interfaces.program import Program


@dataclass
class SlotReport:
    title: str
    planned: int
    actual: int

    @property
    def diff(self) -> int:
        return self.actual - self.planned


@dataclass
class RunReport:
    slots: List[SlotReport] = field(default_factory=list)
    total_planned: int = 0
    total_actual: int = 0
    adherence_percent: int = 100

    @property
    def completed_sessions(self) -> int:
        return len(self.slots)

    def to_dict(self) -> dict:
        return {
            "totalPlanned": self.total_planned,
            "totalActual": self.total_actual,
            "adherencePercent": self.adherence_percent,
            "completedSessions": self.completed_sessions,
            "slots": [
                {"title": s.title, "planned": s.planned, "actual": s.actual, "diff": s.diff}
                for s in self.slots
            ],
        }


def build_report(program: Program) -> RunReport:
    completed = [s for s in program.slots if s.actual_duration]
    if not completed:
        return RunReport()

    planned = np.array([s.duration_minutes for s in completed], dtype=np.int64)
    actual = np.array([s.actual_duration for s in completed], dtype=np.int64)
    total_planned = int(planned.sum())
    total_actual = int(actual.sum())

    if total_planned > 0:
        # Half up, not numpy's half-to-even
        adherence = int(np.floor((1 - abs(total_actual - total_planned) / total_planned) * 100 + 0.5))
    else:
        adherence = 100

    return RunReport(
        slots=[
            SlotReport(title=s.title, planned=int(p), actual=int(a))
            for s, p, a in zip(completed, planned, actual)
        ],
        total_planned=total_planned,
        total_actual=total_actual,
        adherence_percent=adherence,
    )
