"""
Pytest configuration and fixtures for kairon tests.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


class FakeClock:
    """Manually advanced wall clock in epoch milliseconds."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


@pytest.fixture
def fake_clock():
    """Wall clock that only moves when told to."""
    return FakeClock()


@pytest.fixture
def sample_program():
    """Two slots, A (1 min) and B (2 min), starting at 09:00."""
    from kairon.interfaces.program import Program, Slot

    return Program(
        id="prog-1",
        title="Morning Sessions",
        subtitle="Main hall",
        date="2026-03-14",
        start_time="09:00",
        end_time="09:05",
        slots=[
            Slot(id="slot-a", title="A", speaker="Ada", duration_minutes=1, type="Talk"),
            Slot(id="slot-b", title="B", speaker="Bo", duration_minutes=2, type="Talk"),
        ],
    )


@pytest.fixture
def conference_program():
    """A fuller day with a break and optional fields set."""
    from kairon.interfaces.program import Program, Slot

    return Program(
        id="conf-2026",
        title="DevDay",
        subtitle="Track 1",
        date="2026-05-02",
        start_time="09:30",
        end_time="12:00",
        slots=[
            Slot(id="k", title="Opening Keynote", speaker="Grace", duration_minutes=45, type="Keynote",
                 details="Main stage"),
            Slot(id="b", title="Coffee", speaker="", duration_minutes=15, type="Break"),
            Slot(id="p", title="Panel: Tooling", speaker="Various", duration_minutes=60, type="Panel",
                 actual_duration=64),
            Slot(id="w", title="Wrap-up", speaker="Grace", duration_minutes=10, type="Talk"),
        ],
    )


@pytest.fixture
def local_bus():
    """In-process broadcast transport."""
    from kairon.sync.transport import LocalBus

    return LocalBus()
