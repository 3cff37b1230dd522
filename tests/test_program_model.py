"""
Tests for the Program/Slot data model and the TimerState wire form.
"""

import json

import pytest


class TestSlot:
    """Slot serialization."""

    def test_optional_fields_omitted(self):
        from kairon.interfaces.program import Slot

        data = Slot(id="s", title="Talk", speaker="Ann", duration_minutes=20).to_dict()
        assert data == {
            "id": "s",
            "title": "Talk",
            "speaker": "Ann",
            "durationMinutes": 20,
            "type": "Talk",
        }

    def test_free_text_type_accepted(self):
        """type is an open tag; unknown values are not rejected."""
        from kairon.interfaces.program import Slot

        slot = Slot.from_dict({"id": "s", "title": "Raffle", "durationMinutes": 5, "type": "Giveaway"})
        assert slot.type == "Giveaway"
        assert not slot.is_break

    def test_break_detection_ignores_case(self):
        from kairon.interfaces.program import Slot

        assert Slot(id="b", title="Lunch", type="BREAK").is_break
        assert Slot(id="b", title="Lunch", type="Break").is_break

    @pytest.mark.parametrize("payload", [
        {"title": "No id", "durationMinutes": 5},
        {"id": "s", "title": "No duration"},
        {"id": "s", "title": "Negative", "durationMinutes": -1},
        {"id": "s", "title": "Bool", "durationMinutes": True},
        {"id": "s", "title": "Infinite", "durationMinutes": float("inf")},
        {"id": "s", "title": "NaN", "durationMinutes": float("nan")},
        {"id": "s", "title": "A", "durationMinutes": 5, "actualDuration": float("-inf")},
        "not a dict",
    ])
    def test_invalid_slots_rejected(self, payload):
        from kairon.interfaces.program import Slot

        with pytest.raises(ValueError):
            Slot.from_dict(payload)


class TestProgram:
    """Program serialization and helpers."""

    def test_json_round_trip(self, conference_program):
        from kairon.interfaces.program import Program

        assert Program.from_json(conference_program.to_json()) == conference_program

    def test_end_time_omitted_when_absent(self, sample_program):
        from dataclasses import replace

        data = replace(sample_program, end_time=None).to_dict()
        assert "endTime" not in data
        assert data["startTime"] == "09:00"

    def test_invalid_start_time(self):
        from kairon.interfaces.program import Program

        with pytest.raises(ValueError):
            Program.from_dict({"id": "p", "title": "T", "startTime": "nine", "slots": []})

    def test_defaults_applied(self):
        from kairon.interfaces.program import Program

        program = Program.from_dict({"id": "p"})
        assert program.start_time == "09:00"
        assert program.slots == []
        assert program.end_time is None

    def test_new_program_is_placeholder(self):
        from kairon.interfaces.program import Program

        program = Program.new(date="2026-01-01")
        assert program.is_placeholder()
        assert program.date == "2026-01-01"
        assert Program.new().id != program.id

    def test_copy_is_independent(self, sample_program):
        copy = sample_program.copy()
        copy.slots[0].actual_duration = 9
        assert sample_program.slots[0].actual_duration is None

    def test_slot_index(self, sample_program):
        assert sample_program.slot_index("slot-b") == 1
        with pytest.raises(KeyError):
            sample_program.slot_index("nope")


class TestTimerState:
    """TimerState wire form."""

    def test_camel_case_wire_form(self):
        from kairon.interfaces.timer_state import TimerState

        state = TimerState("p", True, 2, 30, 1_000)
        assert json.loads(state.to_json()) == {
            "programId": "p",
            "isTimerActive": True,
            "currentSlotIndex": 2,
            "secondsElapsed": 30,
            "timerStartTimestamp": 1_000,
        }
        assert TimerState.from_dict(state.to_dict()) == state

    def test_reset(self):
        from kairon.interfaces.timer_state import TimerState

        state = TimerState.reset("p")
        assert (state.is_timer_active, state.current_slot_index, state.seconds_elapsed) == (False, 0, 0)
        assert state.timer_start_timestamp is None

    @pytest.mark.parametrize("payload", [
        {},
        {"programId": ""},
        {"programId": "p", "isTimerActive": "yes"},
        {"programId": "p", "currentSlotIndex": -1},
        {"programId": "p", "currentSlotIndex": 1.5},
        {"programId": "p", "timerStartTimestamp": "soon"},
        {"programId": "p", "secondsElapsed": float("inf")},
        {"programId": "p", "secondsElapsed": float("nan")},
        {"programId": "p", "isTimerActive": True, "timerStartTimestamp": float("inf")},
    ])
    def test_malformed_payloads(self, payload):
        from kairon.interfaces.timer_state import TimerState

        with pytest.raises(ValueError):
            TimerState.from_dict(payload)

    def test_negative_elapsed_clamped(self):
        from kairon.interfaces.timer_state import TimerState

        assert TimerState.from_dict({"programId": "p", "secondsElapsed": -5}).seconds_elapsed == 0
