"""
Unit tests for the clock model.

Every client derives the displayed countdown from the same snapshot, so
these functions must be deterministic given "now".
"""

import pytest


class TestElapsed:
    """Elapsed seconds from a start timestamp."""

    def test_floors_partial_seconds(self):
        from kairon.timing.clock import elapsed_while_active

        assert elapsed_while_active(10_999, 10_000) == 0
        assert elapsed_while_active(11_000, 10_000) == 1
        assert elapsed_while_active(71_500, 10_000) == 61

    def test_future_start_is_clamped_to_zero(self):
        """A sender clock ahead of ours must not produce a negative countdown."""
        from kairon.timing.clock import elapsed_while_active

        assert elapsed_while_active(10_000, 15_000) == 0

    def test_backdated_start_round_trips(self):
        from kairon.timing.clock import backdated_start, elapsed_while_active

        now = 1_700_000_000_000
        start = backdated_start(now, 42)
        assert start == now - 42_000
        assert elapsed_while_active(now, start) == 42


class TestRemainingAndProgress:
    """Countdown and progress bar values."""

    def test_remaining_never_negative(self):
        from kairon.timing.clock import remaining_seconds

        assert remaining_seconds(2, 30) == 90
        assert remaining_seconds(2, 120) == 0
        assert remaining_seconds(2, 500) == 0

    def test_progress_fraction_bounds(self):
        from kairon.timing.clock import progress_fraction

        assert progress_fraction(1, 0) == 1.0
        assert progress_fraction(1, 30) == pytest.approx(0.5)
        assert progress_fraction(1, 90) == 0.0

    def test_zero_duration_progress_is_zero(self):
        from kairon.timing.clock import progress_fraction

        assert progress_fraction(0, 0) == 0.0
        assert progress_fraction(0, 10) == 0.0


class TestFormatting:
    """Presentation helpers."""

    def test_time_to_minutes(self):
        from kairon.timing.clock import time_to_minutes

        assert time_to_minutes("09:00") == 540
        assert time_to_minutes("13:05") == 785
        assert time_to_minutes("") == 0
        assert time_to_minutes(None) == 0

    @pytest.mark.parametrize("minutes,expected", [
        (540, "9:00 AM"),
        (785, "1:05 PM"),
        (0, "12:00 AM"),
        (720, "12:00 PM"),
        (1440 + 60, "1:00 AM"),
    ])
    def test_format_time_of_day(self, minutes, expected):
        from kairon.timing.clock import format_time_of_day

        assert format_time_of_day(minutes) == expected

    def test_format_countdown(self):
        from kairon.timing.clock import format_countdown

        assert format_countdown(0) == "00:00"
        assert format_countdown(59) == "00:59"
        assert format_countdown(125) == "02:05"
        assert format_countdown(3600) == "60:00"
