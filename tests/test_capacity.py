"""Tests for hour-level capacity."""

import pytest

from carebook import capacity


class TestCapacityPerHour:
    @pytest.mark.parametrize(
        "period,expected",
        [(10, 6), (15, 4), (20, 3), (30, 2), (60, 1)],
    )
    def test_capacity_per_hour(self, period, expected):
        assert capacity.capacity_per_hour(period) == expected

    def test_capacity_never_below_one(self):
        assert capacity.capacity_per_hour(90) == 1


class TestSubSlots:
    def test_offsets_for_quarter_hour(self):
        assert capacity.sub_slot_offsets(15) == [0, 15, 30, 45]

    def test_offsets_for_twenty_minutes(self):
        assert capacity.sub_slot_offsets(20) == [0, 20, 40]

    def test_times_are_zero_padded(self):
        assert capacity.sub_slot_times(9, 10) == [
            "09:00", "09:10", "09:20", "09:30", "09:40", "09:50",
        ]

    def test_full_hour_period_has_single_slot(self):
        assert capacity.sub_slot_times(14, 60) == ["14:00"]

    def test_hour_of(self):
        assert capacity.hour_of("07:45") == 7
