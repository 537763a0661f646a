"""Tests for rangeset.intervals — inclusive interval arithmetic."""
from __future__ import annotations

from datetime import datetime, timedelta

from rangeset.intervals import (
    Interval,
    as_interval,
    enlarge,
    magnitude,
    midpoint,
    next_start,
    prev_end,
)


class TestInterval:
    def test_point_is_degenerate(self) -> None:
        assert Interval.point(3) == Interval(3, 3)

    def test_contains_scalar_inclusive(self) -> None:
        rng = Interval(1, 10)
        assert rng.contains(1)
        assert rng.contains(10)
        assert not rng.contains(11)

    def test_contains_interval(self) -> None:
        assert Interval(1, 10).contains(Interval(1, 10))
        assert Interval(1, 10).contains(Interval(3, 4))
        assert not Interval(1, 10).contains(Interval(8, 12))

    def test_overlaps_shares_endpoint(self) -> None:
        assert Interval(1, 3).overlaps(Interval(3, 5))
        assert not Interval(1, 3).overlaps(Interval(4, 5))

    def test_touches_within_precision(self) -> None:
        assert Interval(1, 2).touches(Interval(3, 4), 1)
        assert Interval(3, 4).touches(Interval(1, 2), 1)
        assert not Interval(1, 2).touches(Interval(4, 5), 1)
        assert Interval(1, 2).touches(Interval(4, 5), 2)

    def test_length_counts_steps(self) -> None:
        assert Interval(1, 10).length(1) == 10
        assert Interval(0.0, 1.0).length(0.5) == 1.5

    def test_str(self) -> None:
        assert str(Interval(1, 3)) == "1..3"


class TestStepping:
    def test_next_start_and_prev_end_scalars(self) -> None:
        assert next_start(5, 1) == 6
        assert prev_end(5, 1) == 4

    def test_next_start_uses_upper_of_interval(self) -> None:
        assert next_start(Interval(1, 5), 1) == 6
        assert prev_end(Interval(1, 5), 1) == 0

    def test_none_passes_through(self) -> None:
        assert next_start(None, 1) is None
        assert prev_end(None, 1) is None
        assert enlarge(None, 1) is None

    def test_enlarge_interval_and_value(self) -> None:
        assert enlarge(Interval(3, 5), 1) == Interval(2, 6)
        assert enlarge(7, 2) == Interval(5, 9)

    def test_timestamps_step_by_timedelta(self) -> None:
        t = datetime(2008, 10, 1, 16, 57)
        step = timedelta(seconds=1)
        assert next_start(t, step) == t + step
        assert enlarge(Interval(t, t), step) == Interval(t - step, t + step)


class TestHelpers:
    def test_as_interval(self) -> None:
        assert as_interval(4) == Interval(4, 4)
        assert as_interval(Interval(1, 2)) == Interval(1, 2)
        assert as_interval(None) is None

    def test_midpoint_integer_floors(self) -> None:
        assert midpoint(1, 11) == 6
        assert midpoint(6, 11) == 8
        assert midpoint(8, 9) == 8

    def test_midpoint_float_and_datetime(self) -> None:
        assert midpoint(0.0, 1.0) == 0.5
        t = datetime(2020, 1, 1)
        assert midpoint(t, t + timedelta(seconds=10)) == t + timedelta(seconds=5)

    def test_magnitude(self) -> None:
        assert magnitude(timedelta(minutes=1)) == 60.0
        assert magnitude(3) == 3.0

    def test_magnitude_keeps_large_integers_exact(self) -> None:
        big = 2**60 + 1
        assert magnitude(big) == big
        assert isinstance(magnitude(big), int)
        assert magnitude(big) != magnitude(2**60)
