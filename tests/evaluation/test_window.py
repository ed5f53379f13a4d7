"""Tests for the sliding window: ordering, eviction and aggregation."""

from datetime import timedelta

import pytest

from alertspine.evaluation import SlidingWindow
from alertspine.models import Aggregation

from conftest import START


def _at(seconds: float):
    return START + timedelta(seconds=seconds)


class TestSlidingWindowAggregation:
    @pytest.mark.parametrize(
        "aggregation, expected",
        [
            (Aggregation.AVG, 20.0),
            (Aggregation.MAX, 30.0),
            (Aggregation.MIN, 10.0),
            (Aggregation.SUM, 60.0),
            (Aggregation.COUNT, 3.0),
        ],
    )
    def test_aggregations(self, aggregation, expected):
        window = SlidingWindow(time_window=300)
        for offset, value in ((0, 10.0), (60, 20.0), (120, 30.0)):
            window.add(_at(offset), value)
        assert window.aggregate(aggregation) == pytest.approx(expected)

    def test_empty_window_aggregates_to_none(self):
        assert SlidingWindow(time_window=60).aggregate(Aggregation.AVG) is None


class TestSlidingWindowEviction:
    def test_samples_at_or_before_cutoff_are_dropped(self):
        window = SlidingWindow(time_window=60)
        window.add(_at(0), 1.0)
        window.add(_at(30), 2.0)
        window.add(_at(60), 3.0)

        dropped = window.evict(_at(60))

        assert dropped == 1
        assert len(window) == 2
        assert window.aggregate(Aggregation.MIN) == 2.0

    def test_evicting_everything_empties_the_window(self):
        window = SlidingWindow(time_window=60)
        window.add(_at(0), 1.0)
        window.evict(_at(600))
        assert len(window) == 0
        assert window.latest is None


class TestSlidingWindowOrdering:
    def test_late_sample_within_tolerance_is_inserted_in_order(self):
        window = SlidingWindow(time_window=300, tolerance=30)
        window.add(_at(100), 1.0)
        assert window.add(_at(80), 5.0) is True
        assert window.latest == _at(100)
        window.evict(_at(385))
        # only the sample at t=100 survives a cutoff of t=85
        assert window.aggregate(Aggregation.SUM) == 1.0

    def test_sample_older_than_tolerance_is_rejected(self):
        window = SlidingWindow(time_window=300, tolerance=30)
        window.add(_at(100), 1.0)
        assert window.add(_at(60), 5.0) is False
        assert len(window) == 1
