"""Tests for ScrollTracker velocity computation."""

from __future__ import annotations

import pytest

from services.intentflow.observer.scroll import ScrollTracker


class TestScrollTracker:
    def test_first_sample_has_no_velocity(self):
        assert ScrollTracker(gap_ms=500).observe(0, 1000) is None

    def test_velocity_in_px_per_second(self):
        tracker = ScrollTracker(gap_ms=500)
        tracker.observe(0, 1000)
        assert tracker.observe(500, 1250) == pytest.approx(2000.0)

    def test_upward_scroll_is_positive(self):
        tracker = ScrollTracker(gap_ms=500)
        tracker.observe(1000, 0)
        assert tracker.observe(800, 100) == pytest.approx(2000.0)

    def test_gap_starts_new_sequence(self):
        tracker = ScrollTracker(gap_ms=500)
        tracker.observe(0, 0)
        assert tracker.observe(3000, 500) is None
        # the late sample becomes the new reference point
        assert tracker.observe(3100, 600) == pytest.approx(1000.0)

    def test_non_increasing_timestamp_ignored(self):
        tracker = ScrollTracker(gap_ms=500)
        tracker.observe(0, 100)
        assert tracker.observe(50, 100) is None

    def test_history_is_bounded_and_averaged(self):
        tracker = ScrollTracker(gap_ms=500, history=3)
        tracker.observe(0, 0)
        for i, step in enumerate((100, 200, 300, 400), start=1):
            tracker.observe(tracker._last_y + step, i * 100)
        # velocities 1000, 2000, 3000, 4000 -> last three kept
        assert list(tracker.velocities) == pytest.approx([2000.0, 3000.0, 4000.0])
        assert tracker.average == 3000

    def test_average_empty(self):
        assert ScrollTracker().average == 0
