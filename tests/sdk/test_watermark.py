"""Tests for the dedup index and watermark."""

from __future__ import annotations

from inboxsync.sdk.watermark import WatermarkTracker


class TestAdmit:
    def test_first_message(self):
        tracker = WatermarkTracker()
        assert tracker.admit("m1", 100)
        assert tracker.watermark == 100
        assert "m1" in tracker

    def test_same_id_admitted_once(self):
        tracker = WatermarkTracker()
        assert tracker.admit("m1", 100)
        assert not tracker.admit("m1", 100)
        assert len(tracker) == 1

    def test_at_or_below_watermark_rejected(self):
        tracker = WatermarkTracker()
        tracker.admit("m1", 100)
        assert not tracker.admit("m2", 100)
        assert not tracker.admit("m3", 50)

    def test_watermark_never_decreases(self):
        tracker = WatermarkTracker()
        tracker.admit("m1", 200, floor=0)
        tracker.admit("m2", 150, floor=0)
        assert tracker.watermark == 200

    def test_floor_allows_older_messages_in_same_tick(self):
        """Two conversations polled in one tick compare against the tick's floor."""
        tracker = WatermarkTracker()
        floor = tracker.watermark
        assert tracker.admit("a-1", 300, floor)
        assert tracker.admit("b-1", 200, floor)
        assert tracker.watermark == 300
        assert not tracker.admit("c-1", 250)

    def test_is_new_does_not_record(self):
        tracker = WatermarkTracker()
        assert tracker.is_new("m1", 10)
        assert "m1" not in tracker
        assert tracker.watermark == 0

    def test_zero_timestamp_never_admitted(self):
        assert not WatermarkTracker().admit("m1", 0)


class TestPrune:
    def test_prunes_below_horizon(self):
        tracker = WatermarkTracker(horizon_ms=1_000)
        tracker.admit("old", 1_000, floor=0)
        tracker.admit("recent", 4_500, floor=0)
        tracker.admit("new", 5_000, floor=0)
        assert tracker.prune() == 1
        assert "old" not in tracker
        assert "recent" in tracker

    def test_pruned_ids_stay_rejected(self):
        tracker = WatermarkTracker(horizon_ms=1_000)
        tracker.admit("old", 1_000)
        tracker.admit("new", 5_000)
        tracker.prune()
        assert not tracker.admit("old", 1_000)

    def test_no_horizon_keeps_everything(self):
        tracker = WatermarkTracker(horizon_ms=None)
        tracker.admit("old", 1)
        tracker.admit("new", 10_000_000)
        assert tracker.prune() == 0
        assert len(tracker) == 2


def test_reset():
    tracker = WatermarkTracker()
    tracker.admit("m1", 100)
    tracker.reset()
    assert tracker.watermark == 0
    assert len(tracker) == 0
    assert tracker.admit("m1", 100)
