import pytest

from medbox_relay.domain.liveness import LivenessTracker

W = 8000
T = 1_000_000


def test_online_inside_window_offline_after():
    tracker = LivenessTracker(W)
    tracker.touch("esp", T)
    assert tracker.is_online("esp", T + W - 1) is True
    assert tracker.is_online("esp", T + W) is False
    assert tracker.is_online("esp", T + W + 1) is False


def test_never_seen_is_offline():
    tracker = LivenessTracker(W)
    assert tracker.is_online("ghost", T) is False
    assert tracker.last_seen("ghost") is None


def test_late_touch_does_not_move_last_seen_backwards():
    tracker = LivenessTracker(W)
    tracker.touch("esp", T)
    tracker.touch("esp", T - 5000)
    assert tracker.last_seen("esp") == T


def test_snapshot_reports_latest_producer():
    tracker = LivenessTracker(W)
    tracker.touch("esp-a", T)
    tracker.touch("esp-b", T + 100)
    snap = tracker.snapshot(T + W + 50)
    assert snap["deviceID"] == "esp-b"
    assert snap["online"] is True
    assert snap["lastSeen"] == T + 100
    assert snap["producers"]["esp-a"] == {"lastSeen": T, "online": False}
    assert sorted(tracker.producers()) == ["esp-a", "esp-b"]


def test_empty_snapshot():
    snap = LivenessTracker(W).snapshot(T)
    assert snap == {"deviceID": None, "online": False, "lastSeen": None, "producers": {}}


def test_window_must_be_positive():
    with pytest.raises(ValueError):
        LivenessTracker(0)
