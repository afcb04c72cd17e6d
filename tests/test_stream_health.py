import time

from spot_stream.config.models import HealthSettings
from spot_stream.observability.stream_health import StreamHealthTracker


def test_snapshot_counts_frames_by_kind():
    tracker = StreamHealthTracker()
    tracker.set_connected(True)

    tracker.register_frame('{"e":"trade"}')
    tracker.register_frame(b"\x2b\xc8\xcf\x4b\x07\x00")
    tracker.register_pong()
    tracker.register_decode_error()

    snapshot = tracker.build_snapshot("depth")

    assert snapshot["name"] == "depth"
    assert snapshot["frames_total"] == 2
    assert snapshot["text_frames"] == 1
    assert snapshot["binary_frames"] == 1
    assert snapshot["pongs"] == 1
    assert snapshot["decode_errors"] == 1
    assert snapshot["last_frame_kind"] == "binary"
    assert snapshot["stale"] is False


def test_connected_stream_without_recent_frames_is_stale():
    tracker = StreamHealthTracker(HealthSettings(stale_ms=500))
    tracker.set_connected(True)
    now = time.time()

    tracker.register_frame('{"e":"trade"}', ts=now - 2)

    snapshot = tracker.build_snapshot("depth", now=now)
    assert snapshot["stale"] is True
    assert snapshot["last_frame_age_ms"] >= 2000


def test_disconnected_stream_is_not_reported_stale():
    tracker = StreamHealthTracker(HealthSettings(stale_ms=1))

    snapshot = tracker.build_snapshot("depth")

    assert snapshot["connected"] is False
    assert snapshot["stale"] is False
    assert snapshot["last_frame_age_ms"] == float("inf")


def test_keepalive_outcomes_are_counted():
    tracker = StreamHealthTracker()

    tracker.register_keepalive(ok=True)
    tracker.register_keepalive(ok=False)
    tracker.register_keepalive(ok=True)

    snapshot = tracker.build_snapshot("user")
    assert snapshot["keepalive_ok"] == 2
    assert snapshot["keepalive_failed"] == 1
