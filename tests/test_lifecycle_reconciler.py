from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from services import LifecycleReconciler, StreamService
from services.livepeer_api import recording_url_for
from services.webhook_envelope import decode_envelope
from tests.fakes import (
    FakeMessageRepository,
    FakeProfileRepository,
    FakeStreamRepository,
    FakeVideoRepository,
)

OWNER = "11111111-1111-1111-1111-111111111111"
VIEWER = "22222222-2222-2222-2222-222222222222"


def _handle(reconciler: LifecycleReconciler, body: dict) -> str:
    return asyncio.run(reconciler.handle(decode_envelope(body)))


def _recording_ready(url: str | None = None, playback_id: str = "pb1", duration=None) -> dict:
    session: dict = {"playbackId": playback_id}
    if url is not None:
        session["recordingUrl"] = url
    if duration is not None:
        session["transcodedSegmentsDuration"] = duration
    return {"event": "recording.ready", "payload": {"session": session}}


def test_started_goes_live_and_clears_chat(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1", is_live=False)
    for i in range(3):
        store.add_message(stream.id, VIEWER, f"old message {i}")
    other = store.add_stream(OWNER, playback_id="pb-other")
    store.add_message(other.id, VIEWER, "keep me")

    outcome = _handle(reconciler, {"event": "stream.started", "stream": {"playbackId": "pb1"}})

    assert outcome == "live"
    assert store.streams[stream.id].is_live is True
    assert store.messages_for(stream.id) == []
    assert len(store.messages_for(other.id)) == 1


def test_started_twice_is_harmless(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")
    body = {"event": "stream.started", "stream": {"playbackId": "pb1"}}

    _handle(reconciler, body)
    _handle(reconciler, body)

    assert store.streams[stream.id].is_live is True
    assert store.messages_for(stream.id) == []


def test_idle_and_ended_go_offline(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1", is_live=True)

    assert _handle(reconciler, {"type": "stream.idle", "stream": {"playbackId": "pb1"}}) == "offline"
    assert store.streams[stream.id].is_live is False

    store.streams[stream.id].is_live = True
    assert _handle(reconciler, {"event": "stream.ended", "stream": {"playbackId": "pb1"}}) == "offline"
    assert store.streams[stream.id].is_live is False


def test_offline_does_not_touch_chat(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1", is_live=True)
    store.add_message(stream.id, VIEWER)

    _handle(reconciler, {"event": "stream.idle", "stream": {"playbackId": "pb1"}})

    assert len(store.messages_for(stream.id)) == 1


def test_unknown_playback_id_is_a_no_op(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")

    outcome = _handle(reconciler, {"event": "stream.started", "stream": {"playbackId": "nope"}})

    assert outcome == "unknown_stream"
    assert store.streams[stream.id].is_live is False


def test_unknown_event_changes_nothing(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")
    store.add_message(stream.id, VIEWER)

    outcome = _handle(reconciler, {"event": "foo.bar", "stream": {"playbackId": "pb1"}})

    assert outcome == "ignored"
    assert store.streams[stream.id].is_live is False
    assert len(store.messages_for(stream.id)) == 1
    assert store.videos == {}


def test_known_event_without_playback_id(store, reconciler):
    store.add_stream(OWNER, playback_id="pb1")

    assert _handle(reconciler, {"event": "stream.started"}) == "missing_playback_id"


def test_stale_event_is_ignored(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")
    newer = int(datetime(2026, 3, 1, 12, 0, tzinfo=UTC).timestamp() * 1000)
    older = newer - 60_000

    _handle(
        reconciler,
        {"event": "stream.started", "stream": {"playbackId": "pb1"}, "timestamp": newer},
    )
    outcome = _handle(
        reconciler,
        {"event": "stream.ended", "stream": {"playbackId": "pb1"}, "timestamp": older},
    )

    assert outcome == "stale"
    assert store.streams[stream.id].is_live is True


def test_future_dated_event_does_not_lock_the_stream(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")
    ended_at = int(datetime(2026, 3, 1, 12, 0, tzinfo=UTC).timestamp() * 1000)

    _handle(
        reconciler,
        {"event": "stream.started", "stream": {"playbackId": "pb1"}, "timestamp": 253402300799000},
    )
    outcome = _handle(
        reconciler,
        {"event": "stream.ended", "stream": {"playbackId": "pb1"}, "timestamp": ended_at},
    )

    assert outcome == "offline"
    assert store.streams[stream.id].is_live is False


def test_chat_reset_failure_does_not_fail_transition(store):
    stream = store.add_stream(OWNER, playback_id="pb1")
    store.add_message(stream.id, VIEWER)
    reconciler = LifecycleReconciler(
        FakeStreamRepository(store),
        FakeMessageRepository(store, fail_delete=True),
        FakeVideoRepository(store),
    )

    outcome = _handle(reconciler, {"event": "stream.started", "stream": {"playbackId": "pb1"}})

    assert outcome == "live"
    assert store.streams[stream.id].is_live is True


def test_recording_ready_creates_vod(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")

    outcome = _handle(reconciler, _recording_ready("https://x/r1.m3u8", duration=120.0))

    assert outcome == "vod_created"
    [video] = store.videos_for(stream.id)
    assert video.playback_url == "https://x/r1.m3u8"
    assert video.user_id == OWNER
    assert video.duration == 120.0


def test_duplicate_recording_ready_keeps_one_row(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")

    _handle(reconciler, _recording_ready("https://x/r1.m3u8"))
    outcome = _handle(reconciler, _recording_ready("https://x/r1.m3u8"))

    assert outcome == "vod_unchanged"
    [video] = store.videos_for(stream.id)
    assert video.playback_url == "https://x/r1.m3u8"


def test_latest_recording_url_wins(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")

    _handle(reconciler, _recording_ready("https://x/r1.m3u8"))
    _handle(reconciler, _recording_ready("https://x/r2.m3u8"))

    [video] = store.videos_for(stream.id)
    assert video.playback_url == "https://x/r2.m3u8"


def test_recording_ready_without_url_uses_constructed_url(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1")

    _handle(reconciler, _recording_ready(None))

    [video] = store.videos_for(stream.id)
    assert video.playback_url == recording_url_for("pb1")


def test_recording_for_untracked_stream_is_ignored(store, reconciler):
    outcome = _handle(reconciler, _recording_ready("https://x/r1.m3u8", playback_id="ghost"))

    assert outcome == "unknown_stream"
    assert store.videos == {}


def test_fallback_then_webhook_converges_to_one_row(store, reconciler):
    stream = store.add_stream(OWNER, playback_id="pb1", is_live=True)
    streams = StreamService(
        FakeStreamRepository(store),
        FakeVideoRepository(store),
        FakeProfileRepository(store),
    )

    asyncio.run(streams.stop_stream(OWNER, stream.id))
    [fallback] = store.videos_for(stream.id)
    assert fallback.playback_url == recording_url_for("pb1")
    assert fallback.duration is None

    _handle(reconciler, _recording_ready("https://cdn/confirmed.m3u8", duration=95.5))

    [video] = store.videos_for(stream.id)
    assert video.id == fallback.id
    assert video.playback_url == "https://cdn/confirmed.m3u8"
    assert video.duration == 95.5
