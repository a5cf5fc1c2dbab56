"""Decode Livepeer webhook envelopes into one internal record.

The provider has shipped several payload shapes over time:

  - event type under ``event`` or ``type``
  - stream object at the top level or under ``stream``
  - recording session under ``session``, ``payload.session`` or ``payload``

Every shape is normalised here, before any business logic runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

STREAM_STARTED = "stream.started"
STREAM_IDLE = "stream.idle"
STREAM_ENDED = "stream.ended"
RECORDING_READY = "recording.ready"

LIFECYCLE_EVENTS = {STREAM_STARTED, STREAM_IDLE, STREAM_ENDED, RECORDING_READY}

# Envelope clocks may run slightly ahead of ours; anything further is not trusted.
MAX_CLOCK_SKEW = timedelta(minutes=5)


class EnvelopeError(ValueError):
    """The body cannot be interpreted as a webhook envelope at all."""


@dataclass
class LifecycleEvent:
    event_type: str
    playback_id: str | None = None
    recording_url: str | None = None
    session_duration: float | None = None
    timestamp: datetime | None = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def is_known(self) -> bool:
        return self.event_type in LIFECYCLE_EVENTS


def _dig(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _first_str(body: dict, paths: list[tuple[str, ...]]) -> str | None:
    for path in paths:
        value = _dig(body, *path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _first_number(body: dict, paths: list[tuple[str, ...]]) -> float | None:
    for path in paths:
        value = _dig(body, *path)
        # bool is an int subclass; never a duration
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
            return float(value)
    return None


_PLAYBACK_ID_PATHS = [
    ("stream", "playbackId"),
    ("payload", "session", "playbackId"),
    ("session", "playbackId"),
    ("payload", "playbackId"),
    ("payload", "stream", "playbackId"),
    ("playbackId",),
]

_RECORDING_URL_PATHS = [
    ("payload", "recordingUrl"),
    ("payload", "session", "recordingUrl"),
    ("session", "recordingUrl"),
    ("recordingUrl",),
]

_DURATION_PATHS = [
    ("payload", "session", "transcodedSegmentsDuration"),
    ("session", "transcodedSegmentsDuration"),
    ("payload", "transcodedSegmentsDuration"),
    ("payload", "session", "sourceSegmentsDuration"),
    ("session", "sourceSegmentsDuration"),
    ("payload", "duration"),
]


def _parse_timestamp(value: Any) -> datetime | None:
    """Livepeer stamps envelopes with epoch milliseconds.

    Future-dated stamps are dropped: recorded as ``last_event_at`` they would
    make every later transition look stale.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return None
    try:
        stamped = datetime.fromtimestamp(value / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
    if stamped > datetime.now(UTC) + MAX_CLOCK_SKEW:
        return None
    return stamped


def decode_envelope(body: Any) -> LifecycleEvent:
    """Normalise a parsed JSON body.

    Raises ``EnvelopeError`` only when there is no event type at all.
    Missing correlation fields are left as None for the caller to handle.
    """
    if not isinstance(body, dict):
        raise EnvelopeError("Invalid webhook payload: expected an object")

    event_type = body.get("event") or body.get("type")
    if not isinstance(event_type, str) or not event_type.strip():
        raise EnvelopeError("Invalid webhook payload: missing event")

    return LifecycleEvent(
        event_type=event_type.strip(),
        playback_id=_first_str(body, _PLAYBACK_ID_PATHS),
        recording_url=_first_str(body, _RECORDING_URL_PATHS),
        session_duration=_first_number(body, _DURATION_PATHS),
        timestamp=_parse_timestamp(body.get("timestamp")),
        raw=body,
    )
