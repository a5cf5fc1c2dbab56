"""In-memory stand-ins for the repositories and the classifier client."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

from shared.models import ChatMessage, Profile, Stream, Video

_EPOCH = datetime(2026, 1, 1, tzinfo=UTC)


class Store:
    """Rows shared by the fake repositories, like one database."""

    def __init__(self) -> None:
        self.streams: dict[str, Stream] = {}
        self.messages: list[ChatMessage] = []
        self.videos: dict[str, Video] = {}
        self.profiles: dict[str, Profile] = {}
        self._tick = 0

    def now(self) -> datetime:
        self._tick += 1
        return _EPOCH + timedelta(seconds=self._tick)

    def add_profile(self, username: str, user_id: str | None = None) -> Profile:
        profile = Profile(id=user_id or str(uuid.uuid4()), username=username, avatar_url=None)
        self.profiles[profile.id] = profile
        return profile

    def add_stream(
        self,
        user_id: str,
        playback_id: str = "pb1",
        is_live: bool = False,
        title: str = "My stream",
    ) -> Stream:
        stream = Stream(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            stream_key="sk-secret",
            ingest_url="rtmp://rtmp.livepeer.com/live",
            playback_id=playback_id,
            is_live=is_live,
            created_at=self.now(),
        )
        self.streams[stream.id] = stream
        return stream

    def add_message(
        self, stream_id: str, user_id: str, content: str = "hi", hidden: bool = False
    ) -> ChatMessage:
        message = ChatMessage(
            id=str(uuid.uuid4()),
            user_id=user_id,
            stream_id=stream_id,
            content=content,
            hidden=hidden,
            created_at=self.now(),
        )
        self.messages.append(message)
        return message

    def messages_for(self, stream_id: str) -> list[ChatMessage]:
        return [m for m in self.messages if m.stream_id == stream_id]

    def videos_for(self, stream_id: str) -> list[Video]:
        return [v for v in self.videos.values() if v.stream_id == stream_id]


class FakeStreamRepository:
    def __init__(self, store: Store) -> None:
        self.store = store

    async def create(self, user_id, title, stream_key, ingest_url, playback_id, category="gaming"):
        stream = Stream(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            stream_key=stream_key,
            ingest_url=ingest_url,
            playback_id=playback_id,
            category=category,
            created_at=self.store.now(),
        )
        self.store.streams[stream.id] = stream
        return stream

    async def get(self, stream_id):
        return self.store.streams.get(stream_id)

    async def get_by_playback_id(self, playback_id):
        matches = [s for s in self.store.streams.values() if s.playback_id == playback_id]
        return max(matches, key=lambda s: s.created_at) if matches else None

    async def get_latest_for_user(self, user_id):
        matches = [s for s in self.store.streams.values() if s.user_id == user_id]
        return max(matches, key=lambda s: s.created_at) if matches else None

    async def set_live(self, stream_id, is_live):
        stream = self.store.streams.get(stream_id)
        if stream is None:
            return None
        updated = replace(stream, is_live=is_live)
        self.store.streams[stream_id] = updated
        return updated

    async def set_live_by_playback_id(self, playback_id, is_live, event_at=None):
        changed = []
        for stream in list(self.store.streams.values()):
            if stream.playback_id != playback_id:
                continue
            if event_at is not None and stream.last_event_at and stream.last_event_at > event_at:
                continue
            self.store.streams[stream.id] = replace(
                stream, is_live=is_live, last_event_at=event_at or stream.last_event_at
            )
            changed.append(stream.id)
        return changed

    async def update_title(self, stream_id, title):
        stream = self.store.streams.get(stream_id)
        if stream is None:
            return None
        updated = replace(stream, title=title)
        self.store.streams[stream_id] = updated
        return updated


class FakeMessageRepository:
    def __init__(self, store: Store, fail_insert: bool = False, fail_delete: bool = False) -> None:
        self.store = store
        self.fail_insert = fail_insert
        self.fail_delete = fail_delete

    async def add(self, user_id, stream_id, content, hidden):
        if self.fail_insert:
            raise ConnectionError("database unavailable")
        return self.store.add_message(stream_id, user_id, content, hidden)

    async def list_visible(self, stream_id, limit=100):
        visible = [m for m in self.store.messages_for(stream_id) if not m.hidden]
        return visible[-limit:]

    async def delete_for_stream(self, stream_id):
        if self.fail_delete:
            raise ConnectionError("database unavailable")
        before = len(self.store.messages)
        self.store.messages = [m for m in self.store.messages if m.stream_id != stream_id]
        return before - len(self.store.messages)


class FakeProfileRepository:
    def __init__(self, store: Store) -> None:
        self.store = store
        self.lookups = 0

    async def get(self, user_id):
        self.lookups += 1
        return self.store.profiles.get(user_id)

    async def get_by_username(self, username):
        return next((p for p in self.store.profiles.values() if p.username == username), None)

    async def get_many(self, user_ids):
        return {uid: self.store.profiles[uid] for uid in user_ids if uid in self.store.profiles}


class FakeVideoRepository:
    def __init__(self, store: Store, fail: bool = False) -> None:
        self.store = store
        self.fail = fail

    async def get_by_stream(self, stream_id):
        if self.fail:
            raise ConnectionError("database unavailable")
        found = self.store.videos_for(stream_id)
        return found[0] if found else None

    async def add(self, stream_id, user_id, playback_url, duration=None):
        if self.fail:
            raise ConnectionError("database unavailable")
        if self.store.videos_for(stream_id):
            return None
        video = Video(
            id=str(uuid.uuid4()),
            stream_id=stream_id,
            user_id=user_id,
            playback_url=playback_url,
            duration=duration,
            created_at=self.store.now(),
        )
        self.store.videos[video.id] = video
        return video

    async def update_recording(self, video_id, playback_url=None, duration=None):
        video = self.store.videos.get(video_id)
        if video is None:
            return None
        updated = replace(
            video,
            playback_url=playback_url if playback_url is not None else video.playback_url,
            duration=duration if duration is not None else video.duration,
            updated_at=self.store.now(),
        )
        self.store.videos[video_id] = updated
        return updated

    async def list_for_user(self, user_id, limit=50):
        videos = [v for v in self.store.videos.values() if v.user_id == user_id]
        return sorted(videos, key=lambda v: v.created_at, reverse=True)[:limit]


class FakeCompletions:
    """Mimics ``client.chat.completions`` of the openai SDK."""

    def __init__(self, reply: str | None = None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    def __init__(self, reply: str | None = None, error: Exception | None = None) -> None:
        self.completions = FakeCompletions(reply, error)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeLivepeer:
    def __init__(self, fail_create: bool = False) -> None:
        self.fail_create = fail_create
        self.created: list[dict] = []

    async def create_stream(self, name, record=True):
        if self.fail_create:
            return None
        self.created.append({"name": name, "record": record})
        return {"id": "lp-stream-1", "playbackId": "pb-new", "name": name}

    async def get_stream(self, stream_id):
        return {"id": stream_id, "streamKey": "sk-new", "playbackId": "pb-new"}
