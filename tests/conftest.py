from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from livevod.errors import ObjectNotFound, TransportError
from livevod.live_state import LiveStateService
from livevod.models import LiveState, StreamState
from livevod.object_store import ObjectStore

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
CHANNEL = "arn:aws:ivs:us-east-1:123456789012:channel/abcdEFGH1234"
BUCKET = "vod-record-bucket"
PREFIX = "ivs/v1/123456789012/abcdEFGH1234/2024/5/1/11/58/rEcOrDiNgId"
SESSION_KEY = f"{PREFIX}/events/recording-started.json"

OPEN_PLAYLIST = """#EXTM3U
#EXT-X-TARGETDURATION:2
#EXT-X-VERSION:3
#EXT-X-MEDIA-SEQUENCE:0
#EXT-X-TWITCH-TOTAL-SECS:184.250
#EXTINF:2.000,
0.ts
#EXTINF:2.000,
1.ts
#EXT-X-ENDLIST
"""


class MemoryObjectStore(ObjectStore):
    """In-memory store with settable timestamps and injectable failures."""

    def __init__(self):
        self.objects: dict[tuple[str, str], tuple[bytes, Optional[datetime]]] = {}
        self.puts: list[tuple[str, str, str]] = []
        self.gets: list[str] = []
        self.fail_get: set[str] = set()
        self.fail_put = False

    def add(self, key: str, body: str, container: str = BUCKET,
            last_modified: Optional[datetime] = NOW) -> None:
        self.objects[(container, key)] = (body.encode("utf-8"), last_modified)

    def body(self, key: str, container: str = BUCKET) -> str:
        return self.objects[(container, key)][0].decode("utf-8")

    async def get_bytes(self, key, container):
        self.gets.append(key)
        if key in self.fail_get:
            raise TransportError(f"simulated failure reading {key}")
        try:
            return self.objects[(container, key)]
        except KeyError:
            raise ObjectNotFound(key, container)

    async def put(self, key, container, body, content_type="application/json"):
        if self.fail_put:
            raise TransportError(f"simulated failure writing {key}")
        self.puts.append((container, key, body))
        self.objects[(container, key)] = (body.encode("utf-8"), NOW)


class FakeLiveState(LiveStateService):
    """Live state stub that records every query."""

    def __init__(self, state: Optional[LiveState] = None):
        self.state = state or LiveState.offline()
        self.calls: list[str] = []
        self.error: Optional[Exception] = None
        self.closes = 0

    async def close(self) -> None:
        self.closes += 1

    def go_live(self, stream_id: str, playback_url: str = "https://example.live/abc.m3u8") -> None:
        self.state = LiveState(StreamState.LIVE, stream_id=stream_id, playback_url=playback_url)

    def go_offline(self) -> None:
        self.state = LiveState.offline()

    async def get_active_stream(self, channel_id):
        self.calls.append(channel_id)
        if self.error is not None:
            raise self.error
        return self.state


def session_record(**overrides) -> dict:
    record = {
        "version": "v1",
        "channel_arn": CHANNEL,
        "recording_started_at": "2024-05-01T11:58:31Z",
        "recording_status": "RECORDING_STARTED",
        "media": {
            "hls": {
                "path": "media/hls",
                "playlist": "master.m3u8",
                "renditions": [
                    {"path": "720p30", "playlist": "playlist.m3u8"},
                    {"path": "480p30", "playlist": "playlist.m3u8"},
                ],
            }
        },
    }
    record.update(overrides)
    return record


def pointer_record(stream_id: str, **overrides) -> dict:
    record = session_record(**overrides)
    record["media"]["hls"]["path"] = f"{PREFIX}/media/hls"
    record["streamId"] = stream_id
    return record


@pytest.fixture
def store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def live_state() -> FakeLiveState:
    return FakeLiveState()


@pytest.fixture
def seconds_ago():
    def _at(seconds: float) -> datetime:
        return NOW - timedelta(seconds=seconds)
    return _at


@pytest.fixture
def add_pointer(store):
    def _add(stream_id: str, **overrides) -> dict:
        record = pointer_record(stream_id, **overrides)
        store.add("recording-started-latest.json", json.dumps(record))
        return record
    return _add
