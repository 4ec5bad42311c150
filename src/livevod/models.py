"""
Data types for recording sessions, live state and the client metadata summary.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import ParseError


class StreamState(Enum):
    """Live state of a channel as reported by the control plane."""
    LIVE = "LIVE"
    OFFLINE = "OFFLINE"


@dataclass
class LiveState:
    """Snapshot of a channel's active stream. Never persisted."""
    state: StreamState
    stream_id: Optional[str] = None
    playback_url: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.state == StreamState.LIVE

    @classmethod
    def offline(cls) -> 'LiveState':
        return cls(state=StreamState.OFFLINE)


@dataclass
class EdgeRequest:
    """Inbound request as seen by an edge handler."""
    uri: str
    channel_id: str
    container: str

    @property
    def key(self) -> str:
        return self.uri[1:] if self.uri.startswith('/') else self.uri


@dataclass
class Rendition:
    """One quality variant with its own playlist."""
    path: str
    playlist: str

    @classmethod
    def from_dict(cls, data: dict) -> 'Rendition':
        try:
            return cls(path=str(data['path']), playlist=str(data['playlist']))
        except (KeyError, TypeError) as e:
            raise ParseError(f"rendition is missing {e}") from e


@dataclass
class RecordingSession:
    """
    Recording session record as written by the recorder.

    The same shape is used for the latest pointer record, where `path` is
    absolute and `stream_id` holds the stream identity resolved at ingestion.
    The parsed JSON is kept in `raw` so fields this class does not model are
    written back untouched. Renditions stay as recorded and are only parsed
    when one is needed.
    """
    channel_id: str
    recording_started_at: str
    path: str
    playlist: str
    renditions: list = field(default_factory=list)
    stream_id: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def master_key(self) -> str:
        return f"{self.path}/{self.playlist}"

    def top_rendition(self) -> Optional[Rendition]:
        """Highest quality rendition (the first listed), or None if none were recorded."""
        if not isinstance(self.renditions, list):
            raise ParseError("renditions is not a list")
        if not self.renditions:
            return None
        return Rendition.from_dict(self.renditions[0])

    def rendition_key(self, rendition: Rendition) -> str:
        return f"{self.path}/{rendition.path}/{rendition.playlist}"

    @classmethod
    def from_dict(cls, data: dict) -> 'RecordingSession':
        if not isinstance(data, dict):
            raise ParseError("recording record is not a JSON object")
        try:
            hls = data['media']['hls']
            return cls(
                channel_id=str(data.get('channel_arn', data.get('channelId', ''))),
                recording_started_at=str(
                    data.get('recording_started_at', data.get('recordingStartedAt', ''))
                ),
                path=str(hls['path']),
                playlist=str(hls['playlist']),
                renditions=hls.get('renditions') or [],
                stream_id=data.get('streamId'),
                raw=data
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ParseError(f"recording record is missing {e}") from e

    @classmethod
    def from_json(cls, text: str) -> 'RecordingSession':
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"recording record is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """Source record with the resolved path and stream identity applied."""
        data = json.loads(json.dumps(self.raw)) if self.raw else {
            'channel_arn': self.channel_id,
            'recording_started_at': self.recording_started_at,
            'media': {'hls': {'path': '', 'playlist': self.playlist,
                              'renditions': self.renditions}}
        }
        data['media']['hls']['path'] = self.path
        if self.stream_id is not None:
            data['streamId'] = self.stream_id
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'), ensure_ascii=False)


@dataclass
class RecordingStartedMetadata:
    """Client-facing summary of the latest recording."""
    is_channel_live: bool
    live_playback_url: Optional[str] = None
    master_key: Optional[str] = None
    recording_started_at: Optional[str] = None
    playlist_duration: Optional[int] = None

    def to_dict(self) -> dict:
        data = {'isChannelLive': self.is_channel_live}
        if self.live_playback_url is not None:
            data['livePlaybackUrl'] = self.live_playback_url
        if self.master_key is not None:
            data['masterKey'] = self.master_key
        if self.recording_started_at is not None:
            data['recordingStartedAt'] = self.recording_started_at
        if self.playlist_duration is not None:
            data['playlistDuration'] = self.playlist_duration
        return data
