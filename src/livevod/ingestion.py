"""
Metadata ingestion.

Runs when the recorder writes a per-session recording-started record. The
record is rewritten with an absolute media path and the stream identity that
is active right now, then stored as the channel's latest pointer record.
Failures are logged and re-raised so the notification system can redeliver.
"""

from dataclasses import dataclass
from typing import Optional

from .live_state import LiveStateService, query_live_state
from .logger import get_channel_logger, get_logger
from .models import RecordingSession
from .object_store import ObjectStore, object_get, object_put

LATEST_KEY = "recording-started-latest.json"
SESSION_MARKER = "/events"


@dataclass
class ObjectCreatedNotification:
    """An object-created notification for a recording-started record."""
    key: str
    container: str
    prefix: str

    @classmethod
    def from_key(cls, key: str, container: str,
                 session_marker: str = SESSION_MARKER) -> 'ObjectCreatedNotification':
        """Derive the recording prefix: everything before the session marker."""
        return cls(key=key, container=container, prefix=key.split(session_marker)[0])


def resolve_absolute_path(prefix: str, relative_path: str) -> str:
    return f"{prefix}/{relative_path}"


async def save_recording_start_meta(
    notification: ObjectCreatedNotification,
    store: ObjectStore,
    live_state: LiveStateService,
    latest_key: str = LATEST_KEY,
    live_channel_id: Optional[str] = None
) -> RecordingSession:
    """
    Write the latest pointer record for a freshly created session record.

    Live state is queried for `live_channel_id` when given, otherwise for the
    channel named in the record. Backends that do not know IVS channel ARNs
    (Twitch) need the former.

    Returns:
        The pointer record as written.

    Raises:
        Whatever the fetch, parse, live state query or write raised.
    """
    logger = get_logger('ingestion')

    try:
        obj = await object_get(store, notification.key, notification.container)
        session = RecordingSession.from_json(obj.body)
        logger = get_channel_logger(session.channel_id, 'ingestion')

        session.path = resolve_absolute_path(notification.prefix, session.path)

        active = await query_live_state(live_state, live_channel_id or session.channel_id)
        session.stream_id = active.stream_id or ''

        await object_put(store, latest_key, notification.container, session.to_json())
    except Exception as e:
        logger.error(f"Failed to save latest recording metadata from {notification.key}: {e}")
        raise

    logger.info(
        f"Latest recording -> {session.path} (stream {session.stream_id or 'none'})"
    )
    return session
