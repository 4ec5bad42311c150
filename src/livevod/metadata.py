"""
Latest recording metadata read.

Serves a client-facing summary of the latest pointer record. A missing pointer
is the normal state right after a stream starts (ingestion has not run yet)
and is answered with a successful null body. On-demand fields are only exposed
when the pointer was written for the stream that is live right now.
"""

import json
from typing import Optional

from .config import MetadataConfig
from .errors import ObjectNotFound, ParseError
from .live_state import LiveStateService, query_live_state
from .logger import get_channel_logger
from .models import EdgeRequest, RecordingSession, RecordingStartedMetadata
from .object_store import ObjectStore, object_get
from .playlist import find_tag_integer
from .responses import EdgeResponse, build_response, failure_response


async def fetch_playlist_duration(
    session: RecordingSession,
    container: str,
    store: ObjectStore,
    duration_tag: str
) -> Optional[int]:
    """
    Read the total duration tag from the top rendition's playlist.

    Best effort: returns None on any failure.
    """
    logger = get_channel_logger(session.channel_id, 'metadata')

    try:
        rendition = session.top_rendition()
    except ParseError as e:
        logger.debug(f"Unusable rendition list, skipping playlist duration: {e}")
        return None
    if rendition is None:
        logger.debug("No renditions recorded, skipping playlist duration")
        return None

    key = session.rendition_key(rendition)
    try:
        obj = await object_get(store, key, container)
        duration = find_tag_integer(obj.body, duration_tag)
    except Exception as e:
        logger.debug(f"Playlist duration unavailable for {key}: {e}")
        return None

    if duration is None:
        logger.debug(f"No {duration_tag} in {key}")
    return duration


async def build_recording_metadata(
    pointer: RecordingSession,
    channel_id: str,
    container: str,
    store: ObjectStore,
    live_state: LiveStateService,
    duration_tag: str
) -> RecordingStartedMetadata:
    """Compose the summary for a pointer record against the current live state."""
    active = await query_live_state(live_state, channel_id)

    metadata = RecordingStartedMetadata(
        is_channel_live=active.is_live,
        live_playback_url=active.playback_url if active.is_live else None
    )

    if active.stream_id is not None and pointer.stream_id == active.stream_id:
        metadata.master_key = pointer.master_key
        metadata.recording_started_at = pointer.recording_started_at
        metadata.playlist_duration = await fetch_playlist_duration(
            pointer, container, store, duration_tag
        )

    return metadata


async def get_latest_recording_start_meta(
    request: EdgeRequest,
    store: ObjectStore,
    live_state: LiveStateService,
    config: Optional[MetadataConfig] = None
) -> EdgeResponse:
    """Serve the latest recording summary with a one-tick cache directive."""
    config = config or MetadataConfig()
    logger = get_channel_logger(request.channel_id, 'metadata')

    try:
        obj = await object_get(store, request.key, request.container)
        pointer = RecordingSession.from_json(obj.body)
        metadata = await build_recording_metadata(
            pointer,
            request.channel_id,
            request.container,
            store,
            live_state,
            config.duration_tag
        )
    except ObjectNotFound:
        logger.debug(f"{request.key} not written yet")
        return build_response(
            200,
            body=json.dumps(None),
            content_type='application/json',
            max_age=config.max_age_sec
        )
    except Exception as e:
        logger.error(f"Failed to read latest recording metadata: {e}")
        return failure_response(max_age=config.max_age_sec)

    return build_response(
        200,
        body=json.dumps(metadata.to_dict()),
        content_type='application/json',
        max_age=config.max_age_sec
    )
