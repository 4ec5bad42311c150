"""
Rendition playlist freshness.

The recorder rewrites each rendition playlist every UPDATE_DELAY seconds and
appends #EXT-X-ENDLIST on every write, so an in-progress recording looks
finished. A playlist written within the last UPDATE_DELAY + WRITE_BUFFER
seconds is treated as in progress without asking anyone. Older playlists are
checked against the live control plane: a live channel means the next write is
late, an offline channel means the playlist is final and can be cached for the
CDN's maximum TTL.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .config import PlaylistConfig
from .live_state import LiveStateService, query_live_state
from .logger import get_channel_logger
from .models import EdgeRequest
from .object_store import ObjectStore, object_get
from .playlist import has_end_marker, strip_end_marker
from .responses import EdgeResponse, build_response, failure_response

UPDATE_DELAY_SEC = 30
WRITE_BUFFER_SEC = 2
MAX_TTL_SEC = 31536000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class FreshnessDecision:
    """How to serve a rendition playlist."""
    body: str
    max_age: int
    stripped: bool
    live_checked: bool = False


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def decide_freshness(
    body: str,
    last_modified: Optional[datetime],
    now: datetime,
    is_live: Callable[[], Awaitable[bool]],
    config: Optional[PlaylistConfig] = None
) -> FreshnessDecision:
    """
    Decide the served body and max-age for a rendition playlist.

    Args:
        body: Stored playlist text.
        last_modified: Store timestamp; None counts as the epoch.
        now: Evaluation time.
        is_live: Queried only when the write window has passed.
        config: Timing settings; defaults match the recorder cadence.
    """
    config = config or PlaylistConfig()
    elapsed = (now - (last_modified or _EPOCH)).total_seconds()

    if elapsed < config.window_sec:
        remaining = config.update_delay_sec - elapsed
        max_age = min(config.update_delay_sec, max(0, math.floor(remaining)))
        return FreshnessDecision(
            body=strip_end_marker(body, config.end_marker),
            max_age=max_age,
            stripped=True
        )

    if await is_live():
        # Playlist update may be delayed
        return FreshnessDecision(
            body=strip_end_marker(body, config.end_marker),
            max_age=0,
            stripped=True,
            live_checked=True
        )

    return FreshnessDecision(
        body=body,
        max_age=config.max_ttl_sec,
        stripped=False,
        live_checked=True
    )


async def modify_rendition_playlist(
    request: EdgeRequest,
    store: ObjectStore,
    live_state: LiveStateService,
    config: Optional[PlaylistConfig] = None,
    now: Callable[[], datetime] = utc_now
) -> EdgeResponse:
    """Serve a rendition playlist with the end marker and max-age reconciled."""
    logger = get_channel_logger(request.channel_id, 'freshness')

    async def is_live() -> bool:
        active = await query_live_state(live_state, request.channel_id)
        return active.is_live

    try:
        obj = await object_get(store, request.key, request.container)
        decision = await decide_freshness(obj.body, obj.last_modified, now(), is_live, config)
    except Exception as e:
        logger.error(f"Failed to serve playlist {request.key}: {e}")
        return failure_response(max_age=0)

    end_marker = (config or PlaylistConfig()).end_marker
    if not decision.stripped and not has_end_marker(decision.body, end_marker):
        logger.warning(f"{request.key} is final but has no {end_marker}")
    logger.debug(
        f"{request.key}: max-age={decision.max_age} "
        f"{'open' if decision.stripped else 'final'}"
    )
    return build_response(
        200,
        body=decision.body,
        content_type='application/vnd.apple.mpegurl',
        max_age=decision.max_age
    )
