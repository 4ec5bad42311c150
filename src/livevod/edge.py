"""
Edge interception.

An EdgeRouter maps path patterns to handlers, the way CDN cache behaviors map
paths to origin-request functions. A matched handler short-circuits the request
with its own response; an unmatched request goes on to the origin untouched.
The same router runs behind CloudFront events (see lambdas.py) and behind the
local aiohttp origin server built here.
"""

import fnmatch
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple
from urllib.parse import unquote_plus

from aiohttp import web

from .config import Config
from .errors import ObjectNotFound
from .freshness import modify_rendition_playlist, utc_now
from .ingestion import ObjectCreatedNotification
from .live_state import LiveStateService, create_live_state_service
from .logger import get_logger
from .metadata import get_latest_recording_start_meta
from .models import EdgeRequest
from .object_store import ObjectStore, create_object_store
from .responses import EdgeResponse, failure_response

EdgeHandler = Callable[[EdgeRequest], Awaitable[EdgeResponse]]

PLAYLIST_PATTERN = '*/playlist.m3u8'

CONTENT_TYPES = {
    '.m3u8': 'application/vnd.apple.mpegurl',
    '.ts': 'video/mp2t',
    '.m4s': 'video/iso.segment',
    '.mp4': 'video/mp4',
    '.json': 'application/json',
}


class EdgeRouter:
    """Ordered path-pattern routes; first match wins."""

    def __init__(self):
        self._routes: List[Tuple[str, EdgeHandler]] = []
        self._logger = get_logger('edge')

    def add(self, pattern: str, handler: EdgeHandler) -> None:
        self._routes.append((pattern, handler))

    @property
    def patterns(self) -> List[str]:
        return [pattern for pattern, _ in self._routes]

    def match(self, uri: str) -> Optional[EdgeHandler]:
        for pattern, handler in self._routes:
            if fnmatch.fnmatchcase(uri, pattern):
                return handler
        return None

    async def dispatch(self, request: EdgeRequest) -> Optional[EdgeResponse]:
        """Run the matching handler, or return None to pass through."""
        handler = self.match(request.uri)
        if handler is None:
            self._logger.debug(f"{request.uri}: pass through")
            return None
        return await handler(request)


@dataclass
class EdgeServices:
    """Pooled collaborators shared by every invocation in a process."""
    store: ObjectStore
    live_state: LiveStateService
    config: Config = field(default_factory=Config)

    @classmethod
    def from_config(cls, config: Config) -> 'EdgeServices':
        store = create_object_store(
            config.object_store.backend,
            region=config.object_store.region,
            endpoint_url=config.object_store.endpoint_url,
            local_root=config.object_store.local_root
        )
        live_state = create_live_state_service(
            config.live_state.backend,
            region=config.live_state.region,
            client_id=config.live_state.client_id,
            client_secret=config.live_state.client_secret
        )
        return cls(store=store, live_state=live_state, config=config)

    @property
    def ingestion_channel_id(self) -> Optional[str]:
        """Channel to check at ingestion; None means the one named in the record."""
        if self.config.live_state.backend == 'twitch':
            return self.config.edge.channel_id or None
        return None

    async def close(self) -> None:
        await self.live_state.close()
        await self.store.close()


def create_router(
    services: EdgeServices,
    now: Callable[[], datetime] = utc_now
) -> EdgeRouter:
    """Routes for rendition playlists and the latest recording metadata."""
    config = services.config
    router = EdgeRouter()
    router.add(
        PLAYLIST_PATTERN,
        partial(
            modify_rendition_playlist,
            store=services.store,
            live_state=services.live_state,
            config=config.playlist,
            now=now
        )
    )
    router.add(
        f"/{config.metadata.latest_key}",
        partial(
            get_latest_recording_start_meta,
            store=services.store,
            live_state=services.live_state,
            config=config.metadata
        )
    )
    return router


# CloudFront / S3 event adapters

def _custom_header(headers: dict, name: str) -> str:
    values = headers.get(name) or [{}]
    return values[0].get('value', '') or ''


def request_from_cloudfront(cf_request: dict) -> EdgeRequest:
    """Build an EdgeRequest from a CloudFront origin-request `cf.request`."""
    custom_headers = cf_request.get('origin', {}).get('s3', {}).get('customHeaders', {})
    return EdgeRequest(
        uri=cf_request['uri'],
        channel_id=_custom_header(custom_headers, 'channel-arn'),
        container=_custom_header(custom_headers, 'vod-record-bucket-name')
    )


async def handle_cloudfront_event(router: EdgeRouter, event: dict) -> dict:
    """
    Process a CloudFront origin-request event.

    Returns:
        A result response for matched paths, otherwise the request itself so
        CloudFront continues to the origin.
    """
    cf_request = event['Records'][0]['cf']['request']
    response = await router.dispatch(request_from_cloudfront(cf_request))
    if response is None:
        return cf_request
    return response.to_cloudfront()


def notifications_from_s3_event(
    event: dict,
    suffix: str = "recording-started.json",
    session_marker: str = "/events"
) -> List[ObjectCreatedNotification]:
    """Notifications for the recording-started records in an S3 event."""
    notifications = []
    for record in event.get('Records', []):
        s3 = record['s3']
        key = unquote_plus(s3['object']['key'])
        if suffix and not key.endswith(suffix):
            continue
        notifications.append(
            ObjectCreatedNotification.from_key(key, s3['bucket']['name'], session_marker)
        )
    return notifications


# Local origin server

def guess_content_type(key: str) -> str:
    for ext, content_type in CONTENT_TYPES.items():
        if key.endswith(ext):
            return content_type
    return mimetypes.guess_type(key)[0] or 'application/octet-stream'


async def serve_origin_object(store: ObjectStore, request: EdgeRequest) -> web.StreamResponse:
    """Pass-through: serve the stored object unmodified."""
    try:
        data, _ = await store.get_bytes(request.key, request.container)
    except ObjectNotFound:
        return web.Response(status=404, text="Not Found")
    except Exception as e:
        get_logger('edge').error(f"Failed to serve {request.key}: {e}")
        return failure_response(max_age=0).to_web_response()

    return web.Response(body=data, content_type=guess_content_type(request.key))


def _apply_cors(request: web.Request, response: web.StreamResponse,
                allowed_origins: Iterable[str]) -> None:
    allowed = list(allowed_origins)
    origin = request.headers.get('Origin')
    if not origin or not allowed:
        return
    if '*' in allowed:
        response.headers['Access-Control-Allow-Origin'] = '*'
    elif origin in allowed:
        response.headers['Access-Control-Allow-Origin'] = origin
        response.headers['Vary'] = 'Origin'
    else:
        return
    response.headers['Access-Control-Allow-Methods'] = 'GET'
    response.headers['Access-Control-Allow-Headers'] = '*'


def build_app(
    router: EdgeRouter,
    services: EdgeServices,
    channel_id: Optional[str] = None,
    container: Optional[str] = None
) -> web.Application:
    """
    Build the local origin application.

    Intercepted paths are answered by the router; everything else is read from
    the store as-is.
    """
    config = services.config
    channel_id = channel_id if channel_id is not None else config.edge.channel_id
    container = container if container is not None else config.edge.container
    logger = get_logger('edge')

    async def handle(request: web.Request) -> web.StreamResponse:
        edge_request = EdgeRequest(uri=request.path, channel_id=channel_id, container=container)
        edge_response = await router.dispatch(edge_request)

        if edge_response is None:
            response = await serve_origin_object(services.store, edge_request)
        else:
            response = edge_response.to_web_response()

        _apply_cors(request, response, config.server.allowed_origins)
        logger.debug(f"GET {request.path} -> {response.status}")
        return response

    async def on_cleanup(app: web.Application) -> None:
        await services.close()

    app = web.Application()
    app.router.add_get('/{tail:.*}', handle)
    app.on_cleanup.append(on_cleanup)
    return app
