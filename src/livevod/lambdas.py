"""
AWS Lambda entry points.

    livevod.lambdas.playlist_handler   CloudFront origin request, */playlist.m3u8
    livevod.lambdas.metadata_handler   CloudFront origin request, /recording-started-latest.json
    livevod.lambdas.ingestion_handler  S3 ObjectCreated:Put, *recording-started.json

Lambda@Edge functions cannot read environment variables, so configuration
comes from a YAML file bundled next to the code (LIVEVOD_CONFIG or
./config.yaml) when present, and from defaults otherwise. Clients are created
once per container and reused across invocations.
"""

import asyncio
import os
from pathlib import Path
from typing import Optional

from .config import Config, apply_env_overrides, load_config
from .edge import (
    EdgeRouter,
    EdgeServices,
    create_router,
    handle_cloudfront_event,
    notifications_from_s3_event,
)
from .ingestion import save_recording_start_meta
from .logger import get_logger, setup_logging

_services: Optional[EdgeServices] = None
_router: Optional[EdgeRouter] = None


def _load_config() -> Config:
    path = Path(os.environ.get('LIVEVOD_CONFIG', 'config.yaml'))
    if path.exists():
        return load_config(str(path))
    return apply_env_overrides(Config())


def get_services() -> EdgeServices:
    """Services for this container, created on first use."""
    global _services, _router

    if _services is None:
        config = _load_config()
        setup_logging(level=config.logging.level, colored=False)
        _services = EdgeServices.from_config(config)
        _router = create_router(_services)
        get_logger('lambda').info(
            f"Initialized: store={config.object_store.backend}, "
            f"live_state={config.live_state.backend}"
        )

    return _services


def get_router() -> EdgeRouter:
    get_services()
    return _router


def _invoke(services: EdgeServices, coro):
    """Run one invocation on a fresh event loop.

    HTTP sessions are bound to the loop that created them, so they are closed
    before this invocation's loop goes away. Tokens and boto3 clients are kept.
    """
    async def runner():
        try:
            return await coro
        finally:
            await services.close()

    return asyncio.run(runner())


def playlist_handler(event: dict, context=None) -> dict:
    router = get_router()
    return _invoke(get_services(), handle_cloudfront_event(router, event))


def metadata_handler(event: dict, context=None) -> dict:
    router = get_router()
    return _invoke(get_services(), handle_cloudfront_event(router, event))


def ingestion_handler(event: dict, context=None) -> None:
    """Ingest every recording-started record in the event; errors propagate."""
    services = get_services()
    metadata_config = services.config.metadata
    notifications = notifications_from_s3_event(
        event,
        suffix=metadata_config.ingest_suffix,
        session_marker=metadata_config.session_marker
    )

    async def ingest_all() -> None:
        for notification in notifications:
            await save_recording_start_meta(
                notification,
                services.store,
                services.live_state,
                latest_key=metadata_config.latest_key,
                live_channel_id=services.ingestion_channel_id
            )

    _invoke(services, ingest_all())
