"""Tests for edge routing, event adapters and the local origin server."""

from __future__ import annotations

import asyncio
import json

from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from conftest import BUCKET, CHANNEL, NOW, OPEN_PLAYLIST, PREFIX, SESSION_KEY
from livevod.config import Config, EdgeConfig, ServerConfig
from livevod.edge import (
    EdgeRouter,
    EdgeServices,
    build_app,
    create_router,
    guess_content_type,
    handle_cloudfront_event,
    notifications_from_s3_event,
    request_from_cloudfront,
)
from livevod.models import EdgeRequest
from livevod.responses import build_response

PLAYLIST_KEY = f"{PREFIX}/media/hls/720p30/playlist.m3u8"


def _services(store, live_state, allowed_origins=None) -> EdgeServices:
    config = Config(
        edge=EdgeConfig(channel_id=CHANNEL, container=BUCKET),
        server=ServerConfig(allowed_origins=allowed_origins or []),
    )
    return EdgeServices(store=store, live_state=live_state, config=config)


def _cloudfront_event(uri: str) -> dict:
    return {
        "Records": [{
            "cf": {
                "config": {"eventType": "origin-request"},
                "request": {
                    "uri": uri,
                    "method": "GET",
                    "querystring": "",
                    "headers": {},
                    "origin": {
                        "s3": {
                            "domainName": f"{BUCKET}.s3.amazonaws.com",
                            "path": "",
                            "customHeaders": {
                                "channel-arn": [{"key": "channel-arn", "value": CHANNEL}],
                                "vod-record-bucket-name": [
                                    {"key": "vod-record-bucket-name", "value": BUCKET}
                                ],
                            },
                        }
                    },
                },
            }
        }]
    }


def test_router_first_match_wins() -> None:
    router = EdgeRouter()
    seen = []

    async def first(request):
        seen.append("first")
        return build_response(200)

    async def second(request):
        seen.append("second")
        return build_response(200)

    router.add("*/playlist.m3u8", first)
    router.add("*", second)
    request = EdgeRequest(uri="/a/playlist.m3u8", channel_id=CHANNEL, container=BUCKET)

    asyncio.run(router.dispatch(request))

    assert seen == ["first"]


def test_router_passes_through_unmatched() -> None:
    router = EdgeRouter()
    router.add("*/playlist.m3u8", None)
    request = EdgeRequest(uri="/a/0.ts", channel_id=CHANNEL, container=BUCKET)

    assert asyncio.run(router.dispatch(request)) is None


def test_default_routes(store, live_state) -> None:
    router = create_router(_services(store, live_state))

    assert router.patterns == ["*/playlist.m3u8", "/recording-started-latest.json"]
    assert router.match(f"/{PLAYLIST_KEY}") is not None
    assert router.match("/recording-started-latest.json") is not None
    assert router.match(f"/{PREFIX}/media/hls/master.m3u8") is None


def test_request_from_cloudfront() -> None:
    cf_request = _cloudfront_event(f"/{PLAYLIST_KEY}")["Records"][0]["cf"]["request"]

    request = request_from_cloudfront(cf_request)

    assert request.key == PLAYLIST_KEY
    assert request.channel_id == CHANNEL
    assert request.container == BUCKET


def test_cloudfront_playlist_event(store, live_state, seconds_ago) -> None:
    store.add(PLAYLIST_KEY, OPEN_PLAYLIST, last_modified=seconds_ago(10))
    router = create_router(_services(store, live_state), now=lambda: NOW)

    result = asyncio.run(handle_cloudfront_event(router, _cloudfront_event(f"/{PLAYLIST_KEY}")))

    assert result["status"] == "200"
    assert result["headers"]["cache-control"] == [{"key": "Cache-Control", "value": "max-age=20"}]
    assert "#EXT-X-ENDLIST" not in result["body"]


def test_cloudfront_metadata_event_not_ready(store, live_state) -> None:
    router = create_router(_services(store, live_state))

    result = asyncio.run(
        handle_cloudfront_event(router, _cloudfront_event("/recording-started-latest.json"))
    )

    assert result["status"] == "200"
    assert result["body"] == "null"


def test_cloudfront_unmatched_event_returns_request(store, live_state) -> None:
    router = create_router(_services(store, live_state))
    event = _cloudfront_event(f"/{PREFIX}/media/hls/720p30/0.ts")

    result = asyncio.run(handle_cloudfront_event(router, event))

    assert result is event["Records"][0]["cf"]["request"]


def test_notifications_from_s3_event() -> None:
    event = {
        "Records": [
            {"s3": {"bucket": {"name": BUCKET}, "object": {"key": SESSION_KEY}}},
            {"s3": {"bucket": {"name": BUCKET}, "object": {"key": f"{PREFIX}/events/recording-ended.json"}}},
            {"s3": {"bucket": {"name": BUCKET}, "object": {"key": "my+channel/x/events/recording-started.json"}}},
        ]
    }

    notifications = notifications_from_s3_event(event)

    assert [n.prefix for n in notifications] == [PREFIX, "my channel/x"]
    assert all(n.container == BUCKET for n in notifications)


def test_guess_content_type() -> None:
    assert guess_content_type("a/0.ts") == "video/mp2t"
    assert guess_content_type("a/master.m3u8") == "application/vnd.apple.mpegurl"
    assert guess_content_type("a/blob") == "application/octet-stream"


async def _start_client(app: web.Application) -> TestClient:
    client = TestClient(TestServer(app))
    await client.start_server()
    return client


def test_origin_app_serves_intercepted_and_passthrough(store, live_state, seconds_ago) -> None:
    store.add(PLAYLIST_KEY, OPEN_PLAYLIST, last_modified=seconds_ago(40))
    store.add(f"{PREFIX}/media/hls/master.m3u8", "#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=1\n720p30/playlist.m3u8\n")
    services = _services(store, live_state)

    async def runner():
        client = await _start_client(build_app(create_router(services), services))
        try:
            playlist = await client.get(f"/{PLAYLIST_KEY}")
            playlist_text = await playlist.text()
            master = await client.get(f"/{PREFIX}/media/hls/master.m3u8")
            missing = await client.get(f"/{PREFIX}/media/hls/720p30/9.ts")
            return playlist, playlist_text, master, missing
        finally:
            await client.close()

    playlist, playlist_text, master, missing = asyncio.run(runner())

    assert playlist.status == 200
    assert playlist.headers["Cache-Control"] == "max-age=31536000"
    assert playlist_text == OPEN_PLAYLIST
    assert master.status == 200
    assert master.headers["Content-Type"].startswith("application/vnd.apple.mpegurl")
    assert "Cache-Control" not in master.headers
    assert missing.status == 404


def test_origin_app_metadata(store, live_state, add_pointer) -> None:
    add_pointer("st-1")
    live_state.go_live("st-1")
    services = _services(store, live_state)

    async def runner():
        client = await _start_client(build_app(create_router(services), services))
        try:
            resp = await client.get("/recording-started-latest.json")
            return resp.status, resp.headers["Cache-Control"], await resp.json()
        finally:
            await client.close()

    status, cache_control, body = asyncio.run(runner())

    assert status == 200
    assert cache_control == "max-age=1"
    assert body["isChannelLive"] is True
    assert body["masterKey"] == f"{PREFIX}/media/hls/master.m3u8"


def test_origin_app_cors(store, live_state) -> None:
    services = _services(store, live_state, allowed_origins=["https://player.example.com"])

    async def runner():
        client = await _start_client(build_app(create_router(services), services))
        try:
            allowed = await client.get(
                "/recording-started-latest.json",
                headers={"Origin": "https://player.example.com"},
            )
            other = await client.get(
                "/recording-started-latest.json",
                headers={"Origin": "https://elsewhere.example.com"},
            )
            return allowed.headers.copy(), other.headers.copy()
        finally:
            await client.close()

    allowed, other = asyncio.run(runner())

    assert allowed["Access-Control-Allow-Origin"] == "https://player.example.com"
    assert allowed["Access-Control-Allow-Methods"] == "GET"
    assert "Access-Control-Allow-Origin" not in other
