"""
Live control plane clients.

Both backends answer the same question: is the channel broadcasting right now,
and under which stream identity. "No active broadcast" is an offline state,
never an error; anything else that goes wrong raises TransportError.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import aiohttp
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import TransportError
from .logger import get_channel_logger, get_logger
from .models import LiveState, StreamState


class LiveStateService:
    """Interface implemented by the live state backends."""

    async def get_active_stream(self, channel_id: str) -> LiveState:
        raise NotImplementedError

    async def close(self) -> None:
        """Release pooled resources."""


class IvsLiveStateService(LiveStateService):
    """Amazon IVS backend (GetStream)."""

    def __init__(self, region: str = "us-east-1", client=None):
        self._logger = get_logger('live_state')
        self._client = client or boto3.client(
            "ivs",
            region_name=region,
            config=BotoConfig(retries={"max_attempts": 1}, max_pool_connections=4),
        )

    def _get_stream_sync(self, channel_id: str) -> LiveState:
        try:
            response = self._client.get_stream(channelArn=channel_id)
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code == 'ChannelNotBroadcasting':
                return LiveState.offline()
            raise TransportError(f"IVS GetStream failed: {code or e}") from e
        except BotoCoreError as e:
            raise TransportError(f"IVS GetStream failed: {e}") from e

        stream = response.get('stream')
        if not stream:
            return LiveState.offline()

        state = StreamState.LIVE if stream.get('state') == 'LIVE' else StreamState.OFFLINE
        return LiveState(
            state=state,
            stream_id=stream.get('streamId'),
            playback_url=stream.get('playbackUrl')
        )

    async def get_active_stream(self, channel_id: str) -> LiveState:
        return await asyncio.to_thread(self._get_stream_sync, channel_id)


class TwitchLiveStateService(LiveStateService):
    """
    Twitch Helix backend.

    Features:
    - Client Credentials authentication
    - Automatic token refresh
    - Lazy session, recreated when the running loop changes
    """

    BASE_URL = "https://api.twitch.tv/helix"
    AUTH_URL = "https://id.twitch.tv/oauth2/token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: Optional[str] = None,
        auth_url: Optional[str] = None
    ):
        """
        Initialize Twitch client.

        Args:
            client_id: Twitch application Client ID.
            client_secret: Twitch application Client Secret.
            base_url: Helix API base, overridable for testing.
            auth_url: OAuth token endpoint, overridable for testing.
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url or self.BASE_URL
        self.auth_url = auth_url or self.AUTH_URL

        self._app_token: Optional[str] = None
        self._token_expires: Optional[datetime] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_loop: Optional[asyncio.AbstractEventLoop] = None
        self._logger = get_logger('live_state')

    def _ensure_session(self) -> aiohttp.ClientSession:
        loop = asyncio.get_running_loop()
        if self._session is None or self._session.closed or self._session_loop is not loop:
            if self._session is not None and not self._session.closed:
                # Its loop is gone, so it can no longer be closed from here
                self._logger.warning("HTTP session outlived its event loop; close() was not awaited")
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=5))
            self._session_loop = loop
        return self._session

    async def close(self) -> None:
        """Close session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _refresh_token(self) -> None:
        """Get or refresh app access token."""
        session = self._ensure_session()
        try:
            async with session.post(
                self.auth_url,
                params={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'grant_type': 'client_credentials'
                }
            ) as resp:
                if resp.status != 200:
                    raise TransportError(f"Twitch auth failed: {resp.status}")

                data = await resp.json()
        except aiohttp.ClientError as e:
            raise TransportError(f"Twitch auth failed: {e}") from e

        self._app_token = data['access_token']
        expires_in = data.get('expires_in', 3600)
        self._token_expires = datetime.now() + timedelta(seconds=expires_in - 60)
        self._logger.debug("Got new app access token")

    async def _ensure_token(self) -> None:
        """Ensure we have a valid token."""
        if not self._app_token or datetime.now() >= self._token_expires:
            await self._refresh_token()

    def _headers(self) -> dict:
        return {
            'Client-ID': self.client_id,
            'Authorization': f'Bearer {self._app_token}'
        }

    async def get_active_stream(self, channel_id: str) -> LiveState:
        """
        Get live stream state for a channel.

        Args:
            channel_id: Twitch username (login).

        Returns:
            LiveState; offline when Helix lists no stream for the login.
        """
        await self._ensure_token()
        session = self._ensure_session()

        try:
            async with session.get(
                f"{self.base_url}/streams",
                headers=self._headers(),
                params={'user_login': channel_id}
            ) as resp:
                if resp.status == 401:
                    # Token revoked early; next call re-authenticates
                    self._app_token = None
                if resp.status != 200:
                    raise TransportError(f"Twitch API error: {resp.status}")

                data = await resp.json()
        except aiohttp.ClientError as e:
            raise TransportError(f"Twitch API request failed: {e}") from e

        streams = data.get('data', [])
        if not streams:
            return LiveState.offline()

        s = streams[0]
        return LiveState(
            state=StreamState.LIVE,
            stream_id=s['id'],
            playback_url=f"https://www.twitch.tv/{s['user_login']}"
        )


async def query_live_state(service: LiveStateService, channel_id: str) -> LiveState:
    """Query the control plane for a channel's current live state."""
    live_state = await service.get_active_stream(channel_id)
    get_channel_logger(channel_id, 'live_state').debug(
        f"Live state: {live_state.state.value} (stream {live_state.stream_id or '-'})"
    )
    return live_state


def create_live_state_service(backend: str, region: str = "us-east-1",
                              client_id: str = "", client_secret: str = "") -> LiveStateService:
    """Create the configured live state backend."""
    if backend == "ivs":
        return IvsLiveStateService(region=region)
    if backend == "twitch":
        return TwitchLiveStateService(client_id=client_id, client_secret=client_secret)
    raise ValueError(f"Unknown live state backend: {backend}")
