"""
Configuration module for livevod.
Loads settings from YAML file and provides typed configuration.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml


@dataclass
class EdgeConfig:
    """Channel and container served by this deployment."""
    channel_id: str = ""          # IVS channel ARN or Twitch login
    container: str = ""           # Bucket (s3) or subdirectory (local) holding recordings


@dataclass
class ObjectStoreConfig:
    """Object store backend settings."""
    backend: str = "s3"           # "s3" or "local"
    region: str = "us-east-1"
    endpoint_url: str = ""        # Optional S3-compatible endpoint
    local_root: str = "./data/vod"


@dataclass
class LiveStateConfig:
    """Live control plane settings."""
    backend: str = "ivs"          # "ivs" or "twitch"
    region: str = "us-east-1"
    client_id: str = ""           # Twitch app Client ID
    client_secret: str = ""       # Twitch app Client Secret


@dataclass
class PlaylistConfig:
    """Rendition playlist freshness settings."""
    update_delay_sec: int = 30        # Recorder rewrites playlists at this cadence
    write_buffer_sec: int = 2         # Allowance for write latency
    max_ttl_sec: int = 31536000       # Maximum CDN TTL (1 year)
    end_marker: str = "#EXT-X-ENDLIST"

    @property
    def window_sec(self) -> int:
        return self.update_delay_sec + self.write_buffer_sec


@dataclass
class MetadataConfig:
    """Latest recording metadata settings."""
    latest_key: str = "recording-started-latest.json"
    ingest_suffix: str = "recording-started.json"
    session_marker: str = "/events"
    duration_tag: str = "EXT-X-TWITCH-TOTAL-SECS"
    max_age_sec: int = 1


@dataclass
class ServerConfig:
    """Local origin server settings."""
    host: str = "127.0.0.1"
    port: int = 8080
    allowed_origins: List[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    file: str = ""
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration container."""
    edge: EdgeConfig = field(default_factory=EdgeConfig)
    object_store: ObjectStoreConfig = field(default_factory=ObjectStoreConfig)
    live_state: LiveStateConfig = field(default_factory=LiveStateConfig)
    playlist: PlaylistConfig = field(default_factory=PlaylistConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def as_int(value: Any, default: int) -> int:
    """Parse int from YAML value with safe fallbacks."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(float(text.replace(",", ".")))
        except ValueError:
            return default
    return default


def _non_negative(name: str, value: int) -> int:
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def apply_env_overrides(config: Config, environ: Optional[dict] = None) -> Config:
    """Override deployment identity from LIVEVOD_* environment variables."""
    env = os.environ if environ is None else environ

    if env.get('LIVEVOD_CHANNEL_ID'):
        config.edge.channel_id = env['LIVEVOD_CHANNEL_ID']
    if env.get('LIVEVOD_CONTAINER'):
        config.edge.container = env['LIVEVOD_CONTAINER']
    if env.get('LIVEVOD_REGION'):
        config.object_store.region = env['LIVEVOD_REGION']
        config.live_state.region = env['LIVEVOD_REGION']
    if env.get('LIVEVOD_LOG_LEVEL'):
        config.logging.level = env['LIVEVOD_LOG_LEVEL']

    return config


def parse_config(data: dict) -> Config:
    """
    Build a Config from already-parsed YAML data.

    Raises:
        ValueError: If a backend name or timing value is invalid.
    """
    edge_data = data.get('edge', {}) or {}
    edge_config = EdgeConfig(
        channel_id=str(edge_data.get('channel_id', '') or ''),
        container=str(edge_data.get('container', '') or '')
    )

    store_data = data.get('object_store', {}) or {}
    store_config = ObjectStoreConfig(
        backend=store_data.get('backend', 's3'),
        region=store_data.get('region', 'us-east-1'),
        endpoint_url=store_data.get('endpoint_url', '') or '',
        local_root=store_data.get('local_root', './data/vod')
    )
    if store_config.backend not in ('s3', 'local'):
        raise ValueError(f"Unknown object_store.backend: {store_config.backend}")

    live_data = data.get('live_state', {}) or {}
    live_config = LiveStateConfig(
        backend=live_data.get('backend', 'ivs'),
        region=live_data.get('region', store_config.region),
        client_id=live_data.get('client_id', ''),
        client_secret=live_data.get('client_secret', '')
    )
    if live_config.backend not in ('ivs', 'twitch'):
        raise ValueError(f"Unknown live_state.backend: {live_config.backend}")
    if live_config.backend == 'twitch' and not (live_config.client_id and live_config.client_secret):
        raise ValueError("live_state.client_id and client_secret are required for the twitch backend")

    playlist_data = data.get('playlist', {}) or {}
    playlist_config = PlaylistConfig(
        update_delay_sec=_non_negative(
            'playlist.update_delay_sec', as_int(playlist_data.get('update_delay_sec'), 30)),
        write_buffer_sec=_non_negative(
            'playlist.write_buffer_sec', as_int(playlist_data.get('write_buffer_sec'), 2)),
        max_ttl_sec=_non_negative(
            'playlist.max_ttl_sec', as_int(playlist_data.get('max_ttl_sec'), 31536000)),
        end_marker=playlist_data.get('end_marker', '#EXT-X-ENDLIST')
    )

    metadata_data = data.get('metadata', {}) or {}
    metadata_config = MetadataConfig(
        latest_key=metadata_data.get('latest_key', 'recording-started-latest.json'),
        ingest_suffix=metadata_data.get('ingest_suffix', 'recording-started.json'),
        session_marker=metadata_data.get('session_marker', '/events'),
        duration_tag=metadata_data.get('duration_tag', 'EXT-X-TWITCH-TOTAL-SECS'),
        max_age_sec=_non_negative(
            'metadata.max_age_sec', as_int(metadata_data.get('max_age_sec'), 1))
    )

    server_data = data.get('server', {}) or {}
    server_config = ServerConfig(
        host=server_data.get('host', '127.0.0.1'),
        port=as_int(server_data.get('port'), 8080),
        allowed_origins=list(server_data.get('allowed_origins', []) or [])
    )

    logging_data = data.get('logging', {}) or {}
    logging_config = LoggingConfig(
        level=logging_data.get('level', 'INFO'),
        file=logging_data.get('file', '') or '',
        max_size_mb=as_int(logging_data.get('max_size_mb'), 10),
        backup_count=as_int(logging_data.get('backup_count'), 5)
    )

    return Config(
        edge=edge_config,
        object_store=store_config,
        live_state=live_config,
        playlist=playlist_config,
        metadata=metadata_config,
        server=server_config,
        logging=logging_config
    )


def load_config(config_path: str = "config.yaml", environ: Optional[dict] = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file.
        environ: Environment mapping for overrides (defaults to os.environ).

    Returns:
        Config object with all settings.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If the file is empty or holds invalid values.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            f"Run 'livevod init-config' to create one."
        )

    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if not data:
        raise ValueError("Configuration file is empty")

    return apply_env_overrides(parse_config(data), environ)


def create_example_config(path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example = """# livevod configuration

edge:
  channel_id: arn:aws:ivs:us-east-1:123456789012:channel/abcdEFGH1234
  container: my-vod-record-bucket

object_store:
  backend: s3          # s3 or local
  region: us-east-1
  endpoint_url: ""     # S3-compatible endpoint, empty for AWS
  local_root: ./data/vod

live_state:
  backend: ivs         # ivs or twitch
  region: us-east-1
  client_id: ""        # Twitch only
  client_secret: ""    # Twitch only

playlist:
  update_delay_sec: 30   # Recorder playlist write cadence
  write_buffer_sec: 2
  max_ttl_sec: 31536000  # Maximum CDN TTL for finalized playlists

metadata:
  latest_key: recording-started-latest.json
  ingest_suffix: recording-started.json
  session_marker: /events
  duration_tag: EXT-X-TWITCH-TOTAL-SECS
  max_age_sec: 1

server:
  host: 127.0.0.1
  port: 8080
  allowed_origins:
    - http://localhost:3000

logging:
  level: INFO  # DEBUG, INFO, WARNING, ERROR
  file: ./logs/livevod.log
  max_size_mb: 10
  backup_count: 5
"""
    with open(path, 'w', encoding='utf-8') as f:
        f.write(example)
