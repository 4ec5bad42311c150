"""
livevod command line.

    livevod serve         run the local origin with edge interception
    livevod ingest KEY    ingest a recording-started record by hand
    livevod init-config   write an example configuration
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from aiohttp import web

from .config import Config, create_example_config, load_config
from .edge import EdgeServices, build_app, create_router
from .ingestion import ObjectCreatedNotification, save_recording_start_meta
from .logger import get_logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='livevod',
        description="Serve live recordings as seekable VOD while they are being finalized."
    )
    parser.add_argument('--config', default='config.yaml', help="Path to config.yaml")

    subparsers = parser.add_subparsers(dest='command', required=True)

    serve = subparsers.add_parser('serve', help="Run the local origin server")
    serve.add_argument('--host', help="Override server.host")
    serve.add_argument('--port', type=int, help="Override server.port")

    ingest = subparsers.add_parser('ingest', help="Ingest a recording-started record")
    ingest.add_argument('key', help="Key of the recording-started.json object")
    ingest.add_argument('--container', help="Override edge.container")

    init = subparsers.add_parser('init-config', help="Write an example configuration")
    init.add_argument('path', nargs='?', default='config.example.yaml')

    return parser


def serve(config: Config, host: Optional[str] = None, port: Optional[int] = None) -> None:
    services = EdgeServices.from_config(config)
    app = build_app(create_router(services), services)

    host = host or config.server.host
    port = port or config.server.port
    get_logger('app').info(
        f"Serving {config.edge.container or '-'} for {config.edge.channel_id or '-'} "
        f"on http://{host}:{port}"
    )
    web.run_app(app, host=host, port=port, print=None)


async def ingest(config: Config, key: str, container: Optional[str] = None) -> None:
    services = EdgeServices.from_config(config)
    notification = ObjectCreatedNotification.from_key(
        key,
        container or config.edge.container,
        config.metadata.session_marker
    )
    try:
        await save_recording_start_meta(
            notification,
            services.store,
            services.live_state,
            latest_key=config.metadata.latest_key,
            live_channel_id=services.ingestion_channel_id
        )
    finally:
        await services.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.command == 'init-config':
        create_example_config(args.path)
        print(f"Created {args.path}")
        return 0

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1
    except ValueError as e:
        print(f"Configuration error: {e}")
        return 1

    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file or None,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count
    )

    if args.command == 'serve':
        serve(config, args.host, args.port)
        return 0

    if not (args.container or config.edge.container):
        print("Error: no container given (edge.container or --container)")
        return 1

    try:
        asyncio.run(ingest(config, args.key, args.container))
    except Exception as e:
        get_logger('app').error(f"Ingestion failed: {e}")
        return 1
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == '__main__':
    run()
