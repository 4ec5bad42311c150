"""
Object store access for livevod.

Two backends share one contract: get() returns the text body and its
last-modified time or raises ObjectNotFound, put() overwrites unconditionally.
"""

import asyncio
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ObjectNotFound, ParseError, TransportError
from .logger import get_logger

# Error codes S3 (and S3-compatible stores) use for a missing key
_NOT_FOUND_CODES = {'NoSuchKey', 'NotFound', '404'}


@dataclass
class StoredObject:
    """Text object fetched from the store."""
    key: str
    body: str
    last_modified: Optional[datetime] = None


class ObjectStore:
    """Base class for the store backends. Subclasses implement the byte-level calls."""

    async def get_bytes(self, key: str, container: str) -> Tuple[bytes, Optional[datetime]]:
        raise NotImplementedError

    async def put(
        self,
        key: str,
        container: str,
        body: str,
        content_type: str = "application/json"
    ) -> None:
        raise NotImplementedError

    async def get(self, key: str, container: str) -> StoredObject:
        data, last_modified = await self.get_bytes(key, container)
        try:
            body = data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ParseError(f"{container}/{key} is not UTF-8 text") from e
        return StoredObject(key=key, body=body, last_modified=last_modified)

    async def close(self) -> None:
        """Release pooled resources."""


class S3ObjectStore(ObjectStore):
    """
    S3 (or S3-compatible) backend.

    The boto3 client is created once and reused; its calls block, so they run
    in a worker thread.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        client=None
    ):
        self._logger = get_logger('object_store')
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url or None,
            config=BotoConfig(retries={"max_attempts": 1}, max_pool_connections=4),
        )

    def _get_sync(self, key: str, container: str) -> Tuple[bytes, Optional[datetime]]:
        try:
            response = self._client.get_object(Bucket=container, Key=key)
            data = response['Body'].read()
        except ClientError as e:
            code = str(e.response.get('Error', {}).get('Code', ''))
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFound(key, container) from e
            raise TransportError(f"get s3://{container}/{key} failed: {code or e}") from e
        except BotoCoreError as e:
            raise TransportError(f"get s3://{container}/{key} failed: {e}") from e

        return data, response.get('LastModified')

    def _put_sync(self, key: str, container: str, body: str, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=container,
                Key=key,
                Body=body.encode('utf-8'),
                ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"put s3://{container}/{key} failed: {e}") from e

    async def get_bytes(self, key: str, container: str) -> Tuple[bytes, Optional[datetime]]:
        data, last_modified = await asyncio.to_thread(self._get_sync, key, container)
        self._logger.debug(f"Fetched s3://{container}/{key} ({len(data)} bytes)")
        return data, last_modified

    async def put(
        self,
        key: str,
        container: str,
        body: str,
        content_type: str = "application/json"
    ) -> None:
        await asyncio.to_thread(self._put_sync, key, container, body, content_type)
        self._logger.debug(f"Wrote s3://{container}/{key} ({len(body)} chars)")


class LocalObjectStore(ObjectStore):
    """
    Directory-backed store for local development and tests.

    Containers are subdirectories of the root; file mtime stands in for
    last-modified.
    """

    def __init__(self, root: str = "./data/vod"):
        self.root = Path(root)
        self._logger = get_logger('object_store')

    def _path(self, key: str, container: str) -> Path:
        base = (self.root / container).resolve()
        path = (base / key.lstrip('/')).resolve()
        if base not in path.parents:
            # Keys escaping the container never exist
            raise ObjectNotFound(key, container)
        return path

    async def get_bytes(self, key: str, container: str) -> Tuple[bytes, Optional[datetime]]:
        path = self._path(key, container)
        if not path.is_file():
            raise ObjectNotFound(key, container)

        try:
            async with aiofiles.open(path, 'rb') as f:
                data = await f.read()
            mtime = os.stat(path).st_mtime
        except FileNotFoundError as e:
            raise ObjectNotFound(key, container) from e
        except OSError as e:
            raise TransportError(f"read {path} failed: {e}") from e

        return data, datetime.fromtimestamp(mtime, tz=timezone.utc)

    async def put(
        self,
        key: str,
        container: str,
        body: str,
        content_type: str = "application/json"
    ) -> None:
        path = self._path(key, container)
        tmp_path = path.with_suffix(path.suffix + ".tmp")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, 'wb') as f:
                await f.write(body.encode('utf-8'))
            tmp_path.replace(path)
        except OSError as e:
            raise TransportError(f"write {path} failed: {e}") from e

        self._logger.debug(f"Wrote {path} ({len(body)} chars)")


async def object_get(store: ObjectStore, key: str, container: str) -> StoredObject:
    """Fetch a text object; raises ObjectNotFound for a missing key."""
    return await store.get(key, container)


async def object_put(
    store: ObjectStore,
    key: str,
    container: str,
    body: str,
    content_type: str = "application/json"
) -> None:
    """Overwrite a text object. No retry, no conditional write."""
    await store.put(key, container, body, content_type)


def create_object_store(backend: str, region: str = "us-east-1",
                        endpoint_url: str = "", local_root: str = "./data/vod") -> ObjectStore:
    """Create the configured store backend."""
    if backend == "local":
        return LocalObjectStore(local_root)
    if backend == "s3":
        return S3ObjectStore(region=region, endpoint_url=endpoint_url or None)
    raise ValueError(f"Unknown object store backend: {backend}")
