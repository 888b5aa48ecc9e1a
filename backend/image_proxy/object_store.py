"""
Object Store Clients

Durable tier for original and transformed images.

- ObjectStore: the async interface the orchestrator depends on
- S3ObjectStore: boto3-backed bucket client
- FileObjectStore: local-disk store for development

Cache structure of FileObjectStore:
root_dir/
├── objects/
│   └── pictures/
│       ├── cat.jpg
│       └── cat.jpg_100xauto_q85_gray0.jpeg
└── metadata.json
"""

import asyncio
import json
import logging
import mimetypes
import os
from pathlib import Path
from typing import Optional, Protocol, Tuple, runtime_checkable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ObjectNotFound, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


@runtime_checkable
class ObjectStore(Protocol):
    """Minimal contract the cache orchestrator needs from a blob store."""

    async def exists(self, key: str) -> bool:
        """Return whether ``key`` exists. Absence is not an error."""
        ...

    async def get(self, key: str) -> Tuple[bytes, str]:
        """
        Fetch an object.

        Raises:
            ObjectNotFound: if ``key`` is absent.
            StoreUnavailable: on backend failure.
        """
        ...

    async def put(self, key: str, data: bytes, content_type: str) -> bool:
        """Store an object. Returns False on failure instead of raising."""
        ...


def is_not_found_client_error(exception: ClientError) -> bool:
    error = exception.response.get("Error", {})
    return error.get("Code") in NOT_FOUND_CODES


class S3ObjectStore:
    """
    S3 bucket client.

    boto3 is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        bucket: str,
        client=None,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        if not bucket:
            raise ValueError("S3ObjectStore requires a bucket name")
        self.bucket = bucket
        self._s3 = client or boto3.client(
            "s3",
            region_name=region_name,
            endpoint_url=endpoint_url,
        )

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._s3.head_object, Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if is_not_found_client_error(e):
                return False
            raise StoreUnavailable(f"HEAD {key} failed: {e}") from e
        except BotoCoreError as e:
            raise StoreUnavailable(f"HEAD {key} failed: {e}") from e

    def _read_object(self, key: str) -> Tuple[bytes, str]:
        res = self._s3.get_object(Bucket=self.bucket, Key=key)
        return res["Body"].read(), res.get("ContentType") or DEFAULT_CONTENT_TYPE

    async def get(self, key: str) -> Tuple[bytes, str]:
        try:
            return await asyncio.to_thread(self._read_object, key)
        except ClientError as e:
            if is_not_found_client_error(e):
                raise ObjectNotFound(key) from e
            logger.error(f"[ObjectStore] Error downloading {key} from S3: {e}")
            raise StoreUnavailable(f"GET {key} failed: {e}") from e
        except BotoCoreError as e:
            logger.error(f"[ObjectStore] Error downloading {key} from S3: {e}")
            raise StoreUnavailable(f"GET {key} failed: {e}") from e

    async def put(self, key: str, data: bytes, content_type: str) -> bool:
        try:
            await asyncio.to_thread(
                self._s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[ObjectStore] Error uploading {key} to S3: {e}")
            return False
        logger.info(f"[ObjectStore] Image uploaded successfully to {key}")
        return True


class FileObjectStore:
    """
    Object store on the local filesystem.

    Content types written through ``put`` are kept in ``metadata.json``;
    files placed in ``objects/`` by hand get a type guessed from their
    extension.
    """

    def __init__(self, root_dir: str = "./image_store"):
        self.root_dir = Path(root_dir)
        self.objects_dir = self.root_dir / "objects"
        self.metadata_file = self.root_dir / "metadata.json"

        self._content_types: dict[str, str] = {}
        self._lock = asyncio.Lock()

        self._init_store_dir()
        self._load_metadata()

    def _init_store_dir(self) -> None:
        """Create store directories if they don't exist."""
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"[ObjectStore] Store directory: {self.root_dir}")

    def _load_metadata(self) -> None:
        if not self.metadata_file.exists():
            self._content_types = {}
            return
        try:
            with open(self.metadata_file, "r") as f:
                self._content_types = json.load(f)
            logger.info(f"[ObjectStore] Loaded {len(self._content_types)} metadata entries")
        except (OSError, ValueError) as e:
            logger.warning(f"[ObjectStore] Failed to load metadata: {e}")
            self._content_types = {}

    def _save_metadata(self) -> None:
        with open(self.metadata_file, "w") as f:
            json.dump(self._content_types, f, indent=2, sort_keys=True)

    def _object_path(self, key: str) -> Path:
        root = self.objects_dir.resolve()
        path = (self.objects_dir / key).resolve()
        if root not in path.parents:
            raise StoreUnavailable(f"Key escapes store root: {key}")
        return path

    def _content_type_for(self, key: str) -> str:
        if key in self._content_types:
            return self._content_types[key]
        guessed, _ = mimetypes.guess_type(key)
        return guessed or DEFAULT_CONTENT_TYPE

    async def exists(self, key: str) -> bool:
        return self._object_path(key).is_file()

    async def get(self, key: str) -> Tuple[bytes, str]:
        path = self._object_path(key)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise ObjectNotFound(key) from e
        except OSError as e:
            logger.error(f"[ObjectStore] Failed to read {key}: {e}")
            raise StoreUnavailable(f"Failed to read {key}: {e}") from e
        return data, self._content_type_for(key)

    def _write_object(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)

    def _persist(self, path: Path, key: str, data: bytes, content_type: str) -> None:
        """Write the object and record its content type. Runs off the event loop."""
        self._write_object(path, data)
        self._content_types[key] = content_type
        self._save_metadata()

    async def put(self, key: str, data: bytes, content_type: str) -> bool:
        try:
            path = self._object_path(key)
        except StoreUnavailable as e:
            logger.error(f"[ObjectStore] Refusing to store {key}: {e}")
            return False

        async with self._lock:
            try:
                await asyncio.to_thread(self._persist, path, key, data, content_type)
            except OSError as e:
                logger.error(f"[ObjectStore] Failed to store {key}: {e}")
                return False

        logger.debug(f"[ObjectStore] Stored {key} ({len(data)} bytes)")
        return True
