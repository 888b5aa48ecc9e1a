"""
Image Proxy Configuration

Environment-driven settings and the factory that wires a configured
orchestrator together.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .keys import DEFAULT_KEY_PREFIX
from .memory_cache import MemoryCache
from .object_store import FileObjectStore, ObjectStore, S3ObjectStore
from .orchestrator import DEFAULT_TIMEOUT_SECONDS, CacheOrchestrator

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class ImageProxyConfig:
    """Settings consumed by the image proxy."""
    store_backend: str = "file"         # s3 | file
    s3_bucket: Optional[str] = None
    aws_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    store_dir: str = "./image_store"
    key_prefix: str = DEFAULT_KEY_PREFIX
    source_prefix: str = DEFAULT_KEY_PREFIX
    timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS
    single_flight: bool = True

    @classmethod
    def from_env(cls) -> "ImageProxyConfig":
        """
        Read settings from the environment.

        Raises:
            ValueError: on a malformed numeric value or unknown backend.
        """
        bucket = os.getenv("S3_BUCKET") or None
        backend = os.getenv("IMAGE_STORE_BACKEND") or ("s3" if bucket else "file")
        backend = backend.lower()
        if backend not in ("s3", "file"):
            raise ValueError(f"Unknown IMAGE_STORE_BACKEND: {backend}")
        if backend == "s3" and not bucket:
            raise ValueError("IMAGE_STORE_BACKEND=s3 requires S3_BUCKET")

        timeout = float(os.getenv("IMAGE_OPERATION_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)))

        return cls(
            store_backend=backend,
            s3_bucket=bucket,
            aws_region=os.getenv("AWS_REGION") or None,
            s3_endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
            store_dir=os.getenv("IMAGE_STORE_DIR", "./image_store"),
            key_prefix=os.getenv("IMAGE_KEY_PREFIX", DEFAULT_KEY_PREFIX),
            source_prefix=os.getenv("IMAGE_SOURCE_PREFIX", DEFAULT_KEY_PREFIX),
            timeout_seconds=timeout if timeout > 0 else None,
            single_flight=_env_bool("IMAGE_SINGLE_FLIGHT", True),
        )

    def build_store(self) -> ObjectStore:
        if self.store_backend == "s3":
            logger.info(f"[ImageProxy] Using S3 bucket: {self.s3_bucket}")
            return S3ObjectStore(
                self.s3_bucket,
                region_name=self.aws_region,
                endpoint_url=self.s3_endpoint_url,
            )
        return FileObjectStore(self.store_dir)

    def build_orchestrator(self, store: Optional[ObjectStore] = None) -> CacheOrchestrator:
        return CacheOrchestrator(
            store=store if store is not None else self.build_store(),
            memory=MemoryCache(),
            key_prefix=self.key_prefix,
            source_prefix=self.source_prefix,
            timeout=self.timeout_seconds,
            single_flight=self.single_flight,
        )
