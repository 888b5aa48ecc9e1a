"""
Image Proxy Module

Serves images transformed on demand (resize, format, quality, grayscale)
and reuses every result through a two-tier cache.

Features:
- Deterministic cache keys derived from transform parameters
- In-process memory tier backed by a durable object store (S3 or disk)
- Single-flight transforms and background write-back
"""

from .errors import (
    DecodeError,
    ImageProxyError,
    InvalidParameters,
    ObjectNotFound,
    OperationTimeout,
    SourceNotFound,
    StoreUnavailable,
    TransientError,
)
from .keys import derive_key, source_key
from .memory_cache import MemoryCache
from .models import CachedImage, CacheTier, OutputFormat, TransformParameters
from .object_store import FileObjectStore, ObjectStore, S3ObjectStore
from .orchestrator import CacheOrchestrator
from .transformer import ImageTransformer

__all__ = [
    "CacheOrchestrator",
    "CachedImage",
    "CacheTier",
    "DecodeError",
    "FileObjectStore",
    "ImageProxyError",
    "ImageTransformer",
    "InvalidParameters",
    "MemoryCache",
    "ObjectNotFound",
    "ObjectStore",
    "OperationTimeout",
    "OutputFormat",
    "S3ObjectStore",
    "SourceNotFound",
    "StoreUnavailable",
    "TransformParameters",
    "TransientError",
    "derive_key",
    "source_key",
]
