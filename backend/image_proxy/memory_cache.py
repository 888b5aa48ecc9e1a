"""
Memory Cache Implementation

Thread-safe in-process tier for transformed images.

Features:
- Thread-safe operations with Lock (never held across I/O or transforms)
- Write-once entries: the first stored image for a key wins
- No TTL and no eviction; entries live as long as the process
"""

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Optional

from .models import CachedImage

logger = logging.getLogger(__name__)


@dataclass
class MemoryCacheEntry:
    """Cached image plus bookkeeping."""
    image: CachedImage
    created_at: float
    hits: int = 0


class MemoryCache:
    """
    Shared mapping from cache key to CachedImage.

    Owned by whoever builds the orchestrator and passed in explicitly,
    so its lifetime is the lifetime of that owner.
    """

    def __init__(self):
        self._store: Dict[str, MemoryCacheEntry] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[CachedImage]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            entry.hits += 1
            return entry.image

    def put(self, key: str, image: CachedImage) -> CachedImage:
        """
        Store an image unless one is already cached under ``key``.

        Returns:
            The image now held for ``key`` (the existing one if present).
        """
        with self._lock:
            existing = self._store.get(key)
            if existing is not None:
                return existing.image
            self._store[key] = MemoryCacheEntry(image=image, created_at=time.time())
        logger.debug(f"[MemoryCache] Stored {key} ({image.size_bytes} bytes)")
        return image

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def clear(self) -> int:
        """
        Drop every entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            count = len(self._store)
            self._store.clear()
        logger.info(f"[MemoryCache] Cleared {count} entries")
        return count

    def get_stats(self) -> dict:
        with self._lock:
            total_size = sum(e.image.size_bytes for e in self._store.values())
            total_hits = sum(e.hits for e in self._store.values())
            return {
                "total_entries": len(self._store),
                "total_size_bytes": total_size,
                "total_size_mb": round(total_size / (1024 * 1024), 2),
                "total_hits": total_hits,
            }
