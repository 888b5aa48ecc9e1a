"""
Cache Orchestrator

Transform-and-cache pipeline controller.

Per request:
1. Derive the cache key
2. Memory tier hit -> return
3. Durable store hit -> fetch, populate memory, return
4. Miss -> fetch the original, transform, write back to both tiers, return

Durable write-back runs as a detached task; its failures are logged and
never change the response.
"""

import asyncio
import logging
from typing import Awaitable, Dict, Optional, Set, Tuple, TypeVar

from .errors import ImageProxyError, ObjectNotFound, OperationTimeout, SourceNotFound, StoreUnavailable
from .keys import DEFAULT_KEY_PREFIX, derive_key, source_key, validate_source_id
from .memory_cache import MemoryCache
from .models import CachedImage, CacheTier, TransformParameters
from .object_store import ObjectStore
from .transformer import ImageTransformer

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 30.0


class CacheOrchestrator:
    """
    Serves transformed images from memory, the durable store, or a fresh
    transform, in that order.

    Usage:
        orchestrator = CacheOrchestrator(store, MemoryCache())
        image = await orchestrator.get_image("cat.jpg", TransformParameters(width=100))
    """

    def __init__(
        self,
        store: ObjectStore,
        memory: Optional[MemoryCache] = None,
        transformer: Optional[ImageTransformer] = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        source_prefix: str = DEFAULT_KEY_PREFIX,
        timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        single_flight: bool = True,
    ):
        """
        Args:
            store: Durable object store holding originals and derived images
            memory: In-process tier (a fresh one is created if omitted)
            transformer: Image pipeline (default Pillow transformer)
            key_prefix: Prefix for derived cache keys
            source_prefix: Prefix under which originals are stored
            timeout: Seconds allowed per store call or transform (None = unbounded)
            single_flight: Collapse concurrent misses on one key into one transform
        """
        self.store = store
        self.memory = memory if memory is not None else MemoryCache()
        self.transformer = transformer or ImageTransformer()
        self.key_prefix = key_prefix
        self.source_prefix = source_prefix
        self.timeout = timeout
        self.single_flight = single_flight

        self._inflight: Dict[str, asyncio.Future] = {}
        self._pending_writes: Set[asyncio.Task] = set()
        self._counters = {
            "memory_hits": 0,
            "durable_hits": 0,
            "transforms": 0,
            "coalesced": 0,
            "write_back_failures": 0,
        }

    # ============================================
    # Public API
    # ============================================

    async def resolve(
        self,
        source_id: str,
        params: Optional[TransformParameters] = None,
    ) -> Tuple[CachedImage, CacheTier]:
        """
        Return the transformed image and the tier that served it.

        Raises:
            InvalidParameters: malformed source identifier, or one that
                reaches into the originals or derived-key namespace (before any I/O)
            SourceNotFound: the original image does not exist
            DecodeError: the original is not a supported image
            StoreUnavailable / OperationTimeout: transient failures
        """
        params = params or TransformParameters()
        validate_source_id(source_id, reserved_prefixes=(self.key_prefix, self.source_prefix))
        key = derive_key(source_id, params, prefix=self.key_prefix)

        cached = self.memory.get(key)
        if cached is not None:
            self._counters["memory_hits"] += 1
            logger.debug(f"[ImageProxy] Serving from memory cache: {key}")
            return cached, CacheTier.MEMORY

        if not self.single_flight:
            return await self._resolve_uncached(key, source_id, params)

        shared = self._inflight.get(key)
        if shared is None:
            shared = asyncio.ensure_future(self._resolve_uncached(key, source_id, params))
            self._inflight[key] = shared
            shared.add_done_callback(lambda fut, k=key: self._forget_inflight(k, fut))
        else:
            self._counters["coalesced"] += 1
            logger.debug(f"[ImageProxy] Awaiting in-flight transform: {key}")

        # A cancelled waiter must not cancel the computation others share
        return await asyncio.shield(shared)

    async def get_image(
        self,
        source_id: str,
        params: Optional[TransformParameters] = None,
    ) -> CachedImage:
        image, _ = await self.resolve(source_id, params)
        return image

    async def drain(self) -> None:
        """Wait for every scheduled durable write-back to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def stats(self) -> dict:
        return {
            **self._counters,
            "pending_writes": len(self._pending_writes),
            "in_flight": len(self._inflight),
            "memory": self.memory.get_stats(),
        }

    # ============================================
    # Pipeline stages
    # ============================================

    async def _bounded(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"[ImageProxy] Timeout after {self.timeout}s: {operation}")
            raise OperationTimeout(f"{operation} timed out after {self.timeout}s")

    async def _durable_exists(self, key: str) -> bool:
        try:
            return await self._bounded(self.store.exists(key), f"exists {key}")
        except ObjectNotFound:
            return False

    async def _resolve_uncached(
        self,
        key: str,
        source_id: str,
        params: TransformParameters,
    ) -> Tuple[CachedImage, CacheTier]:
        if await self._durable_exists(key):
            logger.info(f"[ImageProxy] Serving cached image from store: {key}")
            try:
                data, content_type = await self._bounded(self.store.get(key), f"get {key}")
            except ObjectNotFound as e:
                # Positive existence check followed by a miss: surface it
                raise StoreUnavailable(
                    f"Cached object {key} disappeared between existence check and fetch"
                ) from e
            image = self.memory.put(key, CachedImage(data=data, content_type=content_type))
            self._counters["durable_hits"] += 1
            return image, CacheTier.DURABLE

        logger.info(f"[ImageProxy] Image not found in store, processing new image: {key}")

        original_key = source_key(source_id, prefix=self.source_prefix)
        logger.info(f"[ImageProxy] Fetching original: {original_key}")
        try:
            source_bytes, _ = await self._bounded(self.store.get(original_key), f"get {original_key}")
        except ObjectNotFound as e:
            logger.info(f"[ImageProxy] Source not found: {original_key}")
            raise SourceNotFound(source_id) from e

        data, content_type = await self._bounded(
            asyncio.to_thread(self.transformer.transform, source_bytes, params),
            f"transform {key}",
        )
        self._counters["transforms"] += 1

        image = self.memory.put(key, CachedImage(data=data, content_type=content_type))
        self._schedule_write_back(key, image)
        return image, CacheTier.TRANSFORM

    # ============================================
    # Write-back
    # ============================================

    def _schedule_write_back(self, key: str, image: CachedImage) -> None:
        task = asyncio.create_task(self._write_back(key, image))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_back(self, key: str, image: CachedImage) -> None:
        try:
            stored = await self._bounded(
                self.store.put(key, image.data, image.content_type),
                f"put {key}",
            )
        except ImageProxyError as e:
            logger.error(f"[ImageProxy] Write-back failed for {key}: {e}")
            stored = False
        except Exception:
            logger.exception(f"[ImageProxy] Write-back crashed for {key}")
            stored = False

        if not stored:
            self._counters["write_back_failures"] += 1
            logger.warning(f"[ImageProxy] {key} not persisted; it will be recomputed on a future miss")

    def _forget_inflight(self, key: str, fut: asyncio.Future) -> None:
        if self._inflight.get(key) is fut:
            del self._inflight[key]
        # Mark the outcome retrieved even when every waiter was cancelled
        if not fut.cancelled():
            fut.exception()
