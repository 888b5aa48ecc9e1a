"""
Image proxy test configuration

Fixtures:
- store: in-memory ObjectStore double with call counters and failure injection
- transformer: ImageTransformer that counts transform calls
- orchestrator: CacheOrchestrator wired to both doubles

Helpers:
- make_image_bytes(): encode a generated Pillow image
- image_size(): decode bytes and return (width, height)
"""

import asyncio
import sys
import threading
from collections import Counter
from io import BytesIO
from pathlib import Path
from typing import Dict, Optional, Tuple

import pytest
from PIL import Image

# Add backend directory to the import path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from image_proxy.errors import ObjectNotFound
from image_proxy.memory_cache import MemoryCache
from image_proxy.orchestrator import CacheOrchestrator
from image_proxy.transformer import ImageTransformer


# ============================================
# Helpers
# ============================================

def make_image_bytes(
    size: Tuple[int, int] = (400, 200),
    fmt: str = "PNG",
    mode: str = "RGB",
    color=(200, 40, 40),
) -> bytes:
    """Encode a solid-color image."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    img = Image.new(mode, size, color)
    output = BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


def image_size(data: bytes) -> Tuple[int, int]:
    with Image.open(BytesIO(data)) as img:
        return img.size


def image_format(data: bytes) -> str:
    with Image.open(BytesIO(data)) as img:
        return img.format


# ============================================
# Test doubles
# ============================================

class FakeObjectStore:
    """
    Dict-backed object store.

    Failure injection:
    - fail_puts: put() returns False
    - raise_on_put: put() raises this exception
    - exists_error / get_errors[key]: raise on exists()/get()
    - vanish_after_exists: exists() says True but get() misses
    - delay: seconds every call sleeps first
    """

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.calls = Counter()
        self.fail_puts = False
        self.raise_on_put: Optional[Exception] = None
        self.exists_error: Optional[Exception] = None
        self.get_errors: Dict[str, Exception] = {}
        self.vanish_after_exists = False
        self.delay = 0.0

    async def _pause(self):
        if self.delay:
            await asyncio.sleep(self.delay)

    async def exists(self, key: str) -> bool:
        self.calls["exists"] += 1
        await self._pause()
        if self.exists_error is not None:
            raise self.exists_error
        return key in self.objects

    async def get(self, key: str) -> Tuple[bytes, str]:
        self.calls["get"] += 1
        await self._pause()
        if key in self.get_errors:
            raise self.get_errors[key]
        if self.vanish_after_exists or key not in self.objects:
            raise ObjectNotFound(key)
        return self.objects[key]

    async def put(self, key: str, data: bytes, content_type: str) -> bool:
        self.calls["put"] += 1
        await self._pause()
        if self.raise_on_put is not None:
            raise self.raise_on_put
        if self.fail_puts:
            return False
        self.objects[key] = (data, content_type)
        return True


class CountingTransformer(ImageTransformer):
    """Transformer that records how many times it ran."""

    def __init__(self, delay: float = 0.0):
        self.calls = 0
        self.delay = delay
        self._lock = threading.Lock()

    def transform(self, source_bytes, params):
        with self._lock:
            self.calls += 1
        if self.delay:
            # Runs in a worker thread; keeps concurrent requests overlapping
            threading.Event().wait(self.delay)
        return super().transform(source_bytes, params)


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def store():
    """Object store seeded with a 400x200 PNG at pictures/cat.png."""
    fake = FakeObjectStore()
    fake.objects["pictures/cat.png"] = (make_image_bytes((400, 200), "PNG"), "image/png")
    return fake


@pytest.fixture
def transformer():
    return CountingTransformer()


@pytest.fixture
def memory():
    return MemoryCache()


@pytest.fixture
def orchestrator(store, memory, transformer):
    return CacheOrchestrator(store=store, memory=memory, transformer=transformer, timeout=5.0)


def assert_store_keys(store: FakeObjectStore, expected_keys):
    assert set(store.objects) == set(expected_keys), \
        f"Unexpected store contents: {sorted(store.objects)}"
