"""
Object store client tests

- FileObjectStore against a temporary directory
- S3ObjectStore against a stubbed boto3 client
"""

import io
import json
import threading

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from image_proxy.errors import ObjectNotFound, StoreUnavailable
from image_proxy.object_store import FileObjectStore, ObjectStore, S3ObjectStore

BUCKET = "test-bucket"


# ============================================
# FileObjectStore
# ============================================

class TestFileObjectStore:

    @pytest.mark.asyncio
    async def test_put_get_exists(self, tmp_path):
        store = FileObjectStore(str(tmp_path))
        assert await store.exists("pictures/cat.png") is False

        assert await store.put("pictures/cat.png", b"data", "image/png") is True
        assert await store.exists("pictures/cat.png") is True
        assert await store.get("pictures/cat.png") == (b"data", "image/png")

    @pytest.mark.asyncio
    async def test_missing_key_raises_object_not_found(self, tmp_path):
        store = FileObjectStore(str(tmp_path))
        with pytest.raises(ObjectNotFound):
            await store.get("pictures/nope.png")

    @pytest.mark.asyncio
    async def test_content_type_survives_restart(self, tmp_path):
        await FileObjectStore(str(tmp_path)).put("a/b.bin", b"x", "image/webp")
        reopened = FileObjectStore(str(tmp_path))
        assert await reopened.get("a/b.bin") == (b"x", "image/webp")

    @pytest.mark.asyncio
    async def test_hand_placed_file_gets_guessed_type(self, tmp_path):
        store = FileObjectStore(str(tmp_path))
        target = tmp_path / "objects" / "pictures" / "dog.png"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"png-bytes")
        assert await store.get("pictures/dog.png") == (b"png-bytes", "image/png")

    @pytest.mark.asyncio
    async def test_corrupt_metadata_is_ignored(self, tmp_path):
        (tmp_path / "metadata.json").write_text("{not json")
        store = FileObjectStore(str(tmp_path))
        assert await store.put("k.jpg", b"x", "image/jpeg") is True

    @pytest.mark.asyncio
    async def test_escaping_key_rejected(self, tmp_path):
        store = FileObjectStore(str(tmp_path / "store"))
        assert await store.put("../outside.png", b"x", "image/png") is False
        assert not (tmp_path / "store" / "outside.png").exists()

    @pytest.mark.asyncio
    async def test_metadata_written_off_event_loop(self, tmp_path, monkeypatch):
        store = FileObjectStore(str(tmp_path))
        save_metadata = store._save_metadata
        threads = []

        def recording_save():
            threads.append(threading.current_thread())
            save_metadata()

        monkeypatch.setattr(store, "_save_metadata", recording_save)
        assert await store.put("pictures/cat.png", b"data", "image/png") is True

        assert threads and threads[0] is not threading.current_thread()
        assert json.loads((tmp_path / "metadata.json").read_text()) == {"pictures/cat.png": "image/png"}

    @pytest.mark.asyncio
    async def test_metadata_failure_reports_not_stored(self, tmp_path, monkeypatch):
        store = FileObjectStore(str(tmp_path))

        def failing_save():
            raise OSError("disk full")

        monkeypatch.setattr(store, "_save_metadata", failing_save)
        assert await store.put("pictures/cat.png", b"data", "image/png") is False

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(FileObjectStore(str(tmp_path)), ObjectStore)


# ============================================
# S3ObjectStore
# ============================================

@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def s3_store(s3_client):
    return S3ObjectStore(BUCKET, client=s3_client)


class TestS3ObjectStore:

    def test_requires_bucket(self, s3_client):
        with pytest.raises(ValueError):
            S3ObjectStore("", client=s3_client)

    @pytest.mark.asyncio
    async def test_exists_true(self, s3_store, stubber):
        stubber.add_response("head_object", {}, {"Bucket": BUCKET, "Key": "pictures/cat.png"})
        assert await s3_store.exists("pictures/cat.png") is True

    @pytest.mark.asyncio
    async def test_exists_false_on_404(self, s3_store, stubber):
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        assert await s3_store.exists("pictures/none.png") is False

    @pytest.mark.asyncio
    async def test_exists_other_error_is_unavailable(self, s3_store, stubber):
        stubber.add_client_error("head_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StoreUnavailable):
            await s3_store.exists("pictures/cat.png")

    @pytest.mark.asyncio
    async def test_get(self, s3_store, stubber):
        body = StreamingBody(io.BytesIO(b"image-bytes"), len(b"image-bytes"))
        stubber.add_response(
            "get_object",
            {"Body": body, "ContentType": "image/png"},
            {"Bucket": BUCKET, "Key": "pictures/cat.png"},
        )
        assert await s3_store.get("pictures/cat.png") == (b"image-bytes", "image/png")

    @pytest.mark.asyncio
    async def test_get_no_such_key(self, s3_store, stubber):
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
        with pytest.raises(ObjectNotFound):
            await s3_store.get("pictures/none.png")

    @pytest.mark.asyncio
    async def test_get_backend_failure(self, s3_store, stubber):
        stubber.add_client_error("get_object", service_error_code="InternalError", http_status_code=500)
        with pytest.raises(StoreUnavailable):
            await s3_store.get("pictures/cat.png")

    @pytest.mark.asyncio
    async def test_put(self, s3_store, stubber):
        stubber.add_response("put_object", {})
        assert await s3_store.put("k.jpg", b"x", "image/jpeg") is True

    @pytest.mark.asyncio
    async def test_put_failure_returns_false(self, s3_store, stubber):
        stubber.add_client_error("put_object", service_error_code="SlowDown", http_status_code=503)
        assert await s3_store.put("k.jpg", b"x", "image/jpeg") is False
