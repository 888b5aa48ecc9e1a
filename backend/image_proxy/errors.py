"""
Image Proxy Errors

Structured error taxonomy for the transform-and-cache pipeline.
Every error carries a stable ``code`` so the routing layer can pick a
status without inspecting messages.
"""


class ImageProxyError(Exception):
    """Base class for all image proxy failures."""

    code = "image_proxy_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidParameters(ImageProxyError):
    """Malformed source identifier or transform parameters."""

    code = "invalid_parameters"


class SourceNotFound(ImageProxyError):
    """The requested original image does not exist."""

    code = "source_not_found"

    def __init__(self, source_id: str):
        super().__init__(f"Source image not found: {source_id}")
        self.source_id = source_id


class DecodeError(ImageProxyError):
    """Source bytes are not a recognizable image."""

    code = "decode_error"


class ObjectNotFound(ImageProxyError):
    """Raised by object stores when a key is absent."""

    code = "object_not_found"

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class TransientError(ImageProxyError):
    """Retryable failure (backend outage, timeout)."""

    code = "transient"


class StoreUnavailable(TransientError):
    code = "store_unavailable"


class OperationTimeout(TransientError):
    code = "timeout"
