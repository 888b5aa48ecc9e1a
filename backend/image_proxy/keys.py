"""
Cache Key Derivation

Maps (source identifier, transform parameters) to the object-store key
of the transformed artifact. Pure functions, no I/O.

Key layout for transformed images:
    {prefix}{source_id}_{width|auto}x{height|auto}_q{quality}_gray{0|1}.{ext}

The full source identifier, extension included, is kept so that
``cat.png`` and ``cat.gif`` never share a key; ``ext`` is the canonical
extension of the output format.
"""

from typing import Iterable, Optional

from .errors import InvalidParameters
from .models import TransformParameters

DEFAULT_KEY_PREFIX = "pictures/"


def validate_source_id(source_id: str, reserved_prefixes: Iterable[str] = ()) -> str:
    """
    Reject identifiers that cannot name an object safely.

    ``reserved_prefixes`` lists the store namespaces (originals, derived
    artifacts) a client identifier must not reach into directly.
    """
    if not isinstance(source_id, str) or not source_id.strip():
        raise InvalidParameters("Source identifier must be a non-empty string")
    if source_id.startswith("/"):
        raise InvalidParameters(f"Source identifier must be relative: {source_id}")
    if ".." in source_id.split("/"):
        raise InvalidParameters(f"Source identifier must not contain '..': {source_id}")
    for prefix in reserved_prefixes:
        if prefix and source_id.startswith(prefix):
            raise InvalidParameters(
                f"Source identifier must not start with reserved prefix '{prefix}': {source_id}"
            )
    return source_id


def derive_key(
    source_id: str,
    params: Optional[TransformParameters] = None,
    prefix: str = DEFAULT_KEY_PREFIX,
) -> str:
    """
    Derive the cache key for a transformed image.

    Default-equivalent parameters map to the bare source identifier so
    originals stay addressable at their natural path.
    """
    validate_source_id(source_id)

    if params is None or params.is_default:
        return source_id

    width = params.width if params.width is not None else "auto"
    height = params.height if params.height is not None else "auto"
    gray = 1 if params.grayscale else 0
    ext = params.format.extensions[0]

    return f"{prefix}{source_id}_{width}x{height}_q{params.quality}_gray{gray}.{ext}"


def source_key(source_id: str, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    """Object-store key of the untransformed original."""
    return f"{prefix}{validate_source_id(source_id)}"
