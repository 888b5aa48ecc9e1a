"""
Image Transformer

Decodes source bytes, applies resize/grayscale and re-encodes to the
requested format with Pillow.

Resize policy: fit inside the requested box, preserve aspect ratio,
never enlarge. A missing dimension leaves that side unconstrained.
"""

import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .errors import DecodeError
from .models import OutputFormat, TransformParameters

logger = logging.getLogger(__name__)

# PNG is lossless: quality picks the zlib level (100 -> 0, 1 -> 9)
PNG_MAX_COMPRESS_LEVEL = 9


def fit_inside(
    size: Tuple[int, int],
    width: Optional[int],
    height: Optional[int],
) -> Tuple[int, int]:
    """Target size for a contain-without-enlargement resize."""
    original_width, original_height = size
    ratios = []
    if width is not None:
        ratios.append(width / original_width)
    if height is not None:
        ratios.append(height / original_height)
    if not ratios:
        return size

    ratio = min(ratios)
    if ratio >= 1:
        return size
    return (
        max(1, round(original_width * ratio)),
        max(1, round(original_height * ratio)),
    )


def png_compress_level(quality: int) -> int:
    return round((100 - quality) * PNG_MAX_COMPRESS_LEVEL / 99)


class ImageTransformer:
    """
    Stateless Pillow pipeline: decode -> resize -> grayscale -> encode.

    Usage:
        data, content_type = ImageTransformer().transform(raw, params)
    """

    def decode(self, source_bytes: bytes) -> Image.Image:
        try:
            img = Image.open(BytesIO(source_bytes))
            img.load()
        except (UnidentifiedImageError, Image.DecompressionBombError) as e:
            raise DecodeError(f"Unsupported or unrecognized image: {e}") from e
        except (OSError, SyntaxError, ValueError) as e:
            raise DecodeError(f"Corrupt image data: {e}") from e
        return img

    def _prepare_mode(self, img: Image.Image, fmt: OutputFormat) -> Image.Image:
        """Convert to a mode the target encoder accepts."""
        has_alpha = img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)

        if fmt is OutputFormat.JPEG:
            if img.mode == "LA":
                # Flatten onto white, staying single-channel
                background = Image.new("L", img.size, 255)
                background.paste(img.getchannel("L"), mask=img.getchannel("A"))
                return background
            if has_alpha:
                # Flatten transparency onto white
                rgba = img.convert("RGBA")
                background = Image.new("RGB", img.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.split()[3])
                return background
            if img.mode not in ("RGB", "L"):
                return img.convert("RGB")
            return img

        if img.mode in ("RGB", "RGBA", "L", "LA"):
            return img
        return img.convert("RGBA" if has_alpha else "RGB")

    def _grayscale(self, img: Image.Image) -> Image.Image:
        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            return img.convert("LA")
        return img.convert("L")

    def _encode(self, img: Image.Image, params: TransformParameters) -> bytes:
        fmt = params.format
        output = BytesIO()
        save_kwargs = {"format": fmt.pil_format}

        if fmt is OutputFormat.PNG:
            save_kwargs["compress_level"] = png_compress_level(params.quality)
        else:
            save_kwargs["quality"] = params.quality
        if fmt is OutputFormat.WEBP:
            save_kwargs["method"] = 4  # Compression method (0-6)

        img.save(output, **save_kwargs)
        return output.getvalue()

    def transform(self, source_bytes: bytes, params: TransformParameters) -> Tuple[bytes, str]:
        """
        Apply ``params`` to an encoded image.

        Returns:
            Tuple of (encoded_bytes, content_type). The content type follows
            the output format, never the source format.

        Raises:
            DecodeError: if ``source_bytes`` is not a supported image.
        """
        img = self.decode(source_bytes)
        original_size = img.size

        if params.resizes:
            target = fit_inside(img.size, params.width, params.height)
            if target != img.size:
                img = img.resize(target, Image.Resampling.LANCZOS)

        if params.grayscale:
            img = self._grayscale(img)

        img = self._prepare_mode(img, params.format)
        data = self._encode(img, params)

        logger.debug(
            f"[Transformer] {original_size[0]}x{original_size[1]} -> "
            f"{img.size[0]}x{img.size[1]} {params.format.value} q{params.quality} "
            f"({len(source_bytes)} -> {len(data)} bytes)"
        )
        return data, params.format.content_type
