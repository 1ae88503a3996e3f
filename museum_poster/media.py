"""Screenshot upscaling for posting.

Skin screenshots are small pixel art, so they are enlarged with a
nearest-neighbour kernel to keep hard edges instead of smoothing them.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from museum_poster.errors import MediaDecodeError

logger = logging.getLogger(__name__)


@dataclass
class MediaAsset:
    data: bytes
    width: int
    height: int
    mime_type: str = "image/png"


def upscale(raw: bytes, factor: int = 2) -> MediaAsset:
    """Scale an encoded image by an integer factor.

    Args:
        raw: Encoded image bytes (PNG, GIF, ...).
        factor: Positive integer scale applied to both dimensions.

    Returns:
        A MediaAsset in the source format with the scaled dimensions.

    Raises:
        MediaDecodeError: If `raw` cannot be decoded as an image.
    """
    if not isinstance(factor, int) or factor < 1:
        raise ValueError(f"Scale factor must be a positive integer, got {factor!r}")

    try:
        with Image.open(io.BytesIO(raw)) as im:
            im.load()
            fmt = im.format or "PNG"
            width, height = im.size
            scaled = im.resize(
                (width * factor, height * factor),
                resample=Image.Resampling.NEAREST,
            )
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise MediaDecodeError(f"Could not decode screenshot: {exc}") from exc

    buf = io.BytesIO()
    scaled.save(buf, format=fmt)
    mime_type = Image.MIME.get(fmt, "image/png")
    logger.info("Upscaled %dx%d -> %dx%d (%s)", width, height, *scaled.size, fmt)
    return MediaAsset(
        data=buf.getvalue(),
        width=scaled.width,
        height=scaled.height,
        mime_type=mime_type,
    )
