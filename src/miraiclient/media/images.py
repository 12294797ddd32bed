"""
miraiclient/media/images.py — Image Format Detection & Conversion

The gateway accepts PNG, JPEG and GIF. Other formats Pillow can read (BMP,
WebP, TIFF, ...) are re-encoded to PNG before upload.
"""

from __future__ import annotations

import io
from typing import Optional

from PIL import Image

_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"\xff\xd8\xff", "jpeg"),
    (b"GIF87a", "gif"),
    (b"GIF89a", "gif"),
)


def _detect(data: bytes) -> Optional[str]:
    for signature, fmt in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return fmt
    return None


def sniff_image_format(data: bytes) -> str:
    """Return 'png', 'jpeg' or 'gif' from the magic bytes. Raises ValueError otherwise."""
    fmt = _detect(data)
    if fmt is None:
        raise ValueError("Unsupported image format; expected PNG, JPEG or GIF data")
    return fmt


def convert_to_png(data: bytes) -> bytes:
    """Decode any image Pillow understands and re-encode it as PNG."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.mode == "CMYK":
                img = img.convert("RGB")
            output = io.BytesIO()
            img.save(output, format="PNG")
    except OSError as exc:
        raise ValueError(f"Unsupported image data: {exc}") from exc
    return output.getvalue()


def normalize_image(data: bytes) -> tuple[bytes, str]:
    """
    Return (content, format) ready for the gateway. PNG, JPEG and GIF pass
    through unchanged; anything else becomes PNG. Raises ValueError when the
    bytes are not an image at all.
    """
    fmt = _detect(data)
    if fmt is not None:
        return data, fmt
    return convert_to_png(data), "png"
