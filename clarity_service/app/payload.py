"""Inbound image payload handling: data URLs, base64 and format sniffing."""
from __future__ import annotations

import base64
import binascii
import io
import re
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


class PayloadError(ValueError):
    """Raised when the inbound image cannot be used. `status` maps to HTTP."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


def split_data_url(image_data: str, media_type: Optional[str]) -> Tuple[str, Optional[str]]:
    """Return (base64_payload, media_type); a data URL's own type wins."""
    m = _DATA_URL_RE.match(image_data.strip())
    if m:
        return m.group(2), m.group(1)
    return image_data.strip(), media_type


def to_data_url(image: bytes, media_type: str) -> str:
    return f"data:{media_type};base64,{base64.b64encode(image).decode()}"


def sniff_media_type(image: bytes) -> Optional[str]:
    """
    Ask Pillow what the bytes are; None when they are not an image.

    Dimensions past Pillow's pixel limit raise PayloadError (413).
    """
    try:
        with Image.open(io.BytesIO(image)) as img:
            img.verify()
            fmt = img.format
    except Image.DecompressionBombError as exc:
        raise PayloadError(f"Image dimensions too large: {exc}", status=413)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None
    if not fmt:
        return None
    return Image.MIME.get(fmt, f"image/{fmt.lower()}")


def decode_image_payload(
    image_data: Optional[str], media_type: Optional[str], max_bytes: int
) -> Tuple[bytes, str]:
    """
    Turn a bare base64 string or data URL into (raw_bytes, media_type).

    The media type is taken from the data URL, then the declared type, then
    whatever Pillow detects. Raises PayloadError (400) for missing,
    undecodable or non-image data and (413) when the decoded image exceeds
    *max_bytes* or Pillow's pixel limit.
    """
    if not image_data:
        raise PayloadError("Missing image data")

    b64_payload, media_type = split_data_url(image_data, media_type)
    try:
        raw = base64.b64decode(re.sub(r"\s+", "", b64_payload), validate=True)
    except (binascii.Error, ValueError):
        raise PayloadError("Image data is not valid base64")

    if not raw:
        raise PayloadError("Missing image data")
    if len(raw) > max_bytes:
        raise PayloadError(f"Image exceeds {max_bytes} bytes", status=413)

    sniffed = sniff_media_type(raw)
    if sniffed is None:
        raise PayloadError("Image data is not a recognised image format")

    return raw, media_type or sniffed
