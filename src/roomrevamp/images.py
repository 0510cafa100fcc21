from __future__ import annotations

import base64
import binascii
import io
from typing import Optional, Sequence, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from .errors import ValidationError
from .logging import get_logger
from .types import ImageReference

log = get_logger(__name__)

# Dimensions accepted by the SDXL 1024 engine for image-to-image init images.
SDXL_DIMENSIONS: Sequence[Tuple[int, int]] = (
    (1024, 1024),
    (1152, 896),
    (896, 1152),
    (1216, 832),
    (832, 1216),
    (1344, 768),
    (768, 1344),
    (1536, 640),
    (640, 1536),
)


def to_data_uri(data: bytes, mime: str) -> str:
    b64 = base64.b64encode(data).decode("utf-8")
    return f"data:{mime};base64,{b64}"


def decode_data_uri(uri: str) -> bytes:
    if not uri.startswith("data:") or "," not in uri:
        raise ValueError("not a data URI")
    header, payload = uri.split(",", 1)
    if ";base64" not in header:
        raise ValueError("only base64 data URIs are supported")
    return base64.b64decode(payload, validate=False)


def sniff_mime(data: bytes, default: str = "image/jpeg") -> str:
    """Guess an image MIME type from its bytes."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            fmt = im.format
    except (UnidentifiedImageError, OSError):
        return default
    return Image.MIME.get(fmt or "", default)


def image_to_data_uri(data: bytes) -> str:
    return to_data_uri(data, sniff_mime(data))


def as_image_url(value: str, mime: str = "image/png") -> str:
    """Turn a provider image field (URL, data URI or bare base64) into a displayable reference."""
    value = value.strip()
    if value.startswith(("http://", "https://", "data:")):
        return value
    return f"data:{mime};base64,{value}"


def load_image_bytes(
    ref: ImageReference,
    *,
    timeout_s: float = 60.0,
    client: Optional[httpx.Client] = None,
) -> bytes:
    """Resolve any ImageReference to raw bytes (downloads URLs, decodes data URIs)."""
    if ref.data:
        return ref.data

    if ref.data_uri:
        try:
            data = decode_data_uri(ref.data_uri)
        except (ValueError, binascii.Error) as e:
            raise ValidationError("Failed to load previous image") from e
        log.debug(f"[images] decoded data URI ({len(data)} bytes)")
        return data

    try:
        if client is not None:
            r = client.get(ref.url or "", timeout=timeout_s)
        else:
            r = httpx.get(ref.url or "", timeout=timeout_s, follow_redirects=True)
        r.raise_for_status()
    except httpx.HTTPError as e:
        log.warning(f"[images] failed to download previous image: {e}")
        raise ValidationError("Failed to load previous image") from e
    log.debug(f"[images] downloaded previous image ({len(r.content)} bytes)")
    return r.content


def closest_dimensions(size: Tuple[int, int], allowed: Sequence[Tuple[int, int]] = SDXL_DIMENSIONS) -> Tuple[int, int]:
    w, h = size
    ratio = w / h if h else 1.0
    return min(allowed, key=lambda d: abs(d[0] / d[1] - ratio))


def fit_to_sdxl(data: bytes) -> bytes:
    """Resize an image to the closest SDXL-allowed dimensions, returned as PNG."""
    with Image.open(io.BytesIO(data)) as im:
        im = im.convert("RGB")
        target = closest_dimensions(im.size)
        if im.size != target:
            im = im.resize(target, Image.Resampling.LANCZOS)
        buf = io.BytesIO()
        im.save(buf, format="PNG")
    return buf.getvalue()
