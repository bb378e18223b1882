"""Attachment pipeline.

Turns an uploaded image into a size-bounded payload that can be embedded
in a survey record. Images whose width and height both fit within
`max_dimension` pass through untouched; larger ones are scaled uniformly
to fit and re-encoded as JPEG.

Public class: `AttachmentPipeline`

Example:
    pipeline = AttachmentPipeline()
    attachment = await pipeline.process(raw_bytes)
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import math
import os
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from models.survey_record import Attachment
from utils.errors import AttachmentError

LOGGER = logging.getLogger(__name__)

MAX_DIMENSION = 1600
JPEG_QUALITY = 85


def scaled_dimensions(width: int, height: int, bound: int) -> Tuple[int, int]:
    """Return the size that fits `width` x `height` within `bound` on both axes.

    Sizes already within the bound are returned unchanged. Otherwise the
    uniform factor `min(bound/width, bound/height)` is applied and each edge
    rounded half-up, never below one pixel.
    """
    if width <= bound and height <= bound:
        return width, height
    scale = min(bound / width, bound / height)
    return max(1, math.floor(width * scale + 0.5)), max(1, math.floor(height * scale + 0.5))


def split_data_url(data_url: str) -> Tuple[str, bytes]:
    """Split a base64 `data:` URL into its MIME type and decoded bytes.

    Raises:
        AttachmentError: If the URL is not a base64 data URL.
    """
    if not data_url.startswith("data:") or "," not in data_url:
        raise AttachmentError("Not a data URL")
    header, payload = data_url[5:].split(",", 1)
    if not header.endswith(";base64"):
        raise AttachmentError("Only base64 data URLs are supported")
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AttachmentError("Invalid base64 payload in data URL") from exc
    return header[: -len(";base64")] or "application/octet-stream", raw


def to_data_url(raw: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(raw).decode('ascii')}"


def dimensions_of(data_url: str) -> Tuple[int, int]:
    """Return the pixel size of the image embedded in `data_url`."""
    _, raw = split_data_url(data_url)
    try:
        with Image.open(io.BytesIO(raw)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise AttachmentError("Embedded payload is not a supported image") from exc


class AttachmentPipeline:
    """Decode, optionally downscale and re-encode uploaded images.

    Args:
        max_dimension: Per-axis pixel bound. Defaults to IMAGE_MAX_DIMENSION or 1600.
        quality: JPEG quality (1-95) used when re-encoding. Defaults to
            IMAGE_JPEG_QUALITY or 85.
        background: Color used to flatten transparency before JPEG encoding.
    """

    def __init__(
        self,
        max_dimension: Optional[int] = None,
        quality: Optional[int] = None,
        background: Tuple[int, int, int] = (255, 255, 255),
    ):
        self.max_dimension = max_dimension or int(os.getenv("IMAGE_MAX_DIMENSION", MAX_DIMENSION))
        self.quality = quality or int(os.getenv("IMAGE_JPEG_QUALITY", JPEG_QUALITY))
        self.background = background

    async def process(self, data: bytes | str) -> Attachment:
        """Produce an Attachment from raw image bytes or a `data:` URL.

        Decoding and rasterizing are blocking, so they run in a worker thread.
        """
        return await asyncio.to_thread(self.process_sync, data)

    def process_sync(self, data: bytes | str) -> Attachment:
        """Blocking core of `process`.

        Raises:
            AttachmentError: If the input is empty or cannot be decoded or encoded.
        """
        if isinstance(data, str):
            _, raw = split_data_url(data.strip())
        else:
            raw = data
        if not raw:
            raise AttachmentError("Image file is empty.")

        try:
            with Image.open(io.BytesIO(raw)) as opened:
                opened.load()
                source_format = opened.format
                # Bounds apply to the upright image, as a camera viewer shows it.
                src = ImageOps.exif_transpose(opened)
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            LOGGER.warning("Rejected attachment that could not be decoded: %s", exc)
            raise AttachmentError("File is not a supported image format") from exc

        with src:
            width, height = src.size
            target = scaled_dimensions(width, height, self.max_dimension)
            if target == (width, height):
                mime_type = Image.MIME.get(source_format or "", "application/octet-stream")
                return Attachment(data_url=to_data_url(raw, mime_type))

            try:
                encoded = self._resize_to_jpeg(src, target)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Failed to re-encode %sx%s image: %s", width, height, exc)
                raise AttachmentError("Failed to compress image") from exc

        LOGGER.info("Downscaled attachment from %sx%s to %sx%s", width, height, target[0], target[1])
        return Attachment(data_url=to_data_url(encoded, "image/jpeg"))

    def _resize_to_jpeg(self, src: Image.Image, size: Tuple[int, int]) -> bytes:
        has_alpha = src.mode in ("RGBA", "LA") or (src.mode == "P" and "transparency" in src.info)
        if has_alpha:
            rgba = src.convert("RGBA").resize(size, Image.LANCZOS)
            # Flatten alpha against the background color
            out = Image.new("RGB", size, self.background)
            out.paste(rgba, mask=rgba.split()[3])
        else:
            out = src.convert("RGB").resize(size, Image.LANCZOS)

        out_io = io.BytesIO()
        out.save(out_io, format="JPEG", quality=self.quality)
        return out_io.getvalue()
