"""
Client-side image preparation: encode raw uploads as data URIs and compress
them under a byte budget before they are submitted.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

from tryon.config import logger
from tryon.core.errors import (
    CompressionFailedError,
    FileTooLargeError,
    FileTypeNotSupportedError,
    TryonValidationError,
)
from tryon.core.image_ops import (
    ImageDecodeError,
    decode_image_bytes,
    encode_image as encode_pil_image,
    has_alpha,
    open_image,
    to_data_uri,
)
from tryon.core.validation import MISSING_APPAREL_IMAGES
from tryon.models import TryonRequest

from .cancellation import CancelSignal, run_cancellable

IMG_SIZE_LIMIT_BYTES = 5 * 1024 * 1024
DEFAULT_COMPRESSION_LIMIT_KB = 2048
MAX_COMPRESSION_ATTEMPTS = 15
PNG_SCALE_STEP = 0.85


@dataclass(frozen=True)
class RawImage:
    data: bytes
    mime_type: str
    name: str = ""


def encode_image(blob: bytes, mime_type: str) -> str:
    """
    Convert raw image bytes into a data URI.

    Raises:
        FileTypeNotSupportedError: When the MIME type is not an image type
        FileTooLargeError: When the blob exceeds the 5 MB upload limit
    """
    if not mime_type.startswith("image/"):
        raise FileTypeNotSupportedError("Only image files are allowed.")
    if len(blob) > IMG_SIZE_LIMIT_BYTES:
        raise FileTooLargeError("Image exceeds 5 MB limit.")
    return to_data_uri(blob, mime_type)


def compress_image(data_uri: str, max_size_kb: int = DEFAULT_COMPRESSION_LIMIT_KB) -> str:
    """
    Re-encode `data_uri` until its decoded size fits in `max_size_kb`.

    Opaque images go through JPEG at decreasing quality. Images with alpha
    stay PNG and are downscaled instead.

    Raises:
        CompressionFailedError: When the image cannot be decoded or the budget
            is still exceeded after the last attempt
    """
    byte_limit = max_size_kb * 1024

    try:
        raw = decode_image_bytes(data_uri)
    except ImageDecodeError as exc:
        raise CompressionFailedError(str(exc)) from exc

    if len(raw) <= byte_limit:
        return data_uri

    try:
        image = open_image(raw)
    except ImageDecodeError as exc:
        raise CompressionFailedError(str(exc)) from exc

    keep_alpha = has_alpha(image)
    fmt = "png" if keep_alpha else "jpeg"
    quality = 90
    quality_step = 6
    candidate = image
    smallest = len(raw)

    for attempt in range(1, MAX_COMPRESSION_ATTEMPTS + 1):
        encoded = encode_pil_image(candidate, fmt, quality)
        smallest = min(smallest, len(encoded))
        if len(encoded) <= byte_limit:
            logger.debug(
                "Image compressed",
                extra={"attempt": attempt, "format": fmt, "size": len(encoded)},
            )
            return to_data_uri(encoded, f"image/{fmt}")

        if keep_alpha:
            width = max(1, int(candidate.width * PNG_SCALE_STEP))
            height = max(1, int(candidate.height * PNG_SCALE_STEP))
            candidate = image.resize((width, height))
        else:
            quality = max(1, quality - quality_step)

    raise CompressionFailedError(
        f"Unable to compress image below {max_size_kb} KB (smallest {smallest // 1024} KB)"
    )


def prepare_image(image: RawImage, max_size_kb: int = DEFAULT_COMPRESSION_LIMIT_KB) -> str:
    return compress_image(encode_image(image.data, image.mime_type), max_size_kb)


class ImagePreparer:
    """Prepares the model image and every apparel image concurrently."""

    def __init__(self, max_size_kb: int = DEFAULT_COMPRESSION_LIMIT_KB):
        self.max_size_kb = max_size_kb

    async def prepare(self, image: RawImage) -> str:
        # Pillow work is CPU bound; keep it off the event loop
        return await asyncio.to_thread(prepare_image, image, self.max_size_kb)

    async def prepare_request(
        self,
        model_image: RawImage,
        apparel_images: Sequence[RawImage],
        signal: Optional[CancelSignal] = None,
    ) -> TryonRequest:
        """
        Prepare all images as independent tasks and join them.

        Raises:
            TryonValidationError: When no apparel image was supplied
            RequestCancelledError: When `signal` fires before all images are ready
            ImageInputError: When any single image cannot be prepared
        """
        if not apparel_images:
            raise TryonValidationError(
                [{"field": "apparelImages", "message": MISSING_APPAREL_IMAGES}]
            )

        tasks: List[asyncio.Task] = [
            asyncio.ensure_future(self.prepare(image))
            for image in [model_image, *apparel_images]
        ]
        try:
            prepared = await run_cancellable(asyncio.gather(*tasks), signal)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        logger.info("Images prepared", extra={"count": len(prepared)})
        return TryonRequest(modelImage=prepared[0], apparelImages=list(prepared[1:]))
