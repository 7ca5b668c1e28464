"""Pillow helpers for decoding, inspecting and resizing base64 images."""

from __future__ import annotations

import base64
import binascii
import io
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from tryon.config import logger

FITS = ("cover", "contain", "fill", "inside", "outside")
FORMATS = {"jpeg": "JPEG", "png": "PNG", "webp": "WEBP", "tiff": "TIFF"}
LOSSY_FORMATS = {"jpeg", "webp"}

_DATA_URI_PREFIX = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,")


class ImageDecodeError(ValueError):
    pass


class ImageResizeError(Exception):
    pass


def normalize_base64(value: str) -> str:
    """Strip a data URI prefix if present and return the raw base64 payload."""
    return _DATA_URI_PREFIX.sub("", value.strip(), count=1)


def detect_mime_type(value: str, default: str = "image/png") -> str:
    match = _DATA_URI_PREFIX.match(value.strip())
    return match.group("mime") if match else default


def to_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


def decode_image_bytes(image_b64: str) -> bytes:
    try:
        return base64.b64decode(normalize_base64(image_b64), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError("Image data is not valid base64") from exc


def open_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageDecodeError("Image data could not be decoded") from exc
    # exif_transpose returns a copy, which drops the source format
    source_format = image.format
    image = ImageOps.exif_transpose(image)
    image.format = source_format
    return image


def has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )


def encode_image(image: Image.Image, fmt: str, quality: int = 80) -> bytes:
    """Serialize `image` in the lowercase format `fmt` ("jpeg", "png", ...)."""
    pil_format = FORMATS[fmt]
    if fmt == "jpeg" and image.mode != "RGB":
        image = image.convert("RGB")
    elif fmt != "jpeg" and image.mode not in ("RGB", "RGBA", "L", "LA"):
        image = image.convert("RGBA" if has_alpha(image) else "RGB")

    buffer = io.BytesIO()
    if fmt in LOSSY_FORMATS:
        image.save(buffer, format=pil_format, quality=quality, optimize=True)
    elif fmt == "png":
        image.save(buffer, format=pil_format, optimize=True, compress_level=9)
    else:
        image.save(buffer, format=pil_format)
    return buffer.getvalue()


def image_metadata(image: Image.Image, size: int, name: Optional[str] = None) -> Dict[str, Any]:
    fmt = (image.format or "png").lower()
    return {
        "name": name or "",
        "size": size,
        "type": f"image/{fmt}",
        "width": image.width,
        "height": image.height,
        "format": fmt,
        "hasAlpha": has_alpha(image),
        "channels": len(image.getbands()),
        "space": image.mode,
    }


@dataclass
class ResizeOptions:
    width: Optional[int] = None
    height: Optional[int] = None
    fit: str = "cover"
    quality: int = 80
    format: str = "jpeg"
    withoutEnlargement: bool = True

    @classmethod
    def from_request(cls, options: Dict[str, Any]) -> "ResizeOptions":
        """Apply the endpoint defaults to a raw options object."""
        resolved = cls(
            width=options.get("width"),
            height=options.get("height"),
            fit=options.get("fit") or "cover",
            quality=options.get("quality") or 80,
            format=str(options.get("format") or "jpeg").lower(),
            withoutEnlargement=options.get("withoutEnlargement") is not False,
        )
        if resolved.fit not in FITS:
            raise ImageResizeError(f"Unsupported fit: {resolved.fit}")
        if resolved.format not in FORMATS:
            raise ImageResizeError(f"Unsupported format: {resolved.format}")
        for label, value in (("width", resolved.width), ("height", resolved.height)):
            if value is not None and (
                isinstance(value, bool) or not isinstance(value, int) or value <= 0
            ):
                raise ImageResizeError(f"{label} must be a positive integer")
        if not isinstance(resolved.quality, int) or not 1 <= resolved.quality <= 100:
            raise ImageResizeError("quality must be an integer between 1 and 100")
        return resolved


def _target_box(image: Image.Image, options: ResizeOptions) -> Tuple[int, int]:
    width, height = options.width, options.height
    if width and height:
        return width, height
    if width:
        return width, max(1, round(image.height * width / image.width))
    if height:
        return max(1, round(image.width * height / image.height)), height
    return image.width, image.height


def _apply_fit(image: Image.Image, box: Tuple[int, int], options: ResizeOptions) -> Image.Image:
    width, height = box
    scale_x, scale_y = width / image.width, height / image.height

    if options.fit in ("inside", "contain"):
        scale = min(scale_x, scale_y)
    else:
        scale = max(scale_x, scale_y)

    if options.withoutEnlargement and scale > 1:
        if options.fit in ("cover", "fill", "outside"):
            return image.copy()
        width = min(width, image.width)
        height = min(height, image.height)
        scale = min(scale, 1)

    if options.fit == "fill":
        return image.resize((width, height), Image.Resampling.LANCZOS)
    if options.fit == "cover":
        return ImageOps.fit(image, (width, height), Image.Resampling.LANCZOS)
    if options.fit == "inside":
        return ImageOps.contain(image, (width, height), Image.Resampling.LANCZOS)
    if options.fit == "outside":
        size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))
        return image.resize(size, Image.Resampling.LANCZOS)

    # contain: letterbox inside the box
    background = (0, 0, 0, 0) if options.format != "jpeg" else (0, 0, 0)
    source = image.convert("RGBA" if options.format != "jpeg" else "RGB")
    return ImageOps.pad(source, (width, height), Image.Resampling.LANCZOS, color=background)


@dataclass
class ResizeResult:
    resizedB64: str
    metadata: Dict[str, Dict[str, Any]]
    resizeInfo: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def resize_image(image_b64: str, options: ResizeOptions) -> ResizeResult:
    """
    Resize a base64 image.

    Args:
        image_b64: Raw base64 or data URI
        options: Resolved resize options

    Returns:
        ResizeResult with the resized base64 payload and before/after metadata

    Raises:
        ImageResizeError: If the image cannot be decoded or re-encoded
    """
    try:
        original_bytes = decode_image_bytes(image_b64)
        original = open_image(original_bytes)
        original_meta = image_metadata(original, len(original_bytes))

        resized = _apply_fit(original, _target_box(original, options), options)
        resized_bytes = encode_image(resized, options.format, int(options.quality))
        resized_meta = image_metadata(open_image(resized_bytes), len(resized_bytes))
    except ImageDecodeError as exc:
        raise ImageResizeError(str(exc)) from exc
    except (OSError, ValueError) as exc:
        raise ImageResizeError(f"Failed to process image: {exc}") from exc

    compression_ratio = 0.0
    if original_meta["size"] > 0:
        compression_ratio = (1 - resized_meta["size"] / original_meta["size"]) * 100

    logger.info(
        "Resize completed",
        extra={
            "original": f"{original_meta['width']}x{original_meta['height']}",
            "resized": f"{resized_meta['width']}x{resized_meta['height']}",
            "format": options.format,
            "fit": options.fit,
        },
    )

    return ResizeResult(
        resizedB64=base64.b64encode(resized_bytes).decode("utf-8"),
        metadata={"original": original_meta, "resized": resized_meta},
        resizeInfo={
            "options": asdict(options),
            "compressionRatio": round(compression_ratio, 2),
        },
    )
