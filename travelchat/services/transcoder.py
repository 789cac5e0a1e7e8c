"""Pillow-based image normalisation.

Decodes a validated upload, optionally centre-crops it to a square and
downsizes it, then re-encodes it to one output format. Re-encoding also drops
whatever trailing or embedded payload the source file carried.
"""
from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass

from PIL import Image

from travelchat.models import UploadOptions

logger = logging.getLogger(__name__)

OUTPUT_MIME_TYPES: dict[str, str] = {
    "webp": "image/webp",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}

_PIL_FORMATS = {"webp": "WEBP", "jpg": "JPEG", "jpeg": "JPEG", "png": "PNG"}


class TranscodeError(Exception):
    """Raised when an image cannot be decoded or encoded."""


@dataclass(frozen=True)
class TranscodedImage:
    data: bytes
    width: int
    height: int
    format: str
    mime_type: str
    reprocessed: bool = True


def resolve_output_format(output_format: str, source_extension: str) -> str:
    return source_extension.lower() if output_format == "original" else output_format.lower()


def png_compress_level(quality: int) -> int:
    """Higher requested quality means less PNG compression effort."""

    return min(9, max(0, math.floor(9 - quality / 100 * 9)))


def center_square_box(width: int, height: int) -> tuple[int, int, int, int]:
    size = min(width, height)
    left = (width - size) // 2
    top = (height - size) // 2
    return left, top, left + size, top + size


def fit_within(width: int, height: int, output_size: int) -> tuple[int, int]:
    """Scale ``(width, height)`` down so neither side exceeds ``output_size``."""

    if output_size <= 0 or (width <= output_size and height <= output_size):
        return width, height
    # Integer maths so the longest side lands exactly on output_size.
    if width >= height:
        return output_size, max(1, height * output_size // width)
    return max(1, width * output_size // height), output_size


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)


def _resampling_mode(img: Image.Image) -> Image.Image:
    """Expand palette and bilevel images so LANCZOS applies; Pillow falls back to NEAREST for them."""

    if img.mode in ("P", "PA"):
        return img.convert("RGBA" if _has_alpha(img) else "RGB")
    if img.mode == "1":
        return img.convert("L")
    return img


def _prepare_mode(img: Image.Image, fmt: str) -> Image.Image:
    has_alpha = _has_alpha(img)
    if fmt == "JPEG":
        if img.mode not in ("RGB", "L"):
            return img.convert("RGB")
        return img
    if fmt == "WEBP":
        if img.mode not in ("RGB", "RGBA"):
            return img.convert("RGBA" if has_alpha else "RGB")
        return img
    # PNG accepts most modes; normalise the exotic ones.
    if img.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I;16"):
        return img.convert("RGBA" if has_alpha else "RGB")
    return img


def _encode(img: Image.Image, output_format: str, quality: int) -> bytes:
    pil_format = _PIL_FORMATS[output_format]
    img = _prepare_mode(img, pil_format)
    buffer = io.BytesIO()
    if pil_format == "PNG":
        img.save(buffer, format="PNG", compress_level=png_compress_level(quality))
    else:
        img.save(buffer, format=pil_format, quality=quality)
    return buffer.getvalue()


def transcode(data: bytes, source_extension: str, options: UploadOptions) -> TranscodedImage:
    """Normalise ``data`` according to ``options``.

    Parameters
    ----------
    data : bytes
        Upload bytes that already passed validation. They are decoded again
        here; the validator's decode is not trusted.
    source_extension : str
        Lowercase extension of the upload, used when ``output_format`` is
        ``"original"``.
    options : UploadOptions
        Crop, resize, format and quality settings.

    Raises
    ------
    TranscodeError
        If the image cannot be decoded or the output format is unsupported.
    """

    output_format = resolve_output_format(options.output_format, source_extension)
    if output_format not in OUTPUT_MIME_TYPES:
        raise TranscodeError(f"Unsupported output format: {output_format}")

    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            img = source.copy()
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise TranscodeError("Could not decode image") from exc

    width, height = img.size
    if not width or not height:
        raise TranscodeError("Could not read image dimensions")

    source_size = (width, height)
    untouched = not options.crop_square and fit_within(width, height, options.output_size) == source_size
    if not options.force_reprocess and untouched and output_format in _same_format(source_extension):
        logger.debug("Keeping source bytes (%dx%d %s), reprocessing not forced", width, height, output_format)
        return TranscodedImage(
            data=data,
            width=width,
            height=height,
            format=output_format,
            mime_type=OUTPUT_MIME_TYPES[output_format],
            reprocessed=False,
        )

    img = _resampling_mode(img)
    if options.crop_square:
        img = img.crop(center_square_box(width, height))
        width, height = img.size

    new_width, new_height = fit_within(width, height, options.output_size)
    if (new_width, new_height) != (width, height):
        img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)

    try:
        encoded = _encode(img, output_format, options.quality)
    except (OSError, ValueError) as exc:
        raise TranscodeError(f"Could not encode image as {output_format}") from exc

    logger.debug("Transcoded %dx%d -> %dx%d %s (%d bytes)", *source_size, *img.size, output_format, len(encoded))
    return TranscodedImage(
        data=encoded,
        width=img.width,
        height=img.height,
        format=output_format,
        mime_type=OUTPUT_MIME_TYPES[output_format],
    )


def _same_format(source_extension: str) -> set[str]:
    if source_extension in ("jpg", "jpeg"):
        return {"jpg", "jpeg"}
    return {source_extension}
