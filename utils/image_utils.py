"""
Image utilities for Wet Check inspections.
Normalizes captured photos into bounded-size encoded images and decodes them
again for report rendering.
"""

import base64
import io
import re
from pathlib import Path
from typing import BinaryIO, Tuple, Union

from PIL import Image, UnidentifiedImageError

from utils.config import config
from utils.logger import setup_logger
from wetcheck.exceptions import ImageEncodingFailure

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="IMAGE_UTILS")

ImageSource = Union[bytes, bytearray, str, Path, BinaryIO]

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)


def load_image(source: ImageSource) -> Image.Image:
    """
    Load an image from raw bytes, a file path or a binary stream.

    Raises:
        ImageEncodingFailure: If the source is missing or not a readable image
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(source))
        elif isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise ImageEncodingFailure(f"Image not found: {path}")
            img = Image.open(path)
        else:
            img = Image.open(source)
        img.load()  # Force load to catch corrupt images
    except ImageEncodingFailure:
        raise
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageEncodingFailure(f"Failed to load image: {e}") from e

    logger.debug(f"Loaded image, size: {img.size}, mode: {img.mode}")
    return img


def bounded_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """Scale (width, height) so neither side exceeds max_dimension. Never upscales."""
    if width <= max_dimension and height <= max_dimension:
        return width, height

    if width > height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


def resize_image(img: Image.Image, max_dimension: int = None) -> Image.Image:
    """
    Resize image to fit within max dimension while preserving aspect ratio.

    Args:
        img: PIL Image
        max_dimension: Maximum width or height (defaults to config)

    Returns:
        Resized PIL Image
    """
    max_dimension = max_dimension or config.max_image_dimension

    new_size = bounded_size(img.size[0], img.size[1], max_dimension)
    if new_size == img.size:
        return img

    resized = img.resize(new_size, Image.Resampling.LANCZOS)
    logger.debug(f"Resized image from {img.size} to {resized.size}")

    return resized


def encode_data_url(img: Image.Image, fmt: str = "JPEG", quality: int = None) -> str:
    """Encode a PIL image as a base64 data URL."""
    quality = quality or config.image_jpeg_quality
    buffer = io.BytesIO()

    try:
        if fmt == "JPEG":
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.save(buffer, format="JPEG", quality=quality)
            mime = "image/jpeg"
        else:
            img.save(buffer, format="PNG", optimize=True)
            mime = "image/png"
    except (OSError, ValueError) as e:
        raise ImageEncodingFailure(f"Failed to encode image: {e}") from e

    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def normalize_image(
    source: ImageSource,
    max_dimension: int = None,
    quality: int = None
) -> str:
    """
    Turn a captured photo into a bounded-resolution JPEG data URL.

    Args:
        source: Raw image bytes, file path or stream
        max_dimension: Longest side in pixels (defaults to config)
        quality: JPEG quality (defaults to config)

    Returns:
        data:image/jpeg;base64,... string

    Raises:
        ImageEncodingFailure: If the image cannot be read or encoded
    """
    img = resize_image(load_image(source), max_dimension or config.max_image_dimension)
    return encode_data_url(img, "JPEG", quality)


def normalize_logo(source: ImageSource, max_dimension: int = None) -> str:
    """Company logo as a bounded PNG data URL (keeps transparency)."""
    img = resize_image(load_image(source), max_dimension or config.logo_max_dimension)
    return encode_data_url(img, "PNG")


def decode_image_data_url(data_url: str) -> bytes:
    """
    Decode a data URL produced by normalize_image/normalize_logo.

    Raises:
        ImageEncodingFailure: If the string is not a base64 image data URL
    """
    match = _DATA_URL_PATTERN.match(data_url or "")
    if not match:
        raise ImageEncodingFailure("Not an image data URL")

    try:
        return base64.b64decode(match.group("data"), validate=True)
    except ValueError as e:
        raise ImageEncodingFailure(f"Invalid base64 image data: {e}") from e
