"""
Image Utilities
===============

Helpers for turning frame references into something a backend accepts.
"""

import base64
import logging
import re
from pathlib import Path
from typing import Tuple, Union

from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

_DATA_URI = re.compile(r"^data:[^;]+;base64,(.+)$", re.DOTALL)


def is_remote(reference: str) -> bool:
    """Whether a frame reference is an http(s) URL."""
    return reference.startswith(("http://", "https://"))


def is_data_uri(reference: str) -> bool:
    return reference.startswith("data:")


def encode_image(image_path: Union[str, Path]) -> Tuple[str, str]:
    """
    Encode an image to base64.

    Args:
        image_path: Path to the image file

    Returns:
        Tuple of (base64_data, mime_type)
    """
    path = Path(image_path)

    if not path.is_file():
        raise ValidationError(
            f"Image not found: {image_path}",
            field="frame",
            value=str(image_path),
        )

    mime_type = MIME_TYPES.get(path.suffix.lower(), "image/jpeg")

    with open(path, "rb") as f:
        data = base64.b64encode(f.read()).decode("utf-8")

    return data, mime_type


def to_data_uri(image_path: Union[str, Path]) -> str:
    """
    Convert an image file to a data URI.

    Returns:
        Data URI string (data:image/jpeg;base64,...)
    """
    data, mime_type = encode_image(image_path)
    return f"data:{mime_type};base64,{data}"


def prepare_frame(reference: str) -> str:
    """
    Normalize a frame reference for a create request.

    URLs and data URIs pass through; local files become data URIs.
    """
    reference = reference.strip()
    if not reference:
        raise ValidationError("Empty frame reference", field="frame")
    if is_remote(reference) or is_data_uri(reference):
        return reference
    logger.debug(f"Inlining local frame {reference}")
    return to_data_uri(reference)


def strip_data_uri_prefix(reference: str) -> str:
    """Return the raw base64 payload of a data URI; other references unchanged."""
    match = _DATA_URI.match(reference)
    if match:
        return match.group(1)
    return reference
