"""
Utilities
=========

Helper functions for LoopReel.
"""

from .image_utils import (
    encode_image,
    is_remote,
    prepare_frame,
    strip_data_uri_prefix,
    to_data_uri,
)

__all__ = [
    "encode_image",
    "is_remote",
    "prepare_frame",
    "strip_data_uri_prefix",
    "to_data_uri",
]
