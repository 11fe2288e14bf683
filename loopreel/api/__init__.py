"""
API Integration Layer
=====================

Task clients for asynchronous image-to-video generation backends.

Supported Backends:
- Seedance (ByteDance ARK), static bearer key
- Kling image2video, signed short-lived tokens

Usage:
    from loopreel.api import ClipRequest, get_task_client

    async with get_task_client("kling") as client:
        result = await client.generate_clip(
            ClipRequest(start_frame=frame0, end_frame=frame1, duration=5)
        )
"""

from .base import (
    BaseTaskClient,
    ClipRequest,
    CreateOutcome,
    GenerationResult,
    GenerationStatus,
    GenerationTask,
)
from .factory import Backend, get_task_client, list_backends, register_task_client

__all__ = [
    "BaseTaskClient",
    "ClipRequest",
    "CreateOutcome",
    "GenerationResult",
    "GenerationStatus",
    "GenerationTask",
    "Backend",
    "get_task_client",
    "list_backends",
    "register_task_client",
]
