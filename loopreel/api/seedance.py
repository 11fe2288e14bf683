"""
Seedance Task Client
====================

Thin client for ByteDance Seedance video generation on the ARK platform.

- Base URL ``https://ark.cn-beijing.volces.com/api/v3``
- Static bearer key from ``ARK_API_KEY`` (``SEEDANCE_API_KEY`` and
  ``SEEDREAM_API_KEY`` are accepted for compatibility)
- Tasks are created at ``/contents/generations/tasks`` and polled at the same
  path with the task id appended
"""

import logging
import os
from collections import deque
from typing import Optional, Dict, Any, Deque

from ..core.config import SeedanceConfig
from ..core.exceptions import ConfigurationError
from .base import BaseTaskClient, ClipRequest, CreateOutcome, GenerationTask
from .extraction import deep_scan, field_path
from .factory import Backend, register_task_client
from .kling import format_auth_header

logger = logging.getLogger(__name__)

API_KEY_ENV_NAMES = ("ARK_API_KEY", "SEEDANCE_API_KEY", "SEEDREAM_API_KEY")


@register_task_client(Backend.SEEDANCE)
class SeedanceTaskClient(BaseTaskClient):
    """
    Seedance first/last frame video client.

    Supports a debug replay mode: task ids listed in
    ``seedance.debug_task_ids`` are polled one per clip instead of creating
    new (billable) tasks.
    """

    # Some deployments answer synchronously with the finished video
    immediate_first = True
    immediate_url_strategies = [
        field_path("video_url"),
        field_path("videoUrl"),
        field_path("url"),
    ]
    task_id_strategies = [
        field_path("taskId"),
        field_path("task_id"),
        field_path("id"),
    ]
    result_url_strategies = [
        field_path("output", "video_url"),
        field_path("output", "videoUrl"),
        field_path("output", "url"),
        field_path("content", "video_url"),
        deep_scan,
    ]
    status_strategies = [
        field_path("status"),
        field_path("task_status"),
    ]

    def __init__(self, settings: Optional[SeedanceConfig] = None, **kwargs):
        super().__init__(settings=settings, **kwargs)
        self.api_key = self.settings.api_key or _api_key_from_env()
        self._debug_task_ids: Deque[str] = deque(self.settings.debug_task_ids)
        if not self.api_key:
            logger.warning(
                f"No Seedance API key found. Set one of {', '.join(API_KEY_ENV_NAMES)} "
                f"or configure seedance.api_key."
            )

    @property
    def provider_name(self) -> str:
        return "seedance"

    def _default_settings(self) -> SeedanceConfig:
        return SeedanceConfig()

    def auth_headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError(
                "Missing ARK_API_KEY for Seedance",
                config_key="seedance.api_key",
            )
        return {
            "Content-Type": "application/json",
            "Authorization": format_auth_header(self.api_key),
        }

    def _create_url(self) -> str:
        return f"{self.base_url}{self.settings.tasks_path}"

    def _task_url(self, task: GenerationTask) -> str:
        return f"{task.base_url}{self.settings.tasks_path}/{task.task_id}"

    def _build_payload(self, request: ClipRequest) -> Dict[str, Any]:
        """Build the ARK content generation request body."""
        instruction = request.prompt or f"Generate a cinematic {request.duration}-second clip."
        return {
            "model": self.settings.model,
            "content": [
                {
                    "type": "text",
                    "text": f"{instruction} --dur {request.duration}",
                },
                {
                    "type": "image_url",
                    "image_url": {"url": request.start_frame},
                    "role": "first_frame",
                },
                {
                    "type": "image_url",
                    "image_url": {"url": request.end_frame},
                    "role": "last_frame",
                },
            ],
        }

    async def create_task(self, request: ClipRequest) -> CreateOutcome:
        if self._debug_task_ids:
            task_id = self._debug_task_ids.popleft()
            logger.warning(f"Seedance debug replay: polling existing task {task_id} instead of creating one")
            return CreateOutcome(task=GenerationTask(
                backend=self.provider_name,
                task_id=task_id,
                headers=self.auth_headers(),
                base_url=self.base_url,
            ))
        return await super().create_task(request)


def _api_key_from_env() -> Optional[str]:
    for name in API_KEY_ENV_NAMES:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None
