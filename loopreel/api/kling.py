"""
Kling Task Client
=================

Integration with Kling's image-to-video task API.

Key Features:
- Start and end frame control (``image`` / ``image_tail``)
- Short-lived HS256 tokens signed from an access/secret key pair
- Special backoff for the account-level rate limit code 1303
"""

import json
import logging
import os
import time
from typing import Optional, Dict, Any

import jwt

from ..core.config import KlingConfig
from ..core.exceptions import ConfigurationError
from ..utils.image_utils import strip_data_uri_prefix
from .base import BaseTaskClient, ClipRequest, GenerationTask
from .extraction import deep_scan, field_path, normalize_video_url
from .factory import Backend, register_task_client

logger = logging.getLogger(__name__)


# Tokens are accepted slightly before their issue time to absorb clock skew
NOT_BEFORE_SKEW_SECONDS = 5
MIN_TOKEN_TTL_SECONDS = 60


def format_auth_header(token: str) -> str:
    """Prefix a token with ``Bearer`` unless it already has one."""
    if token.lower().startswith("bearer "):
        return token
    return f"Bearer {token}"


def create_jwt_token(
    access_key: str,
    secret_key: str,
    ttl_seconds: int = 1800,
    now: Optional[int] = None,
) -> str:
    """
    Sign a Kling API token.

    Args:
        access_key: Issuer (Kling access key)
        secret_key: HMAC secret
        ttl_seconds: Validity window, at least one minute
        now: Issue time as a Unix timestamp (defaults to the current time)

    Returns:
        Encoded JWT
    """
    issued_at = int(time.time()) if now is None else now
    payload = {
        "iss": access_key,
        "iat": issued_at,
        "nbf": issued_at - NOT_BEFORE_SKEW_SECONDS,
        "exp": issued_at + max(MIN_TOKEN_TTL_SECONDS, ttl_seconds),
    }
    return jwt.encode(payload, secret_key, algorithm="HS256", headers={"typ": "JWT"})


@register_task_client(Backend.KLING)
class KlingTaskClient(BaseTaskClient):
    """
    Kling image-to-video client.

    A fresh token is signed for every create call and reused by that task's
    poll loop.
    """

    RATE_LIMIT_CODE = 1303

    task_id_strategies = [
        field_path("data", "taskId"),
        field_path("data", "task_id"),
    ]
    # Kling has no documented synchronous mode
    immediate_url_strategies = [deep_scan]
    result_url_strategies = [
        field_path("data", "video_url"),
        field_path("data", "videoUrl"),
        field_path("data", "url"),
        field_path("data", "videos", 0),
        field_path("data", "task_result", "videos", 0, "url"),
        deep_scan,
    ]
    status_strategies = [
        field_path("data", "status"),
        field_path("data", "task_status"),
    ]
    error_strategies = [
        field_path("data", "task_status_msg"),
        field_path("message"),
    ]

    def __init__(self, settings: Optional[KlingConfig] = None, **kwargs):
        super().__init__(settings=settings, **kwargs)
        self.access_key = self.settings.access_key or _env("KLING_ACCESS_KEY")
        self.secret_key = self.settings.secret_key or _env("KLING_SECRET_KEY")
        if not (self.access_key and self.secret_key):
            logger.warning(
                "No Kling credentials found. "
                "Set KLING_ACCESS_KEY and KLING_SECRET_KEY or configure kling.access_key/secret_key."
            )

    @property
    def provider_name(self) -> str:
        return "kling"

    def _default_settings(self) -> KlingConfig:
        return KlingConfig()

    def auth_headers(self) -> Dict[str, str]:
        if not (self.access_key and self.secret_key):
            raise ConfigurationError(
                "Missing KLING_ACCESS_KEY or KLING_SECRET_KEY",
                config_key="kling.access_key",
            )
        token = create_jwt_token(self.access_key, self.secret_key, self.settings.token_ttl_seconds)
        return {
            "Content-Type": "application/json",
            "Authorization": format_auth_header(token),
        }

    def _create_url(self) -> str:
        return f"{self.base_url}{self.settings.create_path}"

    def _task_url(self, task: GenerationTask) -> str:
        return f"{task.base_url}{self.settings.task_path.replace('{taskId}', task.task_id)}"

    def _build_payload(self, request: ClipRequest) -> Dict[str, Any]:
        """Build the Kling image2video request body."""
        payload: Dict[str, Any] = {
            "model_name": self.settings.model_name,
            "image": strip_data_uri_prefix(request.start_frame),
            "image_tail": strip_data_uri_prefix(request.end_frame),
            "duration": request.duration,
            "mode": self.settings.mode,
        }
        if request.prompt:
            payload["prompt"] = request.prompt
        if request.negative_prompt:
            payload["negative_prompt"] = request.negative_prompt
        return payload

    def _retry_delay(self, status_code: int, body: str, attempt: int) -> float:
        if status_code == 429 and _body_code(body) == self.RATE_LIMIT_CODE:
            delay = self.settings.rate_limit_delay + attempt * self.settings.rate_limit_step
            logger.warning(f"Kling account rate limit ({self.RATE_LIMIT_CODE}), backing off {delay:.1f}s")
            return delay
        return super()._retry_delay(status_code, body, attempt)

    def _normalize_url(self, url: str, base_url: str) -> str:
        return normalize_video_url(base_url, url)


def _env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _body_code(body: str) -> Optional[int]:
    """Read the numeric ``code`` field of an error body, if any."""
    try:
        parsed = json.loads(body) if body else None
    except ValueError:
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("code"), int):
        return parsed["code"]
    return None
