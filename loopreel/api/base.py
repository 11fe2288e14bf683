"""
Base Task Client
================

Abstract base class for generation backends that follow a create/poll task
protocol.

One ``generate_clip`` call performs a single round trip:

1. **Create**: submit start frame, end frame, duration and optional prompt.
   The response carries either an immediate video URL or a task id.
2. **Poll**: with a fixed delay, until the task reports a terminal status or
   the backend timeout elapses. A failed poll request counts as "not ready".
3. **Extract**: find the video URL with the backend's ordered strategies.

Transient create failures are retried with a growing delay; every other
failure ends the round trip with a FAILED result.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

import httpx

from ..core.config import BackendConfig
from ..core.exceptions import (
    LoopReelError,
    ProviderError,
    RateLimitError,
    GenerationError,
    is_retryable_status,
)
from ..core.security import sanitize_prompt, redact_api_key
from .extraction import ExtractionStrategy, extract_first, first_value, field_path
from .polling import poll_until

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================


# Create requests carry inline images and can be slow to upload
DEFAULT_CREATE_TIMEOUT = 60.0


# =============================================================================
# Data Classes
# =============================================================================


class GenerationStatus(Enum):
    """Status of a generation task."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def from_provider_status(cls, status: Optional[str]) -> "GenerationStatus":
        """
        Normalize backend-specific status strings to GenerationStatus.

        Unknown or missing statuses are treated as still processing.
        """
        status_lower = (status or "").lower().strip()

        if status_lower in ("completed", "succeeded", "succeed", "success", "finished", "done"):
            return cls.COMPLETED

        if status_lower in ("failed", "error", "failure", "errored"):
            return cls.FAILED

        if status_lower in ("cancelled", "canceled", "aborted"):
            return cls.CANCELLED

        if status_lower in ("pending", "queued", "submitted", "in_queue", "waiting"):
            return cls.PENDING

        return cls.PROCESSING

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED, GenerationStatus.CANCELLED)


@dataclass
class ClipRequest:
    """One transition clip between two frames."""

    start_frame: str
    end_frame: str
    duration: int = 5  # seconds
    prompt: Optional[str] = None
    negative_prompt: Optional[str] = None

    def __post_init__(self):
        """Sanitize prompts."""
        if self.prompt:
            self.prompt = sanitize_prompt(self.prompt) or None
        if self.negative_prompt:
            self.negative_prompt = sanitize_prompt(self.negative_prompt) or None


@dataclass
class GenerationTask:
    """
    A remote task created by one client invocation.

    The headers captured at creation are reused for every poll of this task.
    """

    backend: str
    task_id: str
    headers: Dict[str, str] = field(repr=False)
    base_url: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class CreateOutcome:
    """Result of a create call: an immediate URL or a task to poll."""

    video_url: Optional[str] = None
    task: Optional[GenerationTask] = None


@dataclass
class GenerationResult:
    """Normalized result of one clip generation."""

    video_url: Optional[str] = None
    status: GenerationStatus = GenerationStatus.PENDING

    backend: Optional[str] = None
    task_id: Optional[str] = None

    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    polls: int = 0

    error_message: Optional[str] = None
    error_code: Optional[str] = None

    def is_complete(self) -> bool:
        """Check if generation completed successfully."""
        return self.status == GenerationStatus.COMPLETED and self.video_url is not None

    def is_failed(self) -> bool:
        """Check if generation failed."""
        return self.status in (GenerationStatus.FAILED, GenerationStatus.CANCELLED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "video_url": self.video_url,
            "status": self.status.value,
            "backend": self.backend,
            "task_id": self.task_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "polls": self.polls,
            "error_message": self.error_message,
            "error_code": self.error_code,
        }


# =============================================================================
# Base Client Class
# =============================================================================


class BaseTaskClient(ABC):
    """
    Abstract base class for create/poll generation backends.

    Subclasses provide the endpoint shape, authentication, payload and the
    ordered extraction strategies; this class owns retry, polling and
    result normalization.
    """

    # Ordered extraction strategies, most specific first
    task_id_strategies: List[ExtractionStrategy] = []
    immediate_url_strategies: List[ExtractionStrategy] = []
    result_url_strategies: List[ExtractionStrategy] = []
    status_strategies: List[ExtractionStrategy] = [field_path("status")]
    error_strategies: List[ExtractionStrategy] = [
        field_path("error", "message"),
        field_path("error"),
        field_path("message"),
    ]

    # Check the create response for an immediate URL before a task id
    immediate_first: bool = False

    def __init__(
        self,
        settings: Optional[BackendConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Backend section of the configuration
            transport: Optional httpx transport (used to fake backends in tests)
        """
        self.settings = settings or self._default_settings()
        self.base_url = self.settings.base_url.rstrip("/")
        self._transport = transport

        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

        self._validate_config()

    # -------------------------------------------------------------------------
    # Abstract Methods (must be implemented by subclasses)
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the backend name."""
        pass

    @abstractmethod
    def _default_settings(self) -> BackendConfig:
        """Return default settings when none are passed in."""
        pass

    @abstractmethod
    def auth_headers(self) -> Dict[str, str]:
        """
        Produce the headers for a new task, including authentication.

        Called once per ``create_task``; the result is captured on the task.
        """
        pass

    @abstractmethod
    def _build_payload(self, request: ClipRequest) -> Dict[str, Any]:
        """Build the backend's create request body."""
        pass

    @abstractmethod
    def _create_url(self) -> str:
        """Return the create endpoint."""
        pass

    @abstractmethod
    def _task_url(self, task: GenerationTask) -> str:
        """Return the poll endpoint for a task."""
        pass

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def _validate_config(self) -> None:
        """Validate the client configuration (warn only)."""

    def _retry_delay(self, status_code: int, body: str, attempt: int) -> float:
        """Delay before retrying a create call that got a retryable status."""
        return self.settings.retry_delay * attempt

    def _normalize_url(self, url: str, base_url: str) -> str:
        """Turn an extracted video reference into a playable URL."""
        return url

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    async def generate_clip(self, request: ClipRequest) -> GenerationResult:
        """
        Generate one clip: create, then poll unless the backend answered
        immediately.

        Never raises for backend failures; they come back as a FAILED result.

        Args:
            request: Clip parameters

        Returns:
            Normalized GenerationResult
        """
        started = time.monotonic()
        result = GenerationResult(backend=self.provider_name, status=GenerationStatus.PROCESSING)

        try:
            outcome = await self.create_task(request)

            if outcome.video_url:
                logger.info(f"{self.provider_name} returned a video immediately")
                result.video_url = outcome.video_url
                result.status = GenerationStatus.COMPLETED
                result.completed_at = datetime.now()
            else:
                result.task_id = outcome.task.task_id
                result = await self.poll_task(outcome.task)

        except LoopReelError as e:
            logger.error(f"{self.provider_name} clip generation failed: {redact_api_key(e.message)}")
            result.status = GenerationStatus.FAILED
            result.error_message = redact_api_key(e.message)
            result.error_code = e.code

        result.duration_seconds = round(time.monotonic() - started, 3)
        return result

    async def create_task(self, request: ClipRequest) -> CreateOutcome:
        """
        Submit a create request with bounded retries.

        Transport failures and retryable statuses (408, 425, 429, 5xx) are
        retried until ``create_attempts`` is spent; any other HTTP error fails
        at once.

        Raises:
            ConfigurationError: Missing credentials
            ProviderError: Non-retryable status or retries exhausted
            GenerationError: Response carried neither a task id nor a URL
        """
        headers = self.auth_headers()
        payload = self._build_payload(request)
        url = self._create_url()
        max_attempts = self.settings.create_attempts

        logger.info(
            f"Creating {self.provider_name} task "
            f"(duration={request.duration}s, prompt={'yes' if request.prompt else 'no'})"
        )

        client = await self._get_client()

        for attempt in range(1, max_attempts + 1):
            try:
                response = await client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as e:
                logger.warning(
                    f"{self.provider_name} create request failed "
                    f"(attempt {attempt}/{max_attempts}): {redact_api_key(str(e))}"
                )
                if attempt < max_attempts:
                    await asyncio.sleep(self.settings.transport_retry_delay * attempt)
                    continue
                raise ProviderError(
                    f"{self.provider_name} create request failed after {max_attempts} attempts",
                    provider=self.provider_name,
                    recoverable=True,
                )

            if not response.is_success:
                body = response.text
                status_code = response.status_code
                logger.warning(
                    f"{self.provider_name} create HTTP {status_code} "
                    f"(attempt {attempt}/{max_attempts}): {redact_api_key(body[:300])}"
                )
                if attempt < max_attempts and is_retryable_status(status_code):
                    delay = self._retry_delay(status_code, body, attempt)
                    logger.info(f"Retrying {self.provider_name} create in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue
                if status_code == 429:
                    raise RateLimitError(
                        f"{self.provider_name} create rate limited",
                        provider=self.provider_name,
                        response_body=redact_api_key(body),
                    )
                raise ProviderError(
                    f"{self.provider_name} create failed: {status_code}",
                    provider=self.provider_name,
                    status_code=status_code,
                    response_body=redact_api_key(body),
                )

            return self._parse_create_response(response, headers)

        # Unreachable with create_attempts >= 1
        raise ProviderError(
            f"{self.provider_name} create made no attempts",
            provider=self.provider_name,
        )

    async def poll_task(self, task: GenerationTask) -> GenerationResult:
        """
        Poll a task until it succeeds, fails, or the backend timeout expires.

        On timeout no cancellation is sent; whatever the remote task produces
        later is discarded.

        Raises:
            GenerationError: Task reported failure or finished without a URL
            TimeoutError: No terminal status within the timeout
        """
        url = self._task_url(task)
        result = GenerationResult(
            backend=self.provider_name,
            task_id=task.task_id,
            status=GenerationStatus.PROCESSING,
            created_at=task.created_at,
        )
        client = await self._get_client()

        logger.info(
            f"Polling {self.provider_name} task {task.task_id} "
            f"(every {self.settings.poll_interval}s, timeout {self.settings.timeout}s)"
        )

        async def check() -> Optional[str]:
            result.polls += 1
            try:
                response = await client.get(
                    url,
                    headers=task.headers,
                    timeout=self.settings.request_timeout,
                )
            except httpx.HTTPError as e:
                logger.warning(f"{self.provider_name} poll failed for {task.task_id}, retrying: {e}")
                return None

            if not response.is_success:
                logger.warning(
                    f"{self.provider_name} poll HTTP {response.status_code} for {task.task_id}, retrying"
                )
                return None

            try:
                data = response.json()
            except ValueError:
                logger.warning(f"{self.provider_name} poll returned non-JSON for {task.task_id}")
                return None

            return self._interpret_poll(task, data)

        video_url = await poll_until(
            check,
            interval=self.settings.poll_interval,
            timeout=self.settings.timeout,
            operation=f"{self.provider_name} task {task.task_id}",
        )

        logger.info(f"{self.provider_name} task {task.task_id} succeeded after {result.polls} poll(s)")
        result.video_url = video_url
        result.status = GenerationStatus.COMPLETED
        result.completed_at = datetime.now()
        return result

    # -------------------------------------------------------------------------
    # Response Handling
    # -------------------------------------------------------------------------

    def _parse_create_response(
        self,
        response: httpx.Response,
        headers: Dict[str, str],
    ) -> CreateOutcome:
        """Turn a successful create response into a CreateOutcome."""
        try:
            data = response.json()
        except ValueError:
            raise GenerationError(
                f"{self.provider_name} create response was not JSON",
                stage="create",
            )

        def immediate() -> Optional[CreateOutcome]:
            hit = extract_first(data, self.immediate_url_strategies)
            if hit is None:
                return None
            logger.debug(f"Immediate video URL found via {hit[0]}")
            return CreateOutcome(video_url=self._normalize_url(hit[1], self.base_url))

        def queued() -> Optional[CreateOutcome]:
            task_id = first_value(data, self.task_id_strategies)
            if task_id is None:
                return None
            return CreateOutcome(task=GenerationTask(
                backend=self.provider_name,
                task_id=task_id,
                headers=dict(headers),
                base_url=self.base_url,
            ))

        order = (immediate, queued) if self.immediate_first else (queued, immediate)
        for attempt in order:
            outcome = attempt()
            if outcome is not None:
                return outcome

        keys = sorted(data.keys()) if isinstance(data, dict) else type(data).__name__
        raise GenerationError(
            f"{self.provider_name} create response had no task id or video URL (keys: {keys})",
            stage="create",
        )

    def _interpret_poll(self, task: GenerationTask, data: Any) -> Optional[str]:
        """
        Interpret one poll response.

        Returns:
            The video URL once finished, None while still running
        """
        status_text = first_value(data, self.status_strategies)
        status = GenerationStatus.from_provider_status(status_text)
        logger.debug(f"{self.provider_name} task {task.task_id} status: {status_text!r}")

        if status in (GenerationStatus.FAILED, GenerationStatus.CANCELLED):
            reason = first_value(data, self.error_strategies) or status_text
            raise GenerationError(
                f"{self.provider_name} task {task.task_id} {status.value}: {reason}",
                job_id=task.task_id,
                stage="poll",
            )

        if status != GenerationStatus.COMPLETED:
            return None

        hit = extract_first(data, self.result_url_strategies)
        if hit is None:
            raise GenerationError(
                f"{self.provider_name} task {task.task_id} finished without a video URL",
                job_id=task.task_id,
                stage="extract",
            )
        logger.debug(f"Video URL for {task.task_id} found via {hit[0]}")
        return self._normalize_url(hit[1], task.base_url)

    # -------------------------------------------------------------------------
    # HTTP Client
    # -------------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (shared across concurrent tasks)."""
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(max(DEFAULT_CREATE_TIMEOUT, self.settings.request_timeout)),
                    transport=self._transport,
                )
            return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        async with self._client_lock:
            if self._client:
                await self._client.aclose()
                self._client = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
