"""
Clip Orchestrator
=================

Turns four narrative frames into a three-clip set by generating the
transitions (0→1, 1→2, 2→3) concurrently on one backend.

The clip set is all-or-nothing: if any transition fails the whole call
fails and no partial set is returned.
"""

import asyncio
import logging
from typing import Optional, List, Sequence, Union

import httpx

from ..api import BaseTaskClient, ClipRequest, GenerationResult, GenerationStatus, get_task_client
from ..core.config import Config, get_config
from ..core.exceptions import GenerationError, ValidationError
from ..playback.models import ClipSet
from ..utils.image_utils import prepare_frame

logger = logging.getLogger(__name__)


FRAME_COUNT = 4


class ClipOrchestrator:
    """
    Generates clip sets from narrative frames.

    Usage:
        async with ClipOrchestrator(backend="kling") as orchestrator:
            clips = await orchestrator.generate_clips(frames, prompt="slow dolly in")
            scheduler.splice(clips)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        backend: Optional[str] = None,
        client: Optional[BaseTaskClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Configuration (defaults to the global config)
            backend: Backend name, overriding ``generation.backend``
            client: Ready-made task client (takes precedence over ``backend``)
            transport: httpx transport for the created client
        """
        self.config = config or get_config()
        if client is None:
            client = get_task_client(backend, config=self.config, transport=transport)
        self.client = client
        self.last_results: List[GenerationResult] = []

        logger.info(f"ClipOrchestrator initialized (backend: {self.client.provider_name})")

    @property
    def backend(self) -> str:
        return self.client.provider_name

    async def generate_clips(
        self,
        frames: Sequence[str],
        duration_seconds: Optional[int] = None,
        prompt: Optional[str] = None,
        negative_prompt: Optional[str] = None,
    ) -> ClipSet:
        """
        Generate the three transitions between four frames.

        Args:
            frames: Four frame references (URLs, data URIs or local paths)
            duration_seconds: Clip length (defaults to ``generation.default_duration``)
            prompt: Optional motion/style instruction shared by every clip
            negative_prompt: Optional negative prompt shared by every clip

        Returns:
            ClipSet in transition order

        Raises:
            ValidationError: Not exactly four frames, or a bad frame/duration
            GenerationError: One or more transitions failed
        """
        results = await self.generate_results(frames, duration_seconds, prompt, negative_prompt)

        failures = [
            f"clip {index} ({index}->{index + 1}): {result.error_message or result.status.value}"
            for index, result in enumerate(results)
            if not result.is_complete()
        ]
        if failures:
            logger.error(f"Clip set generation failed: {'; '.join(failures)}")
            raise GenerationError(
                f"{len(failures)} of {len(results)} clips failed: {'; '.join(failures)}",
                stage="orchestrate",
                prompt=prompt,
                details={"failures": failures, "backend": self.backend},
            )

        clip_set = ClipSet.of([result.video_url for result in results])
        logger.info(f"Clip set ready: {clip_set.short_names()}")
        return clip_set

    async def generate_results(
        self,
        frames: Sequence[str],
        duration_seconds: Optional[int] = None,
        prompt: Optional[str] = None,
        negative_prompt: Optional[str] = None,
    ) -> List[GenerationResult]:
        """
        Run the three transition generations concurrently.

        Unlike ``generate_clips`` this never raises for backend failures;
        every clip's outcome is returned in order.
        """
        requests = self._build_requests(frames, duration_seconds, prompt, negative_prompt)

        logger.info(
            f"Generating {len(requests)} clips on {self.backend} "
            f"({requests[0].duration}s each)"
        )

        outcomes = await asyncio.gather(
            *(self.client.generate_clip(request) for request in requests),
            return_exceptions=True,
        )

        results: List[GenerationResult] = []
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(f"Clip {index} raised unexpectedly: {outcome!r}")
                outcome = GenerationResult(
                    backend=self.backend,
                    status=GenerationStatus.FAILED,
                    error_message=str(outcome) or outcome.__class__.__name__,
                    error_code=outcome.__class__.__name__,
                )
            results.append(outcome)

        self.last_results = results
        return results

    def _build_requests(
        self,
        frames: Sequence[str],
        duration_seconds: Optional[int],
        prompt: Optional[str],
        negative_prompt: Optional[str],
    ) -> List[ClipRequest]:
        if isinstance(frames, str) or len(frames) != FRAME_COUNT:
            count = 1 if isinstance(frames, str) else len(frames)
            raise ValidationError(
                f"Expected exactly {FRAME_COUNT} frames, got {count}",
                field="frames",
                value=count,
                constraint=f"length == {FRAME_COUNT}",
            )

        duration = _coerce_duration(
            duration_seconds if duration_seconds is not None else self.config.generation.default_duration
        )
        prepared = [prepare_frame(frame) for frame in frames]

        return [
            ClipRequest(
                start_frame=prepared[index],
                end_frame=prepared[index + 1],
                duration=duration,
                prompt=prompt,
                negative_prompt=negative_prompt,
            )
            for index in range(FRAME_COUNT - 1)
        ]

    async def close(self) -> None:
        """Close the backend connection."""
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _coerce_duration(value: Union[int, float, str]) -> int:
    try:
        duration = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Duration must be a whole number of seconds", field="duration_seconds", value=value)
    if duration < 1:
        raise ValidationError(
            f"Duration must be positive, got {duration}",
            field="duration_seconds",
            value=duration,
            constraint=">= 1",
        )
    return duration
