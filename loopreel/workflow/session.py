"""
Playback Session
================

Glue between generation and playback: every step generates a clip set from
four frames and splices it into the running scheduler.
"""

import logging
from typing import List, Optional, Sequence, Union

from ..core.events import Channel
from ..core.exceptions import LoopReelError, ValidationError
from ..playback.models import ClipSet
from ..playback.scheduler import ContinuityScheduler, SchedulerPhase
from .orchestrator import ClipOrchestrator

logger = logging.getLogger(__name__)


class PlaybackSession:
    """
    One viewer's stream.

    The first successful step boots the scheduler; later steps splice.
    Every clip set that played is kept in ``history`` so the viewer can jump
    back to it.

    Channels:
        errors: generation failures (playback keeps looping the current set)
    """

    def __init__(self, orchestrator: ClipOrchestrator, scheduler: ContinuityScheduler):
        self.orchestrator = orchestrator
        self.scheduler = scheduler
        self.history: List[ClipSet] = []
        self.errors: Channel[LoopReelError] = Channel("session_errors")

    async def step(
        self,
        frames: Sequence[str],
        prompt: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> Optional[ClipSet]:
        """
        Generate the next clip set and hand it to the scheduler.

        Args:
            frames: Four narrative frames
            prompt: Optional motion/style instruction
            duration: Clip length in seconds

        Returns:
            The new clip set, or None if generation failed
        """
        try:
            clip_set = await self.orchestrator.generate_clips(frames, duration_seconds=duration, prompt=prompt)
        except LoopReelError as e:
            logger.error(f"Session step failed, current clips keep looping: {e.message}")
            self.errors.publish(e)
            return None

        self.history.append(clip_set)

        if self.scheduler.phase == SchedulerPhase.IDLE:
            await self.scheduler.boot(clip_set)
        else:
            self.scheduler.splice(clip_set)
        return clip_set

    def jump_to(self, target: Union[int, ClipSet, Sequence[str]]) -> bool:
        """
        Return to an earlier clip set right away.

        Args:
            target: Index into ``history`` (negative counts from the end)
                or the clip set itself

        Returns:
            True if the jump was queued
        """
        if isinstance(target, int):
            try:
                clip_set = self.history[target]
            except IndexError:
                logger.warning(f"No clip set at history index {target} ({len(self.history)} recorded)")
                return False
        else:
            try:
                clip_set = ClipSet.of(target)
            except ValidationError as e:
                logger.warning(f"Rejected jump: {e.message}")
                return False

        logger.info(f"Jumping to clip set: {clip_set.short_names()}")
        return self.scheduler.jump_to(clip_set)

    async def close(self) -> None:
        """Stop playback and close the backend connection."""
        await self.scheduler.stop()
        await self.orchestrator.close()
        self.errors.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
