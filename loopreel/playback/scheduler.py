"""
Continuity Scheduler
====================

Seamless, looping playback of a three-clip set over two alternating buffers.

One buffer is visible and playing while the other preloads the next clip.
Near the end of the active clip the scheduler hands off: the idle buffer is
made ready, started, and only then made visible, so the viewer never sees a
gap. New clip sets are spliced in at the next swap point (latest request
wins); jumps apply on the next tick.

Usage:
    scheduler = ContinuityScheduler(buffer_a, buffer_b, config.playback)
    await scheduler.boot(clip_urls)
    scheduler.start()
    scheduler.splice(next_clip_urls)
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Sequence, Union

from ..core.config import PlaybackConfig
from ..core.events import Channel
from ..core.exceptions import PlaybackFault, ValidationError
from .models import UNKNOWN_CLIP, BufferId, ClipSet, PendingClipSet, PlaybackState
from .surface import PlaybackBuffer

logger = logging.getLogger(__name__)

ClipsLike = Union[ClipSet, Sequence[str]]


class SchedulerPhase(Enum):
    """Lifecycle of the scheduler."""

    IDLE = "idle"  # not booted
    BOOTING = "booting"
    PLAYING = "playing"
    SWAPPING = "swapping"
    SPLICING = "splicing"
    STOPPED = "stopped"


class ContinuityScheduler:
    """
    Dual-buffer playback scheduler.

    Exactly one swap or splice runs at a time; the swap-in-progress flag is
    raised before the swap task is created and lowered when it finishes,
    success or failure.

    Channels:
        now_playing: the clip set that just became active (boot or splice)
        faults: playback faults; playback continues after every fault
    """

    def __init__(
        self,
        buffer_a: Optional[PlaybackBuffer],
        buffer_b: Optional[PlaybackBuffer],
        config: Optional[PlaybackConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the scheduler.

        Args:
            buffer_a: First media buffer
            buffer_b: Second media buffer
            config: Playback timing (defaults if omitted)
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.config = config or PlaybackConfig()
        self._buffers: Dict[BufferId, Optional[PlaybackBuffer]] = {
            BufferId.A: buffer_a,
            BufferId.B: buffer_b,
        }
        self._clock = clock

        self.state: Optional[PlaybackState] = None
        self.phase = SchedulerPhase.IDLE
        self.swaps_completed = 0

        self._pending: Optional[PendingClipSet] = None
        self._swap_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None

        self.now_playing: Channel[ClipSet] = Channel("now_playing")
        self.faults: Channel[PlaybackFault] = Channel("playback_faults")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def mounted(self) -> bool:
        """Whether both buffers are attached."""
        return all(buffer is not None for buffer in self._buffers.values())

    @property
    def pending(self) -> Optional[ClipSet]:
        """The clip set waiting to be spliced in, if any."""
        return self._pending.clip_set if self._pending else None

    @property
    def swap_in_progress(self) -> bool:
        return bool(self.state and self.state.swap_in_progress)

    def buffer(self, buffer_id: BufferId) -> Optional[PlaybackBuffer]:
        return self._buffers[buffer_id]

    # =========================================================================
    # Public API
    # =========================================================================

    async def boot(self, clips: ClipsLike) -> None:
        """
        Start playback of an initial clip set.

        Clip 0 goes on buffer A (visible, playing), clip 1 is preloaded on
        buffer B. Load and play faults are reported, not raised.

        Raises:
            ValidationError: ``clips`` is not exactly three clips
        """
        clip_set = ClipSet.of(clips)

        if not self.mounted:
            logger.debug("Boot skipped: buffers are not mounted")
            return

        logger.info(f"Booting playback with {len(clip_set)} clips: {clip_set.short_names()}")
        self.phase = SchedulerPhase.BOOTING
        self.state = PlaybackState(clip_set=clip_set, last_swap_at=self._clock())
        state = self.state

        try:
            await self._load(BufferId.A, clip_set[0])
            state.buffer_contents[BufferId.A] = 0
        except PlaybackFault as fault:
            self._report(fault)
        try:
            await self._preload(BufferId.B, clip_set, 1)
        except PlaybackFault as fault:
            self._report(fault)

        self._buffers[BufferId.A].set_visible(True)
        self._buffers[BufferId.B].set_visible(False)
        self._buffers[BufferId.A].seek(0)
        await self._start(BufferId.A)

        if self.phase == SchedulerPhase.BOOTING:
            self.phase = SchedulerPhase.PLAYING
        self.now_playing.publish(clip_set)

    def splice(self, clips: ClipsLike) -> bool:
        """
        Queue a new clip set to replace the current one at the next swap
        point.

        An invalid clip set is rejected without touching the pending one.

        Returns:
            True if the clip set was queued
        """
        return self._request(clips, immediate=False)

    def jump_to(self, clips: ClipsLike) -> bool:
        """Queue a new clip set to replace the current one on the next tick."""
        return self._request(clips, immediate=True)

    def tick(self) -> Optional[asyncio.Task]:
        """
        Run one frame of the scheduling loop.

        Starts at most one swap or splice and returns its task.

        Returns:
            The started task, or None if nothing was due
        """
        state = self.state
        if state is None or not self.mounted:
            return None
        if self.phase in (SchedulerPhase.IDLE, SchedulerPhase.BOOTING, SchedulerPhase.STOPPED):
            return None
        if state.swap_in_progress:
            return None

        if self._pending is not None and self._pending.immediate:
            return self._begin(SchedulerPhase.SPLICING, self._splice_in(self._take_pending()))

        if not self._at_swap_point():
            return None

        if self._pending is not None:
            return self._begin(SchedulerPhase.SPLICING, self._splice_in(self._take_pending()))
        return self._begin(SchedulerPhase.SWAPPING, self._swap_to_next())

    async def run(self, on_frame: Optional[Callable[[float], None]] = None) -> None:
        """
        Tick once per frame until stopped.

        Args:
            on_frame: Called with the frame interval before every tick
        """
        interval = self.config.frame_interval
        logger.info(f"Playback loop started ({1 / interval:.0f} ticks/s)")
        while self.phase != SchedulerPhase.STOPPED:
            if on_frame is not None:
                on_frame(interval)
            self.tick()
            await asyncio.sleep(interval)
        logger.info("Playback loop finished")

    def start(self, on_frame: Optional[Callable[[float], None]] = None) -> asyncio.Task:
        """Run the playback loop in the background."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.get_running_loop().create_task(self.run(on_frame))
        return self._loop_task

    async def stop(self) -> None:
        """Stop the loop, let an in-flight swap finish, and close channels."""
        if self.phase == SchedulerPhase.STOPPED:
            return
        self.phase = SchedulerPhase.STOPPED

        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._loop_task = None

        if self._swap_task is not None and not self._swap_task.done():
            await self._swap_task

        self._pending = None
        self.state = None
        self.now_playing.close()
        self.faults.close()
        logger.info(f"Playback stopped after {self.swaps_completed} swap(s)")

    def unmount(self) -> None:
        """Detach both buffers; later ticks and requests are no-ops."""
        self._buffers = {BufferId.A: None, BufferId.B: None}
        self._pending = None
        logger.info("Playback buffers unmounted")

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _request(self, clips: ClipsLike, immediate: bool) -> bool:
        kind = "jump" if immediate else "splice"
        try:
            clip_set = ClipSet.of(clips)
        except ValidationError as e:
            logger.warning(f"Rejected {kind} request: {e.message}")
            return False

        if not self.mounted or self.phase == SchedulerPhase.STOPPED:
            logger.debug(f"Ignoring {kind} request: scheduler is not running")
            return False

        if self._pending is not None:
            logger.info(f"Replacing pending {self._pending.kind} with newer {kind}")
        elif self.swap_in_progress:
            logger.info(f"Swap in progress, {kind} queued for the next cycle")
        else:
            logger.info(f"Queued {kind}: {clip_set.short_names()}")

        self._pending = PendingClipSet(clip_set=clip_set, immediate=immediate, requested_at=self._clock())
        return True

    def _take_pending(self) -> PendingClipSet:
        pending, self._pending = self._pending, None
        return pending

    def _at_swap_point(self) -> bool:
        """Whether the active clip has reached its handoff point."""
        state = self.state
        active = self._buffers[state.active_buffer]
        if not active.is_ready:
            return False

        since_last = self._clock() - state.last_swap_at
        if active.current_time >= self.config.swap_at_seconds and since_last > self.config.min_swap_interval:
            return True

        # Short clips never reach the threshold
        duration = active.duration
        return active.ended and bool(duration) and duration > 0

    def _begin(self, phase: SchedulerPhase, work: Awaitable[None]) -> asyncio.Task:
        self.state.swap_in_progress = True
        self.state.last_swap_at = self._clock()
        self.phase = phase
        self._swap_task = asyncio.get_running_loop().create_task(work)
        return self._swap_task

    def _finish(self, state: PlaybackState) -> None:
        state.swap_in_progress = False
        if self.phase in (SchedulerPhase.SWAPPING, SchedulerPhase.SPLICING):
            self.phase = SchedulerPhase.PLAYING

    # -------------------------------------------------------------------------
    # Swap
    # -------------------------------------------------------------------------

    async def _swap_to_next(self) -> None:
        """Hand off to the next clip of the current set (wrapping to 0)."""
        state = self.state
        clip_set = state.clip_set
        try:
            current = state.active_clip_index
            following = clip_set.next_index(current)
            after = clip_set.next_index(following)
            outgoing = state.active_buffer
            incoming = outgoing.other

            logger.info(f"Swap: clip {current} -> {following} (buffer {outgoing.value} -> {incoming.value})")

            held = state.buffer_contents[incoming]
            if held != following:
                logger.warning(f"Buffer {incoming.value} holds clip {held}, expected {following}; reloading")
                state.buffer_contents[incoming] = UNKNOWN_CLIP
                await self._load(incoming, clip_set[following])
                state.buffer_contents[incoming] = following

            await self._handoff(outgoing, incoming)
            state.active_buffer = incoming
            state.active_clip_index = following
            self.swaps_completed += 1

            await self._preload(outgoing, clip_set, after)
        except PlaybackFault as fault:
            self._report(fault)
        finally:
            self._finish(state)

    # -------------------------------------------------------------------------
    # Splice
    # -------------------------------------------------------------------------

    async def _splice_in(self, pending: PendingClipSet) -> None:
        """Replace the current clip set with ``pending``, starting at clip 0."""
        state = self.state
        clip_set = pending.clip_set
        applied = False
        try:
            outgoing = state.active_buffer
            incoming = outgoing.other

            logger.info(
                f"Splicing in new clip set ({pending.kind}, buffer {outgoing.value} -> {incoming.value}): "
                f"{clip_set.short_names()}"
            )

            state.buffer_contents[incoming] = UNKNOWN_CLIP
            await self._load(incoming, clip_set[0])
            await self._handoff(outgoing, incoming)

            state.clip_set = clip_set
            state.active_buffer = incoming
            state.active_clip_index = 0
            state.buffer_contents[incoming] = 0
            applied = True
            self.swaps_completed += 1
            self.now_playing.publish(clip_set)

            await self._preload(outgoing, clip_set, 1)
        except PlaybackFault as fault:
            self._report(fault)
            if not applied:
                self._retry_later(pending)
        finally:
            self._finish(state)

    def _retry_later(self, pending: PendingClipSet) -> None:
        """Re-queue a failed splice unless a newer one is waiting."""
        if self._pending is not None:
            logger.info("Dropping failed splice: a newer clip set is pending")
            return
        pending.attempts += 1
        if pending.attempts >= self.config.max_splice_attempts:
            logger.error(f"Giving up on clip set after {pending.attempts} failed splice attempt(s)")
            return
        logger.warning(
            f"Splice failed, retrying at the next swap point "
            f"(attempt {pending.attempts + 1}/{self.config.max_splice_attempts})"
        )
        self._pending = pending

    # -------------------------------------------------------------------------
    # Buffer Operations
    # -------------------------------------------------------------------------

    async def _handoff(self, outgoing: BufferId, incoming: BufferId) -> None:
        """Start the incoming buffer, then reveal it and retire the outgoing one."""
        incoming_buffer = self._require(incoming)
        outgoing_buffer = self._require(outgoing)

        await self._await_ready(incoming)
        incoming_buffer.seek(0)
        await self._start(incoming)

        incoming_buffer.set_visible(True)
        outgoing_buffer.set_visible(False)
        outgoing_buffer.pause()
        outgoing_buffer.seek(0)

    async def _preload(self, buffer_id: BufferId, clip_set: ClipSet, index: int) -> None:
        state = self.state
        state.buffer_contents[buffer_id] = UNKNOWN_CLIP
        await self._load(buffer_id, clip_set[index])
        state.buffer_contents[buffer_id] = index
        logger.debug(f"Preloaded clip {index} on buffer {buffer_id.value}")

    async def _load(self, buffer_id: BufferId, url: str) -> bool:
        """Load a clip and wait (bounded) for it to become ready."""
        await self._require(buffer_id).load(url)
        return await self._await_ready(buffer_id)

    async def _await_ready(self, buffer_id: BufferId) -> bool:
        """
        Wait for a buffer to become ready, at most ``ready_timeout`` seconds.

        Returns:
            False if the wait timed out; playback proceeds anyway
        """
        buffer = self._require(buffer_id)
        if buffer.is_ready:
            return True
        try:
            await asyncio.wait_for(buffer.wait_until_ready(), timeout=self.config.ready_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"Buffer {buffer_id.value} not ready after {self.config.ready_timeout}s, continuing anyway"
            )
            return False

    async def _start(self, buffer_id: BufferId) -> None:
        """Play a buffer and give the first frame time to render."""
        try:
            await self._require(buffer_id).play()
        except PlaybackFault as fault:
            logger.warning(f"Play on buffer {buffer_id.value} failed: {fault.message}")
            self._report(fault)
        if self.config.settle_delay > 0:
            await asyncio.sleep(self.config.settle_delay)

    def _require(self, buffer_id: BufferId) -> PlaybackBuffer:
        buffer = self._buffers[buffer_id]
        if buffer is None:
            raise PlaybackFault(f"Buffer {buffer_id.value} is unmounted", buffer=buffer_id.value)
        return buffer

    def _report(self, fault: PlaybackFault) -> None:
        logger.error(f"Playback fault: {fault.message}")
        self.faults.publish(fault)
