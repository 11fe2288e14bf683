"""
Simulated Playback
==================

A headless ``PlaybackBuffer`` whose clock only moves when told to.

Used by the test suite and by the CLI's ``--simulate`` mode to run the
continuity scheduler without a renderer.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from ..core.exceptions import PlaybackFault
from .surface import PlaybackBuffer

logger = logging.getLogger(__name__)


class SimulatedBuffer(PlaybackBuffer):
    """
    In-memory media buffer.

    Args:
        name: Buffer label used in logs and faults
        clip_duration: Length reported for every clip
        durations: Per-URL lengths overriding ``clip_duration``
        failing_urls: URLs whose load raises ``PlaybackFault``
        stalled_urls: URLs that never become ready
        load_delay: Seconds before a loaded clip reports ready
    """

    def __init__(
        self,
        name: str,
        clip_duration: float = 5.0,
        durations: Optional[Dict[str, float]] = None,
        failing_urls: Iterable[str] = (),
        stalled_urls: Iterable[str] = (),
        load_delay: float = 0.0,
    ):
        super().__init__(name)
        self.clip_duration = clip_duration
        self.durations = dict(durations or {})
        self.failing_urls = set(failing_urls)
        self.stalled_urls = set(stalled_urls)
        self.load_delay = load_delay

        self.visible = False
        self.loads: List[str] = []
        self.play_calls = 0

        self._source: Optional[str] = None
        self._position = 0.0
        self._paused = True
        self._ready = asyncio.Event()
        self._ready_handle: Optional[asyncio.TimerHandle] = None

    # -------------------------------------------------------------------------
    # PlaybackBuffer
    # -------------------------------------------------------------------------

    async def load(self, url: str) -> None:
        if url == self._source:
            return
        if url in self.failing_urls:
            raise PlaybackFault(f"Failed to load clip on buffer {self.name}", buffer=self.name, url=url)

        self._cancel_pending_ready()
        self._source = url
        self._position = 0.0
        self._paused = True
        self._ready.clear()
        self.loads.append(url)

        if url in self.stalled_urls:
            return
        if self.load_delay > 0:
            loop = asyncio.get_running_loop()
            self._ready_handle = loop.call_later(self.load_delay, self._ready.set)
        else:
            self._ready.set()

    async def wait_until_ready(self) -> None:
        await self._ready.wait()

    async def play(self) -> None:
        if self._source is None:
            raise PlaybackFault(f"Nothing loaded on buffer {self.name}", buffer=self.name)
        self.play_calls += 1
        self._paused = False

    def pause(self) -> None:
        self._paused = True

    def seek(self, seconds: float) -> None:
        limit = self.duration or 0.0
        self._position = max(0.0, min(seconds, limit))

    def set_visible(self, visible: bool) -> None:
        self.visible = visible

    @property
    def source(self) -> Optional[str]:
        return self._source

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def current_time(self) -> float:
        return self._position

    @property
    def duration(self) -> Optional[float]:
        if self._source is None:
            return None
        return self.durations.get(self._source, self.clip_duration)

    @property
    def ended(self) -> bool:
        duration = self.duration
        return duration is not None and self._position >= duration

    @property
    def paused(self) -> bool:
        return self._paused

    # -------------------------------------------------------------------------
    # Simulation
    # -------------------------------------------------------------------------

    def advance(self, seconds: float) -> None:
        """Move the playhead forward if playing; playback stops at the end."""
        if self._paused or not self.is_ready or self._source is None:
            return
        self._position = min(self._position + seconds, self.duration)
        if self.ended:
            self._paused = True

    def mark_ready(self) -> None:
        """Force the current clip ready (ends a stall)."""
        self._cancel_pending_ready()
        self._ready.set()

    def _cancel_pending_ready(self) -> None:
        if self._ready_handle is not None:
            self._ready_handle.cancel()
            self._ready_handle = None


async def simulate(scheduler, buffers: Iterable[SimulatedBuffer], seconds: float, speed: float = 1.0) -> None:
    """
    Drive a scheduler over simulated buffers in real time.

    Each frame advances every buffer by the frame interval (scaled by
    ``speed``) and ticks the scheduler.

    Args:
        scheduler: A booted ContinuityScheduler
        buffers: The scheduler's simulated buffers
        seconds: Simulated playback time to run for
        speed: Simulated seconds per wall-clock second
    """
    buffers = list(buffers)
    step = scheduler.config.frame_interval
    elapsed = 0.0

    logger.info(f"Simulating {seconds:.1f}s of playback at {speed:g}x")

    while elapsed < seconds:
        for buffer in buffers:
            buffer.advance(step * speed)
        scheduler.tick()
        elapsed += step * speed
        await asyncio.sleep(step)
