"""
Playback
========

Gapless, looping playback of generated clip sets on two alternating
buffers.
"""

from .models import BufferId, ClipSet, PendingClipSet, PlaybackState
from .scheduler import ContinuityScheduler, SchedulerPhase
from .simulated import SimulatedBuffer, simulate
from .surface import PlaybackBuffer

__all__ = [
    "BufferId",
    "ClipSet",
    "PendingClipSet",
    "PlaybackState",
    "ContinuityScheduler",
    "SchedulerPhase",
    "SimulatedBuffer",
    "simulate",
    "PlaybackBuffer",
]
