"""
Workflow Orchestration
======================

High-level orchestration of clip generation and playback.

Components:
- ClipOrchestrator: Generates a three-clip set from four frames
- PlaybackSession: Splices each generated set into a running scheduler
"""

from .orchestrator import ClipOrchestrator
from .session import PlaybackSession

__all__ = [
    "ClipOrchestrator",
    "PlaybackSession",
]
