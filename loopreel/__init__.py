"""
LoopReel
========

An "infinite" interactive video stream: short generated clips played back
seamlessly while the next clips are generated in the background.

Features:
- Gapless looping playback over two alternating buffers
- Splicing of freshly generated clip sets, and jumps back to earlier ones
- Concurrent three-clip generation from four narrative frames
- Seedance and Kling image-to-video backends with retry and bounded polling

Quick Start:
    from loopreel import ClipOrchestrator, ContinuityScheduler, PlaybackSession

    orchestrator = ClipOrchestrator(backend="kling")
    scheduler = ContinuityScheduler(buffer_a, buffer_b)

    async with PlaybackSession(orchestrator, scheduler) as session:
        await session.step(frames, prompt="the hero opens the door")
        scheduler.start()
        await session.step(next_frames)
"""

__version__ = "0.1.0"
__author__ = "LoopReel"

# =============================================================================
# Generation
# =============================================================================

from .api import (
    Backend,
    BaseTaskClient,
    ClipRequest,
    GenerationResult,
    GenerationStatus,
    get_task_client,
    list_backends,
)
from .workflow import ClipOrchestrator, PlaybackSession

# =============================================================================
# Playback
# =============================================================================

from .playback import (
    BufferId,
    ClipSet,
    ContinuityScheduler,
    PlaybackBuffer,
    SimulatedBuffer,
)

# =============================================================================
# Core
# =============================================================================

from .core.config import Config, get_config
from .core.events import Channel
from .core.exceptions import (
    LoopReelError,
    ConfigurationError,
    ProviderError,
    RateLimitError,
    GenerationError,
    ValidationError,
    TimeoutError,
    PlaybackFault,
)

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",

    # Generation
    "Backend",
    "BaseTaskClient",
    "ClipRequest",
    "GenerationResult",
    "GenerationStatus",
    "get_task_client",
    "list_backends",
    "ClipOrchestrator",
    "PlaybackSession",

    # Playback
    "BufferId",
    "ClipSet",
    "ContinuityScheduler",
    "PlaybackBuffer",
    "SimulatedBuffer",

    # Core
    "Config",
    "get_config",
    "Channel",

    # Exceptions
    "LoopReelError",
    "ConfigurationError",
    "ProviderError",
    "RateLimitError",
    "GenerationError",
    "ValidationError",
    "TimeoutError",
    "PlaybackFault",
]
