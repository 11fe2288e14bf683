"""
Playback Models
===============

Data structures shared by the continuity scheduler and the orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from ..core.exceptions import ValidationError


class BufferId(Enum):
    """One of the two alternating playback buffers."""

    A = "A"
    B = "B"

    @property
    def other(self) -> "BufferId":
        return BufferId.B if self is BufferId.A else BufferId.A


@dataclass(frozen=True)
class ClipSet:
    """
    Ordered transitions between four narrative frames.

    Always exactly three clips (frame0→1, 1→2, 2→3); a clip set is swapped in
    as a whole or not at all.
    """

    clips: Tuple[str, ...]

    CLIP_COUNT = 3

    def __post_init__(self):
        clips = tuple(self.clips)
        object.__setattr__(self, "clips", clips)
        if len(clips) != self.CLIP_COUNT:
            raise ValidationError(
                f"Expected exactly {self.CLIP_COUNT} clips, got {len(clips)}",
                field="clips",
                value=len(clips),
                constraint=f"length == {self.CLIP_COUNT}",
            )
        for clip in clips:
            if not isinstance(clip, str) or not clip.strip():
                raise ValidationError(
                    "Clip references must be non-empty strings",
                    field="clips",
                    value=clip,
                )

    @classmethod
    def of(cls, clips: Union["ClipSet", Sequence[str]]) -> "ClipSet":
        """Build a ClipSet from any sequence of URLs (or return it unchanged)."""
        if isinstance(clips, ClipSet):
            return clips
        if isinstance(clips, str):
            raise ValidationError("A clip set is a sequence of URLs, not a string", field="clips")
        return cls(tuple(clips))

    def next_index(self, index: int) -> int:
        """Index after ``index``, wrapping to 0 at the end (the set loops)."""
        return (index + 1) % len(self.clips)

    def short_names(self) -> List[str]:
        """Last path segment of every clip, for logs."""
        return [f"[{i}] {clip.rsplit('/', 1)[-1][:60]}" for i, clip in enumerate(self.clips)]

    def to_list(self) -> List[str]:
        return list(self.clips)

    def __getitem__(self, index: int) -> str:
        return self.clips[index]

    def __len__(self) -> int:
        return len(self.clips)

    def __iter__(self) -> Iterator[str]:
        return iter(self.clips)


# Marker for "no known clip loaded" in buffer_contents
UNKNOWN_CLIP = -1


@dataclass
class PlaybackState:
    """Mutable scheduler state; owned and mutated only by the scheduler."""

    clip_set: ClipSet
    active_buffer: BufferId = BufferId.A
    active_clip_index: int = 0
    buffer_contents: Dict[BufferId, int] = field(
        default_factory=lambda: {BufferId.A: UNKNOWN_CLIP, BufferId.B: UNKNOWN_CLIP}
    )
    swap_in_progress: bool = False
    last_swap_at: float = 0.0

    @property
    def idle_buffer(self) -> BufferId:
        return self.active_buffer.other


@dataclass
class PendingClipSet:
    """
    The single clip set waiting to be spliced in.

    A newer request replaces it rather than queueing behind it.
    """

    clip_set: ClipSet
    immediate: bool = False  # jumps apply on the next tick
    attempts: int = 0
    requested_at: Optional[float] = None

    @property
    def kind(self) -> str:
        return "jump" if self.immediate else "splice"
