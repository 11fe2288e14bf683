"""
Playback Surface
================

The capability set the continuity scheduler needs from a media buffer.

Real renderers (a browser ``<video>`` element bridged over a socket, a
native player) implement this interface; ``SimulatedBuffer`` implements it
headlessly.
"""

from abc import ABC, abstractmethod
from typing import Optional


class PlaybackBuffer(ABC):
    """
    One media buffer: load, play, pause, report time/ready/ended.

    Implementations raise ``PlaybackFault`` when a source cannot be loaded,
    decoded or started.
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def load(self, url: str) -> None:
        """
        Start loading a clip.

        Loading the source that is already loaded is a no-op.
        """
        pass

    @abstractmethod
    async def wait_until_ready(self) -> None:
        """Return once the loaded clip can play through."""
        pass

    @abstractmethod
    async def play(self) -> None:
        """Start playback from the current position."""
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def seek(self, seconds: float) -> None:
        pass

    @abstractmethod
    def set_visible(self, visible: bool) -> None:
        pass

    @property
    @abstractmethod
    def source(self) -> Optional[str]:
        """URL of the loaded clip."""
        pass

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the loaded clip can play through without stalling."""
        pass

    @property
    @abstractmethod
    def current_time(self) -> float:
        pass

    @property
    @abstractmethod
    def duration(self) -> Optional[float]:
        """Clip length in seconds, None until known."""
        pass

    @property
    @abstractmethod
    def ended(self) -> bool:
        pass

    @property
    @abstractmethod
    def paused(self) -> bool:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r}, source={self.source!r})"
