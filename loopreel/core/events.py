"""
Typed Channels
==============

Explicit publish/subscribe channels owned by a single component.

Each component creates the channels it emits on and closes them when it is
torn down, so subscribers never outlive their publisher.
"""

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Subscriber = Callable[[T], None]


class Channel(Generic[T]):
    """
    A named, typed signal with synchronous delivery.

    Usage:
        now_playing: Channel[ClipSet] = Channel("now_playing")
        unsubscribe = now_playing.subscribe(lambda clips: print(clips))
        now_playing.publish(clip_set)
        unsubscribe()
    """

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Subscriber] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback.

        Args:
            callback: Called with every published value

        Returns:
            A function that removes the subscription
        """
        if self._closed:
            raise RuntimeError(f"Channel '{self.name}' is closed")
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> int:
        """
        Deliver a value to every subscriber.

        A failing subscriber is logged and does not stop delivery to the rest.

        Returns:
            Number of subscribers the value was delivered to
        """
        if self._closed:
            logger.debug(f"Dropping publish on closed channel '{self.name}'")
            return 0

        delivered = 0
        for callback in list(self._subscribers):
            try:
                callback(value)
                delivered += 1
            except Exception:
                logger.exception(f"Subscriber of '{self.name}' raised")
        return delivered

    def close(self) -> None:
        """Drop all subscribers and refuse further publishes."""
        self._subscribers.clear()
        self._closed = True
