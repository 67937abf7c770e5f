# FreeHand: Core - Typed Event Channels
#
# Each component owns the channels it emits on. Observers subscribe and
# get back a Subscription they must dispose with their own lifecycle.
# Events are display-only: nothing in discovery, the channel, or the
# automation loop reads them back.

import logging
import threading
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by EventChannel.subscribe()."""

    def __init__(self, channel: "EventChannel", callback: Callable):
        self._channel = channel
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def dispose(self) -> None:
        if self._active:
            self._channel._remove(self._callback)
            self._active = False


class EventChannel(Generic[T]):
    """A named, typed fan-out channel.

    Observer exceptions are logged and never reach the emitter, so a
    broken status display cannot stall the poll loop.
    """

    def __init__(self, name: str):
        self.name = name
        self._observers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        with self._lock:
            self._observers.append(callback)
        return Subscription(self, callback)

    def _remove(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            try:
                self._observers.remove(callback)
            except ValueError:
                pass

    def emit(self, value: T) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(value)
            except Exception:
                logger.exception("Observer for %s failed", self.name)

    def __len__(self) -> int:
        return len(self._observers)
