# gcqc/services/channel.py
"""
Multi-producer / multi-consumer channels for the worker threads.

A channel is created as a (Sender, Receiver) pair with ``bounded(capacity)`` or
``unbounded()``. Handles can be cloned, and each handle must be closed once its
owner is done with it. When the last Sender is closed, receivers drain what is
left and then see ``ChannelClosed``; iterating over a Receiver simply stops. When
the last Receiver is closed, any further ``send`` raises ``ChannelClosed``.
There are no sentinel values: handle closure is the only termination signal.
"""
import threading
from collections import deque
from typing import Any, Deque, Generic, Optional, Tuple, TypeVar

from .errors import ChannelClosed

T = TypeVar("T")


class _Channel:
    """Shared state behind a Sender/Receiver pair."""

    def __init__(self, capacity: Optional[int]):
        if capacity is not None and capacity < 1:
            raise ValueError(f"Channel capacity must be >= 1 (got {capacity})")
        self.capacity = capacity
        self.items: Deque[Any] = deque()
        self.lock = threading.Lock()
        self.not_empty = threading.Condition(self.lock)
        self.not_full = threading.Condition(self.lock)
        self.senders = 0
        self.receivers = 0

    def _is_full(self) -> bool:
        return self.capacity is not None and len(self.items) >= self.capacity


class _Handle:
    def __init__(self, chan: _Channel):
        self._chan = chan
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class Sender(_Handle, Generic[T]):
    """Sending half of a channel."""

    def __init__(self, chan: _Channel):
        super().__init__(chan)
        with chan.lock:
            chan.senders += 1

    def clone(self) -> "Sender[T]":
        if self._closed:
            raise ChannelClosed("Cannot clone a closed sender")
        return Sender(self._chan)

    def send(self, item: T) -> None:
        """Blocks while a bounded channel is full."""
        if self._closed:
            raise ChannelClosed("Send on a closed sender")
        chan = self._chan
        with chan.lock:
            while chan.receivers > 0 and chan._is_full():
                chan.not_full.wait()
            if chan.receivers == 0:
                raise ChannelClosed("All receivers have been dropped")
            chan.items.append(item)
            chan.not_empty.notify()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        chan = self._chan
        with chan.lock:
            chan.senders -= 1
            if chan.senders == 0:
                # Wake every receiver so they can observe closure
                chan.not_empty.notify_all()


class Receiver(_Handle, Generic[T]):
    """Receiving half of a channel."""

    def __init__(self, chan: _Channel):
        super().__init__(chan)
        with chan.lock:
            chan.receivers += 1

    def clone(self) -> "Receiver[T]":
        if self._closed:
            raise ChannelClosed("Cannot clone a closed receiver")
        return Receiver(self._chan)

    def recv(self) -> T:
        """
        Blocks until an item is available.

        Raises:
            ChannelClosed: if the channel is empty and every sender is closed.
        """
        if self._closed:
            raise ChannelClosed("Receive on a closed receiver")
        chan = self._chan
        with chan.lock:
            while not chan.items and chan.senders > 0:
                chan.not_empty.wait()
            if not chan.items:
                raise ChannelClosed("Channel is empty and all senders have been dropped")
            item = chan.items.popleft()
            chan.not_full.notify()
            return item

    def __iter__(self):
        while True:
            try:
                yield self.recv()
            except ChannelClosed:
                return

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        chan = self._chan
        with chan.lock:
            chan.receivers -= 1
            if chan.receivers == 0:
                # Items still queued can never be delivered
                chan.items.clear()
                chan.not_full.notify_all()


def bounded(capacity: int) -> Tuple[Sender, Receiver]:
    """Creates a channel holding at most ``capacity`` queued items."""
    chan = _Channel(capacity)
    return Sender(chan), Receiver(chan)


def unbounded() -> Tuple[Sender, Receiver]:
    """Creates a channel whose ``send`` never blocks."""
    chan = _Channel(None)
    return Sender(chan), Receiver(chan)
