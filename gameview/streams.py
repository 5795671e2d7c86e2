"""Closable bounded channels connecting the view to its transports.

Three channels surround a game view:

- input: ints carrying the packed button bitfield, read by the listener thread
- video: one frame per step, written with a blocking ``put`` (backpressure)
- audio: mono float samples, written with ``offer`` which drops the oldest
  sample rather than block the machine
"""

from __future__ import annotations

import queue
import threading
import time
from typing import Generic, Iterator, List, Optional, TypeVar

from gameview.errors import ChannelClosed

T = TypeVar("T")

_POLL_S = 0.05


class Channel(Generic[T]):
    """``queue.Queue`` with an explicit close signal.

    Consumers see every item put before ``close()``; after the queue drains
    they get ``ChannelClosed``. Producers blocked on a full channel are
    released by ``close()`` with ``ChannelClosed``.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: "queue.Queue[T]" = queue.Queue(maxsize=max(0, int(maxsize)))
        self._closed = threading.Event()
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    @property
    def dropped(self) -> int:
        """Items discarded by ``offer`` to make room."""
        with self._dropped_lock:
            return self._dropped

    def qsize(self) -> int:
        return self._queue.qsize()

    # ---------------------------- producer side
    def put(self, item: T, timeout: Optional[float] = None) -> None:
        """Block until ``item`` is queued; raise ``queue.Full`` after ``timeout``."""
        deadline = None if timeout is None else time.monotonic() + float(timeout)
        while True:
            if self._closed.is_set():
                raise ChannelClosed("put on closed channel")
            wait = _POLL_S
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise queue.Full
                wait = min(wait, remaining)
            try:
                self._queue.put(item, timeout=wait)
                return
            except queue.Full:
                continue

    def offer(self, item: T) -> bool:
        """Queue ``item`` without blocking, evicting the oldest item if full.

        Returns ``False`` only when the channel is closed or the slot could not
        be reclaimed.
        """
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(item)
            return True
        except queue.Full:
            pass
        try:
            self._queue.get_nowait()
            with self._dropped_lock:
                self._dropped += 1
        except queue.Empty:
            pass
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1
            return False
        return True

    def close(self) -> None:
        self._closed.set()

    # ---------------------------- consumer side
    def get(self, timeout: Optional[float] = None) -> T:
        """Return the next item; raise ``ChannelClosed`` once closed and drained."""
        deadline = None if timeout is None else time.monotonic() + float(timeout)
        while True:
            wait = _POLL_S
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise queue.Empty
                wait = min(wait, remaining)
            try:
                return self._queue.get(timeout=wait)
            except queue.Empty:
                if self._closed.is_set() and self._queue.empty():
                    raise ChannelClosed("channel closed") from None

    def get_nowait(self) -> T:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            if self._closed.is_set():
                raise ChannelClosed("channel closed") from None
            raise

    def drain(self) -> List[T]:
        """Return everything currently queued without blocking."""
        items: List[T] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return


__all__ = ["Channel"]
