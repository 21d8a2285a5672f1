"""StreamSession - the channels and accounting for one in-flight chat turn.

The producer thread and the UI loop only talk through the two Channels and
the CancelToken held here. Accounting fields are written by the consumer
alone.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from typing import Any, Callable

from .types import StreamChunk

logger = logging.getLogger(__name__)

SEND_POLL_SECONDS = 0.05


class ChannelClosed(Exception):
    """Receive on a drained closed channel, or send/close on a closed one."""


class Channel:
    """Bounded, closeable FIFO with a blocking send and a non-blocking receive.

    ``try_receive`` mirrors ``queue.Queue.get_nowait``: it raises
    ``queue.Empty`` when nothing is buffered yet and ``ChannelClosed`` once
    the channel is closed and drained.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("channel capacity must be at least 1")
        self._capacity = capacity
        self._items: deque[Any] = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def send(self, item: Any, cancel: CancelToken | None = None) -> bool:
        """Append ``item``, blocking while the channel is full.

        Returns False without sending if ``cancel`` fires while waiting.
        """
        with self._cond:
            while len(self._items) >= self._capacity:
                if self._closed:
                    raise ChannelClosed("send on closed channel")
                if cancel is not None and cancel.cancelled:
                    return False
                self._cond.wait(SEND_POLL_SECONDS)
            if self._closed:
                raise ChannelClosed("send on closed channel")
            self._items.append(item)
            self._cond.notify_all()
            return True

    def try_receive(self) -> Any:
        with self._cond:
            if self._items:
                item = self._items.popleft()
                self._cond.notify_all()
                return item
            if self._closed:
                raise ChannelClosed("channel closed")
            raise queue.Empty

    def close(self) -> None:
        with self._cond:
            if self._closed:
                raise ChannelClosed("close of closed channel")
            self._closed = True
            self._cond.notify_all()


class CancelToken:
    """Write-once cancellation trigger.

    Callbacks registered with ``add_callback`` run once, on the thread that
    calls ``cancel``; a callback added after cancellation runs immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Trigger the token. Returns False if it was already triggered."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            _run_callback(callback)
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        _run_callback(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


def _run_callback(callback: Callable[[], None]) -> None:
    try:
        callback()
    except Exception:
        logger.exception("cancel callback failed")


class StreamSession:
    """Handle for exactly one streaming exchange.

    Created by StreamProducer.start(); discarded once the turn terminates.
    Channels are never reused across sessions.
    """

    def __init__(self, model: str, capacity: int = 100) -> None:
        self.model = model
        self.data_channel = Channel(capacity)
        self.error_channel = Channel(1)
        self.cancel_signal = CancelToken()
        self.start_time = time.monotonic()
        self.token_count = 0
        self.chunk_count = 0
        self._done = threading.Event()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    @property
    def tokens_per_second(self) -> float:
        elapsed = self.elapsed
        if elapsed <= 0 or not self.token_count:
            return 0.0
        return self.token_count / elapsed

    @property
    def cancelled(self) -> bool:
        return self.cancel_signal.cancelled

    def cancel(self) -> bool:
        return self.cancel_signal.cancel()

    def record(self, chunk: StreamChunk) -> None:
        """Fold a received chunk into the accounting counters."""
        self.chunk_count += 1
        if chunk.tokens_emitted is not None and chunk.tokens_emitted > self.token_count:
            self.token_count = chunk.tokens_emitted

    def mark_done(self) -> None:
        """Called by the producer after both channels are closed."""
        self._done.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait_done(self, timeout: float | None = None) -> bool:
        """Block until the producer has released everything. For tests and shutdown."""
        return self._done.wait(timeout)
