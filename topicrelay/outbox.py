"""Shared outbound buffer.

Producers (source tasks) push, the dispatcher pops. The buffer is unbounded:
a slow chat server never stalls a broker consumer, at the cost of unbounded
memory growth under sustained broker overload.
"""

from __future__ import annotations

from queue import Empty, SimpleQueue

from topicrelay.messages import RelayMessage


class Outbox:
    """Unbounded FIFO safe for many producers and one consumer."""

    def __init__(self) -> None:
        self._q: SimpleQueue[RelayMessage] = SimpleQueue()

    def push(self, message: RelayMessage) -> None:
        """Enqueue a message. Never blocks."""
        self._q.put(message)

    def pop_nowait(self) -> RelayMessage | None:
        """Return the oldest message, or None when empty."""
        try:
            return self._q.get_nowait()
        except Empty:
            return None

    def pop(self, timeout: float | None = None) -> RelayMessage | None:
        """Return the oldest message, blocking up to `timeout` seconds.

        If `timeout` is None, blocks indefinitely. If the timeout expires,
        returns None.
        """
        try:
            return self._q.get(timeout=timeout)
        except Empty:
            return None

    def empty(self) -> bool:
        return self._q.empty()

    @property
    def size(self) -> int:
        return self._q.qsize()
