from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from topicrelay.config import QueueConfig


class BrokerError(RuntimeError):
    pass


class ConnectError(BrokerError):
    """The broker is unreachable or rejected the subscription."""


class BrokerIOError(BrokerError):
    """An open subscription failed mid-stream."""


@dataclass(frozen=True)
class BrokerPayload:
    queue: str
    text: str
    received_at: datetime


class BrokerSource(Protocol):
    @property
    def is_open(self) -> bool:
        ...

    def receive(self, timeout_sec: float) -> BrokerPayload | None:
        ...

    def acknowledge(self, payload: BrokerPayload) -> None:
        ...

    def close(self) -> None:
        ...


BrokerSourceFactory = Callable[[QueueConfig], BrokerSource]
