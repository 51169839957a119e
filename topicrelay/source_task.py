"""Per-queue consumer with its own reconnect state machine."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum

from topicrelay.broker.contracts import BrokerSource, BrokerSourceFactory
from topicrelay.config import QueueConfig, RelayTimings
from topicrelay.messages import ICON_CHECKMARK, ICON_ERROR, RelayMessage
from topicrelay.outbox import Outbox

logger = logging.getLogger(__name__)

CONNECTED_TEXT = "Established connection to message broker"
LOST_TEXT = "Lost connection to message broker"


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    STOPPED = "stopped"


@dataclass
class SourceState:
    """Connection phase plus whether this failure episode was already reported.

    `notified_error` guarantees at most one failure notice per episode; it is
    cleared only by a successful connect.
    """

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    notified_error: bool = False


class SourceTask:
    def __init__(
        self,
        config: QueueConfig,
        *,
        outbox: Outbox,
        stop_event: threading.Event,
        open_source: BrokerSourceFactory,
        timings: RelayTimings | None = None,
    ) -> None:
        self._config = config
        self._outbox = outbox
        self._stop = stop_event
        self._open_source = open_source
        self._timings = timings or RelayTimings()
        self._source: BrokerSource | None = None
        self.state = SourceState()

    @property
    def name(self) -> str:
        return self._config.name

    def run(self) -> None:
        logger.debug("SourceTask starting queue=%s", self._config.queue_address)
        while not self._stop.is_set():
            if self.state.phase is ConnectionPhase.CONNECTED:
                self._receive_once()
            else:
                self._connect()
        self._close_source()
        self.state.phase = ConnectionPhase.STOPPED
        logger.debug("SourceTask stopped queue=%s", self._config.queue_address)

    def _connect(self) -> None:
        logger.debug("(Re)opening broker connection queue=%s", self._config.queue_address)
        try:
            self._source = self._open_source(self._config)
        except Exception as exc:
            self._on_failure(exc)
            return
        self.state.phase = ConnectionPhase.CONNECTED
        self.state.notified_error = False
        self._push(RelayMessage.notice(CONNECTED_TEXT, source_label=ICON_CHECKMARK))

    def _receive_once(self) -> None:
        source = self._source
        if source is None:
            self.state.phase = ConnectionPhase.DISCONNECTED
            return
        try:
            payload = source.receive(self._timings.receive_timeout_sec)
            if payload is None:
                return
            logger.debug("Received queue=%s text=%s", payload.queue, payload.text)
            if not self._push(RelayMessage.plain(payload.text)):
                return
            source.acknowledge(payload)
        except Exception as exc:
            self._on_failure(exc)

    def _on_failure(self, exc: Exception) -> None:
        if not self.state.notified_error:
            self._push(
                RelayMessage.notice(
                    f"{LOST_TEXT}: {type(exc).__name__}: {exc}",
                    source_label=ICON_ERROR,
                )
            )
            self.state.notified_error = True
        logger.error("Broker i/o error queue=%s: %s", self._config.queue_address, exc, exc_info=exc)
        self._close_source()
        self.state.phase = ConnectionPhase.DISCONNECTED
        logger.debug(
            "Pausing %.1fs before retrying queue=%s", self._timings.source_retry_sec, self._config.queue_address
        )
        self._pause(self._timings.source_retry_sec)

    def _push(self, message: RelayMessage) -> bool:
        if self._stop.is_set():
            return False
        self._outbox.push(message)
        return True

    def _close_source(self) -> None:
        source = self._source
        self._source = None
        if source is None:
            return
        try:
            source.close()
        except Exception as exc:
            logger.error("Error closing broker connection queue=%s: %s", self._config.queue_address, exc)

    def _pause(self, seconds: float) -> None:
        self._stop.wait(seconds)
