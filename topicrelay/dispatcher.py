"""Single consumer of the outbox and sole writer to the chat room.

A post failure drops the session and the message being posted; the next
action is always a fresh login. Delivery is therefore at most once from the
outbox.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from topicrelay.chat.contracts import ChatEndpoint
from topicrelay.config import RelayConfig
from topicrelay.messages import RelayMessage
from topicrelay.outbox import Outbox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatSession:
    access_token: str
    room_id: str


class Dispatcher:
    def __init__(
        self,
        config: RelayConfig,
        *,
        endpoint: ChatEndpoint,
        outbox: Outbox,
        stop_event: threading.Event,
    ) -> None:
        self._config = config
        self._endpoint = endpoint
        self._outbox = outbox
        self._stop = stop_event
        self._timings = config.timings
        self.session: ChatSession | None = None

    def run(self) -> None:
        logger.debug("Dispatcher starting channel=%s", self._config.chat_channel)
        while not self._stop.is_set():
            try:
                self.session = self.bootstrap()
                self._drain(self.session)
            except Exception as exc:
                self.session = None
                logger.error("Dispatcher error: %s", exc, exc_info=exc)
                self._pause(self._timings.bootstrap_backoff_sec)
        self.session = None
        logger.debug("Dispatcher stopped")

    def bootstrap(self) -> ChatSession:
        token = self._endpoint.login(self._config.chat_user, self._config.chat_password)
        room_id = self._endpoint.resolve_channel(token, self._config.chat_channel)
        self._endpoint.join_room(token, room_id)
        return ChatSession(access_token=token, room_id=room_id)

    def send_once(self, message: RelayMessage) -> ChatSession:
        """Bootstrap a fresh session and post a single message. Errors propagate."""
        session = self.bootstrap()
        self._endpoint.post_message(session.access_token, session.room_id, message)
        return session

    def _drain(self, session: ChatSession) -> None:
        while not self._stop.is_set():
            while not self._stop.is_set():
                message = self._outbox.pop_nowait()
                if message is None:
                    break
                self._endpoint.post_message(session.access_token, session.room_id, message)
            self._pause(self._timings.idle_poll_sec)

    def _pause(self, seconds: float) -> None:
        self._stop.wait(seconds)
