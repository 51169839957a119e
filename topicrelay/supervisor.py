from __future__ import annotations

import logging
import threading
import time

from topicrelay.broker.contracts import BrokerSourceFactory
from topicrelay.broker.redis_source import open_redis_source
from topicrelay.chat.contracts import ChatEndpoint
from topicrelay.chat.matrix import MatrixChatEndpoint
from topicrelay.config import RelayConfig
from topicrelay.dispatcher import Dispatcher
from topicrelay.outbox import Outbox
from topicrelay.source_task import SourceTask

logger = logging.getLogger(__name__)


class RelaySupervisor:
    """Owns the outbox and runs one thread per source plus the dispatcher."""

    def __init__(
        self,
        config: RelayConfig,
        *,
        open_source: BrokerSourceFactory = open_redis_source,
        endpoint: ChatEndpoint | None = None,
        outbox: Outbox | None = None,
    ) -> None:
        self._config = config
        self._open_source = open_source
        self._endpoint = endpoint or MatrixChatEndpoint(
            config.chat_base_url,
            timeout_sec=config.timings.chat_request_timeout_sec,
        )
        self._outbox = outbox or Outbox()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self.source_tasks: list[SourceTask] = []
        self.dispatcher: Dispatcher | None = None

    @property
    def outbox(self) -> Outbox:
        return self._outbox

    @property
    def is_running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self, timeout: float | None = 10.0) -> None:
        """Start the relay threads.

        A no-op while running. After a `stop()` whose threads have not exited
        yet, waits up to `timeout` for them and raises RuntimeError if they
        are still alive.
        """
        with self._lock:
            if self.is_running:
                if not self._stop.is_set():
                    return
                logger.info("Waiting for previous relay run to exit")
                if not self._join(list(self._threads), timeout):
                    raise RuntimeError("previous relay run is still shutting down")
            self._stop = threading.Event()
            self.source_tasks = [
                SourceTask(
                    queue,
                    outbox=self._outbox,
                    stop_event=self._stop,
                    open_source=self._open_source,
                    timings=self._config.timings,
                )
                for queue in self._config.queues
            ]
            self.dispatcher = Dispatcher(
                self._config,
                endpoint=self._endpoint,
                outbox=self._outbox,
                stop_event=self._stop,
            )
            self._threads = [
                threading.Thread(
                    target=task.run,
                    name=f"topicrelay.source.{task.name}",
                    daemon=True,
                )
                for task in self.source_tasks
            ]
            self._threads.append(
                threading.Thread(
                    target=self.dispatcher.run,
                    name="topicrelay.dispatcher",
                    daemon=True,
                )
            )
            for thread in self._threads:
                thread.start()
            logger.info(
                "RelaySupervisor started queues=%s channel=%s",
                ",".join(queue.name for queue in self._config.queues),
                self._config.chat_channel,
            )

    def stop(self, timeout: float | None = 10.0) -> None:
        """Signal every task to stop and wait for them to exit cooperatively."""
        with self._lock:
            first_request = not self._stop.is_set()
            self._stop.set()
            threads = list(self._threads)
        if first_request:
            logger.info("RelaySupervisor stopping")
        self._join(threads, timeout)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every task has exited. Returns False on timeout."""
        return self._join(list(self._threads), timeout)

    @staticmethod
    def _join(threads: list[threading.Thread], timeout: float | None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(timeout=remaining)
            if thread.is_alive():
                logger.warning("Thread did not stop in time name=%s", thread.name)
                return False
        return True
