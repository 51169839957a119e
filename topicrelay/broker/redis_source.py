"""Broker source backed by Redis pub/sub channels."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import redis

from topicrelay.broker.contracts import BrokerIOError, BrokerPayload, ConnectError
from topicrelay.config import QueueConfig, QueueKind

logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT_SEC = 10.0
_HEALTH_CHECK_INTERVAL_SEC = 30


class RedisTopicSource:
    """A single subscription to one topic on one Redis server."""

    def __init__(self, config: QueueConfig, client: Any, pubsub: Any) -> None:
        self._config = config
        self._client = client
        self._pubsub = pubsub
        self._closed = False

    @classmethod
    def open(cls, config: QueueConfig) -> RedisTopicSource:
        if config.queue_kind is not QueueKind.TOPIC:
            raise ConnectError(f"unsupported queue kind {config.queue_kind.value!r}")
        client = redis.Redis(
            host=config.broker_host,
            port=config.broker_port,
            username=config.broker_user,
            password=config.broker_password,
            ssl=config.broker_tls,
            socket_connect_timeout=_CONNECT_TIMEOUT_SEC,
            socket_keepalive=True,
            health_check_interval=_HEALTH_CHECK_INTERVAL_SEC,
        )
        pubsub = None
        try:
            client.ping()
            pubsub = client.pubsub(ignore_subscribe_messages=True)
            pubsub.subscribe(config.queue_address)
        except (redis.RedisError, OSError) as exc:
            _close_quietly(pubsub, client)
            raise ConnectError(
                f"cannot subscribe to {config.queue_address} on "
                f"{config.broker_host}:{config.broker_port}: {exc}"
            ) from exc
        logger.info(
            "Subscribed topic=%s broker=%s:%s",
            config.queue_address,
            config.broker_host,
            config.broker_port,
        )
        return cls(config, client, pubsub)

    @property
    def is_open(self) -> bool:
        return not self._closed

    def receive(self, timeout_sec: float) -> BrokerPayload | None:
        if self._closed:
            raise BrokerIOError("source is closed")
        try:
            message = self._pubsub.get_message(
                ignore_subscribe_messages=True,
                timeout=timeout_sec,
            )
        except (redis.RedisError, OSError) as exc:
            raise BrokerIOError(f"receive failed on {self._config.queue_address}: {exc}") from exc
        if not message or message.get("type") != "message":
            return None
        return BrokerPayload(
            queue=self._config.queue_address,
            text=_decode(message.get("data")),
            received_at=datetime.now(timezone.utc),
        )

    def acknowledge(self, payload: BrokerPayload) -> None:
        # Pub/sub delivery is fire-and-forget; there is nothing to acknowledge.
        _ = payload

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        first_error: Exception | None = None
        for resource in (self._pubsub, self._client):
            try:
                resource.close()
            except (redis.RedisError, OSError) as exc:
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise BrokerIOError(
                f"close failed on {self._config.queue_address}: {first_error}"
            ) from first_error


def open_redis_source(config: QueueConfig) -> RedisTopicSource:
    return RedisTopicSource.open(config)


def _decode(data: Any) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return "" if data is None else str(data)


def _close_quietly(pubsub: Any, client: Any) -> None:
    for resource in (pubsub, client):
        if resource is None:
            continue
        try:
            resource.close()
        except (redis.RedisError, OSError) as exc:
            logger.debug("Ignoring close failure after connect error: %s", exc)
