from topicrelay.broker.contracts import (
    BrokerError,
    BrokerIOError,
    BrokerPayload,
    BrokerSource,
    BrokerSourceFactory,
    ConnectError,
)
from topicrelay.broker.redis_source import RedisTopicSource, open_redis_source

__all__ = [
    "BrokerError",
    "BrokerIOError",
    "BrokerPayload",
    "BrokerSource",
    "BrokerSourceFactory",
    "ConnectError",
    "RedisTopicSource",
    "open_redis_source",
]
