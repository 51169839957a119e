from topicrelay.chat.contracts import (
    ChatEndpoint,
    ChatEndpointError,
    ChatError,
    ChatFailure,
    ChatReply,
    ChatTransportError,
)
from topicrelay.chat.matrix import MatrixChatEndpoint

__all__ = [
    "ChatEndpoint",
    "ChatEndpointError",
    "ChatError",
    "ChatFailure",
    "ChatReply",
    "ChatTransportError",
    "MatrixChatEndpoint",
]
