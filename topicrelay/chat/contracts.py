from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from topicrelay.messages import RelayMessage

GENERIC_ERROR_CODE = "M_UNKNOWN"


class ChatEndpointError(RuntimeError):
    pass


class ChatError(ChatEndpointError):
    """The chat server rejected a request."""

    def __init__(self, errcode: str, error: str, *, status: int | None = None) -> None:
        self.errcode = errcode
        self.error = error
        self.status = status
        super().__init__(f"chat server said: {errcode} {error}")


class ChatTransportError(ChatEndpointError):
    """The chat server could not be reached or answered unintelligibly."""


@dataclass(frozen=True)
class ChatFailure:
    errcode: str
    error: str
    status: int


@dataclass(frozen=True)
class ChatReply:
    """Either a success body or a failure, never both."""

    status: int
    body: dict[str, Any] = field(default_factory=dict)
    failure: ChatFailure | None = None

    @classmethod
    def success(cls, status: int, body: dict[str, Any]) -> ChatReply:
        return cls(status=status, body=body)

    @classmethod
    def rejected(cls, status: int, errcode: str, error: str) -> ChatReply:
        return cls(status=status, failure=ChatFailure(errcode=errcode, error=error, status=status))

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> dict[str, Any]:
        if self.failure is not None:
            raise ChatError(self.failure.errcode, self.failure.error, status=self.failure.status)
        return self.body

    def require(self, key: str) -> str:
        value = self.unwrap().get(key)
        if not isinstance(value, str) or not value:
            raise ChatTransportError(f"chat server response missing {key!r}")
        return value


class ChatEndpoint(Protocol):
    def login(self, user: str, password: str) -> str:
        ...

    def resolve_channel(self, access_token: str, channel: str) -> str:
        ...

    def join_room(self, access_token: str, room_id: str) -> None:
        ...

    def post_message(self, access_token: str, room_id: str, message: RelayMessage) -> None:
        ...
