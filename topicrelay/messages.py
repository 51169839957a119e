"""Messages flowing from source tasks to the dispatcher."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

ICON_CHECKMARK = "✅"
ICON_ERROR = "❌"


class MessageKind(str, Enum):
    PLAIN = "plain"
    NOTICE = "notice"


@dataclass(frozen=True)
class RelayMessage:
    """A unit of outbound chat text.

    `kind` only selects the chat sub-type (text vs. notice); both kinds are
    delivered the same way.
    """

    text: str
    kind: MessageKind = MessageKind.PLAIN
    source_label: str | None = None

    @classmethod
    def plain(cls, text: str) -> RelayMessage:
        return cls(text=text, kind=MessageKind.PLAIN)

    @classmethod
    def notice(cls, text: str, *, source_label: str | None = None) -> RelayMessage:
        return cls(text=text, kind=MessageKind.NOTICE, source_label=source_label)

    @property
    def formatted_text(self) -> str:
        if self.source_label:
            return f"{self.source_label} {self.text}"
        return self.text
