"""Chat endpoint speaking the Matrix client-server API."""

from __future__ import annotations

import html
import itertools
import logging
from typing import Any
from urllib.parse import quote, urljoin

import requests

from topicrelay import __version__
from topicrelay.chat.contracts import (
    GENERIC_ERROR_CODE,
    ChatReply,
    ChatTransportError,
)
from topicrelay.messages import MessageKind, RelayMessage

logger = logging.getLogger(__name__)

_API_PREFIX = "_matrix/client/r0/"
_HTML_FORMAT = "org.matrix.custom.html"
_MSGTYPES = {
    MessageKind.PLAIN: "m.text",
    MessageKind.NOTICE: "m.notice",
}


class MatrixChatEndpoint:
    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        timeout_sec: float | None = None,
    ) -> None:
        if not base_url.endswith("/"):
            raise ValueError("Matrix server URL must end with /")
        self._base_url = base_url
        self._timeout_sec = timeout_sec
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": f"topicrelay/{__version__}"})
        self._transaction_ids = itertools.count(1)

    @property
    def base_url(self) -> str:
        return self._base_url

    def login(self, user: str, password: str) -> str:
        reply = self._request(
            "POST",
            "login",
            json={"type": "m.login.password", "user": user, "password": password},
        )
        token = reply.require("access_token")
        logger.debug("Retrieved access token %s", token)
        logger.info("Logged in to %s user=%s", self._base_url, user)
        return token

    def resolve_channel(self, access_token: str, channel: str) -> str:
        reply = self._request(
            "GET",
            f"directory/room/{quote(channel, safe='')}",
            access_token=access_token,
        )
        room_id = reply.require("room_id")
        logger.info("Resolved channel=%s room_id=%s", channel, room_id)
        return room_id

    def join_room(self, access_token: str, room_id: str) -> None:
        self._request(
            "POST",
            f"rooms/{quote(room_id, safe='')}/join",
            access_token=access_token,
            json={},
            expect_body=False,
        ).unwrap()
        logger.info("Joined room_id=%s", room_id)

    def post_message(self, access_token: str, room_id: str, message: RelayMessage) -> None:
        txn_id = next(self._transaction_ids)
        self._request(
            "PUT",
            f"rooms/{quote(room_id, safe='')}/send/m.room.message/{txn_id}",
            access_token=access_token,
            json=build_message_content(message),
            expect_body=False,
        ).unwrap()

    def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: str | None = None,
        json: dict[str, Any] | None = None,
        expect_body: bool = True,
    ) -> ChatReply:
        url = urljoin(self._base_url, _API_PREFIX + path)
        headers: dict[str, str] = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            response = self._session.request(
                method,
                url,
                json=json,
                headers=headers,
                timeout=self._timeout_sec,
            )
        except requests.RequestException as exc:
            raise ChatTransportError(f"{method} {url} failed: {exc}") from exc
        logger.debug("%s %s status=%s", method, url, response.status_code)
        return parse_reply(response, expect_body=expect_body)


def build_message_content(message: RelayMessage) -> dict[str, str]:
    return {
        "msgtype": _MSGTYPES[message.kind],
        "body": message.text,
        "format": _HTML_FORMAT,
        "formatted_body": html.escape(message.formatted_text, quote=False),
    }


def parse_reply(response: requests.Response, *, expect_body: bool = True) -> ChatReply:
    status = response.status_code
    content_type = response.headers.get("content-type", "application/octet-stream")
    is_json = content_type.split(";", 1)[0].strip().lower() == "application/json"
    body: Any = None
    if is_json:
        try:
            body = response.json()
        except ValueError:
            body = None
    logger.debug("received status=%s body=%s", status, response.text[:500])

    if status >= 400:
        if isinstance(body, dict) and body.get("errcode"):
            return ChatReply.rejected(status, str(body["errcode"]), str(body.get("error") or ""))
        return ChatReply.rejected(status, GENERIC_ERROR_CODE, f"server responded {status}")

    if not expect_body:
        return ChatReply.success(status, body if isinstance(body, dict) else {})
    if not is_json:
        raise ChatTransportError(f"server responded with an unexpected content type {content_type!r}")
    if not isinstance(body, dict):
        raise ChatTransportError("server responded with a malformed JSON body")
    return ChatReply.success(status, body)
