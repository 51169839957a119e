from __future__ import annotations

import json as jsonlib
from typing import Any

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from topicrelay import __version__
from topicrelay.chat.contracts import ChatError, ChatTransportError
from topicrelay.chat.matrix import MatrixChatEndpoint, build_message_content
from topicrelay.messages import ICON_CHECKMARK, RelayMessage

BASE_URL = "https://matrix.example.com/"


class FakeResponse:
    def __init__(self, status_code: int, body: Any = None, *, content_type: str = "application/json") -> None:
        self.status_code = status_code
        self.headers = CaseInsensitiveDict({"Content-Type": content_type})
        if isinstance(body, (dict, list)):
            self.text = jsonlib.dumps(body)
        else:
            self.text = body or ""

    def json(self) -> Any:
        return jsonlib.loads(self.text)


class FakeSession:
    def __init__(self, responses: list) -> None:
        self.headers: dict[str, str] = {}
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _endpoint(session: FakeSession, base_url: str = BASE_URL) -> MatrixChatEndpoint:
    return MatrixChatEndpoint(base_url, session=session)  # type: ignore[arg-type]


def test_login_posts_password_credentials() -> None:
    session = FakeSession([FakeResponse(200, {"user_id": "@relay:example.com", "access_token": "abc"})])

    token = _endpoint(session).login("relay", "pw")

    assert token == "abc"
    sent = session.requests[0]
    assert sent["method"] == "POST"
    assert sent["url"] == "https://matrix.example.com/_matrix/client/r0/login"
    assert sent["json"] == {"type": "m.login.password", "user": "relay", "password": "pw"}
    assert "Authorization" not in sent["headers"]
    assert session.headers["User-Agent"] == f"topicrelay/{__version__}"


def test_paths_resolve_relative_to_base_url_prefix() -> None:
    session = FakeSession([FakeResponse(200, {"access_token": "abc"})])

    _endpoint(session, "https://example.com/matrix/").login("relay", "pw")

    assert session.requests[0]["url"] == "https://example.com/matrix/_matrix/client/r0/login"


def test_base_url_requires_trailing_slash() -> None:
    with pytest.raises(ValueError):
        MatrixChatEndpoint("https://matrix.example.com")


def test_resolve_channel_encodes_alias_and_sends_token() -> None:
    session = FakeSession([FakeResponse(200, {"room_id": "!abc:example.com", "servers": []})])

    room_id = _endpoint(session).resolve_channel("abc", "#alerts:example.com")

    assert room_id == "!abc:example.com"
    sent = session.requests[0]
    assert sent["method"] == "GET"
    assert sent["url"].endswith("/_matrix/client/r0/directory/room/%23alerts%3Aexample.com")
    assert sent["headers"]["Authorization"] == "Bearer abc"


def test_structured_error_becomes_chat_error() -> None:
    session = FakeSession([FakeResponse(403, {"errcode": "M_FORBIDDEN", "error": "Invalid password"})])

    with pytest.raises(ChatError) as excinfo:
        _endpoint(session).login("relay", "wrong")

    assert excinfo.value.errcode == "M_FORBIDDEN"
    assert excinfo.value.error == "Invalid password"
    assert excinfo.value.status == 403


def test_unstructured_error_status_uses_generic_code() -> None:
    session = FakeSession([FakeResponse(502, "<html>bad gateway</html>", content_type="text/html")])

    with pytest.raises(ChatError) as excinfo:
        _endpoint(session).join_room("abc", "!abc:example.com")

    assert excinfo.value.errcode == "M_UNKNOWN"
    assert excinfo.value.status == 502


def test_non_json_success_body_is_transport_error() -> None:
    session = FakeSession([FakeResponse(200, "ok", content_type="text/plain")])

    with pytest.raises(ChatTransportError):
        _endpoint(session).login("relay", "pw")


def test_missing_field_is_transport_error() -> None:
    session = FakeSession([FakeResponse(200, {"user_id": "@relay:example.com"})])

    with pytest.raises(ChatTransportError):
        _endpoint(session).login("relay", "pw")


def test_network_failure_is_transport_error() -> None:
    session = FakeSession([requests.ConnectionError("refused")])

    with pytest.raises(ChatTransportError) as excinfo:
        _endpoint(session).login("relay", "pw")

    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


def test_join_room_posts_to_encoded_room() -> None:
    session = FakeSession([FakeResponse(200, {"room_id": "!abc:example.com"})])

    _endpoint(session).join_room("abc", "!abc:example.com")

    sent = session.requests[0]
    assert sent["method"] == "POST"
    assert sent["url"].endswith("/_matrix/client/r0/rooms/%21abc%3Aexample.com/join")


def test_post_message_uses_increasing_transaction_ids() -> None:
    session = FakeSession([FakeResponse(200, {"event_id": "$1"}), FakeResponse(200, {"event_id": "$2"})])
    endpoint = _endpoint(session)

    endpoint.post_message("abc", "!abc:example.com", RelayMessage.plain("one"))
    endpoint.post_message("abc", "!abc:example.com", RelayMessage.plain("two"))

    urls = [sent["url"] for sent in session.requests]
    assert urls[0].endswith("/rooms/%21abc%3Aexample.com/send/m.room.message/1")
    assert urls[1].endswith("/rooms/%21abc%3Aexample.com/send/m.room.message/2")
    assert all(sent["method"] == "PUT" for sent in session.requests)


def test_notice_content_uses_notice_msgtype_and_label() -> None:
    content = build_message_content(RelayMessage.notice("connected", source_label=ICON_CHECKMARK))

    assert content == {
        "msgtype": "m.notice",
        "body": "connected",
        "format": "org.matrix.custom.html",
        "formatted_body": f"{ICON_CHECKMARK} connected",
    }


def test_plain_content_escapes_formatted_body_only() -> None:
    content = build_message_content(RelayMessage.plain("load < 5 & rising"))

    assert content["msgtype"] == "m.text"
    assert content["body"] == "load < 5 & rising"
    assert content["formatted_body"] == "load &lt; 5 &amp; rising"
