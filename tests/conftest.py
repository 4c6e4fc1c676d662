"""Shared fakes: an in-memory CDP WebSocket and a fake /json/list endpoint."""

import asyncio
import json
import urllib.error
from typing import Callable, Dict, List, Optional
from unittest.mock import MagicMock, Mock, patch

import pytest

_CLOSE = object()


class FakeWebSocket:
    """Stands in for a websockets client connection.

    Every sent message is recorded in `sent` (decoded). When a responder is
    set, its return value for a request is queued as the reply.
    """

    def __init__(self, responder: Optional[Callable[[dict], Optional[dict]]] = None):
        self.responder = responder
        self.sent: List[dict] = []
        self.close_calls = 0
        self._inbox: asyncio.Queue = asyncio.Queue()
        self.state = MagicMock()
        self.state.name = "OPEN"

    async def send(self, message: str) -> None:
        request = json.loads(message)
        self.sent.append(request)
        if self.responder is not None:
            reply = self.responder(request)
            if reply is not None:
                self.push(reply)

    def push(self, data) -> None:
        """Queue an inbound message (dict is JSON-encoded, str sent as-is)."""
        self._inbox.put_nowait(data if isinstance(data, str) else json.dumps(data))

    def drop(self) -> None:
        """Simulate the remote side closing the socket."""
        self.state.name = "CLOSED"
        self._inbox.put_nowait(_CLOSE)

    async def close(self) -> None:
        self.close_calls += 1
        self.drop()

    def expressions(self) -> List[str]:
        return [m["params"]["expression"] for m in self.sent if m.get("method") == "Runtime.evaluate"]

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item


def value_reply(request: dict, value) -> dict:
    """Runtime.evaluate reply carrying value."""
    return {"id": request["id"], "result": {"result": {"type": type(value).__name__, "value": value}}}


def page_responder(
    *,
    stats: Optional[dict] = None,
    summary: Optional[dict] = None,
    away_actions=None,
    reset: Optional[dict] = None,
    throw_on: Optional[str] = None,
    silent_on: Optional[str] = None,
) -> Callable[[dict], Optional[dict]]:
    """Responder emulating a page with the behavior script installed.

    Getters left as None behave as if the page did not define them.
    """

    def respond(request: dict) -> Optional[dict]:
        expression = request["params"]["expression"]

        if silent_on and silent_on in expression:
            return None
        if throw_on and throw_on in expression:
            return {
                "id": request["id"],
                "result": {
                    "result": {"type": "object", "subtype": "error"},
                    "exceptionDetails": {"text": "Uncaught TypeError"},
                },
            }

        if "JSON.stringify" not in expression:
            return {"id": request["id"], "result": {"result": {"type": "undefined"}}}

        if "__autoAcceptGetSessionSummary" in expression:
            value = summary if summary is not None else (stats if stats is not None else {})
        elif "__autoAcceptGetStats" in expression:
            value = stats if stats is not None else {}
        elif "__autoAcceptGetAwayActions" in expression:
            value = away_actions if away_actions is not None else 0
        elif "__autoAcceptResetStats" in expression:
            value = reset if reset is not None else {"clicks": 0, "blocked": 0}
        else:
            value = None
        return value_reply(request, json.dumps(value))

    return respond


class FakeEndpoint:
    """Records every FakeWebSocket opened through websockets.connect."""

    def __init__(self):
        self.responders: Dict[str, Callable] = {}
        self.sockets: Dict[str, FakeWebSocket] = {}
        self.refuse: set = set()
        self.connect_mock: Optional[Mock] = None

    async def connect(self, url: str, **kwargs) -> FakeWebSocket:
        if url in self.refuse:
            raise OSError("Connection refused")
        ws = FakeWebSocket(self.responders.get(url))
        self.sockets[url] = ws
        return ws


@pytest.fixture
def endpoint():
    """Patch websockets.connect so connections open FakeWebSockets."""
    fake = FakeEndpoint()
    with patch("autoaccept.connection.websockets.connect", side_effect=fake.connect) as mock_connect:
        fake.connect_mock = mock_connect
        yield fake


def make_http_response(payload) -> Mock:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    mock_response = Mock()
    mock_response.read.return_value = body
    mock_response.__enter__ = Mock(return_value=mock_response)
    mock_response.__exit__ = Mock(return_value=False)
    return mock_response


def workbench_target(port: int, target_id: str, **overrides) -> dict:
    data = {
        "id": target_id,
        "type": "page",
        "title": "project - Workbench",
        "url": "vscode-file://vscode-app/out/vs/code/electron-browser/workbench/workbench.html",
        "webSocketDebuggerUrl": f"ws://127.0.0.1:{port}/devtools/page/{target_id}",
    }
    data.update(overrides)
    return data


@pytest.fixture
def discovery():
    """Patch urlopen; ports present in the returned dict answer with their list."""
    listings: Dict[int, object] = {}

    def fake_urlopen(url, timeout=None):
        port = int(url.split(":")[2].split("/")[0])
        if port not in listings:
            raise urllib.error.URLError("Connection refused")
        return make_http_response(listings[port])

    with patch("urllib.request.urlopen", side_effect=fake_urlopen):
        yield listings
