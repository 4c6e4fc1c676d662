"""Unit tests for CDPConnection with a fake WebSocket.

Tests connection lifecycle, reply correlation, timeouts and close handling
without a real Chromium process.
"""

import asyncio
import itertools
import time

import pytest
from unittest.mock import MagicMock, patch

from autoaccept.connection import CDPConnection
from autoaccept.exceptions import (
    ConnectionFailedError,
    ConnectionClosedError,
    CDPTimeoutError,
    CommandFailedError,
)
from tests.conftest import FakeWebSocket

WS_URL = "ws://127.0.0.1:9000/devtools/page/main"


async def wait_for_sent(ws: FakeWebSocket, count: int) -> None:
    while len(ws.sent) < count:
        await asyncio.sleep(0)


@pytest.mark.unit
@pytest.mark.asyncio
class TestCDPConnectionLifecycle:
    async def test_initialization(self):
        conn = CDPConnection(WS_URL, timeout=1.5, max_size=1_000_000)

        assert conn.ws_url == WS_URL
        assert conn.timeout == 1.5
        assert conn.max_size == 1_000_000
        assert not conn.is_connected

    async def test_invalid_url_raises_error(self):
        with pytest.raises(ValueError, match="Invalid WebSocket URL"):
            CDPConnection("http://127.0.0.1:9000/devtools/page/main")

    async def test_connect_success(self, endpoint):
        conn = CDPConnection(WS_URL)
        await conn.connect()

        assert conn.is_connected
        endpoint.connect_mock.assert_called_once_with(WS_URL, max_size=2_097_152)
        await conn.disconnect()

    async def test_connect_failure(self, endpoint):
        endpoint.refuse.add(WS_URL)

        conn = CDPConnection(WS_URL)
        with pytest.raises(ConnectionFailedError, match="Failed to connect"):
            await conn.connect()
        assert not conn.is_connected

    @patch("autoaccept.connection.websockets.connect")
    async def test_connect_timeout(self, mock_connect):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        mock_connect.side_effect = hang

        conn = CDPConnection(WS_URL)
        started = time.monotonic()
        with pytest.raises(ConnectionFailedError, match="Timed out"):
            await conn.connect(timeout=0.05)
        assert time.monotonic() - started < 1.0

    async def test_context_manager(self, endpoint):
        async with CDPConnection(WS_URL) as conn:
            assert conn.is_connected

        assert not conn.is_connected
        assert endpoint.sockets[WS_URL].close_calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
class TestCommandExecution:
    async def test_execute_command_without_connection(self):
        conn = CDPConnection(WS_URL)

        with pytest.raises(ConnectionClosedError, match="connection not active"):
            await conn.execute_command("Runtime.evaluate", {"expression": "1"})

    async def test_reply_resolves_with_result_payload(self, endpoint):
        endpoint.responders[WS_URL] = lambda req: {
            "id": req["id"],
            "result": {"result": {"type": "number", "value": 2}},
        }

        async with CDPConnection(WS_URL) as conn:
            result = await conn.execute_command("Runtime.evaluate", {"expression": "1+1"})

        assert result == {"result": {"type": "number", "value": 2}}
        sent = endpoint.sockets[WS_URL].sent[0]
        assert sent["method"] == "Runtime.evaluate"
        assert sent["params"] == {"expression": "1+1"}

    async def test_error_reply_raises_command_failed(self, endpoint):
        endpoint.responders[WS_URL] = lambda req: {
            "id": req["id"],
            "error": {"code": -32601, "message": "'Foo.bar' wasn't found"},
        }

        async with CDPConnection(WS_URL) as conn:
            with pytest.raises(CommandFailedError, match="wasn't found") as exc_info:
                await conn.execute_command("Foo.bar")

        assert exc_info.value.error_code == -32601

    async def test_ids_come_from_shared_source(self, endpoint):
        ids = itertools.count(41)
        endpoint.responders[WS_URL] = lambda req: {"id": req["id"], "result": {}}

        async with CDPConnection(WS_URL, id_source=ids) as conn:
            await conn.execute_command("Runtime.evaluate", {"expression": "1"})
            await conn.execute_command("Runtime.evaluate", {"expression": "2"})

        assert [m["id"] for m in endpoint.sockets[WS_URL].sent] == [41, 42]
        assert next(ids) == 43

    async def test_concurrent_calls_pair_by_id(self, endpoint):
        async with CDPConnection(WS_URL) as conn:
            ws = endpoint.sockets[WS_URL]
            first = asyncio.create_task(conn.execute_command("Runtime.evaluate", {"expression": "'a'"}))
            second = asyncio.create_task(conn.execute_command("Runtime.evaluate", {"expression": "'b'"}))
            await wait_for_sent(ws, 2)

            by_expression = {m["params"]["expression"]: m["id"] for m in ws.sent}
            # Replies arrive in reverse order, with unrelated traffic in between
            ws.push({"id": by_expression["'b'"], "result": {"result": {"value": "b"}}})
            ws.push({"method": "Runtime.consoleAPICalled", "params": {}})
            ws.push({"id": 99999, "result": {"result": {"value": "stray"}}})
            ws.push("not json")
            ws.push({"id": by_expression["'a'"], "result": {"result": {"value": "a"}}})

            assert (await first)["result"]["value"] == "a"
            assert (await second)["result"]["value"] == "b"

    async def test_timeout_leaves_no_pending_entry(self, endpoint):
        async with CDPConnection(WS_URL, timeout=0.1) as conn:
            ws = endpoint.sockets[WS_URL]
            started = time.monotonic()
            with pytest.raises(CDPTimeoutError, match="timed out after 0.1s"):
                await conn.execute_command("Runtime.evaluate", {"expression": "never"})
            elapsed = time.monotonic() - started

            assert 0.09 <= elapsed < 1.0
            assert conn.pending_count == 0

            # A late reply for the timed-out call is ignored
            ws.push({"id": ws.sent[0]["id"], "result": {}})
            ws.responder = lambda req: {"id": req["id"], "result": {"ok": True}}
            assert await conn.execute_command("Runtime.evaluate", {"expression": "1"}) == {"ok": True}

    async def test_per_call_timeout_overrides_default(self, endpoint):
        async with CDPConnection(WS_URL, timeout=30.0) as conn:
            with pytest.raises(CDPTimeoutError) as exc_info:
                await conn.execute_command("Runtime.evaluate", {"expression": "x"}, timeout=0.05)

        assert exc_info.value.timeout == 0.05


@pytest.mark.unit
@pytest.mark.asyncio
class TestCloseHandling:
    async def test_remote_close_fires_on_close_once(self, endpoint):
        on_close = MagicMock()
        conn = CDPConnection(WS_URL, on_close=on_close)
        await conn.connect()

        endpoint.sockets[WS_URL].drop()
        await asyncio.sleep(0.01)

        assert not conn.is_connected
        on_close.assert_called_once_with(conn)

        await conn.disconnect()
        on_close.assert_called_once()

    async def test_local_disconnect_fires_on_close_once(self, endpoint):
        on_close = MagicMock()
        conn = CDPConnection(WS_URL, on_close=on_close)
        await conn.connect()

        await conn.disconnect()
        await conn.disconnect()

        on_close.assert_called_once_with(conn)

    async def test_close_fails_pending_commands(self, endpoint):
        conn = CDPConnection(WS_URL, timeout=5.0)
        await conn.connect()
        ws = endpoint.sockets[WS_URL]

        pending = asyncio.create_task(conn.execute_command("Runtime.evaluate", {"expression": "x"}))
        await wait_for_sent(ws, 1)
        ws.drop()

        with pytest.raises(ConnectionClosedError):
            await pending
        assert conn.pending_count == 0

    async def test_on_close_error_is_contained(self, endpoint):
        conn = CDPConnection(WS_URL, on_close=MagicMock(side_effect=RuntimeError("boom")))
        await conn.connect()

        await conn.disconnect()

        assert not conn.is_connected


@pytest.mark.unit
@pytest.mark.asyncio
class TestMalformedReplies:
    async def test_unhashable_id_is_ignored(self, endpoint):
        on_close = MagicMock()
        conn = CDPConnection(WS_URL, on_close=on_close)
        await conn.connect()
        ws = endpoint.sockets[WS_URL]

        ws.push({"id": [1], "result": {}})
        ws.push({"id": {"nested": 1}, "result": {}})
        ws.push({"id": True, "result": {}})
        ws.responder = lambda req: {"id": req["id"], "result": {"ok": True}}

        assert await conn.execute_command("Runtime.evaluate", {"expression": "1"}) == {"ok": True}
        assert conn.is_connected
        on_close.assert_not_called()
        await conn.disconnect()

    async def test_non_dict_error_raises_command_failed(self, endpoint):
        endpoint.responders[WS_URL] = lambda req: {"id": req["id"], "error": "boom"}

        async with CDPConnection(WS_URL) as conn:
            with pytest.raises(CommandFailedError, match="boom"):
                await conn.execute_command("Runtime.evaluate", {"expression": "1"})
            assert conn.is_connected

    async def test_non_dict_result_resolves_empty(self, endpoint):
        endpoint.responders[WS_URL] = lambda req: {"id": req["id"], "result": "weird"}

        async with CDPConnection(WS_URL) as conn:
            assert await conn.execute_command("Runtime.evaluate", {"expression": "1"}) == {}
            assert conn.is_connected

    async def test_receive_loop_failure_closes_socket(self, endpoint):
        on_close = MagicMock()
        conn = CDPConnection(WS_URL, on_close=on_close)
        await conn.connect()
        ws = endpoint.sockets[WS_URL]

        with patch.object(conn, "_dispatch", side_effect=RuntimeError("bad frame")):
            ws.push({"id": 1, "result": {}})
            await asyncio.sleep(0.01)

        assert ws.close_calls == 1
        assert not conn.is_connected
        on_close.assert_called_once_with(conn)
