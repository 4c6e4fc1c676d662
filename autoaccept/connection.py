"""CDP WebSocket connection management.

Provides CDPConnection class for command execution over one target's debugging socket.
Handles WebSocket lifecycle, request/response correlation and close notification.
"""

import asyncio
import itertools
import json
import logging
from typing import Callable, Dict, Iterator, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from .exceptions import (
    ConnectionFailedError,
    ConnectionClosedError,
    CommandFailedError,
    CDPTimeoutError,
)

logger = logging.getLogger(__name__)


class CDPConnection:
    """Manages WebSocket connection to one Chrome DevTools Protocol target.

    Handles:
    - Connection lifecycle (connect with timeout, disconnect, context manager)
    - Command execution with per-call timeout
    - Correlation of replies to pending commands by request ID
    - A single close notification, whoever closes the socket

    Several commands may be outstanding at once; replies are matched by ID in
    whatever order they arrive. Messages without a pending ID (events, late
    replies to timed-out commands) are dropped.

    Usage:
        async with CDPConnection(ws_url) as conn:
            result = await conn.execute_command("Runtime.evaluate", {"expression": "1+1"})

    Attributes:
        ws_url: WebSocket debugger URL
        timeout: Default command timeout in seconds
        max_size: Maximum WebSocket message size in bytes
    """

    def __init__(
        self,
        ws_url: str,
        *,
        timeout: float = 2.0,
        max_size: int = 2_097_152,  # 2MB default buffer
        id_source: Optional[Iterator[int]] = None,
        on_close: Optional[Callable[["CDPConnection"], None]] = None,
    ):
        """Initialize CDP connection.

        Args:
            ws_url: WebSocket debugger URL (e.g., ws://127.0.0.1:9000/devtools/page/ABC123)
            timeout: Default command timeout in seconds
            max_size: Maximum WebSocket message size in bytes
            id_source: Shared request ID counter, so IDs are never reused across connections
            on_close: Called once with this connection when the socket closes
        """
        if not ws_url.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URL: {ws_url}")

        self.ws_url = ws_url
        self.timeout = timeout
        self.max_size = max_size

        self._ws = None
        self._ids: Iterator[int] = id_source if id_source is not None else itertools.count(1)
        self._pending_commands: Dict[int, asyncio.Future] = {}
        self._receive_task: Optional[asyncio.Task] = None
        self._on_close = on_close
        self._is_connected: bool = False
        self._closed: bool = False

    @property
    def is_connected(self) -> bool:
        """Check if WebSocket connection is active."""
        if not self._is_connected or self._ws is None:
            return False
        try:
            return self._ws.state.name == "OPEN"
        except AttributeError:
            return not getattr(self._ws, "closed", True)

    @property
    def pending_count(self) -> int:
        """Number of commands still waiting for a reply."""
        return len(self._pending_commands)

    async def connect(self, timeout: Optional[float] = None) -> None:
        """Establish WebSocket connection and start receive loop.

        Args:
            timeout: Seconds to wait for the handshake (None = no limit)

        Raises:
            ConnectionFailedError: If the handshake fails or times out
        """
        logger.debug(f"Connecting to {self.ws_url}")
        try:
            self._ws = await asyncio.wait_for(
                websockets.connect(self.ws_url, max_size=self.max_size),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectionFailedError(
                f"Timed out connecting to {self.ws_url}",
                details={"url": self.ws_url, "timeout": timeout},
            ) from e
        except Exception as e:
            raise ConnectionFailedError(
                f"Failed to connect to {self.ws_url}: {e}",
                details={"url": self.ws_url, "error": str(e)},
            ) from e

        self._is_connected = True
        self._receive_task = asyncio.create_task(self._receive_loop())
        logger.debug(f"CDP connection established to {self.ws_url}")

    async def disconnect(self) -> None:
        """Close WebSocket connection gracefully."""
        logger.debug(f"Disconnecting from {self.ws_url}")
        self._is_connected = False

        if self._receive_task and not self._receive_task.done():
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass

        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.warning(f"Error closing WebSocket: {e}")

        self._handle_closed("Connection closed during command execution")

    async def __aenter__(self) -> "CDPConnection":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    async def execute_command(
        self,
        method: str,
        params: Optional[dict] = None,
        *,
        timeout: Optional[float] = None
    ) -> dict:
        """Execute CDP command and wait for its reply.

        Args:
            method: CDP method name (e.g., "Runtime.evaluate")
            params: Method parameters (default: empty dict)
            timeout: Command timeout in seconds (default: self.timeout)

        Returns:
            Command result dict (contents of "result" field in response)

        Raises:
            ConnectionClosedError: If connection is not active or closes while waiting
            CDPTimeoutError: If no reply arrives in time
            CommandFailedError: If Chrome returns error response
        """
        if not self.is_connected:
            raise ConnectionClosedError("Cannot execute command: connection not active")

        cmd_id = next(self._ids)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending_commands[cmd_id] = future

        message = json.dumps({
            "id": cmd_id,
            "method": method,
            "params": params or {}
        })

        cmd_timeout = timeout if timeout is not None else self.timeout
        try:
            await self._ws.send(message)
            logger.debug(f"Sent command {cmd_id}: {method}")
            return await asyncio.wait_for(future, timeout=cmd_timeout)
        except asyncio.TimeoutError:
            raise CDPTimeoutError(
                "Command timed out",
                command_method=method,
                timeout=cmd_timeout
            )
        except ConnectionClosed as e:
            raise ConnectionClosedError(f"Connection closed: {e}") from e
        finally:
            self._pending_commands.pop(cmd_id, None)

    def _dispatch(self, data: dict) -> None:
        """Resolve the pending command matching this reply, if any.

        Replies with a non-integer id match nothing and are dropped.
        """
        cmd_id = data.get("id")
        if not isinstance(cmd_id, int) or isinstance(cmd_id, bool):
            return

        future = self._pending_commands.get(cmd_id)
        if future is None or future.done():
            return

        if "error" in data:
            error = data["error"] or {}
            if not isinstance(error, dict):
                error = {"message": str(error)}
            future.set_exception(
                CommandFailedError(
                    error.get("message", "Unknown CDP error"),
                    error_code=error.get("code"),
                    details={"error": error}
                )
            )
        else:
            result = data.get("result")
            future.set_result(result if isinstance(result, dict) else {})

    async def _receive_loop(self) -> None:
        """Background task routing inbound messages to pending commands.

        Ends when the socket closes, then fires the close notification.
        """
        reason = "Connection closed"
        try:
            async for message in self._ws:
                try:
                    data = json.loads(message)
                except (json.JSONDecodeError, TypeError) as e:
                    logger.error(f"Malformed CDP message: {e}")
                    continue

                if isinstance(data, dict) and "id" in data:
                    self._dispatch(data)

        except ConnectionClosed as e:
            logger.debug(f"WebSocket connection closed: {e}")
            reason = f"Connection closed: {e}"
        except Exception as e:
            logger.error(f"Receive loop error: {e}", exc_info=True)
            reason = f"Receive loop error: {e}"
            # The socket never outlives its receive loop
            self._is_connected = False
            try:
                await self._ws.close()
            except Exception as close_error:
                logger.warning(f"Error closing WebSocket: {close_error}")
        finally:
            self._handle_closed(reason)

    def _handle_closed(self, reason: str) -> None:
        """Fail pending commands and notify the owner. Runs once per connection."""
        self._is_connected = False
        if self._closed:
            return
        self._closed = True

        for future in self._pending_commands.values():
            if not future.done():
                future.set_exception(ConnectionClosedError(reason))

        if self._on_close is not None:
            try:
                self._on_close(self)
            except Exception as e:
                logger.error(f"Close handler error for {self.ws_url}: {e}", exc_info=True)
