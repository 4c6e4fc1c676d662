"""
Opens CDP sessions and keeps the registry in step with socket state.
"""

import logging
from typing import Iterator, Optional

from .connection import CDPConnection
from .exceptions import ConnectionFailedError
from .logging_setup import log_session
from .registry import Session, SessionRegistry

logger = logging.getLogger(__name__)


class SessionConnector:
    """
    Connects to a target's debugger URL and registers the resulting session.

    The close handler installed on every connection is the only path that
    removes a session from the registry.

    Attributes:
        registry: Registry sessions are added to and removed from
        connect_timeout: Seconds allowed for the WebSocket handshake
        call_timeout: Default reply timeout for the connection's commands
        max_size: Maximum WebSocket message size in bytes
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        connect_timeout: float = 5.0,
        call_timeout: float = 2.0,
        max_size: int = 2_097_152,
        id_source: Optional[Iterator[int]] = None,
    ):
        self.registry = registry
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self.max_size = max_size
        self._id_source = id_source

    async def connect(self, key: str, debugger_url: str) -> bool:
        """
        Open a session for key.

        Args:
            key: Registry key ("port:targetId")
            debugger_url: Target's webSocketDebuggerUrl

        Returns:
            True once the session is registered with injected=False,
            False if the handshake failed or timed out.
        """
        def on_close(connection: CDPConnection) -> None:
            if self.registry.remove(key, connection) is not None:
                log_session(logger, logging.INFO, f"Disconnected from page {key}", key)

        try:
            connection = CDPConnection(
                debugger_url,
                timeout=self.call_timeout,
                max_size=self.max_size,
                id_source=self._id_source,
                on_close=on_close,
            )
            await connection.connect(timeout=self.connect_timeout)
        except (ConnectionFailedError, ValueError) as e:
            log_session(logger, logging.WARNING, f"Connection error for {key}: {e}", key)
            return False

        self.registry.add(Session(key, connection))
        log_session(logger, logging.INFO, f"Connected to page {key}", key)
        return True
