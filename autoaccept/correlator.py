"""
Runtime.evaluate calls addressed by session key.
"""

import json
import logging
from typing import Any

from .exceptions import CDPError, NoSessionError
from .logging_setup import log_session
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

JSON_WRAPPER = (
    "(() => {\n"
    "  try {\n"
    "    const v = (%s);\n"
    "    return JSON.stringify(v);\n"
    "  } catch (e) {\n"
    "    return '';\n"
    "  }\n"
    "})()"
)


class CallCorrelator:
    """
    Evaluates expressions in registered targets.

    Request IDs and reply matching are handled per connection by
    CDPConnection; this layer resolves the session and interprets replies.
    """

    def __init__(self, registry: SessionRegistry, *, call_timeout: float = 2.0):
        self.registry = registry
        self.call_timeout = call_timeout

    async def evaluate(self, key: str, expression: str) -> dict:
        """
        Evaluate expression in the target registered under key.

        Promises returned by the expression are awaited remotely. A reply that
        carries exceptionDetails is logged and still returned.

        Returns:
            Raw reply payload, e.g. {"result": {"type": "number", "value": 2}}

        Raises:
            NoSessionError: If key is not registered or its connection is not open
            CDPTimeoutError: If no reply arrives within call_timeout
            ConnectionClosedError: If the connection closes while waiting
        """
        session = self.registry.get(key)
        if session is None or not session.connection.is_connected:
            raise NoSessionError(key)

        result = await session.connection.execute_command(
            "Runtime.evaluate",
            {"expression": expression, "userGesture": True, "awaitPromise": True},
            timeout=self.call_timeout,
        )

        exception_details = result.get("exceptionDetails")
        if exception_details:
            text = exception_details.get("text") if isinstance(exception_details, dict) else None
            log_session(logger, logging.WARNING, f"Evaluation error in {key}: {text or 'Unknown'}", key)

        return result

    async def evaluate_json(self, key: str, expression: str, fallback: Any) -> Any:
        """
        Evaluate expression and return its value decoded from JSON.

        The value is serialized with JSON.stringify inside the page. Any
        failure, remote or local, returns fallback instead of raising.
        """
        try:
            reply = await self.evaluate(key, JSON_WRAPPER % expression)
        except CDPError as e:
            logger.debug(f"JSON evaluation failed for {key}: {e}")
            return fallback

        remote = reply.get("result")
        if not isinstance(remote, dict):
            return fallback

        value = remote.get("value")
        if not value or not isinstance(value, str):
            return fallback

        try:
            return json.loads(value)
        except ValueError as e:
            logger.debug(f"Unparseable JSON from {key}: {e}")
            return fallback
