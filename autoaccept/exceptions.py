"""Exception hierarchy for CDP operations.

All CDP-related exceptions inherit from CDPError base class.
Provides structured error types for discovery, connection, command, and timeout failures.
"""

from typing import Optional


class CDPError(Exception):
    """Base exception for all CDP-related errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ProbeFailedError(CDPError):
    """Target listing failed on a port.

    Raised by the HTTP fetch when the discovery endpoint is unreachable,
    times out, or returns something that is not a JSON array. Always absorbed
    by TargetProber.list_targets, since most scanned ports have no listener.
    """

    def __init__(self, message: str, port: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.port = port


class CDPConnectionError(CDPError):
    """WebSocket connection failures."""

    pass


class ConnectionFailedError(CDPConnectionError):
    """Initial connection failed.

    Raised when WebSocket connection cannot be established within the
    connect timeout. Common causes: target went away, port reused, app busy.
    """

    pass


class ConnectionClosedError(CDPConnectionError):
    """Connection closed unexpectedly.

    Raised for commands issued on, or pending on, a connection that closed.
    """

    pass


class CDPCommandError(CDPError):
    """Command execution failures.

    Raised when CDP command returns an error response.
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        error_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.method = method
        self.error_code = error_code


class CommandFailedError(CDPCommandError):
    """Command returned a protocol-level error response."""

    pass


class CDPTimeoutError(CDPError):
    """Command timed out.

    Raised when CDP command does not receive response within timeout period.
    """

    def __init__(
        self,
        message: str,
        command_method: Optional[str] = None,
        timeout: Optional[float] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.command_method = command_method
        self.timeout = timeout

    def __str__(self):
        if self.command_method and self.timeout:
            return f"Command '{self.command_method}' timed out after {self.timeout}s"
        return self.message


class NoSessionError(CDPError):
    """No open session is registered for the given key."""

    def __init__(self, key: str, details: Optional[dict] = None):
        super().__init__(f"No open session for {key}", details)
        self.key = key


class CDPTargetNotFoundError(CDPError):
    """Target discovery failures.

    Raised when no workbench target can be found on the probed port(s).
    """

    def __init__(
        self,
        message: str,
        port: Optional[int] = None,
        url_pattern: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.port = port
        self.url_pattern = url_pattern

    def __str__(self):
        if self.port is not None and self.url_pattern:
            return f"No target matching '{self.url_pattern}' on port {self.port}"
        return self.message
