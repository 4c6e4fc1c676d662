"""
In-memory registry of open CDP sessions.

A Session exists in the registry only while its underlying connection is open.
"""

from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from .connection import CDPConnection


def make_session_key(port: int, target_id: str) -> str:
    """Build the registry key for a target, e.g. "9000:ABC123"."""
    return f"{port}:{target_id}"


def session_port(key: str) -> Optional[int]:
    """Port part of a session key, or None if the key has no numeric port."""
    port, _, _ = key.partition(":")
    return int(port) if port.isdigit() else None


class Session:
    """
    An open connection to one target plus its injection status.

    Attributes:
        key: Registry key ("port:targetId")
        connection: Live CDPConnection owned by this entry
        injected: Whether the behavior script has been delivered
    """

    def __init__(self, key: str, connection: "CDPConnection", injected: bool = False):
        self.key = key
        self.connection = connection
        self.injected = injected

    def __repr__(self):
        return f"Session(key={self.key!r}, injected={self.injected})"


class SessionRegistry:
    """Mapping of session key to Session, one entry per key."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def add(self, session: Session) -> None:
        self._sessions[session.key] = session

    def get(self, key: str) -> Optional[Session]:
        return self._sessions.get(key)

    def remove(self, key: str, connection: Optional["CDPConnection"] = None) -> Optional[Session]:
        """
        Remove the entry for key.

        When connection is given, the entry is only removed if it still owns
        that connection, so a stale close callback cannot drop a newer session.
        """
        session = self._sessions.get(key)
        if session is None:
            return None
        if connection is not None and session.connection is not connection:
            return None
        return self._sessions.pop(key)

    def keys(self) -> List[str]:
        """Snapshot of current keys, safe to iterate while sessions close."""
        return list(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
