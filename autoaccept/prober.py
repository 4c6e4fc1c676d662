"""
Target discovery over the DevTools HTTP endpoint.

Scans a small port range for workbench windows exposed by the host application.
"""

import asyncio
import json
import logging
import urllib.request
import urllib.error
import http.client
from typing import Any, Dict, Iterable, List

from .exceptions import ProbeFailedError

logger = logging.getLogger(__name__)

DEBUGGABLE_TYPES = ("page", "webview")


class Target:
    """
    A debuggable surface listed by the DevTools HTTP endpoint.

    Attributes:
        port: Debugging port the target was listed on
        id: Target ID, unique within its port
        type: Target type ("page", "webview", ...)
        title: Window title
        url: Location of the page, used to find the workbench window
        webSocketDebuggerUrl: CDP WebSocket URL for this target
    """

    def __init__(self, port: int, target_data: Dict[str, Any]):
        self.port = port
        self.id = target_data["id"]
        self.type = target_data.get("type", "")
        self.title = target_data.get("title", "")
        self.url = target_data.get("url", "")
        self.webSocketDebuggerUrl = target_data.get("webSocketDebuggerUrl", "")

    def to_dict(self) -> Dict[str, Any]:
        """Convert target to dictionary for JSON serialization."""
        return {
            "port": self.port,
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "url": self.url,
            "webSocketDebuggerUrl": self.webSocketDebuggerUrl,
        }

    def __repr__(self):
        return f"Target(port={self.port}, id={self.id!r}, type={self.type!r}, url={self.url!r})"


class TargetProber:
    """
    Lists workbench targets on a debugging port.

    Probing is speculative: most ports in the scan range have nothing listening,
    so every failure yields an empty list instead of an error.

    Usage:
        prober = TargetProber()
        targets = await prober.list_targets(9000)

    Attributes:
        host: Debugging endpoint host (default: "127.0.0.1")
        timeout: HTTP request timeout per port (default: 0.5s)
        workbench_marker: URL substring identifying the main window
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        timeout: float = 0.5,
        workbench_marker: str = "workbench.html",
    ):
        self.host = host
        self.timeout = timeout
        self.workbench_marker = workbench_marker

    def _fetch_targets(self, port: int) -> List[Any]:
        """
        Fetch the raw target list from /json/list.

        Raises:
            ProbeFailedError: On network error, timeout or malformed response
        """
        endpoint_url = f"http://{self.host}:{port}/json/list"

        try:
            with urllib.request.urlopen(endpoint_url, timeout=self.timeout) as response:
                targets_data = json.loads(response.read())
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            raise ProbeFailedError(
                f"Failed to list targets at {endpoint_url}: {e}", port=port
            ) from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProbeFailedError(
                f"Invalid JSON response from {endpoint_url}: {e}", port=port
            ) from e

        if not isinstance(targets_data, list):
            raise ProbeFailedError(
                f"Expected a JSON array from {endpoint_url}", port=port
            )

        return targets_data

    def _is_workbench(self, data: Any) -> bool:
        return (
            isinstance(data, dict)
            and bool(data.get("id"))
            and bool(data.get("webSocketDebuggerUrl"))
            and data.get("type") in DEBUGGABLE_TYPES
            and self.workbench_marker in (data.get("url") or "")
        )

    async def list_targets(self, port: int) -> List[Target]:
        """
        List workbench targets on a port.

        Args:
            port: Debugging port to query

        Returns:
            Targets of type page/webview whose URL contains the workbench marker.
            Empty when nothing answers on the port.
        """
        try:
            targets_data = await asyncio.to_thread(self._fetch_targets, port)
        except ProbeFailedError as e:
            logger.debug(str(e))
            return []

        targets = [Target(port, data) for data in targets_data if self._is_workbench(data)]

        filtered = len(targets_data) - len(targets)
        if filtered:
            logger.info(f"Port {port}: filtered {filtered} non-workbench targets")

        return targets

    async def is_any_available(self, ports: Iterable[int]) -> bool:
        """Return True on the first port that lists at least one workbench target."""
        for port in ports:
            if await self.list_targets(port):
                return True
        return False
