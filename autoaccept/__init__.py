"""CDP injection engine for Chromium-based desktop applications.

This package provides:
- TargetProber: Discovers workbench targets across a small port range
- CDPConnection: WebSocket connection with request/response correlation
- CDPHandler: Orchestrates connect, inject and aggregate telemetry calls
- CLI: Command-line front end for probing, running and verifying
"""

__version__ = "0.1.0"
