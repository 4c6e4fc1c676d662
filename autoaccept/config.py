"""Configuration management for the injection engine.

Supports multiple configuration sources with precedence:
CLI flags > Environment variables > Config file > Defaults

Usage:
    >>> config = Configuration()
    >>> config.load_from_file("~/.autoacceptrc")
    >>> config.load_from_env()
    >>> config.merge(base_port=9222)  # CLI overrides
    >>> list(config.port_range)
    [9219, 9220, 9221, 9222, 9223, 9224, 9225]
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


DEFAULT_BANNED_COMMANDS = [
    "rm -rf /",
    "rm -rf ~",
    "rm -rf *",
    "format c:",
    "del /f /s /q",
    "rmdir /s /q",
    ":(){:|:&};:",
    "dd if=",
    "mkfs.",
    "> /dev/sda",
    "chmod -R 777 /",
]


class Configuration:
    """Engine configuration with layered precedence.

    Precedence order (highest to lowest):
    1. CLI arguments (via merge method)
    2. Environment variables (AUTOACCEPT_* prefix)
    3. Config file (~/.autoacceptrc JSON)
    4. Default values

    Attributes:
        host: Debugging endpoint host (default: "127.0.0.1")
        base_port: Center of the port scan range (default: 9000)
        port_radius: Ports scanned on each side of base_port (default: 3)
        probe_timeout: Target listing HTTP timeout in seconds (default: 0.5)
        connect_timeout: WebSocket connect timeout in seconds (default: 5.0)
        call_timeout: Runtime.evaluate reply timeout in seconds (default: 2.0)
        max_size: Maximum WebSocket message size in bytes (default: 2MB)
        workbench_marker: URL substring identifying the main window
        script_path: Behavior script to inject (None = bundled payload)
        log_level: Logging level (default: "INFO")
        log_format: Log output format "text" or "json" (default: "text")
    """

    DEFAULTS = {
        "host": "127.0.0.1",
        "base_port": 9000,
        "port_radius": 3,
        "probe_timeout": 0.5,
        "connect_timeout": 5.0,
        "call_timeout": 2.0,
        "max_size": 2_097_152,  # 2MB
        "workbench_marker": "workbench.html",
        "script_path": None,
        "log_level": "INFO",
        "log_format": "text",
    }

    def __init__(self):
        """Initialize configuration with default values."""
        self.host: str = self.DEFAULTS["host"]
        self.base_port: int = self.DEFAULTS["base_port"]
        self.port_radius: int = self.DEFAULTS["port_radius"]
        self.probe_timeout: float = self.DEFAULTS["probe_timeout"]
        self.connect_timeout: float = self.DEFAULTS["connect_timeout"]
        self.call_timeout: float = self.DEFAULTS["call_timeout"]
        self.max_size: int = self.DEFAULTS["max_size"]
        self.workbench_marker: str = self.DEFAULTS["workbench_marker"]
        self.script_path: Optional[str] = self.DEFAULTS["script_path"]
        self.log_level: str = self.DEFAULTS["log_level"]
        self.log_format: str = self.DEFAULTS["log_format"]

    @property
    def port_range(self) -> range:
        """Ports scanned on every discovery pass, base_port ± port_radius inclusive."""
        return range(self.base_port - self.port_radius, self.base_port + self.port_radius + 1)

    def load_from_file(self, file_path: str) -> None:
        """Load configuration from JSON file.

        Args:
            file_path: Path to config file (typically ~/.autoacceptrc)

        Note:
            Invalid JSON or missing file is ignored with a log entry.
            Partial configs are merged with existing values.
        """
        path = Path(file_path).expanduser()

        if not path.exists():
            logger.debug(f"Config file not found: {path}")
            return

        try:
            with open(path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in config file {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Error loading config file {path}: {e}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Config file {path} must contain a JSON object")
            return

        self._merge_dict(data)
        logger.info(f"Loaded configuration from {path}")

    def load_from_env(self) -> None:
        """Load configuration from environment variables.

        Environment variables use AUTOACCEPT_ prefix, e.g.
        AUTOACCEPT_BASE_PORT, AUTOACCEPT_CALL_TIMEOUT, AUTOACCEPT_LOG_LEVEL.

        Invalid values are ignored with warning log.
        """
        env_mappings = {
            "AUTOACCEPT_HOST": ("host", str),
            "AUTOACCEPT_BASE_PORT": ("base_port", int),
            "AUTOACCEPT_PORT_RADIUS": ("port_radius", int),
            "AUTOACCEPT_PROBE_TIMEOUT": ("probe_timeout", float),
            "AUTOACCEPT_CONNECT_TIMEOUT": ("connect_timeout", float),
            "AUTOACCEPT_CALL_TIMEOUT": ("call_timeout", float),
            "AUTOACCEPT_MAX_SIZE": ("max_size", int),
            "AUTOACCEPT_WORKBENCH_MARKER": ("workbench_marker", str),
            "AUTOACCEPT_SCRIPT_PATH": ("script_path", str),
            "AUTOACCEPT_LOG_LEVEL": ("log_level", str),
            "AUTOACCEPT_LOG_FORMAT": ("log_format", str),
        }

        for env_var, (attr_name, type_converter) in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    converted_value = type_converter(value)
                    setattr(self, attr_name, converted_value)
                    logger.debug(f"Loaded {attr_name}={converted_value} from {env_var}")
                except (ValueError, TypeError) as e:
                    logger.warning(f"Invalid value for {env_var}: {value} ({e})")

    def merge(self, **kwargs) -> None:
        """Merge CLI arguments into configuration (highest precedence).

        Example:
            >>> config.merge(base_port=9222, call_timeout=1.0)
        """
        self._merge_dict(kwargs)

    def _merge_dict(self, data: dict) -> None:
        for key, value in data.items():
            if key in self.DEFAULTS and value is not None:
                setattr(self, key, value)
                logger.debug(f"Set {key}={value}")

    def to_dict(self) -> dict:
        """Export configuration as dictionary."""
        return {key: getattr(self, key) for key in self.DEFAULTS}

    def __repr__(self) -> str:
        return f"Configuration({self.to_dict()})"


class AgentConfig:
    """Configuration object handed to the injected script's start function.

    Attributes:
        poll_frequency: In-page action cadence in milliseconds
        background_mode: Enables unattended operation
        banned_commands: Patterns whose actions are blocked instead of executed
    """

    def __init__(
        self,
        poll_frequency: int = 750,
        background_mode: bool = False,
        banned_commands: Optional[Sequence[str]] = None,
    ):
        if poll_frequency <= 0:
            raise ValueError(f"poll_frequency must be positive, got {poll_frequency}")

        self.poll_frequency = poll_frequency
        self.background_mode = background_mode
        self.banned_commands: List[str] = list(
            DEFAULT_BANNED_COMMANDS if banned_commands is None else banned_commands
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AgentConfig":
        """Build from the camelCase object the host application passes around."""
        return cls(
            poll_frequency=int(data.get("pollFrequency", 750)),
            background_mode=bool(data.get("backgroundMode", False)),
            banned_commands=data.get("bannedCommands"),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Export as the JSON object expected by the remote start function."""
        return {
            "pollFrequency": self.poll_frequency,
            "backgroundMode": self.background_mode,
            "bannedCommands": list(self.banned_commands),
        }

    def __repr__(self) -> str:
        return f"AgentConfig({self.to_payload()})"
