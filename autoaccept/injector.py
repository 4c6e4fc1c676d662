"""
Behavior script delivery and (re)configuration.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .correlator import CallCorrelator
from .exceptions import CDPError
from .logging_setup import log_session
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT_PATH = Path(__file__).parent / "payload" / "auto_accept.js"

# Globals the behavior script installs; every one of them is optional.
START_FN = "__autoAcceptStart"
STOP_FN = "__autoAcceptStop"
GET_STATS_FN = "__autoAcceptGetStats"
GET_SESSION_SUMMARY_FN = "__autoAcceptGetSessionSummary"
GET_AWAY_ACTIONS_FN = "__autoAcceptGetAwayActions"
RESET_STATS_FN = "__autoAcceptResetStats"
SET_FOCUS_STATE_FN = "__autoAcceptSetFocusState"
OVERLAY_ELEMENT_ID = "__autoAcceptBgOverlay"


def load_script(path: Optional[str] = None) -> str:
    """Read the behavior script, defaulting to the bundled payload."""
    script_path = Path(path).expanduser() if path else DEFAULT_SCRIPT_PATH
    return script_path.read_text(encoding="utf-8")


def call_if_defined(function: str, *args: Any) -> str:
    """Expression calling window.<function>(args) only when the page defines it."""
    arguments = ", ".join(json.dumps(arg) for arg in args)
    return f"if(window.{function}) window.{function}({arguments})"


class Injector:
    """
    Delivers the behavior script once per session, then reconfigures it.

    Attributes:
        registry: Session registry holding the injected flags
        correlator: Used for every evaluation call
        script: Behavior script source
    """

    def __init__(self, registry: SessionRegistry, correlator: CallCorrelator, script: str):
        self.registry = registry
        self.correlator = correlator
        self.script = script

    async def inject(self, key: str, config: Dict[str, Any]) -> bool:
        """
        Ensure the script runs in the target, then pass it the current config.

        Args:
            key: Registry key of a connected session
            config: Configuration object for the remote start function

        Returns:
            True if both calls completed, False if the session is gone or a call failed
        """
        session = self.registry.get(key)
        if session is None:
            return False

        try:
            if not session.injected:
                await self.correlator.evaluate(key, self.script)
                session.injected = True
                log_session(logger, logging.INFO, f"Script injected into {key}", key)

            await self.correlator.evaluate(key, call_if_defined(START_FN, config))
        except CDPError as e:
            log_session(logger, logging.WARNING, f"Injection failed for {key}: {e}", key)
            return False

        return True
