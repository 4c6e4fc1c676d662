"""
Orchestrates discovery, connection, injection and telemetry across targets.
"""

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .config import AgentConfig, Configuration
from .connector import SessionConnector
from .correlator import CallCorrelator
from .exceptions import CDPError
from .injector import (
    GET_AWAY_ACTIONS_FN,
    GET_SESSION_SUMMARY_FN,
    GET_STATS_FN,
    Injector,
    OVERLAY_ELEMENT_ID,
    RESET_STATS_FN,
    SET_FOCUS_STATE_FN,
    STOP_FN,
    call_if_defined,
    load_script,
)
from .logging_setup import log_session, log_with_context
from .prober import TargetProber
from .registry import SessionRegistry, make_session_key

logger = logging.getLogger(__name__)

STAT_FIELDS = ("clicks", "blocked", "fileEdits", "terminalCommands")
RESET_FIELDS = ("clicks", "blocked")

STATS_EXPR = f"window.{GET_STATS_FN} ? window.{GET_STATS_FN}() : {{}}"
SESSION_SUMMARY_EXPR = (
    f"window.{GET_SESSION_SUMMARY_FN} ? window.{GET_SESSION_SUMMARY_FN}() : "
    f"(window.{GET_STATS_FN} ? window.{GET_STATS_FN}() : {{}})"
)
AWAY_ACTIONS_EXPR = f"window.{GET_AWAY_ACTIONS_FN} ? window.{GET_AWAY_ACTIONS_FN}() : 0"
RESET_STATS_EXPR = (
    f"window.{RESET_STATS_FN} ? window.{RESET_STATS_FN}() : {{ clicks: 0, blocked: 0 }}"
)
HIDE_OVERLAY_EXPR = (
    f"(() => {{ const el = document.getElementById('{OVERLAY_ELEMENT_ID}'); "
    f"if (el) el.remove(); }})()"
)


def _as_number(value: Any) -> Union[int, float]:
    """Numeric contribution of a remote value; anything non-numeric counts as 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return 0
        return int(number) if number.is_integer() else number
    return 0


def _sum_fields(results: List[Any], fields: tuple, include_extra: bool) -> Dict[str, Any]:
    """Field-by-field sum of per-session dicts. Non-dict results contribute nothing."""
    totals: Dict[str, Any] = {field: 0 for field in fields}
    for result in results:
        if not isinstance(result, dict):
            continue
        for field, value in result.items():
            if field not in totals:
                if not include_extra or isinstance(value, bool) or not isinstance(value, (int, float)):
                    continue
                totals[field] = 0
            totals[field] += _as_number(value)
    return totals


class CDPHandler:
    """
    Drives every workbench target reachable in the scan range.

    Owns the session registry and the request ID counter for as long as the
    feature is enabled; stop() closes every session and empties the registry.

    Usage:
        handler = CDPHandler(Configuration())
        await handler.start({"pollFrequency": 750, "backgroundMode": True, "bannedCommands": []})
        stats = await handler.get_stats()
        await handler.stop()
    """

    def __init__(self, configuration: Optional[Configuration] = None, script: Optional[str] = None):
        """
        Args:
            configuration: Engine configuration (default: Configuration())
            script: Behavior script source (default: read from configuration.script_path
                    or the bundled payload)
        """
        self.configuration = configuration or Configuration()
        cfg = self.configuration

        self.registry = SessionRegistry()
        self._ids = itertools.count(1)
        self._enabled = False

        self.prober = TargetProber(
            host=cfg.host,
            timeout=cfg.probe_timeout,
            workbench_marker=cfg.workbench_marker,
        )
        self.connector = SessionConnector(
            self.registry,
            connect_timeout=cfg.connect_timeout,
            call_timeout=cfg.call_timeout,
            max_size=cfg.max_size,
            id_source=self._ids,
        )
        self.correlator = CallCorrelator(self.registry, call_timeout=cfg.call_timeout)
        self.injector = Injector(
            self.registry,
            self.correlator,
            script if script is not None else load_script(cfg.script_path),
        )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def ports(self) -> range:
        return self.configuration.port_range

    async def is_available(self) -> bool:
        """Cheap check: does any port in the scan range list a workbench target?"""
        return await self.prober.is_any_available(self.ports)

    async def start(self, config: Union[AgentConfig, Mapping[str, Any]]) -> int:
        """
        Run one discovery pass and bring every found target up to date.

        New targets are connected and injected; already connected targets only
        receive the reconfigure call. Failures on one port or target are logged
        and the pass continues.

        Args:
            config: AgentConfig or the equivalent camelCase mapping

        Returns:
            Number of open sessions after the pass
        """
        self._enabled = True
        payload = config.to_payload() if isinstance(config, AgentConfig) else dict(config)

        logger.info(f"Scanning ports {self.ports.start} to {self.ports.stop - 1}...")

        for port in self.ports:
            try:
                await self._start_port(port, payload)
            except Exception as e:
                log_with_context(
                    logger, logging.ERROR, f"Discovery pass failed on port {port}: {e}", port=port
                )

        return self.get_connection_count()

    async def _start_port(self, port: int, payload: Dict[str, Any]) -> None:
        for target in await self.prober.list_targets(port):
            key = make_session_key(port, target.id)
            if key not in self.registry:
                if not await self.connector.connect(key, target.webSocketDebuggerUrl):
                    continue
            await self.injector.inject(key, payload)

    async def stop(self) -> None:
        """Notify and close every session, then empty the registry."""
        self._enabled = False

        try:
            for key in self.registry.keys():
                session = self.registry.get(key)
                if session is None:
                    continue
                try:
                    await self.correlator.evaluate(key, call_if_defined(STOP_FN))
                except CDPError as e:
                    log_session(logger, logging.DEBUG, f"Stop notification failed for {key}: {e}", key)
                await session.connection.disconnect()
        finally:
            self.registry.clear()
        logger.info("All CDP sessions stopped")

    async def evaluate(self, key: str, expression: str) -> dict:
        """Evaluate an arbitrary expression in one session. See CallCorrelator.evaluate."""
        return await self.correlator.evaluate(key, expression)

    def get_connection_count(self) -> int:
        return len(self.registry)

    async def _fan_out(self, call: Callable[[str], Awaitable[Any]]) -> List[Any]:
        """Run call for every session concurrently; failures are logged and left out."""
        keys = self.registry.keys()
        results = await asyncio.gather(*(call(key) for key in keys), return_exceptions=True)

        collected = []
        for key, result in zip(keys, results):
            if isinstance(result, Exception):
                log_session(logger, logging.DEBUG, f"Session {key} did not answer: {result}", key)
                continue
            collected.append(result)
        return collected

    async def get_stats(self) -> Dict[str, Any]:
        """Sum of the in-page stats counters over all sessions."""
        results = await self._fan_out(
            lambda key: self.correlator.evaluate_json(key, STATS_EXPR, {})
        )
        return _sum_fields(results, STAT_FIELDS, include_extra=True)

    async def get_session_summary(self) -> Dict[str, Any]:
        """Sum of the in-page session summaries (stats when no summary getter exists)."""
        results = await self._fan_out(
            lambda key: self.correlator.evaluate_json(key, SESSION_SUMMARY_EXPR, {})
        )
        return _sum_fields(results, STAT_FIELDS, include_extra=True)

    async def get_away_actions(self) -> Union[int, float]:
        """Total actions taken while the window was unfocused."""
        results = await self._fan_out(
            lambda key: self.correlator.evaluate_json(key, AWAY_ACTIONS_EXPR, 0)
        )
        return sum(_as_number(result) for result in results)

    async def reset_stats(self) -> Dict[str, Any]:
        """Reset in-page stats and return the clicks/blocked totals from before the reset."""
        fallback = {field: 0 for field in RESET_FIELDS}
        results = await self._fan_out(
            lambda key: self.correlator.evaluate_json(key, RESET_STATS_EXPR, dict(fallback))
        )
        return _sum_fields(results, RESET_FIELDS, include_extra=False)

    async def set_focus_state(self, is_focused: bool) -> None:
        """Tell every session whether the host window has focus."""
        expression = call_if_defined(SET_FOCUS_STATE_FN, bool(is_focused))
        await self._fan_out(lambda key: self.correlator.evaluate(key, expression))

    async def hide_overlay(self) -> None:
        """Remove the background-mode overlay from every session."""
        await self._fan_out(lambda key: self.correlator.evaluate(key, HIDE_OVERLAY_EXPR))
