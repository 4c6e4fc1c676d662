"""
Run subcommand: keep every workbench target injected and configured.

Repeats the discovery pass until the duration elapses, then reports the
aggregated stats and stops all sessions.
"""

import argparse
import asyncio
import json
import logging
import sys

from ..config import AgentConfig, DEFAULT_BANNED_COMMANDS
from ..handler import CDPHandler

logger = logging.getLogger(__name__)


async def run_handler_async(args: argparse.Namespace) -> int:
    """
    Handle 'run' command (async implementation).

    Returns:
        Exit code (0 if at least one session was driven, 1 otherwise)
    """
    handler = CDPHandler(args.config)
    agent_config = AgentConfig(
        poll_frequency=args.poll_frequency,
        background_mode=args.background,
        banned_commands=args.ban if args.ban else DEFAULT_BANNED_COMMANDS,
    )

    loop = asyncio.get_running_loop()
    deadline = loop.time() + args.duration
    peak_connections = 0

    try:
        first_pass = True
        while True:
            connections = await handler.start(agent_config)
            peak_connections = max(peak_connections, connections)
            if first_pass:
                await handler.set_focus_state(not args.background)
                first_pass = False

            logger.info(f"{connections} session(s) active")

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(args.rescan_interval, remaining))

        stats = await (handler.reset_stats() if args.reset_stats else handler.get_session_summary())
        away_actions = await handler.get_away_actions()
        connections = handler.get_connection_count()
        if args.background:
            await handler.hide_overlay()
    finally:
        await handler.stop()

    report = {
        "connections": connections,
        "stats": stats,
        "awayActions": away_actions,
    }
    if args.format == "json":
        print(json.dumps(report, indent=2))
    else:
        print(f"connections\t{connections}")
        for field, value in stats.items():
            print(f"{field}\t{value}")
        print(f"awayActions\t{away_actions}")

    if peak_connections == 0:
        print("No workbench targets found in the scan range", file=sys.stderr)
        return 1
    return 0


def run_handler(args: argparse.Namespace) -> int:
    return asyncio.run(run_handler_async(args))


def register_subcommand(
    subparsers: argparse._SubParsersAction, parent: argparse.ArgumentParser
) -> None:
    """Register 'run' subcommand."""
    run_parser = subparsers.add_parser(
        "run",
        parents=[parent],
        help="Connect, inject and keep targets configured",
        description="Inject the behavior script into every workbench target and keep it configured",
        epilog="""
Examples:
  # Default settings for 30 seconds
  autoaccept run

  # Unattended operation with a custom ban list
  autoaccept run --background --ban "rm -rf" --ban "git push --force" --duration 600

  # Inject a custom script build
  autoaccept run --script ./dist/full_cdp_script.js
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    run_parser.add_argument(
        "--poll-frequency",
        type=int,
        default=750,
        help="In-page action cadence in milliseconds (default: 750)",
    )
    run_parser.add_argument(
        "--background",
        action="store_true",
        help="Enable background (unattended) mode",
    )
    run_parser.add_argument(
        "--ban",
        action="append",
        metavar="PATTERN",
        help="Command pattern to block (repeatable, replaces the default list)",
    )
    run_parser.add_argument(
        "--script",
        help="Behavior script to inject (default: bundled payload)",
    )
    run_parser.add_argument(
        "--duration",
        type=float,
        default=30.0,
        help="Seconds to keep running (default: 30)",
    )
    run_parser.add_argument(
        "--rescan-interval",
        type=float,
        default=5.0,
        help="Seconds between discovery passes (default: 5)",
    )
    run_parser.add_argument(
        "--reset-stats",
        action="store_true",
        help="Reset in-page stats at the end and report the totals from before the reset",
    )

    run_parser.set_defaults(func=run_handler)
