"""
Main CLI entry point for the autoaccept injection engine.

Usage:
    python -m autoaccept.cli.main <subcommand> [options]

Subcommands:
    probe  - List workbench targets in the scan range
    run    - Connect, inject and keep targets configured
    verify - Live connection check against one port
"""

import argparse
import sys
from typing import List, Optional

from autoaccept.config import Configuration
from autoaccept.logging_setup import setup_logging


def create_parent_parser() -> argparse.ArgumentParser:
    """
    Create parent parser with global options shared across all subcommands.

    Options default to None so that unset flags do not override the
    environment or ~/.autoacceptrc.
    """
    parent = argparse.ArgumentParser(add_help=False)

    parent.add_argument(
        "--host",
        help="Debugging endpoint host (default: 127.0.0.1)",
    )
    parent.add_argument(
        "--base-port",
        type=int,
        help="Center of the port scan range (default: 9000)",
    )
    parent.add_argument(
        "--port-radius",
        type=int,
        help="Ports scanned on each side of the base port (default: 3)",
    )
    parent.add_argument(
        "--probe-timeout",
        type=float,
        help="Target listing timeout in seconds (default: 0.5)",
    )
    parent.add_argument(
        "--connect-timeout",
        type=float,
        help="WebSocket connect timeout in seconds (default: 5.0)",
    )
    parent.add_argument(
        "--call-timeout",
        type=float,
        help="Evaluation reply timeout in seconds (default: 2.0)",
    )

    parent.add_argument(
        "--format",
        choices=["json", "text"],
        default="json",
        help="Output format (default: json)",
    )

    parent.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )

    verbosity_group = parent.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress non-essential output (only show results)",
    )
    verbosity_group.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose debug output",
    )

    return parent


def create_main_parser(parent: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Create main parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="autoaccept",
        description="Inject and drive a behavior script in Chromium workbench windows over CDP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List workbench targets on ports 8997-9003
  autoaccept probe

  # Exit 0 if any workbench target is reachable
  autoaccept probe --check

  # Inject and keep targets configured for 60 seconds
  autoaccept run --poll-frequency 500 --background --duration 60

  # Check a live connection on port 9000
  autoaccept verify --port 9000

For more information on subcommands, run: autoaccept <subcommand> --help
        """,
    )

    subparsers = parser.add_subparsers(
        dest="subcommand",
        title="subcommands",
        description="Available operations",
        required=True,
    )

    from . import probe_cmd, run_cmd, verify_cmd

    probe_cmd.register_subcommand(subparsers, parent)
    run_cmd.register_subcommand(subparsers, parent)
    verify_cmd.register_subcommand(subparsers, parent)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for CLI.

    Precedence: CLI flags > env vars > config file > defaults

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parent = create_parent_parser()
    parser = create_main_parser(parent)

    args = parser.parse_args(argv)

    config = Configuration()
    config.load_from_file("~/.autoacceptrc")
    config.load_from_env()

    config.merge(
        host=args.host,
        base_port=args.base_port,
        port_radius=args.port_radius,
        probe_timeout=args.probe_timeout,
        connect_timeout=args.connect_timeout,
        call_timeout=args.call_timeout,
        log_level=args.log_level.upper() if args.log_level else None,
        script_path=getattr(args, "script", None),
    )

    if args.quiet:
        config.log_level = "ERROR"
    elif args.verbose:
        config.log_level = "DEBUG"

    # Logs go to stderr; --format only controls result output on stdout
    setup_logging(format_type=config.log_format, level=config.log_level)

    args.config = config

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        if config.log_level.upper() == "DEBUG":
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
