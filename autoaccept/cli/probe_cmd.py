"""
Probe subcommand for target discovery.

Lists workbench targets across the scan range, or checks availability.
"""

import argparse
import asyncio
import json

from ..prober import TargetProber


async def probe_handler_async(args: argparse.Namespace) -> int:
    config = args.config
    prober = TargetProber(
        host=config.host,
        timeout=config.probe_timeout,
        workbench_marker=config.workbench_marker,
    )
    ports = [args.port] if args.port else list(config.port_range)

    if args.check:
        available = await prober.is_any_available(ports)
        if args.format == "json":
            print(json.dumps({"available": available}))
        else:
            print("available" if available else "unavailable")
        return 0 if available else 1

    targets = []
    for port in ports:
        targets.extend(await prober.list_targets(port))

    if args.format == "json":
        print(json.dumps([target.to_dict() for target in targets], indent=2))
    else:
        for target in targets:
            print(f"{target.port}\t{target.id}\t{target.type}\t{target.url}\t{target.title}")

    return 0


def probe_handler(args: argparse.Namespace) -> int:
    return asyncio.run(probe_handler_async(args))


def register_subcommand(
    subparsers: argparse._SubParsersAction, parent: argparse.ArgumentParser
) -> None:
    """Register 'probe' subcommand."""
    probe_parser = subparsers.add_parser(
        "probe",
        parents=[parent],
        help="List workbench targets in the scan range",
        description="Discover workbench targets via the DevTools HTTP endpoint",
        epilog="""
Examples:
  # List targets on every port in the scan range
  autoaccept probe

  # Only port 9000, text output
  autoaccept probe --port 9000 --format text

  # Availability check for scripts
  autoaccept probe --check
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    probe_parser.add_argument(
        "--port",
        type=int,
        help="Probe a single port instead of the scan range",
    )
    probe_parser.add_argument(
        "--check",
        action="store_true",
        help="Only report whether any workbench target is reachable (exit 1 if not)",
    )

    probe_parser.set_defaults(func=probe_handler)
