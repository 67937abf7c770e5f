# FreeHand: Main Entry Point
#
# Headless command line. `freehand run` starts the full automation and
# keeps it going until Ctrl+C; the other commands are one-shot helpers
# for checking discovery, quota, the schedule and the blocklist from a
# terminal.

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from . import __version__
from .automation.safety_filter import SafetyFilter
from .core import AppContext
from .core.config import KEY_ENABLED
from .discovery.process_hunter import ProcessHunter
from .quota.quota_service import QuotaService
from .scheduler.wake_scheduler import WakeScheduler
from .supervisor import FreeHandApp


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="freehand",
        description="FreeHand - hands-free accept/run automation for the Antigravity IDE",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory for settings.db and audit logs (default: $FREEHAND_DATA_DIR or ./data)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"FreeHand v{__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Run the automation until interrupted")
    sub.add_parser("scan", help="Run one discovery pass and print the descriptor")
    sub.add_parser("quota", help="Discover the language server and print quota")
    sub.add_parser("status", help="Print the automation switch and work-hours schedule")
    sub.add_parser("toggle", help="Turn the automation on or off")

    blocklist = sub.add_parser("blocklist", help="Show or edit the command blocklist")
    bl_sub = blocklist.add_subparsers(dest="action", required=True)
    bl_sub.add_parser("list", help="Print the effective blocklist")
    add = bl_sub.add_parser("add", help="Add a pattern (literal or /regex/flags)")
    add.add_argument("pattern")
    remove = bl_sub.add_parser("remove", help="Remove a pattern")
    remove.add_argument("pattern")
    bl_sub.add_parser("reset", help="Restore the default blocklist")

    check = sub.add_parser("check", help="Test a command against the blocklist")
    check.add_argument("shell_command", metavar="command")

    return parser


async def _run(context: AppContext) -> None:
    app = FreeHandApp(context)
    await app.start()
    try:
        await asyncio.Event().wait()
    finally:
        await app.close()


async def _scan(context: AppContext) -> int:
    hunter = ProcessHunter.for_platform(context)
    try:
        descriptor = await hunter.scan_environment(context.settings.load().max_scan_attempts)
    finally:
        await hunter.close()
    if descriptor is None:
        print("No target process found")
        return 1
    print(json.dumps(descriptor.to_dict(), indent=2))
    return 0


async def _quota(context: AppContext) -> int:
    hunter = ProcessHunter.for_platform(context)
    service = QuotaService(context)
    try:
        descriptor = await hunter.scan_environment(context.settings.load().max_scan_attempts)
        if descriptor is None:
            print("No target process found")
            return 1
        snapshot = await service.fetch(descriptor)
    finally:
        await service.close()
        await hunter.close()
    print(json.dumps(snapshot.to_dict(), indent=2))
    return 0 if snapshot.is_connected else 1


def _blocklist(context: AppContext, args: argparse.Namespace) -> int:
    safety = SafetyFilter(context.settings, audit=context.audit)
    if args.action == "add":
        if not safety.add_pattern(args.pattern):
            print(f"Unchanged: {args.pattern!r} already present or blank")
    elif args.action == "remove":
        if not safety.remove_pattern(args.pattern):
            print(f"Unchanged: {args.pattern!r} not in blocklist")
    elif args.action == "reset":
        safety.reset_blocklist()
    for pattern in safety.get_blocklist():
        print(pattern)
    return 0


def _status(context: AppContext) -> int:
    settings = context.settings.load()
    status = {
        "enabled": settings.enabled,
        "poll_interval": settings.poll_interval,
        "schedule_enabled": settings.wake_enabled,
        **WakeScheduler(context).get_status(),
    }
    print(json.dumps(status, indent=2))
    return 0


def _toggle(context: AppContext) -> int:
    enabled = context.settings.toggle(KEY_ENABLED)
    print(f"Automation {'enabled' if enabled else 'disabled'}")
    return 0


def _check(context: AppContext, command: str) -> int:
    if SafetyFilter(context.settings).is_blocked(command):
        print("BLOCKED")
        return 1
    print("allowed")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for FreeHand."""
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    context = AppContext.create(args.data_dir)

    try:
        if args.command == "run":
            try:
                asyncio.run(_run(context))
            except KeyboardInterrupt:
                print("\nShutting down...")
            return 0
        if args.command == "scan":
            return asyncio.run(_scan(context))
        if args.command == "quota":
            return asyncio.run(_quota(context))
        if args.command == "status":
            return _status(context)
        if args.command == "toggle":
            return _toggle(context)
        if args.command == "blocklist":
            return _blocklist(context, args)
        if args.command == "check":
            return _check(context, args.shell_command)
    finally:
        context.close()
    return 2


if __name__ == "__main__":
    sys.exit(main())
