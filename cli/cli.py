# cli/cli.py
"""
Command line entry points for lead synchronization chores.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import traceback
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

# Ensure project root is in path for imports
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from leadsync.core.logging import configure_structlog
from leadsync.db.session import create_all, dispose_engine, get_sessionmaker
from leadsync.services.campaign_catalog import refresh_campaigns, subscribe_pages
from leadsync.services.factory import build_sync_service, get_lead_source
from leadsync.services.redis import close_redis_pool


def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    print(f"{RED}[✗]{RESET} {message}")


def print_warning(message: str):
    print(f"{YELLOW}[!]{RESET} {message}")


def print_info(message: str):
    print(f"{BLUE}[i]{RESET} {message}")


async def cmd_sync(args: argparse.Namespace) -> int:
    """Command: Sync one campaign."""
    service = build_sync_service()
    print_info(f"Syncing campaign {args.campaign_id} for tenant {args.tenant}...")
    result = await service.sync(args.tenant, args.campaign_id)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))

    if result.error:
        print_error(f"Sync failed: {result.error}")
        return 1
    if not result.found:
        print_error(f"Campaign {args.campaign_id} not found")
        return 1

    print_success(
        f"Synced {result.synced} of {result.fetched} fetched leads "
        f"({result.counts.duplicates} duplicates, {result.counts.skipped_wrong_campaign} other campaigns)"
    )
    for page_id in result.deferred_pages:
        print_warning(f"Page {page_id} is cooling down; sync again later")
    return 0


async def cmd_sync_many(args: argparse.Namespace) -> int:
    """Command: Sync several campaigns one after another."""
    service = build_sync_service()
    result = await service.sync_many(args.tenant, args.campaign_ids)
    summary = result.to_dict()

    if args.json:
        print(json.dumps(summary, indent=2))

    print_success(f"Synced {summary['totalSynced']} of {summary['totalFetched']} fetched leads")
    for page_id in summary["deferredPages"]:
        print_warning(f"Page {page_id} is cooling down; sync again later")
    for campaign_id, error in summary["errors"].items():
        print_error(f"{campaign_id}: {error}")

    return 1 if summary["errors"] else 0


async def cmd_refresh_campaigns(args: argparse.Namespace) -> int:
    """Command: Refresh the campaign catalog of a tenant."""
    saved = await refresh_campaigns(get_sessionmaker(), get_lead_source(), args.tenant)
    print_success(f"Refreshed {saved} campaigns for tenant {args.tenant}")
    return 0


async def cmd_subscribe_pages(args: argparse.Namespace) -> int:
    """Command: Subscribe pages to leadgen webhooks."""
    subscribed = await subscribe_pages(get_sessionmaker(), get_lead_source(), args.tenant)
    print_success(f"Subscribed {subscribed} pages")
    return 0


async def cmd_init_db(args: argparse.Namespace) -> int:
    """Command: Create missing tables."""
    await create_all()
    print_success("Database tables created")
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
    'sync': cmd_sync,
    'sync-many': cmd_sync_many,
    'refresh-campaigns': cmd_refresh_campaigns,
    'subscribe-pages': cmd_subscribe_pages,
    'init-db': cmd_init_db,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        description='LeadSync CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    sync_parser = subparsers.add_parser('sync', help='Pull leads into one campaign')
    sync_parser.add_argument('campaign_id', help='Campaign id')
    sync_parser.add_argument('--tenant', required=True, help='Tenant id')
    sync_parser.add_argument('--json', action='store_true', help='Print the result as JSON')

    many_parser = subparsers.add_parser('sync-many', help='Pull leads into several campaigns')
    many_parser.add_argument('campaign_ids', nargs='+', help='Campaign ids')
    many_parser.add_argument('--tenant', required=True, help='Tenant id')
    many_parser.add_argument('--json', action='store_true', help='Print the result as JSON')

    refresh_parser = subparsers.add_parser('refresh-campaigns', help='Refresh the campaign catalog')
    refresh_parser.add_argument('--tenant', required=True, help='Tenant id')

    subscribe_parser = subparsers.add_parser('subscribe-pages', help='Subscribe pages to leadgen webhooks')
    subscribe_parser.add_argument('--tenant', default=None, help='Only pages of this tenant')

    subparsers.add_parser('init-db', help='Create database tables')

    return parser


async def _run(command_func: Callable[[argparse.Namespace], Awaitable[int]], args: argparse.Namespace) -> int:
    try:
        return await command_func(args)
    finally:
        await close_redis_pool()
        await dispose_engine()


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    configure_structlog()

    try:
        return asyncio.run(_run(command_func, parsed_args))
    except KeyboardInterrupt:
        print_error("\nInterrupted by user")
        return 130
    except Exception as e:
        print_error(f"Error executing command: {str(e)}")
        if os.getenv('DEBUG'):
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
