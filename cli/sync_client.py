"""CLI for the modsync local catalog mirror."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from modsync.config import Settings
from modsync.engine import SyncEngine
from modsync.exceptions import ModSyncError
from modsync.main import configure_logging, run_poller
from modsync.services.datetime_service import describe_age, format_timestamp

if TYPE_CHECKING:
    from collections.abc import Sequence

# Commands that only touch the local cache and need no remote configuration.
LOCAL_COMMANDS = frozenset({"status", "logout", "purge"})


def print_status(engine: SyncEngine) -> None:
    profile = engine.catalog_profile
    last_sync = engine.last_sync_timestamp
    print("Mirror Status:")
    print(f"  Cache dir:      {engine.settings.cache_dir}")
    catalog_id = profile.id or engine.settings.game_id
    print(f"  Catalog:        {profile.name or '(unknown)'} [{catalog_id}]")
    if last_sync > 0:
        print(f"  Last sync:      {format_timestamp(last_sync)} ({describe_age(last_sync)})")
    else:
        print("  Last sync:      never")
    print(f"  Items:          {len(engine.items)}")
    print(f"  Pending events: {len(engine.pending_events)}")

    user = engine.user
    if user is None:
        print("  User:           not logged in")
        return
    name = user.profile.username if user.profile is not None else "(unknown)"
    print(f"  User:           {name}")
    print(f"  Subscriptions:  {len(user.subscribed_item_ids)}")
    for item_id in user.subscribed_item_ids:
        item = engine.get_item(item_id)
        label = item.name if item is not None else "(not cached)"
        status = engine.binary_status(item).value if item is not None else "-"
        print(f"    * {item_id} {label} [{status}]")


async def download(engine: SyncEngine, item_id: int) -> int:
    item = engine.get_item(item_id)
    if item is None:
        print(f"Error: Item {item_id} is not in the local cache")
        return 1
    handle = engine.start_binary_download(item)
    print(f"  Download: {handle.request.source_url}")
    result = await handle.wait()
    if not result.ok:
        print(f"Error: Download failed: {result.error}")
        return 1
    print(f"Saved {result.path}")
    return 0


async def run_command(engine: SyncEngine, args: argparse.Namespace) -> int:
    """Execute one subcommand against ``engine``. Returns the process exit code."""
    if args.command == "status":
        engine.load_local()
        print_status(engine)
    elif args.command == "sync":
        await engine.initialize(rebuild=False)
        if engine.last_sync_timestamp == 0:
            await engine.rebuild_item_cache()
        before = len(engine.pending_events)
        await engine.sync_once()
        await engine.downloads.join()
        print(
            f"Sync complete. {len(engine.items)} item(s) cached, "
            f"{len(engine.pending_events)} event(s) pending (was {before})."
        )
    elif args.command == "poll":
        await run_poller(engine)
    elif args.command == "login":
        engine.load_local()
        user = await engine.login(args.token)
        name = user.profile.username if user.profile is not None else "(unknown)"
        print(f"Logged in as {name} ({len(user.subscribed_item_ids)} subscription(s))")
    elif args.command == "logout":
        engine.load_local()
        engine.logout()
        print("Logged out")
    elif args.command == "download":
        engine.load_local()
        return await download(engine, args.item_id)
    elif args.command == "purge":
        engine.load_local()
        removed = engine.delete_binaries(args.item_id)
        print(f"Deleted {removed} binary file(s) of item {args.item_id}")
    return 0


async def _run(settings: Settings, args: argparse.Namespace) -> int:
    require_remote = args.command not in LOCAL_COMMANDS
    async with SyncEngine.from_settings(settings, require_remote=require_remote) as engine:
        return await run_command(engine, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modsync",
        description="Mirror a remote mod catalog into a local cache",
    )
    parser.add_argument("--cache-dir", "-d", help="Cache directory (default: from settings)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("status", help="Show the state of the local mirror")
    subparsers.add_parser("sync", help="Run one synchronization pass now")
    subparsers.add_parser("poll", help="Keep the mirror in sync until interrupted")
    login = subparsers.add_parser("login", help="Start a session with an OAuth token")
    login.add_argument("token", help="OAuth access token")
    subparsers.add_parser("logout", help="End the current session")
    download_cmd = subparsers.add_parser("download", help="Download an item's current binary")
    download_cmd.add_argument("item_id", type=int)
    purge = subparsers.add_parser("purge", help="Delete all downloaded binaries of an item")
    purge.add_argument("item_id", type=int)
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    overrides: dict[str, object] = {}
    if args.cache_dir:
        overrides["cache_dir"] = Path(args.cache_dir).resolve()
    if args.debug:
        overrides["debug"] = True
    try:
        settings = Settings(**overrides)
        if args.command not in LOCAL_COMMANDS:
            settings.validate_runtime()
    except (ValidationError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    configure_logging(settings.debug)
    try:
        code = asyncio.run(_run(settings, args))
    except KeyboardInterrupt:
        print("Stopped")
        return
    except (ModSyncError, NotADirectoryError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
