"""CLI entry point: sync, show, export, stats, status, watch, relay."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Optional

from identity_console.cache import UserCache
from identity_console.config import ConsoleConfig, load_config
from identity_console.export import export_filename, write_csv
from identity_console.logging_config import configure_logging
from identity_console.models import ProcessedUser
from identity_console.orchestrator import SyncOrchestrator, SyncOutcome
from identity_console.secrets import resolve_secret
from identity_console.stats import summarize
from identity_console.views import SORT_KEYS, find_user, search_users, sort_users

logger = logging.getLogger("console.cli")


def _print_progress(count: int) -> None:
    print(f"\rFetched {count} users...", end="", file=sys.stderr, flush=True)


async def _run_sync(config: ConsoleConfig, cache: UserCache) -> SyncOutcome:
    orchestrator = SyncOrchestrator(config, cache)
    try:
        await orchestrator.load_cached()
        outcome = await orchestrator.sync(silent=False, on_progress=_print_progress)
        print(file=sys.stderr)
    finally:
        await orchestrator.aclose()
    return outcome


def cmd_sync(args: argparse.Namespace, config: ConsoleConfig) -> int:
    """Explicit sync: report success, or failure against whatever is cached."""
    with UserCache(config.cache) as cache:
        outcome = asyncio.run(_run_sync(config, cache))

    if outcome.error:
        print(f"Connection Failed: {outcome.error}", file=sys.stderr)
        return 1
    if outcome.notice is not None:
        print(outcome.notice.message)
    print(f"{len(outcome.records)} users")
    return 0 if outcome.ok else 1


def _print_detail(user: ProcessedUser) -> None:
    rows = [
        ("ID", user.id),
        ("Name", user.full_name),
        ("Email", user.email),
        ("Status", f"{user.status_label} User"),
        ("Last Sign In", user.display_last_sign_in),
        ("Created On", user.created_at or "-"),
        ("Roles", ", ".join(user.role_names) or "-"),
    ]
    for label, value in rows:
        print(f"{label + ':':<14}{value}")

    print()
    print("Team Membership:")
    if not user.team_names:
        print("  No teams assigned")
    for team in user.team_names:
        print(f"  - {team}")

    print()
    print("Projects:")
    if not user.project_names:
        print("  No projects")
    for project in user.project_names:
        print(f"  - {project}")


def cmd_show(args: argparse.Namespace, config: ConsoleConfig) -> int:
    with UserCache(config.cache) as cache:
        users = cache.load_all()
    if not users:
        print("No Data Found. Run 'identity-console sync' first.")
        return 0

    if args.user_id:
        user = find_user(users, args.user_id)
        if user is None:
            print(f"No user with id {args.user_id!r} in cache.", file=sys.stderr)
            return 1
        _print_detail(user)
        return 0

    matched = sort_users(search_users(users, args.search), args.sort, args.desc)
    shown = matched[: args.limit] if args.limit > 0 else matched

    fmt = "{:<36}  {:<28}  {:<34}  {:<8}  {:<25}  {}"
    print(fmt.format("ID", "NAME", "EMAIL", "STATUS", "LAST SIGN IN", "ROLES"))
    print("-" * 160)
    for u in shown:
        print(fmt.format(
            u.id[:36],
            u.full_name[:28],
            u.email[:34],
            u.status_label,
            u.display_last_sign_in[:25],
            ", ".join(u.role_names),
        ))
    print()
    print(f"Showing {len(shown)} of {len(matched)} users ({len(users)} cached)")
    return 0


def cmd_export(args: argparse.Namespace, config: ConsoleConfig) -> int:
    with UserCache(config.cache) as cache:
        users = cache.load_all()
    if not users:
        print("Nothing to export: cache is empty.", file=sys.stderr)
        return 1

    if args.output == "-":
        count = write_csv(users, sys.stdout)
    else:
        path = args.output or export_filename()
        with open(path, "w", newline="", encoding="utf-8") as fh:
            count = write_csv(users, fh)
        print(f"Exported {count} records to {path}")
    logger.info("Exported users", extra={"records": count})
    return 0


def cmd_stats(args: argparse.Namespace, config: ConsoleConfig) -> int:
    with UserCache(config.cache) as cache:
        stats = summarize(cache.load_all())

    print(f"Total Users:    {stats.total}")
    print(f"Active Users:   {stats.active}")
    print(f"Inactive Users: {stats.inactive}")
    print(f"Total Teams:    {stats.unique_teams}")
    if stats.team_counts:
        print()
        print("{:<40}  {:>7}".format("TEAM", "MEMBERS"))
        for name, count in stats.team_counts:
            print("{:<40}  {:>7}".format(name[:40], count))
    return 0


def cmd_status(args: argparse.Namespace, config: ConsoleConfig) -> int:
    """Show recent sync runs."""
    with UserCache(config.cache) as cache:
        last = cache.get_last_sync_time()
        runs = cache.get_recent_runs(limit=args.limit)

    print(f"Last successful sync: {last.isoformat() if last else 'never'}")
    if not runs:
        print("No sync runs found.")
        return 0

    fmt = "{:<36}  {:<14}  {:<20}  {:<20}  {:>8}  {}"
    print(fmt.format("RUN ID", "STATUS", "STARTED", "FINISHED", "RECORDS", "ERROR"))
    print("-" * 130)
    for r in runs:
        print(fmt.format(
            r["id"],
            r["status"],
            (r["started_at"] or "")[:19],
            (r["finished_at"] or "")[:19],
            r["records_upserted"] or 0,
            (r["error_message"] or "")[:40],
        ))
    return 0


def cmd_watch(args: argparse.Namespace, config: ConsoleConfig) -> int:
    """Show the cache, refresh when stale, then silently re-sync on the interval."""
    from identity_console.scheduler import run_console_loop

    try:
        asyncio.run(run_console_loop(config))
    except KeyboardInterrupt:
        logger.info("Stopped")
    return 0


def cmd_relay(args: argparse.Namespace, config: ConsoleConfig) -> int:
    from identity_console.relay import run_relay

    # API key references are resolved only when the relay starts
    relay_config = replace(config.relay, api_key=resolve_secret(config.relay.api_key))
    run_relay(relay_config)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="identity-console",
        description="Spectro Cloud identity console",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Fetch users, roles and teams now")
    sync_parser.set_defaults(func=cmd_sync)

    show_parser = subparsers.add_parser("show", help="List cached users, or show one in detail")
    show_parser.add_argument(
        "user_id",
        nargs="?",
        help="Show teams, projects and roles for this user id",
    )
    show_parser.add_argument(
        "--search", "-s",
        default=None,
        help="Filter by full name, email or team name (case-insensitive)",
    )
    show_parser.add_argument(
        "--sort",
        choices=sorted(SORT_KEYS),
        default="name",
        help="Sort column (default: name)",
    )
    show_parser.add_argument(
        "--desc",
        action="store_true",
        help="Sort descending",
    )
    show_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=0,
        help="Maximum rows to print (default: all)",
    )
    show_parser.set_defaults(func=cmd_show)

    export_parser = subparsers.add_parser("export", help="Export cached users as CSV")
    export_parser.add_argument(
        "--output", "-o",
        default=None,
        help="Output file, '-' for stdout (default: spectro_users_<date>.csv)",
    )
    export_parser.set_defaults(func=cmd_export)

    stats_parser = subparsers.add_parser("stats", help="Dashboard summary of cached users")
    stats_parser.set_defaults(func=cmd_stats)

    status_parser = subparsers.add_parser("status", help="Show recent sync runs")
    status_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=10,
        help="Number of runs to show (default: 10)",
    )
    status_parser.set_defaults(func=cmd_status)

    watch_parser = subparsers.add_parser("watch", help="Keep the cache fresh on a schedule")
    watch_parser.set_defaults(func=cmd_watch)

    relay_parser = subparsers.add_parser("relay", help="Run the CORS relay")
    relay_parser.set_defaults(func=cmd_relay)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    config = load_config()
    configure_logging(config.log_level)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
