"""
FlowMate CLI: entry point for operations.

Usage:
    flowmate version                 # Show version
    flowmate migrate                 # Create tables
    flowmate vault keygen            # Print a new FLOWMATE_ENCRYPTION_KEY
    flowmate vault list USER_ID      # Show connected providers for a user
    flowmate sync add USER_ID RESOURCE_ID --type database
    flowmate sync run                # Run one sync pass
    flowmate sync serve              # Run sync passes on an interval
    flowmate audit --status error    # Recent audit events
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Required tables for a working FlowMate installation
REQUIRED_TABLES = [
    "user_integrations",
    "sync_targets",
    "notion_property_mappings",
    "notion_automations",
    "synced_objects",
    "audit_log",
]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flowmate",
        description="FlowMate: credential vault and sync engine for connected accounts.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Run database migrations")
    migrate_parser.add_argument(
        "--dry-run", action="store_true", help="Print SQL without executing"
    )
    migrate_parser.add_argument(
        "--check", action="store_true", help="Check if required tables exist"
    )

    # vault
    vault_parser = subparsers.add_parser("vault", help="Credential vault")
    vault_sub = vault_parser.add_subparsers(dest="vault_command")
    vault_sub.add_parser("keygen", help="Generate an encryption key")
    vault_list = vault_sub.add_parser("list", help="List connected providers for a user")
    vault_list.add_argument("user_id")

    # sync
    sync_parser = subparsers.add_parser("sync", help="Notion sync engine")
    sync_sub = sync_parser.add_subparsers(dest="sync_command")
    sync_sub.add_parser("run", help="Run one sync pass")
    sync_serve = sync_sub.add_parser("serve", help="Run sync passes on an interval")
    sync_serve.add_argument(
        "--interval-ms", type=int, default=None, help="Override FLOWMATE_SYNC_POLL_INTERVAL_MS"
    )
    sync_add = sync_sub.add_parser("add", help="Opt a Notion resource into syncing")
    sync_add.add_argument("user_id")
    sync_add.add_argument("resource_id")
    sync_add.add_argument("--type", choices=["database", "page"], default="database")
    sync_add.add_argument("--workspace", default=None)

    # audit
    audit_parser = subparsers.add_parser("audit", help="Show recent audit events")
    audit_parser.add_argument("--limit", type=int, default=20)
    audit_parser.add_argument("--event-type", default=None, help="e.g. sync.permission_denied")
    audit_parser.add_argument("--actor", default=None, help="User id")
    audit_parser.add_argument("--status", default=None, choices=["ok", "error", "denied"])

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from flowmate import __version__

        print(f"flowmate {__version__}")
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command == "migrate":
        return _cmd_migrate(args)
    elif args.command == "vault":
        return _cmd_vault(args)
    elif args.command == "sync":
        return _cmd_sync(args)
    elif args.command == "audit":
        return _cmd_audit(args)
    else:
        parser.print_help()
        return 0


def _find_migration_sql() -> str | None:
    """Find the migration SQL file bundled with the package."""
    bundled = Path(__file__).parent / "migrations" / "001_init.sql"
    if bundled.exists():
        return bundled.read_text()
    return None


def _cmd_migrate(args: argparse.Namespace) -> int:
    sql = _find_migration_sql()
    if sql is None:
        print("Error: Migration SQL not found.")
        print("Expected at: flowmate/migrations/001_init.sql")
        return 1

    if args.check:
        return _cmd_migrate_check()

    if args.dry_run:
        print("-- Dry run: the following SQL would be executed --")
        print(sql)
        return 0

    try:
        import psycopg2

        from flowmate.config import get_config

        cfg = get_config().db
        print(f"Connecting to {cfg.host}:{cfg.port}/{cfg.name}...")
        conn = psycopg2.connect(**cfg.dict, connect_timeout=5)
        conn.autocommit = True
        with conn.cursor() as cur:
            cur.execute(sql)
        conn.close()
        print("Migration completed successfully.")

        return _cmd_migrate_check()

    except Exception as e:
        print(f"Error: Migration failed: {e}")
        print("Check FLOWMATE_DB_* environment variables and ensure PostgreSQL is running.")
        return 1


def _cmd_migrate_check() -> int:
    """Check if required tables exist in the database."""
    try:
        import psycopg2

        from flowmate.config import get_config

        cfg = get_config().db
        conn = psycopg2.connect(**cfg.dict, connect_timeout=5)
        with conn.cursor() as cur:
            cur.execute(
                "SELECT table_name FROM information_schema.tables WHERE table_schema = 'public'"
            )
            existing = {row[0] for row in cur.fetchall()}
        conn.close()

        missing = [t for t in REQUIRED_TABLES if t not in existing]
        if missing:
            print(f"Missing tables ({len(missing)}/{len(REQUIRED_TABLES)}):")
            for t in missing:
                print(f"  - {t}")
            print("\nRun 'flowmate migrate' to create them.")
            return 1
        print(f"All {len(REQUIRED_TABLES)} required tables present.")
        return 0

    except Exception as e:
        print(f"Error: Cannot check tables: {e}")
        return 1


def _cmd_vault(args: argparse.Namespace) -> int:
    if args.vault_command == "keygen":
        from flowmate.vault.crypto import generate_key

        print(generate_key())
        return 0

    if args.vault_command == "list":
        from flowmate import vault

        try:
            providers = vault.list_providers(args.user_id)
        except Exception as e:
            print(f"Error: {e}")
            return 1
        if not providers:
            print(f"No integrations connected for user {args.user_id}.")
            return 0
        for provider, connected in providers.items():
            print(f"  {provider:<12} {'connected' if connected else 'disconnected'}")
        return 0

    print("Usage: flowmate vault {keygen,list}")
    return 1


def _cmd_sync(args: argparse.Namespace) -> int:
    import asyncio

    if args.sync_command == "add":
        from flowmate.sync.registry import add_sync_target

        try:
            add_sync_target(args.user_id, args.resource_id, args.type, args.workspace)
        except Exception as e:
            print(f"Error: {e}")
            return 1
        print(f"Syncing {args.type} {args.resource_id} for user {args.user_id}.")
        return 0

    if args.sync_command == "run":
        from flowmate.errors import KeyConfigError
        from flowmate.sync.models import TargetStatus
        from flowmate.sync.orchestrator import build_orchestrator

        try:
            orchestrator = build_orchestrator()
        except KeyConfigError as e:
            print(f"Error: {e}")
            return 1
        report = asyncio.run(orchestrator.run_pass())
        for outcome in report.outcomes:
            line = f"  {outcome.target.key:<60} {outcome.status.value:<18} {outcome.changes} changes"
            if outcome.error:
                line += f"  ({outcome.error})"
            print(line)
        print(f"{len(report.outcomes)} target(s), {report.total_changes} change(s).")
        return 1 if report.by_status(TargetStatus.FAILED) else 0

    if args.sync_command == "serve":
        from flowmate.config import get_config
        from flowmate.errors import KeyConfigError
        from flowmate.sync.orchestrator import build_orchestrator
        from flowmate.sync.scheduler import SyncScheduler

        cfg = get_config().sync
        try:
            orchestrator = build_orchestrator(cfg)
        except KeyConfigError as e:
            print(f"Error: {e}")
            return 1
        scheduler = SyncScheduler(orchestrator, args.interval_ms or cfg.polling_interval_ms)
        try:
            asyncio.run(scheduler.serve_forever())
        except KeyboardInterrupt:
            pass
        return 0

    print("Usage: flowmate sync {run,serve,add}")
    return 1


def _cmd_audit(args: argparse.Namespace) -> int:
    from flowmate.audit.logger import query_log

    events = query_log(
        limit=args.limit,
        event_type=args.event_type,
        actor=args.actor,
        status=args.status,
    )
    if not events:
        print("No audit events.")
        return 0
    for e in events:
        print(
            f"  {e['timestamp']}  {e['event_type']:<26} {e['status']:<7} "
            f"actor={e['actor']} {e['target'] or ''}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
