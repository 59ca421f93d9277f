import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from pathlib import Path

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.app_shell.config import (
    MIGRATIONS_DIR,
    configure_logging,
    load_app_rules,
    validate_runtime,
)
from src.app_shell.context import PipelineContext
from src.components.auth_session import LoginInput, run_login
from src.components.gold import RollupDailyInput, run_rollup_daily
from src.components.sync import run_sync
from src.rules.models import Rules

logger = logging.getLogger("cli")


def get_context(rules: Rules) -> PipelineContext:
    return PipelineContext.create(rules)


def handle_migrate(rules: Rules, args: argparse.Namespace) -> None:
    applied = SQLiteMigrator(rules.storage.db_path, str(MIGRATIONS_DIR)).run_migrations()
    if applied:
        for name in applied:
            print(f"Applied {name}")
    else:
        print("Database is up to date.")


async def handle_ingest(ctx: PipelineContext, args: argparse.Namespace) -> None:
    path = Path(args.file)
    if not path.exists():
        logger.error("Input file %s not found.", path)
        sys.exit(1)

    stored = 0
    rejected = 0
    with path.open(encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                item = json.loads(line)
                await ctx.raw_store.append(item["category"], item["payload"])
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Line %d rejected: %s", line_no, e)
                rejected += 1
                continue
            stored += 1

    print(f"Stored {stored} events ({rejected} rejected).")
    if not args.no_transform:
        await handle_transform(ctx, args)


async def handle_transform(ctx: PipelineContext, args: argparse.Namespace) -> None:
    out = await ctx.transformer.process_all()
    print(
        f"Processed {out.processed}, unchanged {out.unchanged}, superseded {out.superseded}, "
        f"ignored {out.ignored}, skipped {out.skipped}. Cursor at {out.cursor}."
    )


async def handle_rollup(ctx: PipelineContext, args: argparse.Namespace) -> None:
    out = await run_rollup_daily(RollupDailyInput(args.date), aggregator=ctx.aggregator)
    if not out.success:
        for error in out.errors:
            logger.error(error.message)
        sys.exit(1)

    row = out.analytics
    print(
        f"{row.date}: {row.total_requests} requests, {row.total_bytes} bytes, "
        f"error rate {row.error_rate:.2f}%, p95 {row.p95_response_time:.0f} ms"
    )


async def handle_login(ctx: PipelineContext, args: argparse.Namespace) -> None:
    password = args.password or getpass.getpass("Password: ")
    out = await run_login(LoginInput(args.email, password), session=ctx.session)
    if not out.success:
        logger.error("Login failed: %s", out.error)
        sys.exit(1)
    print(f"Logged in as {out.result.user_id} (team {out.result.team_id}).")


async def handle_sync(ctx: PipelineContext, args: argparse.Namespace) -> None:
    await ctx.session.initialize()
    out = await run_sync(engine=ctx.sync_engine)
    if not out.success:
        logger.error("Sync did not run: %s", out.error)
        sys.exit(1)

    results = out.results
    for category in sorted(set(results.uploaded) | set(results.downloaded)):
        print(
            f"{category}: uploaded {results.uploaded.get(category, 0)}, "
            f"downloaded {results.downloaded.get(category, 0)}"
        )
    for error in results.errors:
        print(f"ERROR {error.category}/{error.stage}: {error.message}")
    if results.errors:
        sys.exit(2)


async def handle_status(ctx: PipelineContext, args: argparse.Namespace) -> None:
    await ctx.session.initialize()
    session = ctx.session.snapshot()
    sync = ctx.sync_engine.get_status()
    print(f"Bronze events:   {ctx.raw_store.count()}")
    print(f"Silver cursor:   {ctx.transformer.cursor}")
    print(f"Session:         {session.state.value} (user {session.user_id}, team {session.team_id})")
    print(f"Last sync:       {sync.last_sync_timestamp}")
    print(f"Queued sync:     {', '.join(sync.queued) or '-'}")


async def handle_run(ctx: PipelineContext, args: argparse.Namespace) -> None:
    await ctx.start()
    # Catch up on anything stored while the pipeline was down
    await ctx.transformer.process_all()
    logger.info("Pipeline running; press Ctrl+C to stop")
    await asyncio.Event().wait()


def handle_serve(rules: Rules, args: argparse.Namespace) -> None:
    import uvicorn

    if args.rules:
        os.environ["TELEMETRY_RULES"] = args.rules
    uvicorn.run("src.api.main:app", host=args.host, port=args.port, log_level=rules.logging.level.lower())


async def _run_with_context(rules: Rules, args: argparse.Namespace) -> None:
    handlers = {
        "ingest": handle_ingest,
        "transform": handle_transform,
        "rollup": handle_rollup,
        "login": handle_login,
        "sync": handle_sync,
        "status": handle_status,
        "run": handle_run,
    }
    ctx = get_context(rules)
    try:
        await handlers[args.command](ctx, args)
    finally:
        await ctx.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Telemetry medallion pipeline CLI")
    parser.add_argument("--rules", help="Path to rules.yaml (default: TELEMETRY_RULES or project root)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending database migrations")

    # ingest
    ingest_parser = subparsers.add_parser("ingest", help="Append JSON-lines events to bronze")
    ingest_parser.add_argument("file", help='File with one {"category": ..., "payload": {...}} per line')
    ingest_parser.add_argument("--no-transform", action="store_true", help="Store only, skip silver")

    # transform
    subparsers.add_parser("transform", help="Process pending bronze events into silver")

    # rollup
    rollup_parser = subparsers.add_parser("rollup", help="Recompute daily analytics for a date")
    rollup_parser.add_argument("date", help="Local date (YYYY-MM-DD)")

    # login
    login_parser = subparsers.add_parser("login", help="Log in to the sync backend")
    login_parser.add_argument("email")
    login_parser.add_argument("--password", help="Password (prompted when omitted)")

    # sync
    subparsers.add_parser("sync", help="Run one sync of all categories")

    # status
    subparsers.add_parser("status", help="Show pipeline and session state")

    # run
    subparsers.add_parser("run", help="Run the collector, transformer and scheduler")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Serve the read-only query API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()

    rules = load_app_rules(args.rules)
    configure_logging(rules.logging.level)
    validate_runtime(rules)

    if args.command == "migrate":
        handle_migrate(rules, args)
    elif args.command == "serve":
        handle_serve(rules, args)
    else:
        try:
            asyncio.run(_run_with_context(rules, args))
        except KeyboardInterrupt:
            logger.info("Interrupted")


if __name__ == "__main__":
    main()
