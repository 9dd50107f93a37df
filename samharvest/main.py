"""Main entry point with CLI."""
import argparse
import asyncio
import logging
import signal
import sys
from datetime import date, timedelta
from typing import Optional

from samharvest.config import RUNS_FILE, STATE_DB, Config, config
from samharvest.errors import FetchError, HarvestError, RunInProgress
from samharvest.fetch.client import FetchClient
from samharvest.fetch.endpoints import DateWindow, SourceFilters
from samharvest.fetch.fetcher import Fetcher
from samharvest.jobs.planner import HarvestSettings
from samharvest.jobs.run_report import RunReportExporter
from samharvest.jobs.runner import HarvestScheduler, SyncSummary
from samharvest.logging_conf import setup_logging
from samharvest.parse.normalize import parse_iso_date
from samharvest.store.records import RecordStore
from samharvest.store.state import StateDB

logger = logging.getLogger(__name__)


def _date_arg(value: str) -> date:
    try:
        return parse_iso_date(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="SAM.gov opportunity harvester")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run incremental sync plus budgeted backfill")
    sync.add_argument(
        "--max-calls",
        type=int,
        default=None,
        help=f"Maximum API calls for this run (default: {config.MAX_API_CALLS})",
    )
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the windows that would be fetched; no API calls, no writes",
    )
    sync.add_argument(
        "--backfill-from",
        type=_date_arg,
        default=None,
        help=(
            "Backfill backward starting at this date (YYYY-MM-DD) instead of the saved cursor. "
            "Dates between this date and the saved cursor are not backfilled afterwards"
        ),
    )

    get = subparsers.add_parser("get", help="Fetch and store one opportunity by notice ID")
    get.add_argument("notice_id")

    search = subparsers.add_parser("search", help="Fetch and store an explicit window")
    search.add_argument("--from", dest="date_from", type=_date_arg, default=None,
                        help="Posted from (default: 7 days ago)")
    search.add_argument("--to", dest="date_to", type=_date_arg, default=None,
                        help="Posted to (default: today)")
    search.add_argument("--title", default=None, help="Filter by title keyword")
    search.add_argument("--ptype", default=None, help="Opportunity type code")
    search.add_argument("--naics", default=None, help="NAICS code")
    search.add_argument("--state", default=None, help="State code (e.g. CA)")
    search.add_argument("--set-aside", default=None, help="Set-aside type code")
    search.add_argument("--max-calls", type=int, default=None, help="Maximum API calls")

    serve = subparsers.add_parser("serve", help="Serve the read API")
    serve.add_argument("--port", type=int, default=config.PORT)
    serve.add_argument("--host", default="0.0.0.0")

    return parser.parse_args(argv)


async def _build_scheduler() -> tuple[HarvestScheduler, FetchClient]:
    records = RecordStore(STATE_DB)
    state = StateDB(STATE_DB)
    await records.initialize()
    client = FetchClient()
    scheduler = HarvestScheduler(
        fetcher=Fetcher(client),
        records=records,
        state=state,
        settings=HarvestSettings.from_config(),
        exporter=RunReportExporter(RUNS_FILE, secret=config.SAMGOV_API_KEY),
    )
    return scheduler, client


async def run_sync(args: argparse.Namespace) -> SyncSummary:
    scheduler, client = await _build_scheduler()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.request_stop)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass
    async with client:
        return await scheduler.run(
            max_calls=args.max_calls,
            dry_run=args.dry_run,
            backfill_from=args.backfill_from,
        )


async def run_get(args: argparse.Namespace) -> int:
    scheduler, client = await _build_scheduler()
    async with client:
        opportunity = await scheduler.fetch_notice(args.notice_id)
    if opportunity is None:
        logger.error(f"No opportunity found with notice ID: {args.notice_id}")
        return 1
    print(opportunity.model_dump_json(indent=2, exclude_none=True))
    return 0


async def run_search(args: argparse.Namespace) -> int:
    today = date.today()
    window = DateWindow(args.date_from or today - timedelta(days=7), args.date_to or today)
    filters = SourceFilters(
        title=args.title,
        ptype=args.ptype,
        naics=args.naics,
        state=args.state,
        set_aside=args.set_aside,
    )
    scheduler, client = await _build_scheduler()
    async with client:
        result = await scheduler.fetch_manual(window, filters, max_calls=args.max_calls)
    logger.info(
        f"Fetched {len(result.records)} of {result.total_available} records "
        f"for {window} ({result.pages_consumed} API calls)"
    )
    for opp in result.records:
        print(f"{opp.notice_id}\t{opp.posted_date or '':10}\t{opp.title or ''}")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    setup_logging()
    args = parse_args(argv)

    if args.command == "serve":
        import uvicorn
        from samharvest.api.main import app
        uvicorn.run(app, host=args.host, port=args.port)
        return

    dry_run = args.command == "sync" and args.dry_run
    try:
        Config.validate(require_api_key=not dry_run)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    try:
        if args.command == "sync":
            summary = asyncio.run(run_sync(args))
            sys.exit(0 if not summary.errors or summary.rate_limited else 2)
        elif args.command == "get":
            sys.exit(asyncio.run(run_get(args)))
        elif args.command == "search":
            sys.exit(asyncio.run(run_search(args)))
    except RunInProgress as e:
        logger.error(str(e))
        sys.exit(3)
    except FetchError as e:
        logger.error(f"Fetch failed: {e}")
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except HarvestError as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
