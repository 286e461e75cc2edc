#!/usr/bin/env python3
# ============================================================================
# CLI BULK FETCH TOOL
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Tool - Run one bulk acquisition job to completion
# PURPOSE: Fetch documents without running the API server
# CREATED: 18 OCT 2026
# ============================================================================
"""
Run a bulk acquisition job in-process with file-backed stores.

Uses the same data directory as the API server, so a job interrupted here
(Ctrl-C) resumes from its checkpoint on the next run of either.

Usage:
    # Latest available transcript for three tickers, 4 quarters back
    python tools/run_bulk_fetch.py AAPL MSFT GOOGL --horizon 4

    # Explicit periods, refresh cached entries
    python tools/run_bulk_fetch.py NVDA --periods 2025-Q2 2025-Q1 --force-refresh

    # Faster throttle for a small run
    python tools/run_bulk_fetch.py AAPL MSFT --batch-size 2 --workers 2 --delay 1

Requires:
    PROVIDER_API_KEY env var (or --api-key); without it runs in demo mode
"""

import argparse
import asyncio
import json
import os
import sys
from dataclasses import replace

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import CacheLayout, Defaults
from core.contracts import JobStatus
from core.errors import JobValidationError
from core.logging import ComponentType, configure_logging, get_logger
from core.models import JobRequest, ProgressSnapshot
from orchestrator.factory import build_components

logger = get_logger(__name__, ComponentType.CLI)


def build_defaults(args: argparse.Namespace) -> Defaults:
    """Environment defaults with command-line overrides applied."""
    defaults = Defaults.from_env()

    orchestrator = defaults.orchestrator
    overrides = {
        "batch_size": args.batch_size,
        "worker_count": args.workers,
        "batch_delay_seconds": args.delay,
        "horizon": args.horizon,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        orchestrator = replace(orchestrator, **overrides)

    storage = defaults.storage
    if args.data_dir:
        storage = replace(storage, data_dir=args.data_dir)
    if args.cache_layout:
        storage = replace(storage, cache_layout=CacheLayout(args.cache_layout))

    fetch = defaults.fetch
    if args.api_key:
        fetch = replace(fetch, api_key=args.api_key)

    return replace(defaults, orchestrator=orchestrator, storage=storage, fetch=fetch)


def print_progress(snapshot: ProgressSnapshot) -> None:
    event = snapshot.event.value if snapshot.event else "update"
    print(
        f"  [{event:>15}] {snapshot.percent:5.1f}%  "
        f"processed={len(snapshot.processed)} failed={len(snapshot.failed)} "
        f"skipped={len(snapshot.skipped)} / {snapshot.total}"
    )


async def run(args: argparse.Namespace) -> int:
    defaults = build_defaults(args)
    request = JobRequest(
        items=args.items,
        periods=args.periods,
        horizon=args.horizon,
        force_refresh=args.force_refresh,
    )

    components = build_components(defaults)
    await components.load()

    components.publisher.subscribe(print_progress)
    await components.orchestrator.start()

    try:
        job = await components.orchestrator.submit(request)
    except JobValidationError as e:
        logger.error(f"Job rejected: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        await components.close()
        return 2

    print(f"Submitted job {job.job_id}:")
    print(f"  items:          {', '.join(job.items)}")
    print(f"  candidates:     {', '.join(p.key for p in job.periods) if job.periods else f'{job.horizon} quarters'}")
    print(f"  force_refresh:  {job.force_refresh}")
    print(f"  data_dir:       {defaults.storage.data_dir}")
    print()

    try:
        await components.orchestrator.drain()
    finally:
        await components.close()

    final = await components.job_service.get_job(job.job_id)
    logger.info(f"Job {job.job_id} finished with status {final.status.value}")
    print()
    print(json.dumps(final.snapshot().model_dump(mode="json"), indent=2))
    return 0 if final.status == JobStatus.COMPLETED else 1


def main():
    parser = argparse.ArgumentParser(
        description="Fetch the newest available document for each item",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s AAPL MSFT GOOGL --horizon 4
  %(prog)s NVDA --periods 2025-Q2 2025-Q1 --force-refresh
  %(prog)s AAPL MSFT --batch-size 2 --workers 2 --delay 1
        """,
    )
    parser.add_argument("items", nargs="+", help="Item identifiers (tickers)")
    parser.add_argument(
        "--horizon", "-n",
        type=int,
        help="Candidate quarters per item (default: PERIOD_HORIZON or 16)",
    )
    parser.add_argument(
        "--periods", "-p",
        nargs="+",
        help="Explicit candidate periods, e.g. 2025-Q2 2025-Q1",
    )
    parser.add_argument(
        "--force-refresh", "-f",
        action="store_true",
        help="Fetch even when the cache already holds the period",
    )
    parser.add_argument("--batch-size", "-b", type=int, help="Items per batch")
    parser.add_argument("--workers", "-w", type=int, help="Concurrent items per batch")
    parser.add_argument("--delay", "-d", type=float, help="Seconds between batches")
    parser.add_argument("--data-dir", help="Directory for jobs, checkpoints and cache")
    parser.add_argument(
        "--cache-layout",
        choices=[layout.value for layout in CacheLayout],
        help="Single snapshot file or numbered chunks",
    )
    parser.add_argument("--api-key", help="Provider API key (default: PROVIDER_API_KEY)")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "WARNING"))
    parser.add_argument("--json-logs", action="store_true", help="Structured JSON logs")

    args = parser.parse_args()
    configure_logging(level=args.log_level, json_output=args.json_logs)

    try:
        sys.exit(asyncio.run(run(args)))
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
