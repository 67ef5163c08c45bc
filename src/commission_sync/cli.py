"""Command line entry point.

Usage:
    # Serve the HTTP API
    python -m commission_sync serve

    # Run one reconciliation job against the configured store
    python -m commission_sync sync --log-format=json
"""

import argparse
import asyncio
import json
import sys

import structlog

from commission_sync.config import Settings, configure_logging, get_settings
from commission_sync.models import SYNC_JOB_TYPE, Entity, JobStatus
from commission_sync.store import EntityAPIClient
from commission_sync.sync.jobs import JobTracker

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commission-sync",
        description="Commission ledger reconciliation engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve                    # Start the API on API_HOST:API_PORT
  %(prog)s sync                     # Reconcile once and print the result
  %(prog)s --log-level=DEBUG sync   # Same, with per-batch progress logs
        """,
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override LOG_LEVEL",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=None,
        help="Override LOG_FORMAT",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)
    subcommands.add_parser("serve", help="Run the HTTP API with uvicorn")
    subcommands.add_parser("sync", help="Run one reconciliation job")
    return parser


async def run_sync(settings: Settings) -> int:
    """Create a job record, run it to a terminal state and print the outcome."""
    async with EntityAPIClient(
        base_url=settings.store_api_url,
        timeout=settings.store_timeout,
        max_retries=settings.store_max_retries,
    ) as store:
        record = await store.create(
            Entity.SYNC_JOB,
            {
                "tipo": SYNC_JOB_TYPE,
                "status": JobStatus.QUEUED.value,
                "solicitado_por": settings.notification_default_recipient,
            },
        )
        result = await JobTracker(store, settings=settings).run(str(record["id"]))

    print(json.dumps({"job_id": record["id"], **result.to_dict()}, ensure_ascii=False))
    return 0 if result.success else 1


def serve(settings: Settings) -> None:
    import uvicorn

    from commission_sync.api import create_app

    uvicorn.run(create_app(settings=settings), host=settings.api_host, port=settings.api_port)


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(level=args.log_level, format=args.log_format)

    if args.command == "serve":
        serve(settings)
        return 0

    try:
        return asyncio.run(run_sync(settings))
    except KeyboardInterrupt:
        logger.info("sync_interrupted")
        return 1
    except Exception as e:
        logger.exception("sync_failed", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(run())
