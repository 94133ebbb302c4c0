"""
Operator command line for the ingestion queue.

Usage:
    python -m blockchain_ingestion run-once
    python -m blockchain_ingestion serve --interval 60
    python -m blockchain_ingestion status --limit 25
    python -m blockchain_ingestion reset 42
    python -m blockchain_ingestion create-tables
"""

import argparse
import json
import sys
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config.settings import get_settings
from .errors import StoreError
from .processor.maintenance import queue_status, reset_failed_document
from .processor.queue_processor import utc_now
from .processor.scheduler import PeriodicScheduler
from .storage.dynamodb import (
    DynamoDBDocumentStore,
    DynamoDBQueueStore,
    create_documents_table,
    create_queue_table,
)
from .utils.logger import configure_logging, get_logger
from .worker import build_processor

logger = get_logger(__name__)


def _stores(settings):
    return (
        DynamoDBDocumentStore(settings.documents_table_name, region_name=settings.aws_region),
        DynamoDBQueueStore(settings.queue_table_name, region_name=settings.aws_region),
    )


def cmd_run_once(args, settings) -> int:
    summary = build_processor(settings).run()
    print(json.dumps(summary.model_dump(), indent=2))
    return 1 if summary.aborted else 0


def cmd_serve(args, settings) -> int:
    processor = build_processor(settings)
    scheduler = PeriodicScheduler(processor.run, args.interval or settings.poll_interval)
    try:
        scheduler.start()
    except KeyboardInterrupt:
        scheduler.stop()
    return 0


def cmd_status(args, settings) -> int:
    documents, queue = _stores(settings)
    print(json.dumps(queue_status(documents, queue, args.limit), indent=2))
    return 0


def cmd_reset(args, settings) -> int:
    documents, queue = _stores(settings)
    if reset_failed_document(documents, queue, args.document_id, utc_now()):
        print(f"Document {args.document_id} reset; it will be retried on the next run.")
        return 0
    print(f"Document {args.document_id} is not in failed state.")
    return 1


def cmd_create_tables(args, settings) -> int:
    dynamodb = boto3.resource("dynamodb", region_name=settings.aws_region)
    create_documents_table(dynamodb, settings.documents_table_name)
    create_queue_table(dynamodb, settings.queue_table_name)
    print(f"Created {settings.documents_table_name} and {settings.queue_table_name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blockchain-ingestion",
        description="Blockchain document ingestion queue"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run-once", help="Run discovery and dispatch once").set_defaults(func=cmd_run_once)

    serve = sub.add_parser("serve", help="Run the queue periodically until interrupted")
    serve.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between runs (default: settings.poll_interval)"
    )
    serve.set_defaults(func=cmd_serve)

    status = sub.add_parser("status", help="Show document counts and recent queue entries")
    status.add_argument("--limit", type=int, default=25, help="Recent entries to show (default: 25)")
    status.set_defaults(func=cmd_status)

    reset = sub.add_parser("reset", help="Reset a failed document so it is retried")
    reset.add_argument("document_id", type=int)
    reset.set_defaults(func=cmd_reset)

    sub.add_parser("create-tables", help="Create the DynamoDB tables").set_defaults(func=cmd_create_tables)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        return args.func(args, settings)
    except (ClientError, BotoCoreError) as e:
        error = StoreError(str(e))
        logger.error("Store operation failed", command=args.command, error=str(error))
        print(f"ERROR: {error}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
