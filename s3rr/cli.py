# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3RR command line entry point.

Examples:
    s3rr --bucket-paths my-bucket/logs/2019,my-bucket/media --region eu-west-1
    s3rr --bucket-paths my-bucket/media --region eu-west-1 --profile prod --ttl 14
    s3rr --region eu-west-1 --resume 3f2a...
    s3rr --list
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List

import structlog

from s3rr.config import DEFAULT_LEDGER_PATH, DEFAULT_MAX_CONCURRENT_OPS, DEFAULT_TTL_DAYS, RestoreConfig
from s3rr.env import parse_bucket_paths, resolve_role_arn
from s3rr.errors import explain_missing_bucket_paths, explain_missing_region
from s3rr.exceptions import ConfigurationError, LedgerError, S3RRError

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog output for the CLI."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3rr",
        description="Restore REDUCED_REDUNDANCY objects to STANDARD with a durable request ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--bucket-paths",
        default=os.getenv("S3RR_BUCKET_PATHS", ""),
        help="Comma-separated list of S3 bucket paths (bucket/prefix) to restore",
    )
    parser.add_argument(
        "--region",
        default=os.getenv("AWS_REGION", ""),
        help="AWS region",
    )
    parser.add_argument(
        "--ttl",
        type=int,
        default=DEFAULT_TTL_DAYS,
        help="Time-to-live (TTL) in days for restored objects before reverting to original storage class",
    )
    parser.add_argument(
        "--profile",
        default=os.getenv("S3RR_PROFILE"),
        help="Identity profile used to look up the role ARN (S3RR_ROLE_ARN_<PROFILE>)",
    )
    parser.add_argument("--role-arn", default=None, help="Role ARN to assume (overrides --profile)")
    parser.add_argument(
        "--ledger-path",
        type=Path,
        default=Path(os.getenv("S3RR_LEDGER_PATH", str(DEFAULT_LEDGER_PATH))),
        help="SQLite ledger file",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_MAX_CONCURRENT_OPS,
        help="Number of bucket paths restored at the same time",
    )
    parser.add_argument(
        "--call-timeout",
        type=float,
        default=300.0,
        help="Seconds allowed for a single object store call",
    )
    parser.add_argument(
        "--slack-channel",
        default=os.getenv("SLACK_CHANNEL_ID"),
        help="Slack channel for status messages (token from SLACK_API_TOKEN)",
    )
    parser.add_argument("--resume", metavar="REQUEST_ID", help="Resume the pending paths of a request")
    parser.add_argument("--list", action="store_true", help="List requests with pending paths and exit")
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    return parser


def config_from_args(args: argparse.Namespace, bucket_paths: List[str]) -> RestoreConfig:
    return RestoreConfig(
        bucket_paths=bucket_paths,
        region=args.region,
        ttl_days=args.ttl,
        role_arn=resolve_role_arn(args.profile, args.role_arn),
        profile=args.profile,
        ledger_path=args.ledger_path,
        max_concurrent_ops=args.concurrency,
        call_timeout_seconds=args.call_timeout,
        slack_channel=args.slack_channel,
    )


def _audit_ledger(ledger_path: Path):
    from s3rr.ledger import RequestLedger
    from s3rr.notifier import NullNotifier, StatusReporter

    return RequestLedger(ledger_path, StatusReporter(NullNotifier(), None))


async def _list_requests(ledger_path: Path) -> None:
    for record in await _audit_ledger(ledger_path).list(limit=1000):
        print(json.dumps(record))


async def _pending_paths(ledger_path: Path, request_id: str) -> List[str]:
    record = await _audit_ledger(ledger_path).get(request_id)
    if record is None:
        raise LedgerError(
            f"Request not found or already completed: {request_id}",
            details={"request_id": request_id},
        )
    return record["pending_paths"]


async def _run(config: RestoreConfig, resume_id: str | None) -> dict:
    from s3rr.core import (
        cancel_restore,
        initialize_restore_state,
        outcome_summary,
        resume_restore,
        run_restore,
        shutdown_restore_state,
    )

    state = await initialize_restore_state(config)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, cancel_restore, state)
    except (NotImplementedError, RuntimeError):
        pass

    try:
        if resume_id:
            outcome = await resume_restore(config, state, resume_id)
        else:
            outcome = await run_restore(config, state)
    finally:
        await shutdown_restore_state(state)

    print(f"Restore process completed for Request ID: {outcome.request_id}")
    if outcome.failed_paths:
        print(f"Failed paths: {', '.join(outcome.failed_paths)}")
    return outcome_summary(outcome)


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.json_logs)

    if args.list:
        try:
            asyncio.run(_list_requests(args.ledger_path))
        except S3RRError as e:
            logger.error("ledger_list_failed", error=str(e))
            return 1
        return 0

    bucket_paths = parse_bucket_paths(args.bucket_paths)
    if args.resume:
        try:
            bucket_paths = asyncio.run(_pending_paths(args.ledger_path, args.resume))
        except S3RRError as e:
            logger.error("restore_aborted", error=str(e))
            return 1
    if not bucket_paths:
        parser.error(explain_missing_bucket_paths())
    if not args.region:
        parser.error(explain_missing_region())

    try:
        config = config_from_args(args, bucket_paths)
    except ConfigurationError as e:
        parser.error(str(e))

    try:
        asyncio.run(_run(config, args.resume))
    except S3RRError as e:
        logger.error("restore_aborted", error=str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
