# src/main.py — v2
"""CLI entry point: list-operations, delete, batch, validate-batch, upload.

Usage:
    kbcreationtools list-operations [--bucket NAME]
    kbcreationtools delete <operationId[\\uploadHash]> [--bucket NAME]
    kbcreationtools batch <job.json> [--dry-run] [--concurrent]
    kbcreationtools validate-batch <job.json>
    kbcreationtools upload <file|-> [--name NAME] [--dry-run]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from kbcreationtools.version import __version__

if TYPE_CHECKING:
    from kbcreationtools.config.settings import Settings
    from kbcreationtools.ledger.models import LedgerEntry

logger = logging.getLogger(__name__)

SEPARATOR = "-" * 80


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args)
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="kbcreationtools",
        description=f"kbcreationtools v{__version__} - knowledge base ingestion tools",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--store", choices=["s3", "local"], default=None,
        help="Object store backend (default: OBJECT_STORE or s3)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- list-operations ---
    p_list = subparsers.add_parser(
        "list-operations", help="List past ingestion sessions from both logs",
    )
    p_list.add_argument("--bucket", default=None, help="Bucket holding the remote log")
    p_list.add_argument(
        "--local-only", action="store_true",
        help="Skip the remote log",
    )
    p_list.set_defaults(func=_cmd_list_operations)

    # --- delete ---
    p_delete = subparsers.add_parser(
        "delete", help="Delete everything one session uploaded",
    )
    p_delete.add_argument(
        "reference", help="operationId or operationId\\uploadHash",
    )
    p_delete.add_argument("--bucket", default=None, help="Bucket to delete from")
    p_delete.set_defaults(func=_cmd_delete)

    # --- batch ---
    p_batch = subparsers.add_parser(
        "batch", help="Run a batch job file",
    )
    p_batch.add_argument("job", type=Path, help="Path to the JSON job file")
    p_batch.add_argument(
        "--dry-run", action="store_true",
        help="Log what would be uploaded without uploading or writing the ledger",
    )
    p_batch.add_argument(
        "--concurrent", action="store_true",
        help="Run job groups concurrently",
    )
    p_batch.add_argument(
        "--bucket", default=None,
        help="Fallback bucket when neither item nor job names one",
    )
    p_batch.set_defaults(func=_cmd_batch)

    # --- validate-batch ---
    p_validate = subparsers.add_parser(
        "validate-batch", help="Check a batch job file without running it",
    )
    p_validate.add_argument("job", type=Path, help="Path to the JSON job file")
    p_validate.set_defaults(func=_cmd_validate_batch)

    # --- upload ---
    p_upload = subparsers.add_parser(
        "upload", help="Upload one file, or stdin with '-', as its own session",
    )
    p_upload.add_argument("source", help="File path, or '-' to read stdin")
    p_upload.add_argument(
        "-n", "--name", default=None,
        help="Logical file name in the bucket (required for stdin)",
    )
    p_upload.add_argument("--bucket", default=None, help="Target bucket")
    p_upload.add_argument(
        "--source-type", default=None,
        help="Source type recorded in the ledger (default: document or stdin)",
    )
    p_upload.add_argument(
        "--dry-run", action="store_true",
        help="Log the upload without performing it",
    )
    p_upload.set_defaults(func=_cmd_upload)

    return parser


async def _cmd_list_operations(args: argparse.Namespace, settings: Settings) -> int:
    """Print reconciled ledger entries, newest first."""
    from kbcreationtools.ledger.reader import LedgerReader
    from kbcreationtools.ledger.sinks import LocalLedgerLog
    from kbcreationtools.storage.store_factory import create_object_store

    reader = LedgerReader(LocalLedgerLog(settings.ledger_path))
    store = None if args.local_only else create_object_store(settings)
    bucket = None if args.local_only else (args.bucket or settings.bucket_name)

    entries = await reader.list_entries(store=store, bucket=bucket)
    if not entries:
        print("No operations found in logs")
        return 0

    print("Recent operations:")
    print(SEPARATOR)
    for entry in entries:
        print(_format_entry(entry))
        print(SEPARATOR)
    return 0


async def _cmd_delete(args: argparse.Namespace, settings: Settings) -> int:
    """Delete the objects of one session."""
    from kbcreationtools.deletion.manager import (
        DeletionManager,
        NoUploadHashError,
        OperationNotFoundError,
        PartialDeletionError,
    )
    from kbcreationtools.ledger.reader import LedgerReader
    from kbcreationtools.ledger.sinks import LocalLedgerLog
    from kbcreationtools.storage.store_factory import create_object_store

    bucket = args.bucket or settings.bucket_name
    manager = DeletionManager(
        reader=LedgerReader(LocalLedgerLog(settings.ledger_path)),
        store=create_object_store(settings),
        bucket=bucket,
        batch_size=settings.delete_batch_size,
        page_size=settings.list_page_size,
    )

    try:
        report = await manager.delete(args.reference)
    except (OperationNotFoundError, NoUploadHashError) as exc:
        logger.error("%s", exc)
        return 1
    except PartialDeletionError as exc:
        logger.error("%s", exc)
        for key in exc.remaining_keys:
            print(f"  remaining: {key}")
        return 1

    if report.found == 0:
        print(f"No objects found under {bucket}/{report.prefix}")
        return 0

    print(f"Deleted {report.deleted} objects from {bucket}/{report.prefix} "
          f"in {report.batches} batch(es):")
    for key in report.keys:
        print(f"  - {key}")
    return 0


async def _cmd_batch(args: argparse.Namespace, settings: Settings) -> int:
    """Run a batch job file."""
    from kbcreationtools.batch.adapters import default_adapters
    from kbcreationtools.batch.orchestrator import BatchJobError, BatchOrchestrator
    from kbcreationtools.ledger.session import OperationLedger
    from kbcreationtools.storage.gateway import UploadGateway
    from kbcreationtools.storage.store_factory import create_object_store

    ledger = OperationLedger.from_settings(settings)
    gateway = UploadGateway(create_object_store(settings), ledger=ledger, dry_run=args.dry_run)
    orchestrator = BatchOrchestrator(
        adapters=default_adapters(),
        gateway=gateway,
        ledger=ledger,
        default_bucket=args.bucket or settings.bucket_name,
        concurrent_groups=args.concurrent,
        dry_run=args.dry_run,
    )

    try:
        result = await orchestrator.run(args.job)
    except BatchJobError as exc:
        print(f"Batch aborted: {exc}", file=sys.stderr)
        return 1

    print("\nBatch complete:")
    print(f"  Processed:    {len(result.processed)}")
    print(f"  Failed:       {len(result.failed)}")
    print(f"  Skipped:      {len(result.skipped)}")
    print(f"  Duration:     {result.duration_seconds:.1f}s")
    for outcome in result.failed:
        print(f"  FAILED  {outcome.group}[{outcome.index}] {outcome.context}: {outcome.error}")
    for outcome in result.skipped:
        print(f"  SKIPPED {outcome.group}[{outcome.index}] {outcome.context}: {outcome.reason}")
    return 1 if result.failed else 0


async def _cmd_validate_batch(args: argparse.Namespace, settings: Settings) -> int:
    """Print a validation report for a job file."""
    from kbcreationtools.batch.validator import validate_batch_config

    report = validate_batch_config(args.job)
    for line in report.info:
        print(f"  info     {line}")
    for line in report.warnings:
        print(f"  warning  {line}")
    for line in report.errors:
        print(f"  error    {line}")

    status = "valid" if report.valid else "INVALID"
    print(f"\n{args.job}: {status} "
          f"({len(report.errors)} errors, {len(report.warnings)} warnings)")
    return 0 if report.valid else 1


async def _cmd_upload(args: argparse.Namespace, settings: Settings) -> int:
    """Upload one payload inside its own ledger session."""
    from kbcreationtools.ledger.models import SessionContext
    from kbcreationtools.ledger.session import OperationLedger
    from kbcreationtools.storage.gateway import UploadGateway
    from kbcreationtools.storage.store_factory import create_object_store

    from_stdin = args.source == "-"
    if from_stdin:
        if not args.name:
            logger.error("--name is required when reading from stdin")
            return 1
        payload = sys.stdin.read()
        if not payload.strip():
            logger.error("No data received from stdin")
            return 1
        name = args.name
        context = SessionContext(output_file_name=name, source_type=args.source_type or "stdin")
    else:
        path = Path(args.source)
        if not path.is_file():
            logger.error("File not found: %s", path)
            return 1
        payload = path.read_bytes()
        name = args.name or path.name
        context = SessionContext(document_name=path.name, source_type=args.source_type or "document")

    bucket = args.bucket or settings.bucket_name
    store = create_object_store(settings)
    ledger = OperationLedger.from_settings(settings)
    gateway = UploadGateway(store, ledger=ledger, dry_run=args.dry_run)

    async with ledger.session(context, store, bucket, dry_run=args.dry_run) as session:
        stored = await gateway.upload(bucket, name, payload)
        reference = f"{session.operation_id}\\{session.upload_hash}"

    verb = "Would upload" if stored.dry_run else "Uploaded"
    print(f"{verb} {stored.size_bytes} bytes to {stored.bucket}/{stored.key}")
    if not stored.dry_run:
        print(f"Operation: {reference}")
    return 0


def _format_entry(entry: LedgerEntry) -> str:
    """Two display lines for one ledger entry."""
    marker = "+" if entry.upload_hash else "x"
    when = entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    provenance = f" ({entry.provenance})" if entry.provenance else ""
    status = " [failed]" if entry.failed else ""
    return (
        f"{entry.reference} {marker} {when}{provenance}{status}\n"
        f"  {entry.source_type} | {entry.documents_processed} docs | {entry.total_size_mb} MB"
    )


def _load_settings(args: argparse.Namespace) -> Settings:
    from kbcreationtools.config.settings import load_settings

    overrides: dict[str, object] = {}
    if args.store:
        overrides["object_store"] = args.store
    return load_settings(**overrides)


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from kbcreationtools.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
