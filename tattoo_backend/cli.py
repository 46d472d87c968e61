"""
Command line entry point: run the server or inspect stored data.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import uvicorn

from tattoo_backend.config import get_settings
from tattoo_backend.db import connect_with_retry
from tattoo_backend.dependencies import build_blob_store, build_record_store
from tattoo_backend.reconcile import reconcile
from tattoo_backend.views import export_filename, export_records

logger = logging.getLogger(__name__)


def _serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run(
        "tattoo_backend.app:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def _reconcile(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = build_record_store(settings)
    if not connect_with_retry(store, max_retries=0):
        return 1
    blob_store = build_blob_store(settings)
    report = reconcile(store.list_all(), blob_store.list_blobs())
    payload = {
        "storage": blob_store.location,
        "enumerable": report.enumerable,
        "unused": [blob.name for blob in report.unused],
        "missing": [
            {"id": m.id, "url": m.url, "filename": m.filename}
            for m in report.missing_files
        ],
    }
    json.dump(payload, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def _export(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = build_record_store(settings)
    if not connect_with_retry(store, max_retries=0):
        return 1
    records = store.list_all()
    output = Path(args.output or export_filename())
    output.write_text(export_records(records, settings.duration_unit), encoding="utf-8")
    logger.info("Exported %d records to %s", len(records), output)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Tattoo data collector")
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", type=str, default=None, help="Override HOST")
    serve.add_argument("--port", type=int, default=None, help="Override PORT")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve.set_defaults(func=_serve)

    check = subparsers.add_parser(
        "reconcile", help="Report unused images and records with missing images"
    )
    check.set_defaults(func=_reconcile)

    export = subparsers.add_parser("export", help="Write all records to a JSON file")
    export.add_argument("-o", "--output", type=str, default=None, help="Output path")
    export.set_defaults(func=_export)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command is None:
        args = parser.parse_args(["serve"])
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
