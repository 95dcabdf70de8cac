#!/usr/bin/env python3
"""
Exporteer één MongoDB collectie naar één S3 object (NDJSON, multipart upload).

    python scripts/export_collection.py orders exports/orders.ndjson \
        --database shop --filter '{"status": "paid"}' --max-concurrency 8
"""
import argparse
import signal
import sys
import threading

from bson import json_util

from bulkexport.core.errors import Cancelled, ExportError
from bulkexport.core.logging_config import setup_logging, logger
from bulkexport.engine.context import ExportOptions
from bulkexport.engine.facade import export_collection


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    p.add_argument("collection")
    p.add_argument("key", help="S3 object key")
    p.add_argument("--database", default=None)
    p.add_argument("--bucket", default=None, help="default: S3_BUCKET")
    p.add_argument("--filter", default=None, help="Extended JSON query filter")
    p.add_argument("--chunk-size-bytes", type=int, default=None)
    p.add_argument("--max-concurrency", type=int, default=None)
    p.add_argument("--batch-size", type=int, default=None)
    p.add_argument("--skip-malformed", action="store_true", default=None)
    p.add_argument("--relaxed", action="store_true", help="relaxed i.p.v. canonical Extended JSON")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()

    cancel = threading.Event()

    def _on_sigint(signum, frame):
        # tweede Ctrl-C mag hard stoppen
        signal.signal(signal.SIGINT, signal.default_int_handler)
        cancel.set()

    signal.signal(signal.SIGINT, _on_sigint)

    options = ExportOptions.from_settings(
        chunk_size_bytes=args.chunk_size_bytes,
        max_concurrency=args.max_concurrency,
        batch_size=args.batch_size,
        skip_malformed=args.skip_malformed,
        json_mode="relaxed" if args.relaxed else None,
        cancel_event=cancel,
    )
    query = json_util.loads(args.filter) if args.filter else None

    try:
        result = export_collection(
            args.collection,
            args.key,
            database=args.database,
            bucket=args.bucket,
            filter=query,
            options=options,
        )
    except Cancelled:
        print("Export cancelled; multipart upload aborted.", file=sys.stderr)
        return 130
    except ExportError as e:
        print(f"Export failed: {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    logger.info("cli_export_done", location=result.location, parts=result.parts, records=result.records)
    print(result.location)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
