"""
Import one completed-trip export from CLI.

Exit codes: 0 imported, 1 rejected (duplicate file or unknown partition),
2 unreadable file.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from app.config import get_trip_import_settings
from app.domain.errors import MalformedFileError
from app.domain.trip_import import PartitionContext
from app.services.trip_import_service import build_trip_import_service


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Import a completed-trip CSV export.")
    parser.add_argument("file", type=Path, help="Path to the CSV export.")
    parser.add_argument("--opco-id", dest="opco_id", default="", help="Operating company id.")
    parser.add_argument("--broker-id", dest="broker_id", default="", help="Broker id.")
    parser.add_argument(
        "--broker-account-id",
        dest="broker_account_id",
        default="",
        help="Broker account id; derived from broker and opco when omitted.",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Classify columns and sample rows without importing.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        content = args.file.read_bytes()
    except OSError as exc:
        print(json.dumps({"error": f"Cannot read {args.file}: {exc.strerror or exc}"}, indent=2), file=sys.stderr)
        return 2

    service = build_trip_import_service(get_trip_import_settings())
    try:
        if args.preview:
            payload = asdict(service.preview_csv(content))
            exit_code = 0
        else:
            result = service.import_csv(
                content,
                file_name=args.file.name,
                partition=PartitionContext(
                    opco_id=args.opco_id,
                    broker_id=args.broker_id,
                    broker_account_id=args.broker_account_id,
                ),
            )
            payload = asdict(result)
            exit_code = 0 if result.success else 1
    except MalformedFileError as exc:
        print(json.dumps({"error": str(exc)}, indent=2), file=sys.stderr)
        return 2

    print(json.dumps(payload, indent=2, default=str))
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
