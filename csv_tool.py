"""Export the survey store to CSV, or merge a CSV file into it.

Uses the same `DATABASE_DIR` behavior as the application via
`utils.database_init.AsyncDatabaseInitializer`. Existing photos survive an
import; CSV files only ever carry photo counts.

Run:
    python csv_tool.py export poles.csv [--legacy]
    python csv_tool.py import poles.csv
"""
import argparse
import asyncio
import logging
import os
from typing import List, Optional

import aiofiles
from dotenv import load_dotenv

from controllers.csv_controller import export_csv, import_csv
from dal.record_store import RecordStore
from services.csv_codec import CSVCodec
from services.record_repository import RecordRepository
from utils.database_init import AsyncDatabaseInitializer
from utils.errors import StorageError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="write every record to a CSV file")
    export.add_argument("path")
    export.add_argument("--legacy", action="store_true", help="use the flat column layout")

    imp = sub.add_parser("import", help="merge a CSV file into the store")
    imp.add_argument("path")
    return parser


async def run(argv: Optional[List[str]] = None) -> int:
    """Execute one command and return a process exit code."""
    args = _build_parser().parse_args(argv)
    async with RecordStore(AsyncDatabaseInitializer()) as store:
        repo = RecordRepository(store)
        if args.command == "export":
            codec = CSVCodec("legacy" if args.legacy else "current")
            text = await export_csv(repo, codec)
            async with aiofiles.open(args.path, "w", encoding="utf-8", newline="") as f:
                await f.write(text)
            print(f"Exported to {args.path}")
        else:
            async with aiofiles.open(args.path, "r", encoding="utf-8-sig", newline="") as f:
                text = await f.read()
            summary = await import_csv(repo, CSVCodec(), text)
            print(
                f"Imported {summary.imported} records "
                f"({summary.skipped} without a code, {summary.duplicates} duplicates)"
            )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())
    try:
        return asyncio.run(run(argv))
    except StorageError as exc:
        logging.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
