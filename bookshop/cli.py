"""Command-line entry point: backups, restores and a quick stats dump."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .core.config import get_settings
from .core.errors import BookshopError
from .core.logging import configure_logging
from .crud.store import RecordStore
from .services.backup import create_backup
from .services.json_backup import export_json, import_json
from .services.restore import restore_from_excel

LOGGER = logging.getLogger("bookshop.cli")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="bookshop", description="Bookshop inventory and bookkeeping ledger.")
    p.add_argument("--db-url", default=None, help="Database URL (default: DATABASE_URL or data/bookshop.db).")
    p.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")
    sub = p.add_subparsers(dest="command", required=True)

    backup = sub.add_parser("backup", help="Write a spreadsheet backup.")
    backup.add_argument("path", type=Path, help="Target file, or a directory to place a dated file in.")

    restore = sub.add_parser("restore", help="Replace all data from a spreadsheet backup.")
    restore.add_argument("path", type=Path)

    export = sub.add_parser("export-json", help="Write a JSON backup.")
    export.add_argument("path", type=Path)

    imp = sub.add_parser("import-json", help="Replace all data from a JSON backup.")
    imp.add_argument("path", type=Path)

    sub.add_parser("stats", help="Print dashboard figures as JSON.")

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return p.parse_args(argv)


def _cmd_backup(store: RecordStore, path: Path, tz) -> int:
    backup = create_backup(store, tz=tz)
    target = path / backup.file_name if path.is_dir() else path
    target.write_bytes(backup.content)
    print(f"{backup.message}: {target}")
    return 0


def _cmd_restore(store: RecordStore, path: Path, tz) -> int:
    result = restore_from_excel(store, path.read_bytes(), tz=tz)
    print(result.message)
    for error in result.errors:
        print(f"  {error}", file=sys.stderr)
    return 0 if result.success else 1


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bookshop.main:app",
        host=args.host or settings.HOST,
        port=args.port or settings.PORT,
        log_config=None,
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging("DEBUG" if args.verbose else settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    if args.command == "serve":
        return _serve(args)

    try:
        store = RecordStore.from_url(args.db_url or settings.database_url)
        tz = settings.tzinfo
        if args.command == "backup":
            return _cmd_backup(store, args.path, tz)
        if args.command == "restore":
            return _cmd_restore(store, args.path, tz)
        if args.command == "export-json":
            args.path.write_text(export_json(store), encoding="utf-8")
            print(f"Exported to {args.path}")
            return 0
        if args.command == "import-json":
            snapshot = import_json(store, args.path.read_text(encoding="utf-8"))
            print(f"Imported {len(snapshot.books)} books, {len(snapshot.sales)} sales")
            return 0
        if args.command == "stats":
            print(json.dumps(store.get_dashboard_stats().to_record(), indent=2))
            return 0
    except (BookshopError, OSError) as exc:
        LOGGER.error("cli.failed", extra={"extra_data": {"command": args.command}})
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
