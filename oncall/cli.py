"""
cli.py — Command-line entry point

Usage:
  oncall import inputs/november.xlsx --dry-run
  oncall backfill --dry-run --report outputs/backfill_report.txt
  oncall shift --month 2025-11 --delta 1 --dry-run
  oncall export --month 2025-11 --csv outputs/2025-11.csv --excel outputs/2025-11.xlsx
  oncall template --output outputs/on-call-template.xlsx
  oncall serve --port 8080

Every mutating command accepts --dry-run; run it first and compare counts.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from oncall.backfill import reconcile_names
from oncall.config import Settings, load_settings
from oncall.dateshift import parse_month, shift_month
from oncall.exporter import build_template_workbook, export_backfill_report, export_to_csv, export_to_excel
from oncall.importer import import_schedule, month_bounds
from oncall.models import OnCallError
from oncall.store import AliasRepository, JsonFileStore, ScheduleRepository, UserDirectory

logger = logging.getLogger(__name__)


def _print_json(data: dict) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_import(args: argparse.Namespace, settings: Settings) -> int:
    store = JsonFileStore(settings.store_path)
    path = Path(args.file)
    if not path.exists():
        print(f"File not found: {path}")
        return 1
    fmt = args.format or ("csv" if path.suffix.lower() == ".csv" else "xlsx")
    resolve = settings.resolve_on_import and not args.no_resolve

    summary = import_schedule(
        path.read_bytes(),
        ScheduleRepository(store, page_size=settings.delete_page_size),
        directory=UserDirectory(store) if resolve else None,
        aliases=AliasRepository(store) if resolve else None,
        fmt=fmt,
        dry_run=args.dry_run,
        max_bytes=settings.max_upload_bytes,
    )
    _print_json(summary.to_dict())
    return 0 if summary.days else 1


def cmd_backfill(args: argparse.Namespace, settings: Settings) -> int:
    store = JsonFileStore(settings.store_path)
    summary = reconcile_names(ScheduleRepository(store), UserDirectory(store), dry_run=args.dry_run)
    data = summary.to_dict()
    if args.report:
        export_backfill_report(data, Path(args.report))
    _print_json(data)
    return 0


def cmd_shift(args: argparse.Namespace, settings: Settings) -> int:
    store = JsonFileStore(settings.store_path)
    summary = shift_month(ScheduleRepository(store), args.month, args.delta, dry_run=args.dry_run)
    _print_json(summary.to_dict())
    return 0


def cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    store = JsonFileStore(settings.store_path)
    year, month = parse_month(args.month)
    start, end = month_bounds(year, month)
    days = ScheduleRepository(store).days_in_range(start, end)
    if not args.csv and not args.excel:
        print("Nothing to do: pass --csv and/or --excel")
        return 1
    if args.csv:
        export_to_csv(days, Path(args.csv))
    if args.excel:
        export_to_excel(days, Path(args.excel))
    print(f"Exported {len(days)} days for {args.month}")
    return 0


def cmd_template(args: argparse.Namespace, settings: Settings) -> int:
    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(build_template_workbook())
    print(f"Template written → {out}")
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    from oncall.api import create_app

    app = create_app(settings)
    app.run(host=args.host, port=args.port)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oncall", description="On-call schedule import and reconciliation")
    parser.add_argument("--config", default=None, help="JSON config file (default: config/oncall.json)")
    parser.add_argument("--store", default=None, help="JSON store file (overrides config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Import a schedule workbook or CSV (replaces whole months)")
    p.add_argument("file", help=".xlsx or .csv file")
    p.add_argument("--format", choices=["xlsx", "csv"], default=None, help="Override format detection")
    p.add_argument("--dry-run", action="store_true", help="Report counts without writing")
    p.add_argument("--no-resolve", action="store_true", help="Store raw names, skip exact name resolution")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("backfill", help="Resolve raw occupant names to user ids")
    p.add_argument("--dry-run", action="store_true", help="Classify without writing")
    p.add_argument("--report", default=None, help="Write a text report of unknown / ambiguous names")
    p.set_defaults(func=cmd_backfill)

    p = sub.add_parser("shift", help="Shift a month's days by N days")
    p.add_argument("--month", required=True, help="Target month YYYY-MM")
    p.add_argument("--delta", required=True, type=int, help="Signed day offset")
    p.add_argument("--dry-run", action="store_true", help="Report moves without writing")
    p.set_defaults(func=cmd_shift)

    p = sub.add_parser("export", help="Export a month to CSV and/or Excel")
    p.add_argument("--month", required=True, help="Month YYYY-MM")
    p.add_argument("--csv", default=None, help="CSV output path")
    p.add_argument("--excel", default=None, help="Excel output path")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("template", help="Write the upload template workbook")
    p.add_argument("--output", default="on-call-schedule-template.xlsx", help="Output path")
    p.set_defaults(func=cmd_template)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8080)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except OnCallError as e:
        print(f"Configuration error: {e}")
        return 2
    if args.store:
        settings.store_path = args.store

    level = "DEBUG" if args.verbose else settings.log_level.upper()
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        return args.func(args, settings)
    except OnCallError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
