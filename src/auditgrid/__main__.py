"""CLI entry point for auditgrid.

Usage:
    python -m auditgrid parse <address>
    python -m auditgrid render <sheet.tsv> [--origin B3]
    python -m auditgrid diff <old.tsv> <new.tsv> [--sheet NAME]
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from loguru import logger

from auditgrid.address import a1_to_cell, format_address, parse_address
from auditgrid.config import get_settings
from auditgrid.diff import diff_sheet
from auditgrid.exceptions import AuditGridError
from auditgrid.file_reader import format_tsv, read_tsv
from auditgrid.grid import DEFAULT_ORIGIN, build_display_grid
from auditgrid.logging import setup_logging


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse an address and print it as JSON."""
    try:
        rng = parse_address(args.address)
    except AuditGridError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output = {
        "sheet": rng.sheet,
        "start": rng.start.to_dict(),
        "end": rng.end.to_dict(),
        "address": format_address(rng),
        "cells": rng.row_count * rng.col_count,
    }
    print(json.dumps(output, indent=2))
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    """Print a TSV sheet with its column-letter header and row-number gutter."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return 1

    try:
        origin = a1_to_cell(args.origin) if args.origin else DEFAULT_ORIGIN
    except AuditGridError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    grid = build_display_grid(read_tsv(path), origin)
    sys.stdout.write(format_tsv(grid))
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    """Compare two versions of a sheet and print the changes as JSON."""
    old_path = Path(args.old)
    new_path = Path(args.new)
    for path in (old_path, new_path):
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1

    result = diff_sheet(args.sheet, read_tsv(old_path), read_tsv(new_path))
    if not result.has_changes():
        print("No changes detected.")
        return 0

    output = {
        "sheet": result.sheet_name,
        "rowsAdded": result.rows_added,
        "rowsRemoved": result.rows_removed,
        "rowsModified": result.rows_modified,
        "cells": [
            {
                "cell": change.cell_ref,
                "change": change.change_type,
                "old": change.old_value,
                "new": change.new_value,
                "percent": change.percent_change,
            }
            for change in result.cell_changes
        ],
    }
    print(json.dumps(output, indent=2))
    print(
        f"\n# {len(result.cell_changes)} cell change(s) in {result.sheet_name}",
        file=sys.stderr,
    )
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="auditgrid",
        description="Spreadsheet coordinate and mapping tools for audit workbooks",
    )
    parser.add_argument(
        "--log-level", default=None, help="Override the configured log level"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_parser = subparsers.add_parser("parse", help="Parse a Sheet!A1:B5 address")
    parse_parser.add_argument("address", help="Address such as 'Balance_Sheet!B2:C3'")
    parse_parser.set_defaults(func=cmd_parse)

    render_parser = subparsers.add_parser(
        "render", help="Render a TSV sheet as a display grid"
    )
    render_parser.add_argument("file", help="Path to a .tsv file")
    render_parser.add_argument(
        "--origin", default=None, help="Cell where the data starts (default: A1)"
    )
    render_parser.set_defaults(func=cmd_render)

    diff_parser = subparsers.add_parser("diff", help="Diff two versions of a sheet")
    diff_parser.add_argument("old", help="Previous version (.tsv)")
    diff_parser.add_argument("new", help="Current version (.tsv)")
    diff_parser.add_argument("--sheet", default="Sheet1", help="Sheet name for output")
    diff_parser.set_defaults(func=cmd_diff)

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(
        json_logs=settings.json_logs,
        log_level=args.log_level or settings.log_level,
    )
    logger.debug(f"Running {args.command}")

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
