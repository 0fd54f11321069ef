"""CLI entry point for extratable.

Usage:
    python -m extratable convert <input> --to {csv,json,html,markdown} [-o OUTPUT]
    python -m extratable validate <input>
    python -m extratable new <template> [--rows N] [--columns N] [--to FORMAT] [-o OUTPUT]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from extratable.exceptions import TableError
from extratable.integrity import check_integrity
from extratable.logging import configure_logging
from extratable.models import Table
from extratable.serialization import EXPORTERS, csv_to_table, export_table, table_from_json
from extratable.templates import PREDEFINED_TEMPLATES, create_table_from_template, get_template
from extratable.validation import validate_table
from extratable.writer import FileWriter


def load_table(path: Path) -> Table:
    """Read a table from a ``.csv`` or ``.json`` file."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return table_from_json(text)
    return csv_to_table(text, title=path.stem)


def cmd_convert(args: argparse.Namespace) -> int:
    """Convert a table file to another format."""
    source = Path(args.input)
    if not source.exists():
        print(f"Error: File not found: {source}", file=sys.stderr)
        return 1

    try:
        table = load_table(source)
        if args.output is None:
            print(export_table(table, args.to))
            return 0
        output = Path(args.output)
        if output.suffix:
            path = FileWriter(output.parent).write_text(output.name, export_table(table, args.to))
        else:
            path = FileWriter(output).write_export(table, args.to, name=source.stem)
        print(f"Wrote {path}")
        return 0
    except TableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Check a table file's structure and cell values."""
    source = Path(args.input)
    if not source.exists():
        print(f"Error: File not found: {source}", file=sys.stderr)
        return 1

    try:
        table = load_table(source)
    except TableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    report = check_integrity(table)
    for block in report.blocks:
        print(f"ERROR: {block}")
    for warning in report.warnings:
        print(f"WARNING: {warning}")

    has_errors = not report.ok
    for cell_id, result in validate_table(table).items():
        for issue in result.issues:
            print(f"{issue.severity.upper()}: {cell_id}: {issue.message}")
        has_errors = has_errors or not result.is_valid

    if not has_errors:
        print("No errors found.")
    return 1 if has_errors else 0


def cmd_new(args: argparse.Namespace) -> int:
    """Create a table from a predefined template."""
    try:
        template = get_template(args.template)
    except TableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    table = create_table_from_template(
        template, args.rows, args.columns, sample_data=not args.empty
    )
    if args.output is None:
        print(export_table(table, args.to))
        return 0
    path = FileWriter(Path(args.output)).write_export(table, args.to, name=template.id)
    print(f"Wrote {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="extratable",
        description="Convert and validate table files",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log engine activity to stderr at DEBUG level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # convert subcommand
    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert a .csv or .json table to another format",
    )
    convert_parser.add_argument("input", help="Path to a .csv or .json table")
    convert_parser.add_argument(
        "--to",
        required=True,
        choices=sorted(EXPORTERS),
        help="Output format",
    )
    convert_parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output file, or a directory to write the export into (default: stdout)",
    )
    convert_parser.set_defaults(func=cmd_convert)

    # validate subcommand
    validate_parser = subparsers.add_parser(
        "validate",
        help="Check a table's structure and run its validation rules",
    )
    validate_parser.add_argument("input", help="Path to a .csv or .json table")
    validate_parser.set_defaults(func=cmd_validate)

    # new subcommand
    new_parser = subparsers.add_parser(
        "new",
        help="Create a table from a predefined template",
    )
    new_parser.add_argument(
        "template",
        help="Template id (" + ", ".join(sorted(PREDEFINED_TEMPLATES)) + ")",
    )
    new_parser.add_argument("--rows", type=int, default=None, help="Row count")
    new_parser.add_argument("--columns", type=int, default=None, help="Column count")
    new_parser.add_argument(
        "--empty",
        action="store_true",
        help="Leave out the template's sample rows",
    )
    new_parser.add_argument(
        "--to",
        default="json",
        choices=sorted(EXPORTERS),
        help="Output format (default: json)",
    )
    new_parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Directory to write the table into (default: stdout)",
    )
    new_parser.set_defaults(func=cmd_new)

    args = parser.parse_args(argv)
    configure_logging(log_level="DEBUG" if args.verbose else None)
    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
