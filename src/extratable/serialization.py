"""
Import and export of tables.

CSV and JSON go both ways; HTML and Markdown are export-only renderings
of the visible content. TSV helpers move rectangular blocks of values
through the clipboard.
"""

from __future__ import annotations

import html
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from loguru import logger
from pydantic import ValidationError

from extratable.exceptions import TableImportError
from extratable.formatting import format_cell_value
from extratable.integrity import check_integrity
from extratable.models import Cell, Column, CellStyle, Table, create_table
from extratable.utils import escape_tsv_field, unescape_tsv_field

# =============================================================================
# CSV
# =============================================================================


@dataclass
class CsvData:
    """Parsed CSV: the first record as headers, the rest as rows."""

    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _display(cell: Cell | None, column: Column, formatted: bool) -> str:
    if cell is None:
        return ""
    return format_cell_value(cell, column.format) if formatted else cell.content


def table_to_csv(table: Table, *, formatted: bool = False) -> str:
    """Serialize a table to CSV.

    Every field is double-quoted with embedded quotes doubled. The header
    line is written only when ``settings.show_headers`` is on. With
    ``formatted`` the column formats are applied to the values.
    """
    lines = []
    if table.settings.show_headers:
        lines.append(",".join(_quote(column.name) for column in table.columns))
    for row in table.rows:
        lines.append(
            ",".join(
                _quote(_display(row.cells.get(column.id), column, formatted))
                for column in table.columns
            )
        )
    return "\n".join(lines)


def parse_csv(text: str) -> CsvData:
    """Parse CSV text with a quote-aware state machine.

    Quoted fields may contain commas, line breaks and doubled quotes.
    Records that are completely blank are skipped. Both ``\\n`` and
    ``\\r\\n`` end a record.
    """
    records: list[list[str]] = []
    record: list[str] = []
    current: list[str] = []
    in_quotes = False
    quoted = False
    i = 0
    n = len(text)

    def end_record() -> None:
        nonlocal record, quoted
        if record or current or quoted:
            record.append("".join(current))
        if record and not (len(record) == 1 and not record[0].strip() and not quoted):
            records.append(record)
        record = []
        quoted = False

    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    current.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = True
            quoted = True
        elif ch == ",":
            record.append("".join(current))
            current.clear()
            quoted = False
        elif ch == "\n" or ch == "\r":
            end_record()
            current.clear()
            if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
        else:
            current.append(ch)
        i += 1
    end_record()

    if not records:
        return CsvData()
    return CsvData(headers=records[0], rows=records[1:])


def csv_to_table(text: str, *, title: str = "Imported Table") -> Table:
    """Build a table from CSV text.

    The first record names the columns; each following record becomes a
    row. Short records are padded with empty cells and records longer
    than the header add extra columns.

    Raises:
        TableImportError: If the text has no records at all.
    """
    data = parse_csv(text)
    if not data.headers:
        raise TableImportError("CSV", "no header row")

    width = max([len(data.headers), *(len(r) for r in data.rows)])
    specs = [
        {"name": name} if name.strip() else {}
        for name in data.headers + [""] * (width - len(data.headers))
    ]
    table = create_table(rows=max(1, len(data.rows)), title=title, column_specs=specs)

    rows = []
    for row, values in zip(table.rows, data.rows):
        padded = values + [""] * (width - len(values))
        cells = {
            column.id: row.cells[column.id].model_copy(update={"content": value})
            for column, value in zip(table.columns, padded)
        }
        rows.append(row.model_copy(update={"cells": cells}))
    rows.extend(table.rows[len(rows) :])

    logger.debug(f"Imported CSV with {width} columns and {len(data.rows)} rows")
    return table.model_copy(update={"rows": tuple(rows)})


# =============================================================================
# JSON
# =============================================================================


def table_to_json(table: Table, *, indent: int | None = 2) -> str:
    """Serialize the full snapshot with camelCase keys."""
    return table.model_dump_json(by_alias=True, indent=indent)


def table_from_json(text: str | bytes) -> Table:
    """Load a snapshot written by :func:`table_to_json`.

    Raises:
        TableImportError: If the JSON does not describe a table, or the
            table breaks a structural invariant.
    """
    try:
        table = Table.model_validate_json(text)
    except ValidationError as e:
        raise TableImportError("JSON", f"{e.error_count()} validation error(s): {e}") from e
    report = check_integrity(table)
    if not report.ok:
        raise TableImportError("JSON", "; ".join(report.blocks))
    for warning in report.warnings:
        logger.warning(f"Imported table {table.id}: {warning}")
    return table


# =============================================================================
# HTML and Markdown
# =============================================================================

_CSS_PROPERTIES = {
    "background_color": "background-color",
    "color": "color",
    "font_family": "font-family",
    "font_size": "font-size",
    "font_weight": "font-weight",
    "font_style": "font-style",
    "text_decoration": "text-decoration",
    "text_align": "text-align",
    "vertical_align": "vertical-align",
}


def _css(style: CellStyle | None) -> str:
    if style is None:
        return ""
    declarations = []
    for name, prop in _CSS_PROPERTIES.items():
        value = getattr(style, name)
        if value is None:
            continue
        if name == "font_size" and isinstance(value, int):
            value = f"{value}px"
        declarations.append(f"{prop}: {value}")
    return "; ".join(declarations)


def table_to_html(table: Table) -> str:
    """Render the table as an HTML ``<table>``.

    Values are formatted and escaped; merged cells carry ``rowspan`` and
    ``colspan`` and the slots they cover are omitted.
    """
    parts = ["<table>"]
    if table.settings.show_headers:
        headers = "".join(f"<th>{html.escape(c.name)}</th>" for c in table.columns)
        parts.append(f"<thead><tr>{headers}</tr></thead>")
    parts.append("<tbody>")
    for row in table.rows:
        cells = []
        for column in table.columns:
            cell = row.cells.get(column.id)
            if cell is None:
                continue
            attrs = ""
            if cell.row_span > 1:
                attrs += f' rowspan="{cell.row_span}"'
            if cell.col_span > 1:
                attrs += f' colspan="{cell.col_span}"'
            css = _css(cell.style)
            if css:
                attrs += f' style="{html.escape(css)}"'
            text = html.escape(format_cell_value(cell, column.format)).replace("\n", "<br>")
            cells.append(f"<td{attrs}>{text}</td>")
        parts.append(f"<tr>{''.join(cells)}</tr>")
    parts.append("</tbody></table>")
    return "".join(parts)


def _md(value: str) -> str:
    return value.replace("\\", "\\\\").replace("|", "\\|").replace("\r\n", "\n").replace(
        "\n", "<br>"
    )


def table_to_markdown(table: Table) -> str:
    """Render the table as a GitHub-flavoured Markdown table.

    Markdown has no merged cells: slots covered by a span render empty.
    """
    lines = [
        "| " + " | ".join(_md(c.name) for c in table.columns) + " |",
        "| " + " | ".join("---" for _ in table.columns) + " |",
    ]
    for row in table.rows:
        values = [
            _md(_display(row.cells.get(column.id), column, formatted=True))
            for column in table.columns
        ]
        lines.append("| " + " | ".join(values) + " |")
    return "\n".join(lines)


EXPORTERS: dict[str, Callable[[Table], str]] = {
    "csv": table_to_csv,
    "json": table_to_json,
    "html": table_to_html,
    "markdown": table_to_markdown,
}


def export_table(table: Table, fmt: str) -> str:
    """Export through one of :data:`EXPORTERS` by name."""
    try:
        exporter = EXPORTERS[fmt.lower()]
    except KeyError:
        raise ValueError(
            f"Unsupported export format '{fmt}'. Choose one of: {', '.join(EXPORTERS)}"
        ) from None
    return exporter(table)


# =============================================================================
# Clipboard blocks
# =============================================================================


def cells_to_grid(table: Table, cell_ids: Iterable[str]) -> list[list[str]]:
    """The bounding block of the given cells as a grid of contents.

    Positions inside the block that are not among ``cell_ids`` are empty.
    Unknown cells are ignored.
    """
    wanted: dict[tuple[int, int], str] = {}
    for cell_id in cell_ids:
        position = table.cell_position(cell_id)
        cell = table.get_cell(cell_id) if position is not None else None
        if cell is not None:
            wanted[position] = cell.content
    if not wanted:
        return []
    top = min(r for r, _ in wanted)
    bottom = max(r for r, _ in wanted)
    left = min(c for _, c in wanted)
    right = max(c for _, c in wanted)
    return [
        [wanted.get((r, c), "") for c in range(left, right + 1)]
        for r in range(top, bottom + 1)
    ]


def grid_to_tsv(grid: Iterable[Iterable[str]]) -> str:
    """Tab-separated lines with tabs and newlines inside values escaped."""
    return "\n".join("\t".join(escape_tsv_field(v) for v in line) for line in grid)


def tsv_to_grid(text: str) -> list[list[str]]:
    """Parse text produced by :func:`grid_to_tsv` (or pasted from a sheet)."""
    lines = text.replace("\r\n", "\n").split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [[unescape_tsv_field(v) for v in line.split("\t")] for line in lines]
