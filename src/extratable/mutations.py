"""
Structural and content mutations for table snapshots.

Every function here is pure: it takes a :class:`Table` and returns a new
one, leaving the input untouched. A call that changes nothing (unknown
row, column or cell id, empty target set) returns the input snapshot
itself so callers can detect no-ops with ``is``.

Only two conditions raise: deleting the last row or last column
(StructuralInvariantError subclasses) and malformed cell ids
(MalformedIdentifierError).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from decimal import Decimal
from functools import lru_cache
from typing import Any

from dateutil import parser as date_parser
from loguru import logger
from pydantic import BaseModel, TypeAdapter

from extratable.exceptions import CannotDeleteLastColumnError, CannotDeleteLastRowError
from extratable.ids import new_column_id, new_row_id, parse_cell_id
from extratable.models import (
    Cell,
    CellHistoryEntry,
    CellMetadata,
    CellStyle,
    Column,
    Row,
    SortSpec,
    Table,
    TableSettings,
    empty_cell,
    new_column,
    touch,
    touch_cell,
)
from extratable.schema import NUMERIC_TYPES, CellDataType
from extratable.utils import default_column_name, parse_number, utcnow

CELL_HISTORY_LIMIT = 50

# Cell fields that merge/split manage; update_cell must not touch them.
_CELL_READONLY_FIELDS = frozenset({"id", "row_span", "col_span"})


# =============================================================================
# Field coercion
# =============================================================================


@lru_cache(maxsize=None)
def _adapter(model_cls: type[BaseModel], name: str) -> TypeAdapter:
    return TypeAdapter(model_cls.model_fields[name].annotation)


def _field_name(model_cls: type[BaseModel], key: str) -> str | None:
    if key in model_cls.model_fields:
        return key
    for name, info in model_cls.model_fields.items():
        if info.alias == key:
            return name
    return None


def normalize_changes(
    model_cls: type[BaseModel],
    changes: Mapping[str, Any],
    *,
    readonly: Iterable[str] = (),
) -> dict[str, Any]:
    """Map snake_case or camelCase keys to validated field values.

    Raises:
        ValueError: If a key is not an editable field of ``model_cls``.
    """
    readonly = set(readonly)
    out: dict[str, Any] = {}
    for key, value in changes.items():
        name = _field_name(model_cls, key)
        if name is None or name in readonly:
            raise ValueError(f"{model_cls.__name__} has no editable field '{key}'")
        out[name] = _adapter(model_cls, name).validate_python(value)
    return out


def _merge_model(current: BaseModel, delta: Mapping[str, Any] | BaseModel) -> BaseModel:
    if isinstance(delta, BaseModel):
        return delta
    return current.model_copy(update=normalize_changes(type(current), delta))


# =============================================================================
# Geometry helpers
# =============================================================================


def covered_slots(rows: Sequence[Row], columns: Sequence[Column]) -> set[tuple[int, int]]:
    """Every (row, column) position occupied by a cell or by a cell's span."""
    col_index = {c.id: i for i, c in enumerate(columns)}
    covered: set[tuple[int, int]] = set()
    for r, row in enumerate(rows):
        for column_id, cell in row.cells.items():
            c = col_index.get(column_id)
            if c is None:
                continue
            for rr in range(r, min(r + cell.row_span, len(rows))):
                for cc in range(c, min(c + cell.col_span, len(columns))):
                    covered.add((rr, cc))
    return covered


def _repair_geometry(rows: Sequence[Row], columns: Sequence[Column]) -> list[Row]:
    """Clip spans to the table bounds and refill slots nothing covers."""
    n_rows, n_cols = len(rows), len(columns)
    out: list[Row] = []
    for r, row in enumerate(rows):
        cells = dict(row.cells)
        changed = False
        for c, column in enumerate(columns):
            cell = cells.get(column.id)
            if cell is None:
                continue
            row_span = min(cell.row_span, n_rows - r)
            col_span = min(cell.col_span, n_cols - c)
            if (row_span, col_span) != (cell.row_span, cell.col_span):
                cells[column.id] = cell.model_copy(
                    update={"row_span": row_span, "col_span": col_span}
                )
                changed = True
        out.append(row.model_copy(update={"cells": cells}) if changed else row)

    covered = covered_slots(out, columns)
    for r, row in enumerate(out):
        missing = [
            column
            for c, column in enumerate(columns)
            if column.id not in row.cells and (r, c) not in covered
        ]
        if missing:
            cells = dict(row.cells)
            for column in missing:
                cells[column.id] = empty_cell(row.id, column)
            out[r] = row.model_copy(update={"cells": cells})
    return out


def _map_cells(table: Table, cell_ids: Iterable[str], fn: Callable[[Cell], Cell]) -> Table:
    """Apply ``fn`` to each existing targeted cell; unchanged if nothing changes."""
    targets: dict[str, set[str]] = {}
    for cell_id in cell_ids:
        row_id, column_id = parse_cell_id(cell_id)
        targets.setdefault(row_id, set()).add(column_id)

    rows: list[Row] = []
    changed = False
    for row in table.rows:
        wanted = targets.get(row.id)
        if not wanted:
            rows.append(row)
            continue
        cells = dict(row.cells)
        row_changed = False
        for column_id in wanted:
            cell = cells.get(column_id)
            if cell is None:
                continue
            updated = fn(cell)
            if updated is not cell:
                cells[column_id] = updated
                row_changed = True
        rows.append(row.model_copy(update={"cells": cells}) if row_changed else row)
        changed = changed or row_changed

    if not changed:
        return table
    return touch(table, rows=tuple(rows))


def _with_content(cell: Cell, content: str, **updates: Any) -> Cell:
    """Copy ``cell`` with new content, recording the edit in its history."""
    metadata: CellMetadata = updates.pop("metadata", cell.metadata)
    if content != cell.content:
        entry = CellHistoryEntry(value=content, user=metadata.updated_by)
        history = (metadata.history + (entry,))[-CELL_HISTORY_LIMIT:]
        metadata = metadata.model_copy(
            update={"history": history, "version": metadata.version + 1}
        )
    return touch_cell(cell, content=content, metadata=metadata, **updates)


# =============================================================================
# Rows
# =============================================================================


def _next_increment(table: Table, column: Column) -> str:
    values = [
        parse_number(row.cells[column.id].content)
        for row in table.rows
        if column.id in row.cells
    ]
    highest = max((v for v in values if v is not None), default=Decimal(0))
    return str(int(highest) + 1)


def build_row(table: Table, row: Row | Mapping[str, Any] | None = None) -> Row:
    """Materialize a complete row for ``table``.

    Cells supplied by ``row`` are kept; every other column gets an empty
    cell whose content comes from the column's default value or
    auto-increment counter.
    """
    if row is None:
        row = {}
    if isinstance(row, Mapping):
        fields = normalize_changes(Row, row)
        fields.setdefault("id", new_row_id())
        row = Row(**fields)

    cells: dict[str, Cell] = {}
    for column in table.columns:
        cell = row.cells.get(column.id)
        if cell is None:
            if column.auto_increment:
                content = _next_increment(table, column)
            else:
                content = column.default_value or ""
            cell = empty_cell(row.id, column, content)
        cells[column.id] = cell
    return row.model_copy(update={"cells": cells})


def insert_row(
    table: Table,
    after_row_id: str | None = None,
    row: Row | Mapping[str, Any] | None = None,
) -> Table:
    """Insert a row after ``after_row_id``, or at the end.

    An unknown ``after_row_id`` appends instead of failing. The new row's
    id is ``row.id`` when given, otherwise freshly generated; it can be
    found at the returned position via ``table.rows``. A merged cell whose
    span straddles the insertion point grows to cover the new row.
    """
    new = build_row(table, row)
    if table.row_index(new.id) is not None:
        raise ValueError(f"Row id '{new.id}' already exists")

    index = table.row_index(after_row_id) if after_row_id is not None else None
    position = len(table.rows) if index is None else index + 1

    # Spans straddling the insertion point grow over the new row.
    col_index = {c.id: i for i, c in enumerate(table.columns)}
    above = list(table.rows[:position])
    covered: set[str] = set()
    for r, existing in enumerate(above):
        grown = {
            cid: cell.model_copy(update={"row_span": cell.row_span + 1})
            for cid, cell in existing.cells.items()
            if r + cell.row_span > position and cid in col_index
        }
        for cid, cell in grown.items():
            start = col_index[cid]
            covered.update(c.id for c in table.columns[start : start + cell.col_span])
        if grown:
            above[r] = existing.model_copy(update={"cells": {**existing.cells, **grown}})
    if covered:
        new = new.model_copy(
            update={"cells": {k: v for k, v in new.cells.items() if k not in covered}}
        )

    rows = tuple(above) + (new,) + table.rows[position:]
    logger.debug(f"Inserted row {new.id} at position {position}")
    return touch(table, rows=rows)


def delete_row(table: Table, row_id: str) -> Table:
    """Delete a row and its cells.

    Spans reaching into the deleted row from above shrink by one.

    Raises:
        CannotDeleteLastRowError: If the table has a single row and
            ``row_id`` is that row.
    """
    index = table.row_index(row_id)
    if index is None:
        return table
    if len(table.rows) <= 1:
        raise CannotDeleteLastRowError(row_id)

    rows: list[Row] = []
    for r, row in enumerate(table.rows):
        if r == index:
            continue
        if r < index:
            cells = {
                cid: (
                    cell.model_copy(update={"row_span": cell.row_span - 1})
                    if r + cell.row_span > index
                    else cell
                )
                for cid, cell in row.cells.items()
            }
            row = row.model_copy(update={"cells": cells})
        rows.append(row)

    logger.debug(f"Deleted row {row_id} at position {index}")
    return touch(
        table,
        rows=tuple(_repair_geometry(rows, table.columns)),
        validation_errors=_drop_errors(table, row_id=row_id),
    )


def update_row(table: Table, row_id: str, changes: Mapping[str, Any]) -> Table:
    """Update a row's height or metadata. Cells are edited with update_cell."""
    row = table.get_row(row_id)
    if row is None:
        return table
    fields = dict(changes)
    metadata = fields.pop("metadata", None)
    updates = normalize_changes(Row, fields, readonly={"id", "cells"})
    updates["metadata"] = (
        _merge_model(row.metadata, metadata) if metadata is not None else row.metadata
    ).model_copy(update={"updated": utcnow()})
    updated = row.model_copy(update=updates)
    return touch(table, rows=tuple(updated if r.id == row_id else r for r in table.rows))


def resize_row(table: Table, row_id: str, height: int) -> Table:
    """Set a row's height, clamped to the table's row height bounds."""
    row = table.get_row(row_id)
    if row is None:
        return table
    settings = table.settings
    height = max(settings.min_row_height, min(settings.max_row_height, int(height)))
    if row.height == height:
        return table
    updated = row.model_copy(update={"height": height})
    return touch(table, rows=tuple(updated if r.id == row_id else r for r in table.rows))


def move_row(table: Table, row_id: str, to_index: int) -> Table:
    """Move a row to ``to_index`` (clamped to the valid range).

    Merged regions are not carried along; slots a move leaves uncovered
    get fresh empty cells.
    """
    index = table.row_index(row_id)
    if index is None:
        return table
    to_index = max(0, min(len(table.rows) - 1, to_index))
    if to_index == index:
        return table
    rows = list(table.rows)
    rows.insert(to_index, rows.pop(index))
    return touch(table, rows=tuple(_repair_geometry(rows, table.columns)))


# =============================================================================
# Columns
# =============================================================================


def insert_column(
    table: Table,
    after_column_id: str | None = None,
    column: Column | Mapping[str, Any] | None = None,
) -> Table:
    """Insert a column after ``after_column_id``, or at the end.

    Every existing row receives an empty cell for the new column in the
    same step, except where a straddling merged cell grows over it. An
    unknown ``after_column_id`` appends.
    """
    index = table.column_index(after_column_id) if after_column_id is not None else None
    position = len(table.columns) if index is None else index + 1

    if column is None:
        column = {}
    if isinstance(column, Mapping):
        fields = normalize_changes(Column, column)
        fields.setdefault("id", new_column_id())
        fields.setdefault("name", default_column_name(len(table.columns)))
        fields.setdefault("width", table.settings.default_column_width)
        column = Column(**fields)
    if table.column_index(column.id) is not None:
        raise ValueError(f"Column id '{column.id}' already exists")

    # Spans straddling the insertion point grow over the new column.
    left = {c.id: i for i, c in enumerate(table.columns[:position])}
    covered_rows: set[int] = set()
    grown_rows: list[dict[str, Cell]] = []
    for r, row in enumerate(table.rows):
        grown = {
            cid: cell.model_copy(update={"col_span": cell.col_span + 1})
            for cid, cell in row.cells.items()
            if cid in left and left[cid] + cell.col_span > position
        }
        for cell in grown.values():
            covered_rows.update(range(r, r + cell.row_span))
        grown_rows.append(grown)

    rows = []
    for r, row in enumerate(table.rows):
        cells = {**row.cells, **grown_rows[r]}
        if r not in covered_rows:
            if column.auto_increment:
                content = str(r + 1)
            else:
                content = column.default_value or ""
            cells[column.id] = empty_cell(row.id, column, content)
        rows.append(row.model_copy(update={"cells": cells}))

    columns = table.columns[:position] + (column,) + table.columns[position:]
    logger.debug(f"Inserted column {column.id} at position {position}")
    return touch(table, columns=columns, rows=tuple(rows))


def delete_column(table: Table, column_id: str) -> Table:
    """Delete a column and its cell in every row.

    Spans reaching into the deleted column from the left shrink by one.

    Raises:
        CannotDeleteLastColumnError: If the table has a single column
            and ``column_id`` is that column.
    """
    index = table.column_index(column_id)
    if index is None:
        return table
    if len(table.columns) <= 1:
        raise CannotDeleteLastColumnError(column_id)

    left_ids = {c.id for c in table.columns[:index]}
    col_pos = {c.id: i for i, c in enumerate(table.columns)}
    rows = []
    for row in table.rows:
        cells = {}
        for cid, cell in row.cells.items():
            if cid == column_id:
                continue
            if cid in left_ids and col_pos[cid] + cell.col_span > index:
                cell = cell.model_copy(update={"col_span": cell.col_span - 1})
            cells[cid] = cell
        rows.append(row.model_copy(update={"cells": cells}))

    columns = tuple(c for c in table.columns if c.id != column_id)
    filters = {k: v for k, v in table.filters.items() if k != column_id}
    sorting = tuple(s for s in table.sorting if s.column_id != column_id)
    logger.debug(f"Deleted column {column_id} at position {index}")
    return touch(
        table,
        columns=columns,
        rows=tuple(_repair_geometry(rows, columns)),
        filters=filters,
        sorting=sorting,
        validation_errors=_drop_errors(table, column_id=column_id),
    )


def update_column(table: Table, column_id: str, changes: Mapping[str, Any]) -> Table:
    """Replace the given column fields. The column id cannot change."""
    column = table.get_column(column_id)
    if column is None:
        return table
    updated = column.model_copy(update=normalize_changes(Column, changes, readonly={"id"}))
    if updated == column:
        return table
    return touch(
        table, columns=tuple(updated if c.id == column_id else c for c in table.columns)
    )


def resize_column(table: Table, column_id: str, width: int) -> Table:
    """Set a column's width, clamped to its own or the table's bounds."""
    column = table.get_column(column_id)
    if column is None:
        return table
    low = column.min_width if column.min_width is not None else table.settings.min_column_width
    high = column.max_width if column.max_width is not None else table.settings.max_column_width
    width = max(low, min(high, int(width)))
    if width == column.width:
        return table
    return update_column(table, column_id, {"width": width})


def move_column(table: Table, column_id: str, to_index: int) -> Table:
    """Move a column to ``to_index`` (clamped). Cell ids are unaffected."""
    index = table.column_index(column_id)
    if index is None:
        return table
    to_index = max(0, min(len(table.columns) - 1, to_index))
    if to_index == index:
        return table
    columns = list(table.columns)
    columns.insert(to_index, columns.pop(index))
    return touch(
        table,
        columns=tuple(columns),
        rows=tuple(_repair_geometry(table.rows, columns)),
    )


# =============================================================================
# Cells
# =============================================================================


def update_cell(table: Table, cell_id: str, changes: Mapping[str, Any]) -> Table:
    """Replace only the given fields of one cell.

    ``changes`` may set content, type, style, metadata (merged into the
    existing metadata when given as a mapping), validation and the
    type-specific payloads. The cell's own ``updated`` timestamp is
    refreshed; content edits are appended to its history.

    Raises:
        ValueError: If ``changes`` names a field that cannot be edited.
    """
    fields = dict(changes)
    metadata_delta = fields.pop("metadata", None)
    updates = normalize_changes(Cell, fields, readonly=_CELL_READONLY_FIELDS)

    def apply(cell: Cell) -> Cell:
        cell_updates = dict(updates)
        if metadata_delta is not None:
            cell_updates["metadata"] = _merge_model(cell.metadata, metadata_delta)
        content = cell_updates.pop("content", cell.content)
        if content == cell.content and all(
            getattr(cell, name) == value for name, value in cell_updates.items()
        ):
            return cell
        return _with_content(cell, content, **cell_updates)

    return _map_cells(table, [cell_id], apply)


def clear_cells(table: Table, cell_ids: Iterable[str]) -> Table:
    """Empty the content of the given cells, keeping style and metadata."""
    return _map_cells(
        table, cell_ids, lambda cell: _with_content(cell, "") if cell.content else cell
    )


def apply_style(
    table: Table, cell_ids: Iterable[str], style: CellStyle | Mapping[str, Any]
) -> Table:
    """Shallow-merge a style delta into every targeted cell.

    Keys in the delta win; keys it does not set are preserved. Content and
    cells outside the target set are left alone.
    """
    delta = style if isinstance(style, CellStyle) else CellStyle.model_validate(dict(style))

    def apply(cell: Cell) -> Cell:
        base = cell.style or CellStyle()
        return touch_cell(cell, style=base.merged(delta))

    return _map_cells(table, list(cell_ids), apply)


def paste_values(table: Table, anchor_cell_id: str, values: Sequence[Sequence[str]]) -> Table:
    """Write a grid of values starting at the anchor cell.

    Values falling outside the table are dropped, as are values landing on
    slots hidden under a merged cell.
    """
    position = table.cell_position(anchor_cell_id)
    if position is None:
        return table
    top, left = position
    targets: dict[str, str] = {}
    for i, line in enumerate(values):
        r = top + i
        if r >= len(table.rows):
            break
        row = table.rows[r]
        for j, value in enumerate(line):
            c = left + j
            if c >= len(table.columns):
                break
            cell = row.cells.get(table.columns[c].id)
            if cell is not None:
                targets[cell.id] = value

    return _map_cells(
        table,
        targets,
        lambda cell: _with_content(cell, targets[cell.id])
        if targets[cell.id] != cell.content
        else cell,
    )


def merge_cells(table: Table, cell_ids: Sequence[str], primary_cell_id: str) -> Table:
    """Merge cells into one spanning cell.

    The merged region is the bounding box of the selected cells, grown
    until no span crosses its edge. The region's top-left cell survives
    and receives the span; all other cells in the region are deleted.
    Content is the primary cell's content followed by the other cells'
    non-empty content in row-major order, joined by single spaces.

    Fewer than two existing cells, or a primary that does not exist,
    leaves the table unchanged.
    """
    ids = list(dict.fromkeys([primary_cell_id, *cell_ids]))
    positions = {}
    for cell_id in ids:
        pos = table.cell_position(cell_id)
        if pos is not None and table.get_cell(cell_id) is not None:
            positions[cell_id] = pos
    if primary_cell_id not in positions or len(positions) < 2:
        return table

    top = min(r for r, _ in positions.values())
    left = min(c for _, c in positions.values())
    bottom = max(r + table.get_cell(cid).row_span - 1 for cid, (r, _) in positions.items())
    right = max(c + table.get_cell(cid).col_span - 1 for cid, (_, c) in positions.items())

    # Grow the box until every span touching it lies inside it.
    grown = True
    while grown:
        grown = False
        for r, row in enumerate(table.rows):
            for c, column in enumerate(table.columns):
                cell = row.cells.get(column.id)
                if cell is None:
                    continue
                r2, c2 = r + cell.row_span - 1, c + cell.col_span - 1
                overlaps = r <= bottom and r2 >= top and c <= right and c2 >= left
                inside = top <= r and r2 <= bottom and left <= c and c2 <= right
                if overlaps and not inside:
                    top, left = min(top, r), min(left, c)
                    bottom, right = max(bottom, r2), max(right, c2)
                    grown = True

    region: list[Cell] = []
    for r in range(top, bottom + 1):
        row = table.rows[r]
        for c in range(left, right + 1):
            cell = row.cells.get(table.columns[c].id)
            if cell is not None:
                region.append(cell)

    primary = table.get_cell(primary_cell_id)
    parts = [primary.content] + [cell.content for cell in region if cell.id != primary.id]
    content = " ".join(part for part in parts if part)

    keeper = region[0]
    merged = _with_content(
        keeper,
        content,
        row_span=bottom - top + 1,
        col_span=right - left + 1,
    )
    removed = {cell.id for cell in region[1:]}

    rows = []
    for r, row in enumerate(table.rows):
        if top <= r <= bottom:
            cells = {}
            for cid, cell in row.cells.items():
                if cell.id == keeper.id:
                    cells[cid] = merged
                elif cell.id not in removed:
                    cells[cid] = cell
            row = row.model_copy(update={"cells": cells})
        rows.append(row)

    logger.debug(
        f"Merged {len(region)} cells into {keeper.id} "
        f"({bottom - top + 1}x{right - left + 1})"
    )
    return touch(table, rows=tuple(rows))


def split_cell(
    table: Table,
    cell_id: str,
    rows: int = 1,
    columns: int = 1,
    *,
    new_column_ids: Sequence[str] | None = None,
) -> Table:
    """Split a cell back into single slots and make room to its right.

    The cell's span is reset to 1x1 and every slot the span covered gets a
    fresh empty cell. The cell then has ``columns - 1`` sibling cells to
    its right: slots freed from the old span count first, and new columns
    are inserted after them for the remainder. ``rows`` is validated but
    no rows are inserted.

    ``new_column_ids`` fixes the ids of inserted columns so the same split
    can be replayed identically.
    """
    if rows < 1 or columns < 1:
        raise ValueError("split dimensions must be at least 1x1")
    position = table.cell_position(cell_id)
    cell = table.get_cell(cell_id)
    if position is None or cell is None:
        return table
    needed = columns - cell.col_span
    if cell.row_span == 1 and cell.col_span == 1 and needed <= 0:
        return table

    r0, c0 = position
    result_rows = list(table.rows)
    row = result_rows[r0]
    cells = dict(row.cells)
    cells[table.columns[c0].id] = touch_cell(cell, row_span=1, col_span=1)
    result_rows[r0] = row.model_copy(update={"cells": cells})
    split = table.model_copy(
        update={"rows": tuple(_repair_geometry(result_rows, table.columns))}
    )

    after_id = table.columns[min(c0 + cell.col_span, len(table.columns)) - 1].id
    ids = list(new_column_ids or [])
    for k in range(max(0, needed)):
        column_id = ids[k] if k < len(ids) else new_column_id()
        column = new_column(len(split.columns), id=column_id)
        split = insert_column(split, after_id, column)
        after_id = column_id

    logger.debug(f"Split {cell_id} into {columns} columns")
    return touch(table, columns=split.columns, rows=split.rows)


# =============================================================================
# Sorting and filtering
# =============================================================================


def _sort_value(content: str, kind: CellDataType) -> Any:
    """Comparable key for a cell's content, or None when it cannot be parsed."""
    text = (content or "").strip()
    if not text:
        return None
    if kind in NUMERIC_TYPES:
        return parse_number(text)
    if kind == CellDataType.DATE:
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError):
            return None
        return parsed.replace(tzinfo=None)
    if kind == CellDataType.BOOLEAN:
        lowered = text.lower()
        if lowered in {"true", "yes", "1"}:
            return 1
        if lowered in {"false", "no", "0"}:
            return 0
        return None
    return text.casefold()


def sort_rows(table: Table, specs: Sequence[SortSpec | Mapping[str, Any]]) -> Table:
    """Stable multi-key sort of the rows.

    Specs are ordered by ``priority`` (lower first) then list order.
    Values are compared by the column type; empty or unparsable values
    always sort last whatever the direction. Specs naming unknown or
    non-sortable columns are ignored.
    """
    parsed = [s if isinstance(s, SortSpec) else SortSpec.model_validate(s) for s in specs]
    ordered = sorted(enumerate(parsed), key=lambda item: (item[1].priority, item[0]))
    active = []
    for _, spec in ordered:
        column = table.get_column(spec.column_id)
        if column is not None and column.sortable:
            active.append((spec, column))

    rows = list(table.rows)
    for spec, column in reversed(active):
        keyed = []
        blanks = []
        for row in rows:
            cell = row.cells.get(column.id)
            value = _sort_value(cell.content, column.type) if cell is not None else None
            (blanks if value is None else keyed).append((value, row))
        keyed.sort(key=lambda item: item[0], reverse=spec.direction == "desc")
        rows = [row for _, row in keyed] + [row for _, row in blanks]

    sorting = tuple(spec for spec, _ in active)
    if [r.id for r in rows] == table.row_ids() and sorting == table.sorting:
        return table
    return touch(
        table,
        rows=tuple(_repair_geometry(rows, table.columns)),
        sorting=sorting,
    )


def set_filters(table: Table, filters: Mapping[str, str]) -> Table:
    """Replace the active filters. Empty filter values are dropped."""
    cleaned = {k: v for k, v in filters.items() if v}
    if cleaned == table.filters:
        return table
    return touch(table, filters=cleaned)


def visible_rows(table: Table) -> list[Row]:
    """Rows that are not hidden and match every active filter.

    A filter matches when its text occurs in the cell content, ignoring
    case. Filters on unknown columns are ignored.
    """
    active = {
        column_id: needle.casefold()
        for column_id, needle in table.filters.items()
        if table.get_column(column_id) is not None
    }
    result = []
    for row in table.rows:
        if row.metadata.hidden:
            continue
        if all(
            needle in (row.cells[cid].content if cid in row.cells else "").casefold()
            for cid, needle in active.items()
        ):
            result.append(row)
    return result


# =============================================================================
# Settings and bookkeeping
# =============================================================================


def update_settings(table: Table, changes: Mapping[str, Any]) -> Table:
    settings = table.settings.model_copy(update=normalize_changes(TableSettings, changes))
    if settings == table.settings:
        return table
    return touch(table, settings=settings)


def _drop_errors(
    table: Table, *, row_id: str | None = None, column_id: str | None = None
) -> dict[str, tuple[str, ...]]:
    kept = {}
    for cell_id, messages in table.validation_errors.items():
        r, c = parse_cell_id(cell_id)
        if r == row_id or c == column_id:
            continue
        kept[cell_id] = messages
    return kept

