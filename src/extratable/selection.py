"""
Selection model for extratable.

A :class:`Selection` keeps two views of what is selected: rectangular
ranges of zero-based (row, column) positions, and the flat list of cell
ids those ranges cover. Every constructor here derives the flat list from
the ranges so the two views cannot diverge.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from enum import StrEnum
from typing import Literal

from extratable.models import Table
from extratable.schema import FrozenModel


class SelectionKind(StrEnum):
    NONE = "none"
    CELL = "cell"
    ROW = "row"
    COLUMN = "column"
    RANGE = "range"
    ALL = "all"


Direction = Literal["up", "down", "left", "right"]

_STEPS: dict[str, tuple[int, int]] = {
    "up": (-1, 0),
    "down": (1, 0),
    "left": (0, -1),
    "right": (0, 1),
}


class CellRange(FrozenModel):
    """An inclusive rectangle of row and column positions."""

    start_row: int
    end_row: int
    start_column: int
    end_column: int

    @classmethod
    def between(cls, a: tuple[int, int], b: tuple[int, int]) -> CellRange:
        """The smallest rectangle containing both corners, in either order."""
        return cls(
            start_row=min(a[0], b[0]),
            end_row=max(a[0], b[0]),
            start_column=min(a[1], b[1]),
            end_column=max(a[1], b[1]),
        )

    def normalized(self) -> CellRange:
        return CellRange.between(
            (self.start_row, self.start_column), (self.end_row, self.end_column)
        )

    @property
    def row_count(self) -> int:
        return abs(self.end_row - self.start_row) + 1

    @property
    def column_count(self) -> int:
        return abs(self.end_column - self.start_column) + 1

    def contains(self, row: int, column: int) -> bool:
        rng = self.normalized()
        return (
            rng.start_row <= row <= rng.end_row
            and rng.start_column <= column <= rng.end_column
        )

    def positions(self) -> Iterator[tuple[int, int]]:
        """Yield every position in row-major order."""
        rng = self.normalized()
        for r in range(rng.start_row, rng.end_row + 1):
            for c in range(rng.start_column, rng.end_column + 1):
                yield r, c


class Selection(FrozenModel):
    kind: SelectionKind = SelectionKind.NONE
    cells: tuple[str, ...] = ()
    rows: tuple[str, ...] = ()
    columns: tuple[str, ...] = ()
    ranges: tuple[CellRange, ...] = ()
    anchor: str | None = None
    focus: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.kind == SelectionKind.NONE

    def is_selected(self, cell_id: str) -> bool:
        return cell_id in self.cells


def get_cells_in_range(
    table: Table, start_row: int, end_row: int, start_column: int, end_column: int
) -> list[str]:
    """Ids of the cells inside a rectangle, in row-major order.

    Corners may be given in any order. Positions outside the table and
    slots hidden under a merged cell contribute nothing.
    """
    rng = CellRange.between((start_row, start_column), (end_row, end_column))
    ids = []
    for r, c in rng.positions():
        cell = table.cell_at(r, c)
        if cell is not None:
            ids.append(cell.id)
    return ids


def _cells_for(table: Table, ranges: Iterable[CellRange]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for rng in ranges:
        for cell_id in get_cells_in_range(
            table, rng.start_row, rng.end_row, rng.start_column, rng.end_column
        ):
            seen[cell_id] = None

    def order(cell_id: str) -> tuple[int, int]:
        return table.cell_position(cell_id) or (0, 0)

    return tuple(sorted(seen, key=order))


def _build(
    table: Table,
    kind: SelectionKind,
    ranges: Sequence[CellRange],
    *,
    rows: Sequence[str] = (),
    columns: Sequence[str] = (),
    anchor: str | None = None,
    focus: str | None = None,
) -> Selection:
    ranges = tuple(rng.normalized() for rng in ranges)
    return Selection(
        kind=kind,
        cells=_cells_for(table, ranges),
        rows=tuple(rows),
        columns=tuple(columns),
        ranges=ranges,
        anchor=anchor,
        focus=focus,
    )


def empty_selection() -> Selection:
    return Selection()


def select_cell(table: Table, cell_id: str) -> Selection:
    """Select a single cell, making it the anchor for later extension."""
    position = table.cell_position(cell_id)
    if position is None or table.get_cell(cell_id) is None:
        return empty_selection()
    return _build(
        table,
        SelectionKind.CELL,
        [CellRange.between(position, position)],
        anchor=cell_id,
        focus=cell_id,
    )


def _from_cell_set(table: Table, cell_ids: Iterable[str], focus: str | None) -> Selection:
    positions = [
        (cell_id, pos)
        for cell_id in cell_ids
        if (pos := table.cell_position(cell_id)) is not None
    ]
    if not positions:
        return empty_selection()
    positions.sort(key=lambda item: item[1])
    kind = SelectionKind.CELL if len(positions) == 1 else SelectionKind.RANGE
    focus = focus if focus in dict(positions) else positions[-1][0]
    return _build(
        table,
        kind,
        [CellRange.between(pos, pos) for _, pos in positions],
        anchor=focus,
        focus=focus,
    )


def toggle_cell(table: Table, selection: Selection, cell_id: str) -> Selection:
    """Add or remove one cell (modifier-click).

    More than one selected cell makes the selection a range of single-cell
    rectangles; toggling back down to one cell makes it a cell selection.
    """
    current = list(selection.cells)
    if cell_id in current:
        current.remove(cell_id)
        return _from_cell_set(table, current, selection.focus)
    if table.get_cell(cell_id) is None:
        return selection
    current.append(cell_id)
    return _from_cell_set(table, current, cell_id)


def extend_selection(table: Table, selection: Selection, cell_id: str) -> Selection:
    """Select the rectangle between the anchor and ``cell_id`` (shift-click).

    Without an anchor this behaves like :func:`select_cell`.
    """
    target = table.cell_position(cell_id)
    if target is None:
        return selection
    anchor_pos = table.cell_position(selection.anchor) if selection.anchor else None
    if anchor_pos is None:
        return select_cell(table, cell_id)
    rng = CellRange.between(anchor_pos, target)
    kind = SelectionKind.CELL if rng.row_count * rng.column_count == 1 else SelectionKind.RANGE
    return _build(table, kind, [rng], anchor=selection.anchor, focus=cell_id)


def _toggle_member(current: Sequence[str], item: str, toggle: bool) -> list[str]:
    if not toggle:
        return [item]
    members = list(current)
    if item in members:
        members.remove(item)
    else:
        members.append(item)
    return members


def select_row(
    table: Table, selection: Selection, row_id: str, *, toggle: bool = False
) -> Selection:
    """Select a whole row; with ``toggle`` add or remove it from a row selection."""
    if table.row_index(row_id) is None:
        return selection
    current = selection.rows if selection.kind == SelectionKind.ROW else ()
    members = _toggle_member(current, row_id, toggle)
    positions = sorted(i for m in members if (i := table.row_index(m)) is not None)
    if not positions:
        return empty_selection()
    last = len(table.columns) - 1
    return _build(
        table,
        SelectionKind.ROW,
        [CellRange(start_row=r, end_row=r, start_column=0, end_column=last) for r in positions],
        rows=[table.rows[r].id for r in positions],
        columns=table.column_ids(),
    )


def select_column(
    table: Table, selection: Selection, column_id: str, *, toggle: bool = False
) -> Selection:
    """Select a whole column; with ``toggle`` add or remove it from a column selection."""
    if table.column_index(column_id) is None:
        return selection
    current = selection.columns if selection.kind == SelectionKind.COLUMN else ()
    members = _toggle_member(current, column_id, toggle)
    positions = sorted(i for m in members if (i := table.column_index(m)) is not None)
    if not positions:
        return empty_selection()
    last = len(table.rows) - 1
    return _build(
        table,
        SelectionKind.COLUMN,
        [CellRange(start_row=0, end_row=last, start_column=c, end_column=c) for c in positions],
        rows=table.row_ids(),
        columns=[table.columns[c].id for c in positions],
    )


def select_all(table: Table) -> Selection:
    """Every cell, row and column, as one full-table rectangle."""
    full = CellRange(
        start_row=0,
        end_row=len(table.rows) - 1,
        start_column=0,
        end_column=len(table.columns) - 1,
    )
    return _build(
        table,
        SelectionKind.ALL,
        [full],
        rows=table.row_ids(),
        columns=table.column_ids(),
    )


def move_selection(
    table: Table, selection: Selection, direction: Direction, *, extend: bool = False
) -> Selection:
    """Move the focus one step (arrow keys), clamped at the table edges.

    With ``extend`` the rectangle from the anchor grows to the new focus.
    Landing on a slot hidden under a merged cell focuses the merged cell.
    """
    focus = selection.focus or selection.anchor
    position = table.cell_position(focus) if focus else None
    if position is None:
        first = table.cell_at(0, 0)
        return select_cell(table, first.id) if first is not None else selection

    dr, dc = _STEPS[direction]
    # Leaving a merged cell right or down starts from its far edge.
    current = table.get_cell(focus)
    if current is not None:
        dr = current.row_span if dr > 0 else dr
        dc = current.col_span if dc > 0 else dc
    r = max(0, min(len(table.rows) - 1, position[0] + dr))
    c = max(0, min(len(table.columns) - 1, position[1] + dc))
    target = table.covering_cell(r, c)
    if target is None:
        return selection
    if extend:
        return extend_selection(table, selection, target.id)
    return select_cell(table, target.id)


def prune_selection(table: Table, selection: Selection) -> Selection:
    """Drop a selection that no longer matches the table.

    After a structural edit a selection may name deleted rows, columns or
    cells, or its ranges may cover a different set of cells. Such a
    selection is cleared; a still-valid one is returned as is.
    """
    if selection.is_empty:
        return selection
    n_rows, n_cols = len(table.rows), len(table.columns)
    stale = (
        any(table.row_index(r) is None for r in selection.rows)
        or any(table.column_index(c) is None for c in selection.columns)
        or any(table.cell_position(c) is None for c in selection.cells)
        or any(
            rng.end_row >= n_rows or rng.end_column >= n_cols for rng in selection.ranges
        )
        or _cells_for(table, selection.ranges) != selection.cells
    )
    return empty_selection() if stale else selection
