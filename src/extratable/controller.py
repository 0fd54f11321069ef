"""
Table controller: the single owner of a live table.

The controller holds the current snapshot together with the transient
editing state around it (selection, in-cell edit, drag and resize
sessions, clipboard) and routes every change through :meth:`dispatch`,
which serializes mutations and records them for undo/redo.

Environment capabilities are injected: the clipboard is any object with
``read_text``/``write_text``, and ``on_change`` is called after each state
change so a UI can re-render.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from loguru import logger

from extratable import selection as sel
from extratable.config import EngineSettings, get_settings
from extratable.exceptions import TableError, TableImportError
from extratable.history import OperationHistory
from extratable.ids import new_column_id, new_row_id, parse_cell_id
from extratable.integrity import check_integrity
from extratable.models import Cell, CellStyle, Row, SortSpec, Table, create_table, new_column, touch
from extratable.mutations import build_row
from extratable.operations import (
    ApplyStyle,
    BatchOperation,
    ClearCells,
    DeleteColumn,
    DeleteRow,
    InsertColumn,
    InsertRow,
    MergeCells,
    MoveColumn,
    MoveRow,
    OperationRecord,
    OperationStatus,
    PasteValues,
    ResizeColumn,
    ResizeRow,
    SetFilters,
    SortRows,
    SplitCell,
    UpdateCell,
    UpdateColumn,
    UpdateRow,
    UpdateSettings,
    execute,
    revert,
)
from extratable.selection import Direction, Selection
from extratable.serialization import cells_to_grid, export_table, grid_to_tsv, tsv_to_grid
from extratable.utils import utcnow
from extratable.validation import ValidationResult, validate_cell, validate_table


class Clipboard(Protocol):
    def read_text(self) -> str: ...

    def write_text(self, text: str) -> None: ...


class MemoryClipboard:
    """Process-local clipboard, used when no system clipboard is injected."""

    def __init__(self) -> None:
        self.text = ""

    def read_text(self) -> str:
        return self.text

    def write_text(self, text: str) -> None:
        self.text = text


@dataclass(frozen=True)
class EditSession:
    cell_id: str
    original: str
    value: str


@dataclass(frozen=True)
class DragSession:
    kind: Literal["row", "column"]
    item_id: str
    start_index: int
    current_index: int


@dataclass(frozen=True)
class ResizeSession:
    kind: Literal["row", "column"]
    item_id: str
    original: int
    current: int


@dataclass(frozen=True)
class ClipboardState:
    cell_ids: tuple[str, ...]
    cut: bool = False


ChangeListener = Callable[[Table, Selection], None]


class TableController:
    """Owns one table and serializes every change to it."""

    def __init__(
        self,
        table: Table | None = None,
        *,
        clipboard: Clipboard | None = None,
        settings: EngineSettings | None = None,
        on_change: ChangeListener | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.clipboard: Clipboard = clipboard or MemoryClipboard()
        self.on_change = on_change
        self.history = OperationHistory(self.settings.history_limit)
        self._table = table if table is not None else create_table()
        self._selection = sel.empty_selection()
        self._lock = threading.RLock()
        self.editing: EditSession | None = None
        self.drag: DragSession | None = None
        self.resize: ResizeSession | None = None
        self.clipboard_state: ClipboardState | None = None
        self.last_failure: OperationRecord | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def table(self) -> Table:
        return self._table

    @property
    def selection(self) -> Selection:
        return self._selection

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self._table, self._selection)

    def _set_selection(self, selection: Selection) -> Selection:
        with self._lock:
            self._selection = selection
        self._notify()
        return selection

    def _after_structural_change(self) -> None:
        self._selection = sel.prune_selection(self._table, self._selection)
        if self.editing is not None and self._table.get_cell(self.editing.cell_id) is None:
            self.editing = None

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, payload: Any) -> OperationRecord:
        """Apply one operation atomically and record it for undo.

        A payload that changes nothing is reported as completed but not
        recorded; like any forward operation it still clears the redo
        stack. A rejected payload leaves the table unchanged, is kept in
        ``last_failure`` and its exception is re-raised.
        """
        with self._lock:
            record = OperationRecord.for_payload(self._table, payload)
            record = record.model_copy(update={"status": OperationStatus.EXECUTING})
            try:
                after, backup = execute(self._table, payload)
            except (TableError, ValueError) as e:
                self.last_failure = record.model_copy(
                    update={"status": OperationStatus.FAILED, "error": str(e)}
                )
                logger.warning(f"Operation '{record.description}' rejected: {e}")
                raise
            record = record.model_copy(
                update={"status": OperationStatus.COMPLETED, "backup": backup}
            )
            if after is self._table:
                self.history.clear_redo()
                return record
            self._table = after
            self.history.push(record)
            self._after_structural_change()
        logger.debug(f"Applied '{record.description}' -> version {after.version}")
        self._notify()
        return record

    def batch(self, payloads: Sequence[Any], *, label: str | None = None) -> OperationRecord:
        """Dispatch several payloads as a single operation with one undo entry."""
        return self.dispatch(BatchOperation(operations=tuple(payloads), label=label))

    def undo(self) -> bool:
        """Revert the most recent operation. Returns False if there is none."""
        with self._lock:
            record = self.history.peek_undo()
            if record is None:
                return False
            self._table = revert(self._table, record.backup)
            self.history.mark_undone()
            self._after_structural_change()
        logger.debug(f"Undid '{record.description}'")
        self._notify()
        return True

    def redo(self) -> bool:
        """Re-apply the most recently undone operation. Returns False if there is none."""
        with self._lock:
            record = self.history.peek_redo()
            if record is None:
                return False
            after, backup = execute(self._table, record.payload)
            self.history.mark_redone(
                record.model_copy(update={"backup": backup, "timestamp": utcnow()})
            )
            self._table = after
            self._after_structural_change()
        logger.debug(f"Redid '{record.description}'")
        self._notify()
        return True

    def load(self, table: Table) -> None:
        """Replace the table, discarding history and transient state.

        Raises:
            TableImportError: If the snapshot fails the integrity check.
        """
        report = check_integrity(table)
        if not report.ok:
            raise TableImportError("snapshot", "; ".join(report.blocks))
        with self._lock:
            self._table = table
            self._selection = sel.empty_selection()
            self.history.clear()
            self.editing = self.drag = self.resize = None
            self.clipboard_state = None
        self._notify()

    def export(self, fmt: str) -> str:
        return export_table(self._table, fmt)

    def validate(self) -> dict[str, ValidationResult]:
        """Validate every cell and index the errors on the snapshot.

        Indexing the errors is bookkeeping and is not recorded for undo.
        """
        with self._lock:
            results = validate_table(self._table)
            index = {
                cell_id: tuple(issue.message for issue in result.errors)
                for cell_id, result in results.items()
                if result.errors
            }
            if index != self._table.validation_errors:
                self._table = touch(self._table, validation_errors=index)
        return results

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    def insert_row(
        self, after_row_id: str | None = None, values: Mapping[str, str] | None = None
    ) -> str:
        """Insert a row and return its id.

        ``values`` optionally maps column ids to initial content.
        """
        row = build_row(self._table, Row(id=new_row_id()))
        if values:
            cells = dict(row.cells)
            for column_id, value in values.items():
                if column_id in cells:
                    cells[column_id] = cells[column_id].model_copy(update={"content": value})
            row = row.model_copy(update={"cells": cells})
        self.dispatch(InsertRow(row=row, after_row_id=after_row_id))
        return row.id

    def delete_row(self, row_id: str) -> None:
        self.dispatch(DeleteRow(row_id=row_id))

    def delete_rows(self, row_ids: Iterable[str] | None = None) -> None:
        """Delete the given (or selected) rows as one undoable step."""
        ids = list(row_ids) if row_ids is not None else list(self._selection.rows)
        if ids:
            self.batch([DeleteRow(row_id=row_id) for row_id in ids], label="Delete rows")

    def insert_column(self, after_column_id: str | None = None, **fields: Any) -> str:
        """Insert a column and return its id. ``fields`` set name, type, width, ..."""
        fields.setdefault("width", self._table.settings.default_column_width)
        column = new_column(len(self._table.columns), id=new_column_id(), **fields)
        self.dispatch(InsertColumn(column=column, after_column_id=after_column_id))
        return column.id

    def delete_column(self, column_id: str) -> None:
        self.dispatch(DeleteColumn(column_id=column_id))

    def delete_columns(self, column_ids: Iterable[str] | None = None) -> None:
        """Delete the given (or selected) columns as one undoable step."""
        ids = list(column_ids) if column_ids is not None else list(self._selection.columns)
        if ids:
            self.batch(
                [DeleteColumn(column_id=column_id) for column_id in ids], label="Delete columns"
            )

    def update_column(self, column_id: str, **changes: Any) -> None:
        self.dispatch(UpdateColumn(column_id=column_id, changes=changes))

    def update_row(self, row_id: str, **changes: Any) -> None:
        self.dispatch(UpdateRow(row_id=row_id, changes=changes))

    def resize_column(self, column_id: str, width: int) -> None:
        self.dispatch(ResizeColumn(column_id=column_id, width=width))

    def resize_row(self, row_id: str, height: int) -> None:
        self.dispatch(ResizeRow(row_id=row_id, height=height))

    def move_row(self, row_id: str, to_index: int) -> None:
        self.dispatch(MoveRow(row_id=row_id, to_index=to_index))

    def move_column(self, column_id: str, to_index: int) -> None:
        self.dispatch(MoveColumn(column_id=column_id, to_index=to_index))

    def update_settings(self, **changes: Any) -> None:
        self.dispatch(UpdateSettings(changes=changes))

    # -------------------------------------------------------------------------
    # Cells
    # -------------------------------------------------------------------------

    def _targets(self, cell_ids: Iterable[str] | None) -> tuple[str, ...]:
        return tuple(cell_ids) if cell_ids is not None else self._selection.cells

    def update_cell(self, cell_id: str, **changes: Any) -> None:
        self.dispatch(UpdateCell(cell_id=cell_id, changes=changes))

    def set_value(self, cell_id: str, value: str) -> None:
        self.update_cell(cell_id, content=value)

    def apply_style(
        self, style: CellStyle | Mapping[str, Any], cell_ids: Iterable[str] | None = None
    ) -> None:
        """Merge a style delta into the given cells, or the selected cells."""
        targets = self._targets(cell_ids)
        if not targets:
            return
        if not isinstance(style, CellStyle):
            style = CellStyle.model_validate(dict(style))
        self.dispatch(ApplyStyle(cell_ids=targets, style=style))

    def clear(self, cell_ids: Iterable[str] | None = None) -> None:
        targets = self._targets(cell_ids)
        if targets:
            self.dispatch(ClearCells(cell_ids=targets))

    def merge_cells(
        self, cell_ids: Sequence[str] | None = None, primary_cell_id: str | None = None
    ) -> None:
        """Merge the given (or selected) cells. The primary defaults to the anchor."""
        targets = self._targets(cell_ids)
        if len(targets) < 2:
            return
        primary = primary_cell_id or self._selection.anchor
        if primary not in targets:
            primary = targets[0]
        positions = [p for cid in targets if (p := self._table.cell_position(cid)) is not None]
        self.dispatch(MergeCells(cell_ids=targets, primary_cell_id=primary))
        if not positions:
            return
        merged = self._table.covering_cell(
            min(r for r, _ in positions), min(c for _, c in positions)
        )
        if merged is not None:
            self._set_selection(sel.select_cell(self._table, merged.id))

    def split_cell(self, cell_id: str, rows: int = 1, columns: int = 1) -> None:
        cell: Cell | None = self._table.get_cell(cell_id)
        if cell is None:
            return
        extra = max(0, columns - cell.col_span)
        self.dispatch(
            SplitCell(
                cell_id=cell_id,
                rows=rows,
                columns=columns,
                new_column_ids=tuple(new_column_id() for _ in range(extra)),
            )
        )

    # -------------------------------------------------------------------------
    # Sorting and filtering
    # -------------------------------------------------------------------------

    def sort(self, specs: Sequence[SortSpec | Mapping[str, Any]]) -> None:
        parsed = tuple(s if isinstance(s, SortSpec) else SortSpec.model_validate(s) for s in specs)
        self.dispatch(SortRows(specs=parsed))

    def sort_by_column(self, column_id: str) -> None:
        """Sort by one column, flipping the direction on repeated calls."""
        current = self._table.sorting
        direction = "asc"
        if current and current[0].column_id == column_id and current[0].direction == "asc":
            direction = "desc"
        self.sort([SortSpec(column_id=column_id, direction=direction)])

    def set_filter(self, column_id: str, value: str) -> None:
        filters = dict(self._table.filters)
        filters[column_id] = value
        self.dispatch(SetFilters(filters=filters))

    def clear_filters(self) -> None:
        self.dispatch(SetFilters(filters={}))

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select_cell(self, cell_id: str) -> Selection:
        return self._set_selection(sel.select_cell(self._table, cell_id))

    def toggle_cell(self, cell_id: str) -> Selection:
        return self._set_selection(sel.toggle_cell(self._table, self._selection, cell_id))

    def extend_selection(self, cell_id: str) -> Selection:
        return self._set_selection(sel.extend_selection(self._table, self._selection, cell_id))

    def select_row(self, row_id: str, *, toggle: bool = False) -> Selection:
        return self._set_selection(
            sel.select_row(self._table, self._selection, row_id, toggle=toggle)
        )

    def select_column(self, column_id: str, *, toggle: bool = False) -> Selection:
        return self._set_selection(
            sel.select_column(self._table, self._selection, column_id, toggle=toggle)
        )

    def select_all(self) -> Selection:
        return self._set_selection(sel.select_all(self._table))

    def clear_selection(self) -> Selection:
        return self._set_selection(sel.empty_selection())

    def move_selection(self, direction: Direction, *, extend: bool = False) -> Selection:
        return self._set_selection(
            sel.move_selection(self._table, self._selection, direction, extend=extend)
        )

    # -------------------------------------------------------------------------
    # In-cell editing
    # -------------------------------------------------------------------------

    def start_editing(self, cell_id: str | None = None) -> bool:
        """Open an edit session on a cell (default: the focused cell).

        Locked and read-only cells, and tables with editing switched off,
        refuse the session.
        """
        cell_id = cell_id or self._selection.focus
        cell = self._table.get_cell(cell_id) if cell_id else None
        if cell is None or not self._table.settings.editable:
            return False
        row = self._table.get_row(parse_cell_id(cell.id)[0])
        if cell.metadata.locked or cell.metadata.read_only or (row and row.metadata.locked):
            logger.debug(f"Refusing to edit protected cell {cell_id}")
            return False
        self.editing = EditSession(cell_id=cell.id, original=cell.content, value=cell.content)
        return True

    def update_edit(self, value: str) -> None:
        if self.editing is not None:
            self.editing = EditSession(
                cell_id=self.editing.cell_id, original=self.editing.original, value=value
            )

    def commit_edit(self) -> ValidationResult | None:
        """Validate and apply the pending edit.

        When ``block_invalid_edits`` is set, an edit with errors stays open
        and the table is unchanged. Returns None if no edit was open.
        """
        session = self.editing
        if session is None:
            return None
        cell = self._table.get_cell(session.cell_id)
        if cell is None:
            self.editing = None
            return None
        position = self._table.cell_position(session.cell_id)
        column = self._table.columns[position[1]] if position is not None else None
        result = validate_cell(cell.model_copy(update={"content": session.value}), column)
        if not result.is_valid and self.settings.block_invalid_edits:
            logger.debug(f"Edit of {session.cell_id} blocked by validation")
            return result
        self.editing = None
        if session.value != cell.content:
            self.set_value(session.cell_id, session.value)
        return result

    def cancel_edit(self) -> None:
        self.editing = None

    # -------------------------------------------------------------------------
    # Drag and resize sessions
    # -------------------------------------------------------------------------

    def start_drag(self, kind: Literal["row", "column"], item_id: str) -> bool:
        index = (
            self._table.row_index(item_id) if kind == "row" else self._table.column_index(item_id)
        )
        if index is None:
            return False
        self.drag = DragSession(kind=kind, item_id=item_id, start_index=index, current_index=index)
        return True

    def update_drag(self, to_index: int) -> None:
        if self.drag is not None:
            self.drag = DragSession(
                kind=self.drag.kind,
                item_id=self.drag.item_id,
                start_index=self.drag.start_index,
                current_index=to_index,
            )

    def end_drag(self) -> None:
        """Commit the drag as a single move operation."""
        drag, self.drag = self.drag, None
        if drag is None or drag.current_index == drag.start_index:
            return
        if drag.kind == "row":
            self.move_row(drag.item_id, drag.current_index)
        else:
            self.move_column(drag.item_id, drag.current_index)

    def cancel_drag(self) -> None:
        self.drag = None

    def start_resize(self, kind: Literal["row", "column"], item_id: str) -> bool:
        if kind == "row":
            row = self._table.get_row(item_id)
            if row is None:
                return False
            size = row.height or self._table.settings.default_row_height
        else:
            column = self._table.get_column(item_id)
            if column is None or not column.resizable:
                return False
            size = column.width
        self.resize = ResizeSession(kind=kind, item_id=item_id, original=size, current=size)
        return True

    def update_resize(self, size: int) -> None:
        if self.resize is not None:
            self.resize = ResizeSession(
                kind=self.resize.kind,
                item_id=self.resize.item_id,
                original=self.resize.original,
                current=size,
            )

    def end_resize(self) -> None:
        """Commit the resize as a single operation."""
        session, self.resize = self.resize, None
        if session is None or session.current == session.original:
            return
        if session.kind == "row":
            self.resize_row(session.item_id, session.current)
        else:
            self.resize_column(session.item_id, session.current)

    def cancel_resize(self) -> None:
        self.resize = None

    # -------------------------------------------------------------------------
    # Clipboard
    # -------------------------------------------------------------------------

    def copy(self, cell_ids: Iterable[str] | None = None) -> str:
        """Copy the given (or selected) cells to the clipboard as TSV."""
        targets = self._targets(cell_ids)
        text = grid_to_tsv(cells_to_grid(self._table, targets))
        self.clipboard.write_text(text)
        self.clipboard_state = ClipboardState(cell_ids=targets)
        return text

    def cut(self, cell_ids: Iterable[str] | None = None) -> str:
        """Copy, then clear the source cells."""
        targets = self._targets(cell_ids)
        text = self.copy(targets)
        self.clipboard_state = ClipboardState(cell_ids=targets, cut=True)
        self.clear(targets)
        return text

    def paste(self, anchor_cell_id: str | None = None) -> bool:
        """Paste clipboard text at the anchor (default: the selection's top-left)."""
        anchor = anchor_cell_id or (self._selection.cells[0] if self._selection.cells else None)
        if anchor is None:
            return False
        grid = tsv_to_grid(self.clipboard.read_text())
        if not grid:
            return False
        self.dispatch(
            PasteValues(anchor_cell_id=anchor, values=tuple(tuple(line) for line in grid))
        )
        if self.clipboard_state is not None and self.clipboard_state.cut:
            self.clipboard_state = None
        return True
