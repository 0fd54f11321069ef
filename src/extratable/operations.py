"""
Reversible table operations.

Each operation is a tagged payload model (one class per kind of edit)
that knows how to apply itself to a snapshot. :func:`execute` applies a
payload and captures a :class:`Backup` holding exactly what the edit
replaced; :func:`revert` puts that data back. Reverting the most recent
operation restores the previous snapshot (apart from version and
timestamps).
"""

from __future__ import annotations

from abc import abstractmethod
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import Field

from extratable import mutations
from extratable.ids import new_operation_id
from extratable.models import Cell, CellStyle, Column, Row, SortSpec, Table, TableSettings, touch
from extratable.schema import FrozenModel
from extratable.selection import CellRange
from extratable.utils import utcnow


class OperationKind(StrEnum):
    INSERT = "insert"
    DELETE = "delete"
    UPDATE = "update"
    MOVE = "move"
    COPY = "copy"
    PASTE = "paste"
    MERGE = "merge"
    SPLIT = "split"
    FORMAT = "format"
    SORT = "sort"
    FILTER = "filter"
    RESIZE = "resize"
    REORDER = "reorder"


class OperationScope(StrEnum):
    CELL = "cell"
    ROW = "row"
    COLUMN = "column"
    RANGE = "range"
    TABLE = "table"


class OperationStatus(StrEnum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# =============================================================================
# Payloads
# =============================================================================


class _Payload(FrozenModel):
    kind: ClassVar[OperationKind]
    scope: ClassVar[OperationScope]

    @abstractmethod
    def apply(self, table: Table) -> Table: ...

    def target_ids(self) -> tuple[str, ...]:
        return ()

    def describe(self) -> str:
        return f"{self.kind} {self.scope}"


class InsertRow(_Payload):
    """Insert a fully built row; carrying the row makes redo repeatable."""

    kind = OperationKind.INSERT
    scope = OperationScope.ROW
    op: Literal["insert_row"] = "insert_row"
    row: Row
    after_row_id: str | None = None

    def apply(self, table: Table) -> Table:
        return mutations.insert_row(table, self.after_row_id, self.row)

    def target_ids(self) -> tuple[str, ...]:
        return (self.row.id,)

    def describe(self) -> str:
        return "Insert row"


class DeleteRow(_Payload):
    kind = OperationKind.DELETE
    scope = OperationScope.ROW
    op: Literal["delete_row"] = "delete_row"
    row_id: str

    def apply(self, table: Table) -> Table:
        return mutations.delete_row(table, self.row_id)

    def target_ids(self) -> tuple[str, ...]:
        return (self.row_id,)

    def describe(self) -> str:
        return "Delete row"


class InsertColumn(_Payload):
    kind = OperationKind.INSERT
    scope = OperationScope.COLUMN
    op: Literal["insert_column"] = "insert_column"
    column: Column
    after_column_id: str | None = None

    def apply(self, table: Table) -> Table:
        return mutations.insert_column(table, self.after_column_id, self.column)

    def target_ids(self) -> tuple[str, ...]:
        return (self.column.id,)

    def describe(self) -> str:
        return f"Insert column '{self.column.name}'"


class DeleteColumn(_Payload):
    kind = OperationKind.DELETE
    scope = OperationScope.COLUMN
    op: Literal["delete_column"] = "delete_column"
    column_id: str

    def apply(self, table: Table) -> Table:
        return mutations.delete_column(table, self.column_id)

    def target_ids(self) -> tuple[str, ...]:
        return (self.column_id,)

    def describe(self) -> str:
        return "Delete column"


class UpdateCell(_Payload):
    kind = OperationKind.UPDATE
    scope = OperationScope.CELL
    op: Literal["update_cell"] = "update_cell"
    cell_id: str
    changes: dict[str, Any]

    def apply(self, table: Table) -> Table:
        return mutations.update_cell(table, self.cell_id, self.changes)

    def target_ids(self) -> tuple[str, ...]:
        return (self.cell_id,)

    def describe(self) -> str:
        return "Edit cell"


class ClearCells(_Payload):
    kind = OperationKind.UPDATE
    scope = OperationScope.RANGE
    op: Literal["clear_cells"] = "clear_cells"
    cell_ids: tuple[str, ...]

    def apply(self, table: Table) -> Table:
        return mutations.clear_cells(table, self.cell_ids)

    def target_ids(self) -> tuple[str, ...]:
        return self.cell_ids

    def describe(self) -> str:
        return f"Clear {len(self.cell_ids)} cell(s)"


class ApplyStyle(_Payload):
    kind = OperationKind.FORMAT
    scope = OperationScope.RANGE
    op: Literal["apply_style"] = "apply_style"
    cell_ids: tuple[str, ...]
    style: CellStyle

    def apply(self, table: Table) -> Table:
        return mutations.apply_style(table, self.cell_ids, self.style)

    def target_ids(self) -> tuple[str, ...]:
        return self.cell_ids

    def describe(self) -> str:
        return f"Format {len(self.cell_ids)} cell(s)"


class MergeCells(_Payload):
    kind = OperationKind.MERGE
    scope = OperationScope.RANGE
    op: Literal["merge_cells"] = "merge_cells"
    cell_ids: tuple[str, ...]
    primary_cell_id: str

    def apply(self, table: Table) -> Table:
        return mutations.merge_cells(table, self.cell_ids, self.primary_cell_id)

    def target_ids(self) -> tuple[str, ...]:
        return self.cell_ids

    def describe(self) -> str:
        return f"Merge {len(self.cell_ids)} cells"


class SplitCell(_Payload):
    kind = OperationKind.SPLIT
    scope = OperationScope.CELL
    op: Literal["split_cell"] = "split_cell"
    cell_id: str
    rows: int = Field(1, ge=1)
    columns: int = Field(1, ge=1)
    new_column_ids: tuple[str, ...] = ()

    def apply(self, table: Table) -> Table:
        return mutations.split_cell(
            table, self.cell_id, self.rows, self.columns, new_column_ids=self.new_column_ids
        )

    def target_ids(self) -> tuple[str, ...]:
        return (self.cell_id,)

    def describe(self) -> str:
        return f"Split cell into {self.columns} column(s)"


class PasteValues(_Payload):
    kind = OperationKind.PASTE
    scope = OperationScope.RANGE
    op: Literal["paste_values"] = "paste_values"
    anchor_cell_id: str
    values: tuple[tuple[str, ...], ...]

    def apply(self, table: Table) -> Table:
        return mutations.paste_values(table, self.anchor_cell_id, self.values)

    def target_ids(self) -> tuple[str, ...]:
        return (self.anchor_cell_id,)

    def describe(self) -> str:
        return "Paste"


class UpdateColumn(_Payload):
    kind = OperationKind.UPDATE
    scope = OperationScope.COLUMN
    op: Literal["update_column"] = "update_column"
    column_id: str
    changes: dict[str, Any]

    def apply(self, table: Table) -> Table:
        return mutations.update_column(table, self.column_id, self.changes)

    def target_ids(self) -> tuple[str, ...]:
        return (self.column_id,)


class UpdateRow(_Payload):
    kind = OperationKind.UPDATE
    scope = OperationScope.ROW
    op: Literal["update_row"] = "update_row"
    row_id: str
    changes: dict[str, Any]

    def apply(self, table: Table) -> Table:
        return mutations.update_row(table, self.row_id, self.changes)

    def target_ids(self) -> tuple[str, ...]:
        return (self.row_id,)


class ResizeColumn(_Payload):
    kind = OperationKind.RESIZE
    scope = OperationScope.COLUMN
    op: Literal["resize_column"] = "resize_column"
    column_id: str
    width: int

    def apply(self, table: Table) -> Table:
        return mutations.resize_column(table, self.column_id, self.width)

    def target_ids(self) -> tuple[str, ...]:
        return (self.column_id,)


class ResizeRow(_Payload):
    kind = OperationKind.RESIZE
    scope = OperationScope.ROW
    op: Literal["resize_row"] = "resize_row"
    row_id: str
    height: int

    def apply(self, table: Table) -> Table:
        return mutations.resize_row(table, self.row_id, self.height)

    def target_ids(self) -> tuple[str, ...]:
        return (self.row_id,)


class MoveRow(_Payload):
    kind = OperationKind.MOVE
    scope = OperationScope.ROW
    op: Literal["move_row"] = "move_row"
    row_id: str
    to_index: int

    def apply(self, table: Table) -> Table:
        return mutations.move_row(table, self.row_id, self.to_index)

    def target_ids(self) -> tuple[str, ...]:
        return (self.row_id,)


class MoveColumn(_Payload):
    kind = OperationKind.REORDER
    scope = OperationScope.COLUMN
    op: Literal["move_column"] = "move_column"
    column_id: str
    to_index: int

    def apply(self, table: Table) -> Table:
        return mutations.move_column(table, self.column_id, self.to_index)

    def target_ids(self) -> tuple[str, ...]:
        return (self.column_id,)


class SortRows(_Payload):
    kind = OperationKind.SORT
    scope = OperationScope.TABLE
    op: Literal["sort_rows"] = "sort_rows"
    specs: tuple[SortSpec, ...]

    def apply(self, table: Table) -> Table:
        return mutations.sort_rows(table, self.specs)

    def target_ids(self) -> tuple[str, ...]:
        return tuple(spec.column_id for spec in self.specs)


class SetFilters(_Payload):
    kind = OperationKind.FILTER
    scope = OperationScope.TABLE
    op: Literal["set_filters"] = "set_filters"
    filters: dict[str, str]

    def apply(self, table: Table) -> Table:
        return mutations.set_filters(table, self.filters)

    def target_ids(self) -> tuple[str, ...]:
        return tuple(self.filters)


class UpdateSettings(_Payload):
    kind = OperationKind.UPDATE
    scope = OperationScope.TABLE
    op: Literal["update_settings"] = "update_settings"
    changes: dict[str, Any]

    def apply(self, table: Table) -> Table:
        return mutations.update_settings(table, self.changes)


Step = Annotated[
    Union[
        InsertRow,
        DeleteRow,
        InsertColumn,
        DeleteColumn,
        UpdateCell,
        ClearCells,
        ApplyStyle,
        MergeCells,
        SplitCell,
        PasteValues,
        UpdateColumn,
        UpdateRow,
        ResizeColumn,
        ResizeRow,
        MoveRow,
        MoveColumn,
        SortRows,
        SetFilters,
        UpdateSettings,
    ],
    Field(discriminator="op"),
]


class BatchOperation(_Payload):
    """Several operations applied in order and undone as one step.

    If any step is rejected the whole batch is rejected.
    """

    kind = OperationKind.UPDATE
    scope = OperationScope.TABLE
    op: Literal["batch"] = "batch"
    operations: tuple[Step, ...] = Field(min_length=1)
    label: str | None = None

    def apply(self, table: Table) -> Table:
        for step in self.operations:
            table = step.apply(table)
        return table

    def target_ids(self) -> tuple[str, ...]:
        ids: dict[str, None] = {}
        for step in self.operations:
            ids.update(dict.fromkeys(step.target_ids()))
        return tuple(ids)

    def describe(self) -> str:
        return self.label or f"Batch of {len(self.operations)} operations"


Payload = Annotated[Union[Step, BatchOperation], Field(discriminator="op")]


# =============================================================================
# Backups
# =============================================================================


class CellBackup(FrozenModel):
    """A cell as it was before an edit; None if the slot had no cell."""

    row_id: str
    column_id: str
    cell: Cell | None = None


class RowBackup(FrozenModel):
    index: int
    row: Row


class ColumnBackup(FrozenModel):
    index: int
    column: Column


class Backup(FrozenModel):
    """What an operation replaced, keyed so it can be put back exactly."""

    cells: tuple[CellBackup, ...] = ()
    row_shells: tuple[Row, ...] = ()
    removed_rows: tuple[RowBackup, ...] = ()
    inserted_row_ids: tuple[str, ...] = ()
    removed_columns: tuple[ColumnBackup, ...] = ()
    changed_columns: tuple[Column, ...] = ()
    inserted_column_ids: tuple[str, ...] = ()
    row_order: tuple[str, ...] | None = None
    column_order: tuple[str, ...] | None = None
    sorting: tuple[SortSpec, ...] | None = None
    filters: dict[str, str] | None = None
    settings: TableSettings | None = None
    validation_errors: dict[str, tuple[str, ...]] | None = None

    @property
    def is_empty(self) -> bool:
        return self == Backup()


def capture_backup(before: Table, after: Table) -> Backup:
    """Diff two snapshots into the data needed to turn ``after`` back into ``before``."""
    if before is after:
        return Backup()

    old_rows = {row.id: (i, row) for i, row in enumerate(before.rows)}
    new_rows = {row.id: row for row in after.rows}
    cells: list[CellBackup] = []
    shells: list[Row] = []
    for row_id, (_, old) in old_rows.items():
        new = new_rows.get(row_id)
        if new is None or new is old or new == old:
            continue
        for column_id in sorted(old.cells.keys() | new.cells.keys()):
            previous = old.cells.get(column_id)
            if previous != new.cells.get(column_id):
                cells.append(CellBackup(row_id=row_id, column_id=column_id, cell=previous))
        if (old.height, old.metadata) != (new.height, new.metadata):
            shells.append(old.model_copy(update={"cells": {}}))

    old_columns = {c.id: (i, c) for i, c in enumerate(before.columns)}
    new_columns = {c.id: c for c in after.columns}

    def changed(old: Any, new: Any) -> Any:
        return old if old != new else None

    surviving_rows = [r.id for r in before.rows if r.id in new_rows]
    surviving_cols = [c.id for c in before.columns if c.id in new_columns]
    return Backup(
        cells=tuple(cells),
        row_shells=tuple(shells),
        removed_rows=tuple(
            RowBackup(index=i, row=row)
            for row_id, (i, row) in old_rows.items()
            if row_id not in new_rows
        ),
        inserted_row_ids=tuple(r.id for r in after.rows if r.id not in old_rows),
        removed_columns=tuple(
            ColumnBackup(index=i, column=column)
            for column_id, (i, column) in old_columns.items()
            if column_id not in new_columns
        ),
        changed_columns=tuple(
            column
            for column_id, (_, column) in old_columns.items()
            if column_id in new_columns and new_columns[column_id] != column
        ),
        inserted_column_ids=tuple(c.id for c in after.columns if c.id not in old_columns),
        row_order=tuple(before.row_ids())
        if surviving_rows != [r.id for r in after.rows if r.id in old_rows]
        else None,
        column_order=tuple(before.column_ids())
        if surviving_cols != [c.id for c in after.columns if c.id in old_columns]
        else None,
        sorting=changed(before.sorting, after.sorting),
        filters=changed(before.filters, after.filters),
        settings=changed(before.settings, after.settings),
        validation_errors=changed(before.validation_errors, after.validation_errors),
    )


def _restore_sequence(
    current: list[Any],
    removed: tuple[Any, ...],
    item: Callable[[Any], Any],
    order: tuple[str, ...] | None,
) -> list[Any]:
    for backup in sorted(removed, key=lambda b: b.index):
        current.insert(min(backup.index, len(current)), item(backup))
    if order is not None:
        position = {item_id: i for i, item_id in enumerate(order)}
        current.sort(key=lambda entry: position.get(entry.id, len(position)))
    return current


def revert(table: Table, backup: Backup) -> Table:
    """Undo an operation given the backup :func:`execute` captured for it."""
    if backup.is_empty:
        return table

    inserted_rows = set(backup.inserted_row_ids)
    by_row: dict[str, list[CellBackup]] = defaultdict(list)
    for entry in backup.cells:
        by_row[entry.row_id].append(entry)
    shells = {shell.id: shell for shell in backup.row_shells}

    rows: list[Row] = []
    for row in table.rows:
        if row.id in inserted_rows:
            continue
        if row.id in by_row or row.id in shells:
            cells = dict(row.cells)
            for entry in by_row.get(row.id, ()):
                if entry.cell is None:
                    cells.pop(entry.column_id, None)
                else:
                    cells[entry.column_id] = entry.cell
            row = shells.get(row.id, row).model_copy(update={"cells": cells})
        rows.append(row)
    rows = _restore_sequence(rows, backup.removed_rows, lambda b: b.row, backup.row_order)

    inserted_columns = set(backup.inserted_column_ids)
    previous = {column.id: column for column in backup.changed_columns}
    columns = [
        previous.get(column.id, column)
        for column in table.columns
        if column.id not in inserted_columns
    ]
    columns = _restore_sequence(
        columns, backup.removed_columns, lambda b: b.column, backup.column_order
    )

    updates: dict[str, Any] = {"rows": tuple(rows), "columns": tuple(columns)}
    for name in ("sorting", "filters", "settings", "validation_errors"):
        value = getattr(backup, name)
        if value is not None:
            updates[name] = value
    return touch(table, **updates)


def execute(table: Table, payload: _Payload) -> tuple[Table, Backup]:
    """Apply ``payload`` and capture what it replaced."""
    after = payload.apply(table)
    return after, capture_backup(table, after)


# =============================================================================
# Records
# =============================================================================


class OperationTarget(FrozenModel):
    scope: OperationScope
    ids: tuple[str, ...] = ()
    range: CellRange | None = None


def target_for(table: Table, payload: _Payload) -> OperationTarget:
    """Describe what a payload touches, with a bounding range for cell targets."""
    ids = payload.target_ids()
    bounds = None
    if payload.scope in (OperationScope.CELL, OperationScope.RANGE):
        positions = [p for cid in ids if (p := table.cell_position(cid)) is not None]
        if positions:
            bounds = CellRange(
                start_row=min(r for r, _ in positions),
                end_row=max(r for r, _ in positions),
                start_column=min(c for _, c in positions),
                end_column=max(c for _, c in positions),
            )
    return OperationTarget(scope=payload.scope, ids=ids, range=bounds)


class OperationRecord(FrozenModel):
    id: str = Field(default_factory=new_operation_id)
    kind: OperationKind
    scope: OperationScope
    target: OperationTarget
    payload: Payload
    backup: Backup | None = None
    status: OperationStatus = OperationStatus.PENDING
    timestamp: datetime = Field(default_factory=utcnow)
    description: str = ""
    error: str | None = None

    @classmethod
    def for_payload(cls, table: Table, payload: _Payload) -> OperationRecord:
        return cls(
            kind=payload.kind,
            scope=payload.scope,
            target=target_for(table, payload),
            payload=payload,
            description=payload.describe(),
        )
