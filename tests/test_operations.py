"""Tests for reversible operations and the undo history."""

from collections.abc import Callable
from typing import Any

import pytest
from helpers import cell_id, comparable, contents
from pydantic import ValidationError

from extratable.exceptions import CannotDeleteLastRowError, HistoryError
from extratable.history import OperationHistory
from extratable.models import CellStyle, Column, Row, SortSpec, Table, create_table
from extratable.mutations import merge_cells, set_filters, update_cell
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
    OperationKind,
    OperationRecord,
    OperationScope,
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
    _Payload,
    execute,
    revert,
)

PayloadFactory = Callable[[Table], Any]

PAYLOADS: dict[str, PayloadFactory] = {
    "insert_row": lambda t: InsertRow(row=Row(id="row_new"), after_row_id=t.rows[0].id),
    "delete_row": lambda t: DeleteRow(row_id=t.rows[1].id),
    "insert_column": lambda t: InsertColumn(column=Column(id="col_new", name="New")),
    "delete_column": lambda t: DeleteColumn(column_id=t.columns[0].id),
    "update_cell": lambda t: UpdateCell(
        cell_id=cell_id(t, 1, 1), changes={"content": "x", "metadata": {"comment": "c"}}
    ),
    "clear_cells": lambda t: ClearCells(cell_ids=(cell_id(t, 0, 0), cell_id(t, 2, 2))),
    "apply_style": lambda t: ApplyStyle(
        cell_ids=(cell_id(t, 0, 0),), style=CellStyle(color="red")
    ),
    "merge_cells": lambda t: MergeCells(
        cell_ids=(cell_id(t, 1, 0), cell_id(t, 2, 1)), primary_cell_id=cell_id(t, 2, 1)
    ),
    "split_cell": lambda t: SplitCell(
        cell_id=cell_id(t, 0, 0), columns=3, new_column_ids=("col_s1", "col_s2")
    ),
    "paste_values": lambda t: PasteValues(
        anchor_cell_id=cell_id(t, 1, 1), values=(("a", "b"), ("c", "d"))
    ),
    "update_column": lambda t: UpdateColumn(column_id=t.columns[1].id, changes={"name": "B"}),
    "update_row": lambda t: UpdateRow(row_id=t.rows[0].id, changes={"height": 60}),
    "resize_column": lambda t: ResizeColumn(column_id=t.columns[0].id, width=300),
    "resize_row": lambda t: ResizeRow(row_id=t.rows[2].id, height=100),
    "move_row": lambda t: MoveRow(row_id=t.rows[0].id, to_index=2),
    "move_column": lambda t: MoveColumn(column_id=t.columns[2].id, to_index=0),
    "sort_rows": lambda t: SortRows(
        specs=(SortSpec(column_id=t.columns[0].id, direction="desc"),)
    ),
    "set_filters": lambda t: SetFilters(filters={t.columns[0].id: "r1"}),
    "update_settings": lambda t: UpdateSettings(changes={"showGridLines": False}),
    "batch": lambda t: BatchOperation(
        operations=(
            InsertRow(row=Row(id="row_b"), after_row_id=t.rows[0].id),
            UpdateCell(cell_id=cell_id(t, 2, 2), changes={"content": "z"}),
            DeleteColumn(column_id=t.columns[0].id),
        )
    ),
}


@pytest.fixture
def busy_table(table: Table) -> Table:
    """The shared grid with a merge, a filter and a validation error indexed."""
    t = merge_cells(table, [cell_id(table, 0, 1), cell_id(table, 0, 2)], cell_id(table, 0, 1))
    t = set_filters(t, {table.columns[2].id: "r"})
    t = update_cell(t, cell_id(t, 2, 0), {"style": {"color": "blue"}})
    return t.model_copy(update={"validation_errors": {cell_id(t, 1, 1): ("bad",)}})


class TestExecuteAndRevert:
    """Every operation reverts to exactly the snapshot it was applied to."""

    @pytest.mark.parametrize("name", sorted(PAYLOADS))
    def test_revert_restores_snapshot(self, busy_table: Table, name: str) -> None:
        payload = PAYLOADS[name](busy_table)
        after, backup = execute(busy_table, payload)
        assert after is not busy_table
        restored = revert(after, backup)
        assert comparable(restored) == comparable(busy_table)
        assert restored.version == after.version + 1

    @pytest.mark.parametrize("name", sorted(PAYLOADS))
    def test_replay_after_revert_matches(self, busy_table: Table, name: str) -> None:
        payload = PAYLOADS[name](busy_table)
        after, backup = execute(busy_table, payload)
        again, _ = execute(revert(after, backup), payload)
        assert contents(again) == contents(after)
        assert again.column_ids() == after.column_ids()
        assert again.row_ids() == after.row_ids()

    def test_noop_has_empty_backup(self, table: Table) -> None:
        after, backup = execute(table, DeleteRow(row_id="row_missing"))
        assert after is table
        assert backup.is_empty
        assert revert(table, backup) is table

    def test_failed_operation_raises(self) -> None:
        t = create_table(rows=1, columns=1)
        with pytest.raises(CannotDeleteLastRowError):
            execute(t, DeleteRow(row_id=t.rows[0].id))

    def test_batch_rejected_as_a_whole(self) -> None:
        t = create_table(rows=1, columns=2)
        batch = BatchOperation(
            operations=(
                UpdateCell(cell_id=cell_id(t, 0, 0), changes={"content": "z"}),
                DeleteRow(row_id=t.rows[0].id),
            )
        )
        with pytest.raises(CannotDeleteLastRowError):
            execute(t, batch)
        assert t.cell_at(0, 0).content == ""

    def test_empty_batch_invalid(self) -> None:
        with pytest.raises(ValidationError):
            BatchOperation(operations=())

    def test_payload_base_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            _Payload()

    def test_backup_only_holds_changed_cells(self, table: Table) -> None:
        _, backup = execute(table, UpdateCell(cell_id=cell_id(table, 0, 0), changes={"content": "z"}))
        assert len(backup.cells) == 1
        assert backup.cells[0].cell == table.cell_at(0, 0)
        assert backup.row_order is None
        assert backup.settings is None


class TestOperationRecord:
    """Tests for operation records."""

    def test_for_payload(self, table: Table) -> None:
        payload = PasteValues(anchor_cell_id=cell_id(table, 1, 1), values=(("a",),))
        record = OperationRecord.for_payload(table, payload)
        assert record.kind == OperationKind.PASTE
        assert record.scope == OperationScope.RANGE
        assert record.status == OperationStatus.PENDING
        assert record.target.range.start_row == 1
        assert record.id.startswith("op_")

    def test_json_roundtrip_keeps_payload_type(self, table: Table) -> None:
        payload = MoveRow(row_id=table.rows[0].id, to_index=2)
        record = OperationRecord.for_payload(table, payload)
        restored = OperationRecord.model_validate_json(record.model_dump_json(by_alias=True))
        assert isinstance(restored.payload, MoveRow)
        assert restored.payload == payload

    def test_batch_record(self, table: Table) -> None:
        payload = BatchOperation(
            operations=(
                UpdateCell(cell_id=cell_id(table, 0, 0), changes={"content": "a"}),
                MoveRow(row_id=table.rows[0].id, to_index=2),
            ),
        )
        record = OperationRecord.for_payload(table, payload)
        assert record.description == "Batch of 2 operations"
        assert record.target.ids == (cell_id(table, 0, 0), table.rows[0].id)
        restored = OperationRecord.model_validate_json(record.model_dump_json(by_alias=True))
        assert isinstance(restored.payload, BatchOperation)
        assert isinstance(restored.payload.operations[0], UpdateCell)
        assert isinstance(restored.payload.operations[1], MoveRow)


def completed(table: Table, n: int = 0) -> OperationRecord:
    record = OperationRecord.for_payload(table, ResizeRow(row_id=table.rows[0].id, height=30 + n))
    return record.model_copy(update={"status": OperationStatus.COMPLETED})


class TestOperationHistory:
    """Tests for the bounded undo/redo stacks."""

    def test_push_and_undo(self, table: Table) -> None:
        history = OperationHistory()
        record = completed(table)
        history.push(record)
        assert history.can_undo and not history.can_redo
        assert history.mark_undone() is record
        assert history.peek_redo() is record
        assert not history.can_undo

    def test_limit_evicts_oldest(self, table: Table) -> None:
        history = OperationHistory(limit=2)
        records = [completed(table, i) for i in range(3)]
        for record in records:
            history.push(record)
        assert history.undo_stack == tuple(records[1:])
        assert len(history) == 2

    def test_push_clears_redo(self, table: Table) -> None:
        history = OperationHistory()
        history.push(completed(table, 1))
        history.mark_undone()
        history.push(completed(table, 2))
        assert not history.can_redo

    def test_mark_redone(self, table: Table) -> None:
        history = OperationHistory()
        history.push(completed(table))
        undone = history.mark_undone()
        replayed = undone.model_copy(update={"description": "again"})
        history.mark_redone(replayed)
        assert history.peek_undo() is replayed
        assert not history.can_redo

    def test_only_completed_records(self, table: Table) -> None:
        history = OperationHistory()
        pending = OperationRecord.for_payload(table, DeleteRow(row_id=table.rows[0].id))
        with pytest.raises(HistoryError):
            history.push(pending)

    def test_empty_stacks_raise(self) -> None:
        history = OperationHistory()
        with pytest.raises(HistoryError):
            history.mark_undone()
        with pytest.raises(HistoryError):
            history.mark_redone(None)  # type: ignore[arg-type]

    def test_clear_redo(self, table: Table) -> None:
        history = OperationHistory()
        history.push(completed(table))
        history.mark_undone()
        history.clear_redo()
        assert not history.can_redo
        assert not history.can_undo

    def test_limit_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            OperationHistory(limit=0)
