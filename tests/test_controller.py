"""Tests for extratable.controller module."""

from __future__ import annotations

import pytest
from helpers import cell_id, comparable, contents

from extratable.config import EngineSettings
from extratable.controller import MemoryClipboard, TableController
from extratable.exceptions import CannotDeleteLastRowError, TableImportError
from extratable.models import Table, create_table
from extratable.operations import MoveRow, OperationStatus, UpdateCell
from extratable.schema import CellValidation, RuleType, ValidationRule


class TestDispatch:
    """Tests for recording operations."""

    def test_insert_row_undo_redo_keeps_id(self, controller: TableController) -> None:
        first = controller.table.rows[0].id
        row_id = controller.insert_row(first, values={controller.table.columns[0].id: "new"})
        assert controller.table.row_ids()[1] == row_id
        assert controller.table.cell_at(1, 0).content == "new"

        assert controller.undo()
        assert row_id not in controller.table.row_ids()
        assert controller.redo()
        assert controller.table.row_ids()[1] == row_id
        assert controller.table.cell_at(1, 0).content == "new"

    def test_undo_and_redo_on_empty_history(self, controller: TableController) -> None:
        assert not controller.undo()
        assert not controller.redo()

    def test_history_limit_from_settings(self, table: Table) -> None:
        controller = TableController(table, settings=EngineSettings(history_limit=2))
        for width in (100, 110, 130):
            controller.resize_column(table.columns[0].id, width)
        assert controller.undo()
        assert controller.undo()
        assert not controller.undo()
        assert controller.table.columns[0].width == 100

    def test_rejected_operation(self) -> None:
        controller = TableController(create_table(rows=1, columns=2))
        before = controller.table
        with pytest.raises(CannotDeleteLastRowError):
            controller.delete_row(before.rows[0].id)
        assert controller.table is before
        assert not controller.can_undo
        assert controller.last_failure is not None
        assert controller.last_failure.status == OperationStatus.FAILED
        assert "at least one row" in controller.last_failure.error

    def test_invalid_change_key_rejected(self, controller: TableController) -> None:
        with pytest.raises(ValueError):
            controller.update_cell(cell_id(controller.table, 0, 0), id="cell-row_x-col_y")
        assert not controller.can_undo

    def test_noop_not_recorded(self, controller: TableController) -> None:
        before = controller.table
        controller.delete_row("row_missing")
        controller.set_value(cell_id(before, 0, 0), "r0c0")
        assert controller.table is before
        assert not controller.can_undo

    def test_noop_clears_redo(self, controller: TableController) -> None:
        controller.set_value(cell_id(controller.table, 0, 0), "x")
        assert controller.undo()
        assert controller.can_redo
        controller.delete_row("row_missing")
        assert not controller.can_redo
        assert not controller.redo()

    def test_batch_is_one_undo_step(self, controller: TableController) -> None:
        initial = comparable(controller.table)
        t = controller.table
        record = controller.batch(
            [
                UpdateCell(cell_id=cell_id(t, 0, 0), changes={"content": "x"}),
                MoveRow(row_id=t.rows[0].id, to_index=2),
            ],
            label="Edit and move",
        )
        assert record.description == "Edit and move"
        assert len(controller.history) == 1
        assert contents(controller.table)[2][0] == "x"
        assert controller.undo()
        assert comparable(controller.table) == initial
        assert controller.redo()
        assert contents(controller.table)[2][0] == "x"

    def test_rejected_batch_changes_nothing(self, controller: TableController) -> None:
        before = controller.table
        with pytest.raises(CannotDeleteLastRowError):
            controller.delete_rows(before.row_ids())
        assert controller.table is before
        assert controller.last_failure.description == "Delete rows"

    def test_delete_selected_rows(self, controller: TableController) -> None:
        t = controller.table
        controller.select_row(t.rows[0].id)
        controller.select_row(t.rows[2].id, toggle=True)
        controller.delete_rows()
        assert controller.table.row_ids() == [t.rows[1].id]
        assert len(controller.history) == 1
        controller.undo()
        assert controller.table.row_ids() == t.row_ids()

    def test_delete_columns(self, controller: TableController) -> None:
        t = controller.table
        controller.delete_columns(t.column_ids()[:2])
        assert contents(controller.table) == [["r0c2"], ["r1c2"], ["r2c2"]]
        controller.undo()
        assert contents(controller.table) == contents(t)

    def test_on_change_called(self, table: Table) -> None:
        calls: list[int] = []
        controller = TableController(table, on_change=lambda t, s: calls.append(t.version))
        controller.set_value(cell_id(table, 0, 0), "x")
        controller.select_cell(cell_id(table, 1, 1))
        controller.undo()
        assert len(calls) == 3
        assert calls[0] == table.version + 1

    def test_undo_everything_restores_initial(self, controller: TableController) -> None:
        initial = comparable(controller.table)
        t = controller.table
        controller.insert_column(t.columns[0].id, name="Extra")
        controller.set_value(cell_id(controller.table, 2, 1), "value")
        controller.merge_cells([cell_id(controller.table, 0, 0), cell_id(controller.table, 1, 1)])
        controller.split_cell(cell_id(controller.table, 0, 0), columns=3)
        controller.move_row(controller.table.rows[2].id, 0)
        controller.sort_by_column(controller.table.columns[2].id)
        controller.delete_column(controller.table.columns[3].id)
        controller.set_filter(controller.table.columns[0].id, "r")
        while controller.undo():
            pass
        assert comparable(controller.table) == initial
        assert controller.can_redo


class TestLoadAndValidate:
    """Tests for snapshot replacement and validation indexing."""

    def test_load_resets_state(self, controller: TableController) -> None:
        controller.set_value(cell_id(controller.table, 0, 0), "x")
        controller.select_all()
        fresh = create_table(rows=2, columns=2)
        controller.load(fresh)
        assert controller.table is fresh
        assert controller.selection.is_empty
        assert not controller.can_undo

    def test_load_rejects_broken_snapshot(self, controller: TableController) -> None:
        before = controller.table
        broken = before.model_copy(update={"rows": before.rows + (before.rows[0],)})
        with pytest.raises(TableImportError):
            controller.load(broken)
        assert controller.table is before

    def test_validate_indexes_errors(self) -> None:
        rule = ValidationRule(type=RuleType.NUMBER, message="not a number")
        t = create_table(
            rows=2, column_specs=[{"name": "Score", "validation": CellValidation(rules=(rule,))}]
        )
        controller = TableController(t)
        controller.set_value(cell_id(t, 1, 0), "abc")
        results = controller.validate()
        bad = cell_id(t, 1, 0)
        assert set(results) == {bad}
        assert controller.table.validation_errors == {bad: ("not a number",)}
        assert len(controller.history) == 1

    def test_export(self, controller: TableController) -> None:
        assert controller.export("markdown").startswith("| Column A |")


class TestSelectionIntegration:
    """Selection bookkeeping around structural edits."""

    def test_selection_pruned_after_row_delete(self, controller: TableController) -> None:
        row_id = controller.table.rows[1].id
        controller.select_row(row_id)
        controller.delete_row(row_id)
        assert controller.selection.is_empty

    def test_selection_kept_after_unrelated_edit(self, controller: TableController) -> None:
        target = cell_id(controller.table, 0, 0)
        controller.select_cell(target)
        controller.set_value(cell_id(controller.table, 2, 2), "x")
        assert controller.selection.cells == (target,)

    def test_merge_selection(self, controller: TableController) -> None:
        t = controller.table
        controller.select_cell(cell_id(t, 0, 0))
        controller.extend_selection(cell_id(t, 1, 1))
        controller.merge_cells()
        merged = controller.table.cell_at(0, 0)
        assert (merged.row_span, merged.col_span) == (2, 2)
        assert merged.content == "r0c0 r0c1 r1c0 r1c1"
        assert controller.selection.cells == (merged.id,)

        assert controller.undo()
        assert contents(controller.table) == contents(t)

    def test_merge_needs_two_cells(self, controller: TableController) -> None:
        controller.select_cell(cell_id(controller.table, 0, 0))
        controller.merge_cells()
        assert not controller.can_undo

    def test_sort_by_column_toggles(self, controller: TableController) -> None:
        column_id = controller.table.columns[0].id
        controller.sort_by_column(column_id)
        assert controller.table.sorting[0].direction == "asc"
        controller.sort_by_column(column_id)
        assert controller.table.sorting[0].direction == "desc"
        assert controller.table.cell_at(0, 0).content == "r2c0"

    def test_filters(self, controller: TableController) -> None:
        columns = controller.table.column_ids()
        controller.set_filter(columns[0], "R1")
        controller.set_filter(columns[1], "c1")
        assert controller.table.filters == {columns[0]: "R1", columns[1]: "c1"}
        controller.clear_filters()
        assert controller.table.filters == {}
        assert len(controller.history) == 3

    def test_clear_selection(self, controller: TableController) -> None:
        controller.select_all()
        assert len(controller.selection.cells) == 9
        assert controller.clear_selection().is_empty


class TestEditing:
    """Tests for in-cell edit sessions."""

    def test_commit_applies(self, controller: TableController) -> None:
        target = cell_id(controller.table, 1, 1)
        controller.select_cell(target)
        assert controller.start_editing()
        controller.update_edit("edited")
        result = controller.commit_edit()
        assert result is not None and result.is_valid
        assert controller.editing is None
        assert controller.table.get_cell(target).content == "edited"

    def test_cancel_leaves_table(self, controller: TableController) -> None:
        before = controller.table
        controller.start_editing(cell_id(before, 0, 0))
        controller.update_edit("discarded")
        controller.cancel_edit()
        assert controller.table is before

    def test_unchanged_commit_not_recorded(self, controller: TableController) -> None:
        controller.start_editing(cell_id(controller.table, 0, 0))
        controller.commit_edit()
        assert not controller.can_undo

    def test_locked_cell_refuses(self, controller: TableController) -> None:
        target = cell_id(controller.table, 0, 0)
        controller.update_cell(target, metadata={"locked": True})
        assert not controller.start_editing(target)
        assert controller.editing is None

    def test_locked_row_refuses(self, controller: TableController) -> None:
        row_id = controller.table.rows[0].id
        controller.update_row(row_id, metadata={"locked": True})
        assert not controller.start_editing(cell_id(controller.table, 0, 1))

    def test_table_not_editable(self, controller: TableController) -> None:
        controller.update_settings(editable=False)
        assert not controller.start_editing(cell_id(controller.table, 0, 0))

    def test_invalid_edit_blocked(self) -> None:
        rule = ValidationRule(type=RuleType.NUMBER, message="not a number")
        t = create_table(rows=1, column_specs=[{"name": "N", "validation": {"rules": [rule]}}])
        controller = TableController(t, settings=EngineSettings(block_invalid_edits=True))
        target = cell_id(t, 0, 0)
        controller.start_editing(target)
        controller.update_edit("abc")
        result = controller.commit_edit()
        assert result is not None and not result.is_valid
        assert controller.editing is not None
        assert controller.table.get_cell(target).content == ""

    def test_invalid_edit_allowed_by_default(self) -> None:
        rule = ValidationRule(type=RuleType.NUMBER, message="not a number")
        t = create_table(rows=1, column_specs=[{"name": "N", "validation": {"rules": [rule]}}])
        controller = TableController(t)
        target = cell_id(t, 0, 0)
        controller.start_editing(target)
        controller.update_edit("abc")
        result = controller.commit_edit()
        assert result is not None and not result.is_valid
        assert controller.table.get_cell(target).content == "abc"

    def test_session_dropped_when_cell_deleted(self, controller: TableController) -> None:
        controller.start_editing(cell_id(controller.table, 1, 0))
        controller.delete_row(controller.table.rows[1].id)
        assert controller.editing is None


class TestSessions:
    """Drag and resize gestures commit as one operation."""

    def test_drag_row(self, controller: TableController) -> None:
        row_id = controller.table.rows[0].id
        assert controller.start_drag("row", row_id)
        for index in (1, 2):
            controller.update_drag(index)
        controller.end_drag()
        assert controller.table.row_ids()[2] == row_id
        assert len(controller.history) == 1

    def test_drag_to_same_index(self, controller: TableController) -> None:
        column_id = controller.table.columns[1].id
        controller.start_drag("column", column_id)
        controller.update_drag(1)
        controller.end_drag()
        assert not controller.can_undo

    def test_drag_unknown_item(self, controller: TableController) -> None:
        assert not controller.start_drag("row", "row_missing")

    def test_cancel_drag(self, controller: TableController) -> None:
        controller.start_drag("row", controller.table.rows[0].id)
        controller.update_drag(2)
        controller.cancel_drag()
        controller.end_drag()
        assert not controller.can_undo

    def test_resize_column(self, controller: TableController) -> None:
        column_id = controller.table.columns[0].id
        assert controller.start_resize("column", column_id)
        for width in (130, 150, 170):
            controller.update_resize(width)
        controller.end_resize()
        assert controller.table.columns[0].width == 170
        assert len(controller.history) == 1
        controller.undo()
        assert controller.table.columns[0].width == 120

    def test_resize_row_is_clamped(self, controller: TableController) -> None:
        row_id = controller.table.rows[0].id
        controller.start_resize("row", row_id)
        controller.update_resize(1000)
        controller.end_resize()
        assert controller.table.rows[0].height == 200

    def test_resize_refused_for_fixed_column(self, controller: TableController) -> None:
        column_id = controller.table.columns[0].id
        controller.update_column(column_id, resizable=False)
        assert not controller.start_resize("column", column_id)

    def test_cancel_resize(self, controller: TableController) -> None:
        controller.start_resize("column", controller.table.columns[0].id)
        controller.update_resize(300)
        controller.cancel_resize()
        controller.end_resize()
        assert controller.table.columns[0].width == 120


class TestClipboard:
    """Tests for copy, cut and paste."""

    def test_copy_paste(self, table: Table) -> None:
        clipboard = MemoryClipboard()
        controller = TableController(table, clipboard=clipboard)
        controller.select_cell(cell_id(table, 0, 0))
        controller.extend_selection(cell_id(table, 1, 1))
        text = controller.copy()
        assert text == "r0c0\tr0c1\nr1c0\tr1c1"
        assert clipboard.text == text

        controller.select_cell(cell_id(table, 1, 1))
        assert controller.paste()
        assert contents(controller.table)[1:] == [
            ["r1c0", "r0c0", "r0c1"],
            ["r2c0", "r1c0", "r1c1"],
        ]

    def test_cut_clears_source(self, controller: TableController) -> None:
        source = cell_id(controller.table, 0, 0)
        assert controller.cut([source]) == "r0c0"
        assert controller.table.get_cell(source).content == ""
        assert controller.clipboard_state.cut

        assert controller.paste(cell_id(controller.table, 2, 2))
        assert controller.table.cell_at(2, 2).content == "r0c0"
        assert controller.clipboard_state is None

    def test_paste_without_target(self, controller: TableController) -> None:
        controller.clipboard.write_text("x")
        assert not controller.paste()

    def test_paste_external_text(self, controller: TableController) -> None:
        controller.clipboard.write_text("1\t2\r\n3\t4\r\n")
        controller.paste(cell_id(controller.table, 0, 0))
        assert contents(controller.table)[:2] == [["1", "2", "r0c2"], ["3", "4", "r1c2"]]


def test_controller_defaults() -> None:
    controller = TableController()
    assert len(controller.table.rows) == 5
    assert controller.history.limit == 50
