"""Tests for extratable.integrity module."""

from helpers import cell_id

from extratable.integrity import check_integrity
from extratable.models import Row, SortSpec, Table
from extratable.mutations import insert_row, merge_cells


def replace_first_row(t: Table, row: Row) -> Table:
    return t.model_copy(update={"rows": (row,) + t.rows[1:]})


class TestIntegrity:
    """Tests for check_integrity."""

    def test_fresh_table_is_ok(self, table: Table) -> None:
        report = check_integrity(table)
        assert report.ok
        assert not report.has_warnings

    def test_merged_table_is_ok(self, table: Table) -> None:
        merged = merge_cells(
            table, [cell_id(table, 0, 0), cell_id(table, 2, 2)], cell_id(table, 0, 0)
        )
        assert check_integrity(merged).ok

    def test_empty_table_blocks(self, table: Table) -> None:
        report = check_integrity(table.model_copy(update={"rows": ()}))
        assert "Table has no rows" in report.blocks

    def test_duplicate_row_ids_block(self, table: Table) -> None:
        dup = table.model_copy(update={"rows": table.rows + (table.rows[0],)})
        report = check_integrity(dup)
        assert not report.ok
        assert any("Duplicate row id" in b for b in report.blocks)

    def test_missing_cell_blocks(self, table: Table) -> None:
        row = table.rows[0]
        cells = {k: v for k, v in row.cells.items() if k != table.columns[1].id}
        report = check_integrity(replace_first_row(table, row.model_copy(update={"cells": cells})))
        assert report.blocks == ["Slot B1 has no cell"]

    def test_misplaced_cell_blocks(self, table: Table) -> None:
        row = table.rows[0]
        cells = dict(row.cells)
        cells[table.columns[0].id] = table.rows[1].cells[table.columns[0].id]
        report = check_integrity(replace_first_row(table, row.model_copy(update={"cells": cells})))
        assert any("is stored at row" in b for b in report.blocks)

    def test_unknown_column_blocks(self, table: Table) -> None:
        row = table.rows[0]
        cells = dict(row.cells)
        cells["col_ghost"] = row.cells[table.columns[0].id]
        report = check_integrity(replace_first_row(table, row.model_copy(update={"cells": cells})))
        assert any("unknown column 'col_ghost'" in b for b in report.blocks)

    def test_span_past_edge_blocks(self, table: Table) -> None:
        row = table.rows[2]
        column_id = table.columns[2].id
        cells = dict(row.cells)
        cells[column_id] = cells[column_id].model_copy(update={"row_span": 2})
        t = table.model_copy(update={"rows": table.rows[:2] + (row.model_copy(update={"cells": cells}),)})
        report = check_integrity(t)
        assert any("past the edge" in b for b in report.blocks)

    def test_overlap_warns(self, table: Table) -> None:
        row = table.rows[0]
        column_id = table.columns[0].id
        cells = dict(row.cells)
        cells[column_id] = cells[column_id].model_copy(update={"col_span": 2})
        report = check_integrity(replace_first_row(table, row.model_copy(update={"cells": cells})))
        assert report.ok
        assert any("covered by both" in w for w in report.warnings)

    def test_insert_inside_merge_stays_clean(self, table: Table) -> None:
        merged = merge_cells(
            table, [cell_id(table, 0, 0), cell_id(table, 1, 0)], cell_id(table, 0, 0)
        )
        inserted = insert_row(merged, merged.rows[0].id)
        report = check_integrity(inserted)
        assert report.ok
        assert not report.has_warnings

    def test_unknown_sort_and_filter_warn(self, table: Table) -> None:
        t = table.model_copy(
            update={"sorting": (SortSpec(column_id="col_gone"),), "filters": {"col_gone": "x"}}
        )
        report = check_integrity(t)
        assert report.ok
        assert len(report.warnings) == 2
