"""Tests for the table data model."""

import pytest

from extratable.exceptions import MalformedIdentifierError
from extratable.ids import parse_cell_id
from extratable.models import (
    CellStyle,
    Table,
    create_table,
    new_column,
    touch,
)
from extratable.schema import CellDataType


class TestCreateTable:
    """Tests for create_table."""

    def test_dimensions(self) -> None:
        t = create_table(rows=4, columns=2)
        assert len(t.rows) == 4
        assert len(t.columns) == 2
        assert t.version == 1

    def test_every_slot_has_a_matching_cell(self) -> None:
        t = create_table(rows=3, columns=3)
        for row in t.rows:
            assert set(row.cells) == set(t.column_ids())
            for column_id, cell in row.cells.items():
                assert parse_cell_id(cell.id) == (row.id, column_id)
                assert cell.content == ""

    def test_default_column_names(self) -> None:
        t = create_table(rows=1, columns=3)
        assert [c.name for c in t.columns] == ["Column A", "Column B", "Column C"]

    def test_column_specs(self) -> None:
        t = create_table(
            rows=1,
            column_specs=[{"name": "Score", "type": "number"}, {"name": "Email", "width": 200}],
        )
        assert [c.name for c in t.columns] == ["Score", "Email"]
        assert t.columns[0].type == CellDataType.NUMBER
        assert t.rows[0].cells[t.columns[0].id].type == CellDataType.NUMBER
        assert t.columns[1].width == 200

    @pytest.mark.parametrize("rows,columns", [(0, 3), (3, 0)])
    def test_rejects_empty_tables(self, rows: int, columns: int) -> None:
        with pytest.raises(ValueError):
            create_table(rows=rows, columns=columns)

    def test_settings_take_engine_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from extratable.config import get_settings

        monkeypatch.setenv("EXTRATABLE_DEFAULT_COLUMN_WIDTH", "150")
        get_settings.cache_clear()
        t = create_table(rows=1, columns=1)
        assert t.settings.default_column_width == 150
        assert t.columns[0].width == 150


class TestLookups:
    """Tests for position and id lookups on a snapshot."""

    def test_get_cell(self, table: Table) -> None:
        cell = table.cell_at(1, 2)
        assert table.get_cell(cell.id) is cell
        assert table.cell_position(cell.id) == (1, 2)

    def test_unknown_cell_is_none(self, table: Table) -> None:
        assert table.get_cell("cell-row_x-col_y") is None
        assert table.cell_position("cell-row_x-col_y") is None

    def test_malformed_cell_id_raises(self, table: Table) -> None:
        with pytest.raises(MalformedIdentifierError):
            table.get_cell("not-a-cell-id")

    def test_cell_at_out_of_bounds(self, table: Table) -> None:
        assert table.cell_at(3, 0) is None
        assert table.cell_at(0, -1) is None

    def test_iter_cells_row_major(self, table: Table) -> None:
        values = [cell.content for _, _, cell in table.iter_cells()]
        assert values[:4] == ["r0c0", "r0c1", "r0c2", "r1c0"]
        assert len(values) == 9

    def test_covering_cell(self, table: Table) -> None:
        from extratable.mutations import merge_cells

        merged = merge_cells(
            table, [table.cell_at(0, 0).id, table.cell_at(1, 1).id], table.cell_at(0, 0).id
        )
        keeper = merged.cell_at(0, 0)
        assert merged.covering_cell(1, 1) == keeper
        assert merged.covering_cell(2, 2) == merged.cell_at(2, 2)


class TestTouch:
    """Tests for snapshot versioning."""

    def test_bumps_version_and_updated(self, table: Table) -> None:
        after = touch(table, filters={"x": "y"})
        assert after.version == table.version + 1
        assert after.metadata.updated >= table.metadata.updated
        assert after.filters == {"x": "y"}
        assert table.filters == {}

    def test_models_are_frozen(self, table: Table) -> None:
        with pytest.raises(Exception):
            table.rows = ()  # type: ignore[misc]


class TestCellStyle:
    """Tests for style merging."""

    def test_delta_wins_and_keeps_other_keys(self) -> None:
        base = CellStyle(color="red", font_weight="bold")
        merged = base.merged({"color": "blue"})
        assert merged.color == "blue"
        assert merged.font_weight == "bold"

    def test_accepts_camel_case(self) -> None:
        merged = CellStyle().merged({"backgroundColor": "#fff"})
        assert merged.background_color == "#fff"

    def test_unset_keys_do_not_clear(self) -> None:
        base = CellStyle(color="red")
        merged = base.merged(CellStyle(font_size=12))
        assert merged.color == "red"
        assert merged.font_size == 12


class TestSerializationShape:
    """Tests for the JSON field naming."""

    def test_camel_case_keys(self, table: Table) -> None:
        data = table.model_dump(by_alias=True)
        assert "showHeaders" in data["settings"]
        assert "defaultColumnWidth" in data["settings"]
        first_row = data["rows"][0]
        cell = next(iter(first_row["cells"].values()))
        assert "rowSpan" in cell and "colSpan" in cell

    def test_new_column_defaults(self) -> None:
        column = new_column(27)
        assert column.name == "Column AB"
        assert column.sortable and column.resizable
        assert not column.pinnable
