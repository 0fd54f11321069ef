"""Tests for extratable.ids module."""

import pytest

from extratable.exceptions import MalformedIdentifierError
from extratable.ids import (
    is_cell_id,
    make_cell_id,
    new_column_id,
    new_operation_id,
    new_row_id,
    new_table_id,
    parse_cell_id,
)


class TestCellIds:
    """Tests for building and parsing cell ids."""

    def test_make_cell_id(self) -> None:
        assert make_cell_id("row_1", "col_a") == "cell-row_1-col_a"

    def test_parse_cell_id(self) -> None:
        assert parse_cell_id("cell-row_1-col_a") == ("row_1", "col_a")

    def test_generated_ids_roundtrip(self) -> None:
        for _ in range(20):
            row_id, column_id = new_row_id(), new_column_id()
            assert parse_cell_id(make_cell_id(row_id, column_id)) == (row_id, column_id)

    @pytest.mark.parametrize(
        "bad",
        ["", "cell", "cell-row_1", "cell-a-b-c", "sell-a-b", "cell--col_a", "cell-row_1-"],
    )
    def test_malformed_cell_ids_raise(self, bad: str) -> None:
        with pytest.raises(MalformedIdentifierError) as exc_info:
            parse_cell_id(bad)
        assert exc_info.value.identifier == bad

    def test_non_string_raises(self) -> None:
        with pytest.raises(MalformedIdentifierError):
            parse_cell_id(42)  # type: ignore[arg-type]

    def test_malformed_is_also_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_cell_id("nope")

    def test_make_rejects_separator_in_components(self) -> None:
        with pytest.raises(MalformedIdentifierError):
            make_cell_id("row-1", "col_a")
        with pytest.raises(MalformedIdentifierError):
            make_cell_id("row_1", "")

    def test_is_cell_id(self) -> None:
        assert is_cell_id("cell-r-c")
        assert not is_cell_id("cell-r")
        assert not is_cell_id("row_1")
        assert not is_cell_id(None)  # type: ignore[arg-type]


class TestGeneratedIds:
    """Tests for row, column, table and operation ids."""

    def test_prefixes(self) -> None:
        assert new_row_id().startswith("row_")
        assert new_column_id().startswith("col_")
        assert new_table_id().startswith("table_")
        assert new_operation_id().startswith("op_")

    def test_never_contain_separator(self) -> None:
        for factory in (new_row_id, new_column_id, new_table_id, new_operation_id):
            assert "-" not in factory()

    def test_unique(self) -> None:
        ids = {new_row_id() for _ in range(500)}
        assert len(ids) == 500
