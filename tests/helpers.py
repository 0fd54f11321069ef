"""Assertion helpers shared by the test modules."""

from __future__ import annotations

from typing import Any

from extratable.models import Table


def cell_id(t: Table, row: int, column: int) -> str:
    """Id of the cell stored at (row, column)."""
    cell = t.cell_at(row, column)
    assert cell is not None, f"no cell at ({row}, {column})"
    return cell.id


def contents(t: Table) -> list[list[str | None]]:
    """Grid of contents; None marks a slot covered by a merged cell."""
    return [
        [
            cell.content if (cell := t.cell_at(r, c)) is not None else None
            for c in range(len(t.columns))
        ]
        for r in range(len(t.rows))
    ]


def comparable(t: Table) -> dict[str, Any]:
    """Snapshot dump without the table's own version and timestamps."""
    return t.model_dump(exclude={"metadata"})
