"""Structural integrity checks for table snapshots.

Used before accepting a snapshot from outside (JSON import, ``load``).

Severity Levels:
- BLOCK: The snapshot breaks an invariant the mutators rely on (duplicate
  ids, cells keyed under the wrong slot, holes in the grid)
- WARN: Harmless but suspicious (sort or filter on a column that no longer
  exists, a cell hidden under another cell's span)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from extratable.exceptions import MalformedIdentifierError
from extratable.ids import parse_cell_id
from extratable.models import Table
from extratable.utils import column_letter


@dataclass
class IntegrityReport:
    """Result of an integrity check."""

    blocks: list[str] = field(default_factory=list)  # The snapshot cannot be used
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when nothing blocks the snapshot."""
        return len(self.blocks) == 0

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0


def _slot(row: int, column: int) -> str:
    return f"{column_letter(column)}{row + 1}"


def check_integrity(table: Table) -> IntegrityReport:
    """Check a snapshot's structural invariants.

    Blocks:
    - no rows or no columns
    - duplicate row or column ids
    - a cell keyed under a column the table does not have
    - a cell whose id does not parse to its own (row, column)
    - a slot with no cell that no span covers
    - a span running past the edge of the table
    """
    report = IntegrityReport()
    if not table.rows:
        report.blocks.append("Table has no rows")
    if not table.columns:
        report.blocks.append("Table has no columns")

    row_ids = [r.id for r in table.rows]
    column_ids = [c.id for c in table.columns]
    for kind, ids in (("row", row_ids), ("column", column_ids)):
        seen: set[str] = set()
        for item in ids:
            if item in seen:
                report.blocks.append(f"Duplicate {kind} id '{item}'")
            seen.add(item)
    if not report.ok:
        return report

    col_index = {cid: i for i, cid in enumerate(column_ids)}
    covered: dict[tuple[int, int], str] = {}
    for r, row in enumerate(table.rows):
        for column_id, cell in row.cells.items():
            c = col_index.get(column_id)
            if c is None:
                report.blocks.append(
                    f"Row '{row.id}' has a cell for unknown column '{column_id}'"
                )
                continue
            try:
                owner = parse_cell_id(cell.id)
            except MalformedIdentifierError as e:
                report.blocks.append(str(e))
                continue
            if owner != (row.id, column_id):
                report.blocks.append(
                    f"Cell '{cell.id}' is stored at row '{row.id}', column '{column_id}'"
                )
            if r + cell.row_span > len(table.rows) or c + cell.col_span > len(table.columns):
                report.blocks.append(
                    f"Cell '{cell.id}' spans {cell.row_span}x{cell.col_span} "
                    f"past the edge of the table"
                )
            for rr in range(r, min(r + cell.row_span, len(table.rows))):
                for cc in range(c, min(c + cell.col_span, len(table.columns))):
                    if (rr, cc) in covered:
                        report.warnings.append(
                            f"Slot {_slot(rr, cc)} is covered by both "
                            f"'{covered[(rr, cc)]}' and '{cell.id}'"
                        )
                    covered.setdefault((rr, cc), cell.id)

    for r, row in enumerate(table.rows):
        for c, column_id in enumerate(column_ids):
            if column_id not in row.cells and (r, c) not in covered:
                report.blocks.append(f"Slot {_slot(r, c)} has no cell")

    for spec in table.sorting:
        if spec.column_id not in col_index:
            report.warnings.append(f"Sort references unknown column '{spec.column_id}'")
    for column_id in table.filters:
        if column_id not in col_index:
            report.warnings.append(f"Filter references unknown column '{column_id}'")

    return report
