"""
Table data model for extratable.

A :class:`Table` is an immutable snapshot: ordered columns, ordered rows,
and for every row exactly one :class:`Cell` per column, keyed by column
id. Rows reference columns by id only, so a snapshot serializes to JSON
without cycles.

Every change produces a new snapshot through :func:`touch`, which bumps
``metadata.version`` and ``metadata.updated``.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, Field

from extratable.config import get_settings
from extratable.ids import make_cell_id, new_column_id, new_row_id, new_table_id, parse_cell_id
from extratable.schema import (
    CellDataType,
    CellFormat,
    CellValidation,
    FrozenModel,
)
from extratable.utils import default_column_name, utcnow

# =============================================================================
# Cells
# =============================================================================


class BorderStyle(FrozenModel):
    width: int = 1
    style: Literal["solid", "dashed", "dotted", "double", "none"] = "solid"
    color: str = "#000000"


class CellBorders(FrozenModel):
    top: BorderStyle | None = None
    right: BorderStyle | None = None
    bottom: BorderStyle | None = None
    left: BorderStyle | None = None


class CellStyle(FrozenModel):
    """Visual style of a cell.

    Only the keys that were set are meaningful; unknown keys are kept so
    that style deltas from richer editors survive a round trip.
    """

    model_config = ConfigDict(extra="allow")

    background_color: str | None = None
    color: str | None = None
    font_family: str | None = None
    font_size: int | str | None = None
    font_weight: str | int | None = None
    font_style: Literal["normal", "italic", "oblique"] | None = None
    text_decoration: str | None = None
    text_align: Literal["left", "center", "right", "justify"] | None = None
    vertical_align: Literal["top", "middle", "bottom"] | None = None
    line_height: float | str | None = None
    text_transform: Literal["none", "uppercase", "lowercase", "capitalize"] | None = None
    borders: CellBorders | None = None
    padding: int | str | None = None
    border_radius: int | None = None
    opacity: float | None = Field(None, ge=0, le=1)
    white_space: str | None = None

    def merged(self, delta: CellStyle | Mapping[str, Any]) -> CellStyle:
        """Shallow-merge ``delta`` over this style; keys in the delta win."""
        if not isinstance(delta, CellStyle):
            delta = CellStyle.model_validate(dict(delta))
        base = self.model_dump(exclude_unset=True)
        base.update(delta.model_dump(exclude_unset=True))
        return CellStyle.model_validate(base)


class CellHistoryEntry(FrozenModel):
    value: str
    timestamp: datetime = Field(default_factory=utcnow)
    user: str | None = None
    action: Literal["create", "update", "delete"] = "update"


class CellMetadata(FrozenModel):
    created: datetime = Field(default_factory=utcnow)
    updated: datetime = Field(default_factory=utcnow)
    created_by: str | None = None
    updated_by: str | None = None
    comment: str | None = None
    tags: tuple[str, ...] = ()
    locked: bool = False
    hidden: bool = False
    read_only: bool = False
    required: bool = False
    masked: bool = False
    formula: str | None = None
    original_value: str | None = None
    calculated_value: str | None = None
    dependencies: tuple[str, ...] = ()
    version: int = 1
    history: tuple[CellHistoryEntry, ...] = ()


class Hyperlink(FrozenModel):
    url: str
    title: str | None = None
    target: Literal["_blank", "_self"] = "_blank"


class ImageSpec(FrozenModel):
    src: str
    alt: str = ""
    width: int | None = None
    height: int | None = None


class DropdownOption(FrozenModel):
    value: str
    label: str | None = None
    color: str | None = None


class Dropdown(FrozenModel):
    options: tuple[DropdownOption, ...] = ()
    multiple: bool = False
    allow_custom: bool = False


class RichText(FrozenModel):
    html: str = ""
    plain_text: str = ""


class Cell(FrozenModel):
    """The content of one (row, column) slot.

    ``row_span``/``col_span`` greater than 1 mean this cell covers
    neighbouring slots whose own cells were removed by a merge.
    """

    id: str
    content: str = ""
    type: CellDataType = CellDataType.TEXT
    style: CellStyle | None = None
    metadata: CellMetadata = Field(default_factory=CellMetadata)
    validation: CellValidation | None = None
    row_span: int = Field(1, ge=1)
    col_span: int = Field(1, ge=1)
    hyperlink: Hyperlink | None = None
    image: ImageSpec | None = None
    dropdown: Dropdown | None = None
    rich_text: RichText | None = None


# =============================================================================
# Columns and rows
# =============================================================================


class Column(FrozenModel):
    id: str
    name: str
    type: CellDataType = CellDataType.TEXT
    width: int = 120
    min_width: int | None = None
    max_width: int | None = None
    sortable: bool = True
    filterable: bool = True
    resizable: bool = True
    reorderable: bool = True
    hideable: bool = True
    pinnable: bool = False
    pinned: Literal["left", "right"] | None = None
    hidden: bool = False
    format: CellFormat | None = None
    validation: CellValidation | None = None
    default_value: str | None = None
    unique: bool = False
    auto_increment: bool = False
    description: str | None = None


class RowMetadata(FrozenModel):
    created: datetime = Field(default_factory=utcnow)
    updated: datetime = Field(default_factory=utcnow)
    locked: bool = False
    hidden: bool = False
    selected: bool = False
    parent_id: str | None = None
    child_ids: tuple[str, ...] = ()
    level: int = 0


class Row(FrozenModel):
    id: str
    cells: dict[str, Cell] = Field(default_factory=dict)
    height: int | None = None
    metadata: RowMetadata = Field(default_factory=RowMetadata)


# =============================================================================
# Table
# =============================================================================


class TableMetadata(FrozenModel):
    title: str = "New Table"
    description: str | None = None
    created: datetime = Field(default_factory=utcnow)
    updated: datetime = Field(default_factory=utcnow)
    version: int = 1
    created_by: str | None = None
    tags: tuple[str, ...] = ()


class TableSettings(FrozenModel):
    # Display
    show_headers: bool = True
    show_footers: bool = False
    show_row_numbers: bool = True
    show_column_letters: bool = False
    show_grid_lines: bool = True
    show_hover_effects: bool = True
    show_selection_indicators: bool = True
    alternate_row_colors: bool = True

    # Behavior
    sortable: bool = True
    filterable: bool = True
    resizable: bool = True
    reorderable: bool = True
    selectable: Literal["none", "single", "multiple"] = "multiple"
    editable: bool = True

    # Sizes
    default_row_height: int = 32
    default_column_width: int = 120
    min_row_height: int = 24
    min_column_width: int = 50
    max_row_height: int = 200
    max_column_width: int = 500

    # Performance hints for renderers
    virtual_scrolling: bool = False
    lazy_loading: bool = False
    render_batch_size: int = 50
    scroll_throttle: int = 16
    update_debounce: int = 300


class SortSpec(FrozenModel):
    column_id: str
    direction: Literal["asc", "desc"] = "asc"
    priority: int = 0


class Table(FrozenModel):
    """A complete, immutable table snapshot."""

    id: str = Field(default_factory=new_table_id)
    columns: tuple[Column, ...]
    rows: tuple[Row, ...]
    metadata: TableMetadata = Field(default_factory=TableMetadata)
    settings: TableSettings = Field(default_factory=TableSettings)
    filters: dict[str, str] = Field(default_factory=dict)
    sorting: tuple[SortSpec, ...] = ()
    validation_errors: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    @property
    def version(self) -> int:
        return self.metadata.version

    def column_ids(self) -> list[str]:
        return [c.id for c in self.columns]

    def row_ids(self) -> list[str]:
        return [r.id for r in self.rows]

    def row_index(self, row_id: str) -> int | None:
        for i, row in enumerate(self.rows):
            if row.id == row_id:
                return i
        return None

    def column_index(self, column_id: str) -> int | None:
        for i, column in enumerate(self.columns):
            if column.id == column_id:
                return i
        return None

    def get_row(self, row_id: str) -> Row | None:
        index = self.row_index(row_id)
        return None if index is None else self.rows[index]

    def get_column(self, column_id: str) -> Column | None:
        index = self.column_index(column_id)
        return None if index is None else self.columns[index]

    def get_cell(self, cell_id: str) -> Cell | None:
        """Look up a cell by id.

        Returns None when the row or column no longer exists or the slot
        was merged away. A malformed id raises MalformedIdentifierError.
        """
        row_id, column_id = parse_cell_id(cell_id)
        row = self.get_row(row_id)
        return None if row is None else row.cells.get(column_id)

    def cell_at(self, row_index: int, column_index: int) -> Cell | None:
        if not (0 <= row_index < len(self.rows) and 0 <= column_index < len(self.columns)):
            return None
        return self.rows[row_index].cells.get(self.columns[column_index].id)

    def cell_position(self, cell_id: str) -> tuple[int, int] | None:
        """Zero-based (row, column) position of a cell id, or None."""
        row_id, column_id = parse_cell_id(cell_id)
        r = self.row_index(row_id)
        c = self.column_index(column_id)
        if r is None or c is None:
            return None
        return r, c

    def iter_cells(self) -> Iterator[tuple[Row, Column, Cell]]:
        """Yield every existing cell in row-major order."""
        for row in self.rows:
            for column in self.columns:
                cell = row.cells.get(column.id)
                if cell is not None:
                    yield row, column, cell

    def covering_cell(self, row_index: int, column_index: int) -> Cell | None:
        """The cell whose span covers a slot, including the slot's own cell."""
        for r in range(row_index, -1, -1):
            for c in range(column_index, -1, -1):
                cell = self.cell_at(r, c)
                if (
                    cell is not None
                    and r + cell.row_span > row_index
                    and c + cell.col_span > column_index
                ):
                    return cell
        return None


# =============================================================================
# Construction helpers
# =============================================================================


def empty_cell(row_id: str, column: Column, content: str = "") -> Cell:
    """A fresh cell for ``column`` in row ``row_id``."""
    return Cell(id=make_cell_id(row_id, column.id), content=content, type=column.type)


def new_column(index: int, **fields: Any) -> Column:
    """A column with default flags, named after its position."""
    settings = get_settings()
    fields.setdefault("id", new_column_id())
    fields.setdefault("name", default_column_name(index))
    fields.setdefault("width", settings.default_column_width)
    return Column(**fields)


def new_row(columns: Sequence[Column], row_id: str | None = None) -> Row:
    row_id = row_id or new_row_id()
    return Row(id=row_id, cells={c.id: empty_cell(row_id, c) for c in columns})


def create_table(
    rows: int = 5,
    columns: int = 4,
    *,
    title: str = "New Table",
    column_specs: Sequence[Mapping[str, Any]] | None = None,
) -> Table:
    """Create a fresh table.

    Args:
        rows: Number of empty rows (at least 1)
        columns: Number of columns when ``column_specs`` is not given
        title: Table title
        column_specs: Optional per-column fields (name, type, width, ...)

    Returns:
        A table at version 1 with one empty cell per (row, column)
    """
    settings = get_settings()
    specs = list(column_specs) if column_specs is not None else [{}] * columns
    if rows < 1 or not specs:
        raise ValueError("a table needs at least one row and one column")

    cols = tuple(new_column(i, **dict(spec)) for i, spec in enumerate(specs))
    return Table(
        columns=cols,
        rows=tuple(new_row(cols) for _ in range(rows)),
        metadata=TableMetadata(title=title),
        settings=TableSettings(
            default_column_width=settings.default_column_width,
            default_row_height=settings.default_row_height,
            min_column_width=settings.min_column_width,
            max_column_width=settings.max_column_width,
            min_row_height=settings.min_row_height,
            max_row_height=settings.max_row_height,
        ),
    )


def touch(table: Table, **updates: Any) -> Table:
    """Copy ``table`` with ``updates`` applied and the version bumped."""
    metadata = table.metadata.model_copy(
        update={"version": table.metadata.version + 1, "updated": utcnow()}
    )
    return table.model_copy(update={**updates, "metadata": metadata})


def touch_cell(cell: Cell, **updates: Any) -> Cell:
    """Copy ``cell`` with ``updates`` applied and its own timestamp refreshed."""
    meta_updates = {"updated": utcnow()}
    if "metadata" in updates:
        metadata = updates.pop("metadata")
    else:
        metadata = cell.metadata
    return cell.model_copy(
        update={**updates, "metadata": metadata.model_copy(update=meta_updates)}
    )
