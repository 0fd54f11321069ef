"""
Table templates.

A :class:`TableTemplate` describes how a new table starts out: default
dimensions with the bounds a caller may resize within, typed column
definitions, a style and overrides for the table settings. Templates are
plain models, so they load from and dump to JSON like any snapshot.

Usage:
    from extratable.templates import create_table_from_template, get_template

    table = create_table_from_template(get_template("basic-table"), rows=10)
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import Field, model_validator

from extratable.exceptions import TemplateNotFoundError
from extratable.models import (
    BorderStyle,
    CellBorders,
    CellStyle,
    Table,
    TableSettings,
    create_table,
    empty_cell,
)
from extratable.mutations import normalize_changes
from extratable.schema import (
    CellDataType,
    CellFormat,
    CellValidation,
    FormatType,
    FrozenModel,
    NumberFormat,
    RuleType,
    TextFormat,
    ValidationRule,
)
from extratable.utils import parse_number


class TemplateCategory(StrEnum):
    BUSINESS = "business"
    FINANCIAL = "financial"
    ACADEMIC = "academic"
    PERSONAL = "personal"
    PROJECT = "project"
    DATA = "data"
    REPORT = "report"
    FORM = "form"
    SCHEDULE = "schedule"
    INVENTORY = "inventory"
    CUSTOM = "custom"


class TemplateDimensions(FrozenModel):
    """Default size of a table built from a template, and its bounds."""

    rows: int = Field(ge=1)
    columns: int = Field(ge=1)
    min_rows: int = Field(1, ge=1)
    max_rows: int | None = None
    min_columns: int = Field(1, ge=1)
    max_columns: int | None = None

    @model_validator(mode="after")
    def check_bounds(self) -> TemplateDimensions:
        if not self.min_rows <= self.rows <= (self.max_rows or self.rows):
            raise ValueError(f"rows={self.rows} is outside [{self.min_rows}, {self.max_rows}]")
        if not self.min_columns <= self.columns <= (self.max_columns or self.columns):
            raise ValueError(
                f"columns={self.columns} is outside [{self.min_columns}, {self.max_columns}]"
            )
        return self

    def clamp(self, rows: int | None, columns: int | None) -> tuple[int, int]:
        """Requested size limited to the template's bounds."""
        r = self.rows if rows is None else max(self.min_rows, rows)
        c = self.columns if columns is None else max(self.min_columns, columns)
        if self.max_rows is not None:
            r = min(r, self.max_rows)
        if self.max_columns is not None:
            c = min(c, self.max_columns)
        return r, c


class TemplateColumn(FrozenModel):
    """Definition of one column in a template."""

    name: str
    type: CellDataType = CellDataType.TEXT
    width: int | None = None
    format: CellFormat | None = None
    validation: CellValidation | None = None
    style: CellStyle | None = None
    required: bool = False
    unique: bool = False
    auto_increment: bool = False
    default_value: str | None = None
    description: str | None = None

    def column_spec(self) -> dict[str, Any]:
        """Fields for :func:`~extratable.models.new_column`."""
        spec: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "format": self.format,
            "validation": self.validation,
            "unique": self.unique,
            "auto_increment": self.auto_increment,
            "default_value": self.default_value,
            "description": self.description,
        }
        if self.width is not None:
            spec["width"] = self.width
        if self.required:
            rules = self.validation.rules if self.validation is not None else ()
            if not any(r.type == RuleType.REQUIRED for r in rules):
                required = ValidationRule(type=RuleType.REQUIRED, message=f"{self.name} is required")
                base = self.validation or CellValidation()
                spec["validation"] = base.model_copy(update={"rules": (*rules, required)})
        return spec


class TemplateStyle(FrozenModel):
    """Styles a template applies.

    ``body`` is merged into every cell, under any column style. The other
    entries are hints for renderers.
    """

    table: CellStyle | None = None
    header: CellStyle | None = None
    body: CellStyle | None = None
    footer: CellStyle | None = None
    alternate_rows: CellStyle | None = None


class TableTemplate(FrozenModel):
    id: str
    name: str
    description: str = ""
    category: TemplateCategory = TemplateCategory.CUSTOM
    tags: tuple[str, ...] = ()
    dimensions: TemplateDimensions
    columns: tuple[TemplateColumn, ...] = ()
    style: TemplateStyle = Field(default_factory=TemplateStyle)
    settings: dict[str, Any] = Field(default_factory=dict)
    sample_rows: tuple[tuple[str, ...], ...] = ()


def _cell_style(template: TableTemplate, column: TemplateColumn | None) -> CellStyle | None:
    body = template.style.body
    own = column.style if column is not None else None
    if body is None:
        return own
    return body if own is None else body.merged(own)


def create_table_from_template(
    template: TableTemplate,
    rows: int | None = None,
    columns: int | None = None,
    *,
    title: str | None = None,
    sample_data: bool = True,
) -> Table:
    """Build a table from ``template``.

    Args:
        template: The template to instantiate
        rows: Requested row count, clamped to the template's bounds
        columns: Requested column count, clamped to the template's bounds
        title: Table title (default: the template's name)
        sample_data: Fill leading rows from ``template.sample_rows``

    Returns:
        A table at version 1. Template columns beyond ``columns`` are
        dropped; extra columns get default names. Cells without sample
        data take the column's auto-increment counter or default value.
    """
    n_rows, n_cols = template.dimensions.clamp(rows, columns)
    defs: list[TemplateColumn | None] = list(template.columns[:n_cols])
    defs.extend([None] * (n_cols - len(defs)))
    specs = [d.column_spec() if d is not None else {} for d in defs]

    table = create_table(n_rows, column_specs=specs, title=title or template.name)
    settings = table.settings.model_copy(
        update=normalize_changes(TableSettings, template.settings)
    )
    samples = template.sample_rows if sample_data else ()

    counters = [1] * n_cols
    new_rows = []
    for r, row in enumerate(table.rows):
        sample = samples[r] if r < len(samples) else None
        cells = {}
        for c, column in enumerate(table.columns):
            if sample is not None and c < len(sample):
                content = sample[c]
                number = parse_number(content) if column.auto_increment else None
                if number is not None:
                    counters[c] = max(counters[c], int(number) + 1)
            elif column.auto_increment:
                content = str(counters[c])
                counters[c] += 1
            else:
                content = column.default_value or ""
            cell = empty_cell(row.id, column, content)
            style = _cell_style(template, defs[c])
            if style is not None:
                cell = cell.model_copy(update={"style": style})
            cells[column.id] = cell
        new_rows.append(row.model_copy(update={"cells": cells}))

    metadata = table.metadata.model_copy(
        update={"description": template.description or None, "tags": template.tags}
    )
    logger.debug(f"Created {n_rows}x{n_cols} table from template {template.id}")
    return table.model_copy(
        update={"rows": tuple(new_rows), "settings": settings, "metadata": metadata}
    )


# =============================================================================
# Predefined templates
# =============================================================================

_GRAY_BORDER = "#D1D5DB"

BASIC_TABLE = TableTemplate(
    id="basic-table",
    name="Basic Table",
    description="A simple table for general data entry and display",
    category=TemplateCategory.BUSINESS,
    tags=("basic", "simple", "data"),
    dimensions=TemplateDimensions(
        rows=5, columns=4, min_rows=2, max_rows=1000, min_columns=2, max_columns=50
    ),
    columns=(
        TemplateColumn(
            name="ID",
            type=CellDataType.NUMBER,
            width=80,
            format=CellFormat(type=FormatType.NUMBER, number=NumberFormat(style="decimal")),
            validation=CellValidation(
                rules=(ValidationRule(type=RuleType.REQUIRED, message="ID is required"),)
            ),
            unique=True,
            auto_increment=True,
        ),
        TemplateColumn(
            name="Name",
            width=150,
            format=CellFormat(type=FormatType.TEXT, text=TextFormat(case="title")),
            validation=CellValidation(
                rules=(ValidationRule(type=RuleType.REQUIRED, message="Name is required"),)
            ),
            required=True,
        ),
        TemplateColumn(name="Category", width=120, format=CellFormat(type=FormatType.TEXT)),
        TemplateColumn(name="Status", width=100, format=CellFormat(type=FormatType.TEXT)),
    ),
    style=TemplateStyle(
        table=CellStyle(background_color="#FFFFFF"),
        header=CellStyle(
            background_color="#F9FAFB",
            font_weight="bold",
            borders=CellBorders(bottom=BorderStyle(width=2, color=_GRAY_BORDER)),
        ),
        body=CellStyle(background_color="#FFFFFF"),
        alternate_rows=CellStyle(background_color="#F9FAFB"),
    ),
    settings={
        "show_headers": True,
        "show_row_numbers": True,
        "alternate_row_colors": True,
        "sortable": True,
        "filterable": True,
        "resizable": True,
        "selectable": "multiple",
    },
    sample_rows=(
        ("1", "Sample Item 1", "Category A", "Active"),
        ("2", "Sample Item 2", "Category B", "Inactive"),
        ("3", "Sample Item 3", "Category A", "Pending"),
    ),
)

PREDEFINED_TEMPLATES: dict[str, TableTemplate] = {BASIC_TABLE.id: BASIC_TABLE}


def get_template(template_id: str) -> TableTemplate:
    """Look up a predefined template by id.

    Raises:
        TemplateNotFoundError: If no template has that id
    """
    try:
        return PREDEFINED_TEMPLATES[template_id]
    except KeyError:
        raise TemplateNotFoundError(template_id, sorted(PREDEFINED_TEMPLATES)) from None


def list_templates(category: TemplateCategory | str | None = None) -> list[TableTemplate]:
    """Predefined templates, optionally limited to one category."""
    templates = list(PREDEFINED_TEMPLATES.values())
    if category is None:
        return templates
    return [t for t in templates if t.category == category]
