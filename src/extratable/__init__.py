"""extratable - Table data engine for spreadsheet-style editors.

Immutable table snapshots with reversible operations, selection,
validation, value formatting and CSV/JSON/HTML/Markdown exchange.
"""

__version__ = "0.1.0"

from loguru import logger

from extratable.controller import MemoryClipboard, TableController
from extratable.exceptions import (
    CannotDeleteLastColumnError,
    CannotDeleteLastRowError,
    HistoryError,
    MalformedIdentifierError,
    StructuralInvariantError,
    TableError,
    TableImportError,
    TemplateNotFoundError,
)
from extratable.ids import make_cell_id, parse_cell_id
from extratable.models import Cell, Column, Row, Table, create_table
from extratable.templates import TableTemplate, create_table_from_template, get_template
from extratable.writer import FileWriter

logger.disable("extratable")

__all__ = [
    "CannotDeleteLastColumnError",
    "CannotDeleteLastRowError",
    "Cell",
    "Column",
    "FileWriter",
    "HistoryError",
    "MalformedIdentifierError",
    "MemoryClipboard",
    "Row",
    "StructuralInvariantError",
    "Table",
    "TableController",
    "TableError",
    "TableImportError",
    "TableTemplate",
    "TemplateNotFoundError",
    "__version__",
    "create_table",
    "create_table_from_template",
    "get_template",
    "make_cell_id",
    "parse_cell_id",
]
