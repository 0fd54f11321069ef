"""Custom exceptions for the extratable engine."""

from __future__ import annotations


class TableError(Exception):
    """Base exception for table engine errors."""

    pass


class StructuralInvariantError(TableError):
    """Raised when an edit would leave the table in an invalid shape.

    The edit is rejected and the snapshot it was applied to is left as-is.
    Callers decide how to surface the message to the user.
    """

    pass


class CannotDeleteLastRowError(StructuralInvariantError):
    """Raised when deleting the only remaining row of a table."""

    def __init__(self, row_id: str) -> None:
        self.row_id = row_id
        super().__init__(
            f"Cannot delete row '{row_id}': a table must keep at least one row."
        )


class CannotDeleteLastColumnError(StructuralInvariantError):
    """Raised when deleting the only remaining column of a table."""

    def __init__(self, column_id: str) -> None:
        self.column_id = column_id
        super().__init__(
            f"Cannot delete column '{column_id}': a table must keep at least one column."
        )


class MalformedIdentifierError(TableError, ValueError):
    """Raised when an identifier does not have the expected shape.

    Cell ids must parse to exactly one (row id, column id) pair; row and
    column ids must not contain the cell id separator.
    """

    def __init__(self, identifier: str, reason: str) -> None:
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Malformed identifier '{identifier}': {reason}")


class TableImportError(TableError):
    """Raised when CSV or JSON input cannot be turned into a table."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Cannot import table from {source}: {reason}")


class HistoryError(TableError):
    """Raised when an operation record cannot be executed or reverted."""

    pass


class TemplateNotFoundError(TableError, KeyError):
    """Raised when no registered template has the requested id."""

    def __init__(self, template_id: str, known: list[str]) -> None:
        self.template_id = template_id
        self.known = known
        super().__init__(
            f"Unknown template '{template_id}'. Available: {', '.join(known) or 'none'}"
        )

    def __str__(self) -> str:
        return str(self.args[0])
