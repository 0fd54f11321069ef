"""
Identifier helpers for extratable.

Rows, columns, tables and operations get collision-resistant ids built from
a millisecond timestamp and a random suffix. Cell ids are derived from the
owning row and column so they can always be parsed back.
"""

from __future__ import annotations

import secrets
import time

from extratable.exceptions import MalformedIdentifierError

CELL_PREFIX = "cell"
SEPARATOR = "-"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    """Encode a non-negative integer in base 36.

    Examples:
        0 -> 0, 35 -> z, 36 -> 10
    """
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _new_id(prefix: str) -> str:
    stamp = _to_base36(time.time_ns() // 1_000_000)
    return f"{prefix}_{stamp}_{secrets.token_hex(4)}"


def new_row_id() -> str:
    """Generate a fresh row id, e.g. ``row_lxk2a9c1_3f9a02bc``."""
    return _new_id("row")


def new_column_id() -> str:
    """Generate a fresh column id, e.g. ``col_lxk2a9c1_77e1d0aa``."""
    return _new_id("col")


def new_table_id() -> str:
    return _new_id("table")


def new_operation_id() -> str:
    return _new_id("op")


def _check_component(value: str, what: str) -> None:
    if not value:
        raise MalformedIdentifierError(value, f"{what} id is empty")
    if SEPARATOR in value:
        raise MalformedIdentifierError(
            value, f"{what} id must not contain '{SEPARATOR}'"
        )


def make_cell_id(row_id: str, column_id: str) -> str:
    """Build the id of the cell at (row_id, column_id).

    Examples:
        ("row_1", "col_a") -> cell-row_1-col_a

    Raises:
        MalformedIdentifierError: If either component is empty or contains
            the separator, which would make the id ambiguous.
    """
    _check_component(row_id, "row")
    _check_component(column_id, "column")
    return f"{CELL_PREFIX}{SEPARATOR}{row_id}{SEPARATOR}{column_id}"


def parse_cell_id(cell_id: str) -> tuple[str, str]:
    """Split a cell id into its (row_id, column_id) pair.

    Examples:
        cell-row_1-col_a -> ("row_1", "col_a")

    Raises:
        MalformedIdentifierError: If the id is not ``cell-<row>-<column>``.
    """
    if not isinstance(cell_id, str):
        raise MalformedIdentifierError(repr(cell_id), "cell id must be a string")
    parts = cell_id.split(SEPARATOR)
    if len(parts) != 3 or parts[0] != CELL_PREFIX:
        raise MalformedIdentifierError(
            cell_id, f"expected '{CELL_PREFIX}{SEPARATOR}<row>{SEPARATOR}<column>'"
        )
    _, row_id, column_id = parts
    if not row_id or not column_id:
        raise MalformedIdentifierError(cell_id, "row or column part is empty")
    return row_id, column_id


def is_cell_id(value: str) -> bool:
    """Check whether a string parses as a cell id."""
    parts = value.split(SEPARATOR) if isinstance(value, str) else []
    return len(parts) == 3 and parts[0] == CELL_PREFIX and all(parts[1:])
