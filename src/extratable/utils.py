"""
Small string helpers shared across extratable.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def column_letter(index: int) -> str:
    """Convert a zero-based column position to spreadsheet letters.

    Examples:
        0 -> A, 25 -> Z, 26 -> AA, 701 -> ZZ, 702 -> AAA
    """
    if index < 0:
        raise ValueError(f"column index must be non-negative, got {index}")
    letters = ""
    while index >= 0:
        index, rem = divmod(index, 26)
        letters = chr(ord("A") + rem) + letters
        index -= 1
    return letters


def default_column_name(index: int) -> str:
    """Display name given to the column created at ``index``."""
    return f"Column {column_letter(index)}"


def safe_filename(name: str, default: str = "table") -> str:
    """Turn a table title into something usable as a file name.

    Path separators and other reserved characters become underscores.
    """
    cleaned = re.sub(r'[/\\:*?"<>|\s]+', "_", name).strip("._")
    return cleaned or default


_TSV_ESCAPES = {"\\": "\\\\", "\t": "\\t", "\n": "\\n", "\r": "\\r"}
_TSV_UNESCAPES = {v[1]: k for k, v in _TSV_ESCAPES.items()}


def escape_tsv_field(value: str) -> str:
    """Escape backslashes, tabs and line breaks so a value fits one TSV field."""
    return "".join(_TSV_ESCAPES.get(ch, ch) for ch in value)


def unescape_tsv_field(value: str) -> str:
    """Reverse :func:`escape_tsv_field`. Unknown escapes are kept verbatim."""
    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, None)
        if nxt is None:
            out.append(ch)
        elif nxt in _TSV_UNESCAPES:
            out.append(_TSV_UNESCAPES[nxt])
        else:
            out.append(ch + nxt)
    return "".join(out)


def parse_number(content: str) -> Decimal | None:
    """Parse a number typed the way people type them, or return None.

    Grouping commas, whitespace, a leading currency symbol and a trailing
    percent sign are ignored.

    Examples:
        "1,234.50" -> Decimal("1234.50"), "$12" -> Decimal("12"), "abc" -> None
    """
    cleaned = re.sub(r"[,\s%$€£¥₹]", "", content or "")
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None
