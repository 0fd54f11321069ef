"""
Display formatting of raw cell values.

Numbers, currencies and percentages are rendered with Babel's CLDR
patterns for the requested locale; dates are parsed with python-dateutil
and rendered with Babel's date styles. A value that cannot be parsed for
its format is shown as its raw content.
"""

from __future__ import annotations

import copy
import re
from datetime import datetime
from decimal import Decimal

from babel import Locale
from babel.dates import format_date, format_datetime, format_time, get_timezone
from dateutil import parser as date_parser
from loguru import logger

from extratable.config import get_settings
from extratable.models import Cell
from extratable.schema import (
    BooleanFormat,
    CellFormat,
    DateFormat,
    FormatType,
    NumberFormat,
    TextFormat,
    TruncateOptions,
)
from extratable.utils import parse_number

__all__ = [
    "BooleanFormat",
    "CellFormat",
    "DateFormat",
    "NumberFormat",
    "TextFormat",
    "TruncateOptions",
    "format_cell_value",
    "format_value",
    "truncate",
]

_TRUE_VALUES = {"true", "1", "yes", "y", "on"}
_FALSE_VALUES = {"false", "0", "no", "n", "off"}


def _locale(fmt: CellFormat) -> Locale:
    tag = fmt.locale or get_settings().default_locale
    return Locale.parse(tag.replace("-", "_"))


# =============================================================================
# Numbers
# =============================================================================


def _format_number(value: Decimal, kind: FormatType, fmt: CellFormat) -> str:
    options = fmt.number or NumberFormat()
    style = options.style or {
        FormatType.CURRENCY: "currency",
        FormatType.PERCENTAGE: "percent",
    }.get(kind, "decimal")
    loc = _locale(fmt)

    if style == "currency":
        pattern = loc.currency_formats["standard"]
    elif style == "percent":
        pattern = loc.percent_formats[None]
        value = value / 100
    else:
        pattern = loc.decimal_formats[None]

    explicit = (
        options.minimum_fraction_digits is not None
        or options.maximum_fraction_digits is not None
    )
    if explicit:
        low, high = pattern.frac_prec
        if style == "currency":
            low = high = 2
        if options.minimum_fraction_digits is not None:
            low = options.minimum_fraction_digits
            high = max(high, low)
        if options.maximum_fraction_digits is not None:
            high = options.maximum_fraction_digits
            low = min(low, high)
        pattern = copy.copy(pattern)
        pattern.frac_prec = (low, high)

    return pattern.apply(
        value,
        loc,
        currency=options.currency if style == "currency" else None,
        currency_digits=not explicit,
        group_separator=options.use_grouping,
    )


# =============================================================================
# Dates
# =============================================================================


def _format_date(content: str, kind: FormatType, fmt: CellFormat) -> str:
    moment: datetime = date_parser.parse(content)
    options = fmt.date or DateFormat()
    loc = _locale(fmt)
    date_style = options.date_style or "medium"
    time_style = options.time_style or "medium"
    tz = get_timezone(options.timezone) if options.timezone else None

    if kind == FormatType.TIME:
        return format_time(moment, format=time_style, tzinfo=tz, locale=loc)
    if kind == FormatType.DATETIME:
        if options.time_style is None or time_style == date_style:
            return format_datetime(moment, format=date_style, tzinfo=tz, locale=loc)
        return " ".join(
            [
                format_date(moment, format=date_style, locale=loc),
                format_time(moment, format=time_style, tzinfo=tz, locale=loc),
            ]
        )
    return format_date(moment, format=date_style, locale=loc)


# =============================================================================
# Text
# =============================================================================


def _words(text: str) -> list[str]:
    return re.findall(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+", text)


def _apply_case(text: str, case: str) -> str:
    match case:
        case "upper":
            return text.upper()
        case "lower":
            return text.lower()
        case "title":
            return re.sub(r"\w\S*", lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)
        case "sentence":
            return text[:1].upper() + text[1:].lower()
        case "camel":
            words = _words(text)
            return "".join(
                w.lower() if i == 0 else w.capitalize() for i, w in enumerate(words)
            )
        case "pascal":
            return "".join(w.capitalize() for w in _words(text))
        case "snake":
            return "_".join(w.lower() for w in _words(text))
        case "kebab":
            return "-".join(w.lower() for w in _words(text))
    return text


def truncate(text: str, options: TruncateOptions) -> str:
    """Shorten ``text`` so the result, omission included, fits the length.

    Examples:
        ("Hello world", length=8) -> "Hello..."
        ("Hello world", length=8, position="middle") -> "Hel...ld"
    """
    limit = options.length
    if len(text) <= limit:
        return text
    omission = options.omission
    if len(omission) >= limit:
        return text[:limit]
    keep = limit - len(omission)
    if options.position == "start":
        return omission + text[len(text) - keep :]
    if options.position == "middle":
        head = (keep + 1) // 2
        tail = keep - head
        return text[:head] + omission + (text[len(text) - tail :] if tail else "")
    return text[:keep] + omission


def _format_text(content: str, options: TextFormat) -> str:
    result = content.strip() if options.trim else content
    if options.case:
        result = _apply_case(result, options.case)
    result = f"{options.prefix}{result}{options.suffix}"
    if options.padding:
        result = result.ljust(options.padding)
    if options.truncate is not None:
        result = truncate(result, options.truncate)
    return result


# =============================================================================
# Booleans and colors
# =============================================================================


def _format_boolean(content: str, options: BooleanFormat) -> str:
    lowered = content.strip().lower()
    if not lowered:
        return options.null_text
    if lowered in _TRUE_VALUES:
        return options.true_text
    if lowered in _FALSE_VALUES:
        return options.false_text
    return content


_HEX = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_RGB = re.compile(r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*[\d.]+\s*)?\)$")


def _format_color(content: str, output: str) -> str:
    text = content.strip()
    if m := _HEX.match(text):
        digits = m.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        rgb = tuple(int(digits[i : i + 2], 16) for i in (0, 2, 4))
    elif m := _RGB.match(text):
        rgb = tuple(int(g) for g in m.groups())
        if any(v > 255 for v in rgb):
            return content
    else:
        return content
    if output == "rgb":
        return "rgb({}, {}, {})".format(*rgb)
    return "#{:02x}{:02x}{:02x}".format(*rgb)


# =============================================================================
# Entry points
# =============================================================================


def format_value(content: str, fmt: CellFormat | None) -> str:
    """Render raw content for display according to ``fmt``.

    Never raises: content that does not parse for the requested format is
    returned unchanged.
    """
    content = content or ""
    if fmt is None:
        return content
    if not content and fmt.type != FormatType.BOOLEAN:
        return ""

    try:
        match fmt.type:
            case FormatType.NUMBER | FormatType.CURRENCY | FormatType.PERCENTAGE:
                value = parse_number(content)
                return content if value is None else _format_number(value, fmt.type, fmt)
            case FormatType.DATE | FormatType.TIME | FormatType.DATETIME:
                return _format_date(content, fmt.type, fmt)
            case FormatType.BOOLEAN:
                return _format_boolean(content, fmt.boolean or BooleanFormat())
            case FormatType.TEXT:
                return _format_text(content, fmt.text) if fmt.text else content
            case FormatType.COLOR:
                return _format_color(content, fmt.color_format)
    except Exception as e:
        logger.debug(f"Falling back to raw content for {fmt.type} format: {e}")
    return content


def format_cell_value(cell: Cell, fmt: CellFormat | None = None) -> str:
    """Display string for a cell, using ``fmt`` (usually its column's format)."""
    return format_value(cell.content, fmt)
