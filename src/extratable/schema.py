"""Shared model base and descriptor types for extratable.

Everything in a table snapshot is an immutable pydantic model. The JSON
form uses camelCase keys (``showHeaders``, ``columnId``) while Python code
uses snake_case attributes; both spellings are accepted on input.

This module holds the leaf descriptor types (formats and validation rules)
that columns and cells refer to, so that the formatter and validator can
depend on the data model without import cycles.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FrozenModel(BaseModel):
    """Base class for every snapshot type."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
    )


class CellDataType(StrEnum):
    """Declared value type of a column or cell."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    FORMULA = "formula"
    IMAGE = "image"
    LINK = "link"
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    EMAIL = "email"
    PHONE = "phone"
    COLOR = "color"
    RICH_TEXT = "rich-text"


NUMERIC_TYPES = frozenset(
    {CellDataType.NUMBER, CellDataType.CURRENCY, CellDataType.PERCENTAGE}
)


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# =============================================================================
# Format descriptors
# =============================================================================


class FormatType(StrEnum):
    TEXT = "text"
    NUMBER = "number"
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    COLOR = "color"
    CUSTOM = "custom"


class NumberFormat(FrozenModel):
    """Numeric rendering options.

    ``style`` overrides the format type when set, so a column declared as
    ``number`` can still render as currency.
    """

    style: Literal["decimal", "currency", "percent"] | None = None
    currency: str = "USD"
    use_grouping: bool = True
    minimum_fraction_digits: int | None = Field(None, ge=0, le=20)
    maximum_fraction_digits: int | None = Field(None, ge=0, le=20)


DateStyle = Literal["full", "long", "medium", "short"]


class DateFormat(FrozenModel):
    date_style: DateStyle | None = None
    time_style: DateStyle | None = None
    timezone: str | None = None


class TruncateOptions(FrozenModel):
    length: int = Field(ge=0)
    omission: str = "..."
    position: Literal["start", "middle", "end"] = "end"


TextCase = Literal[
    "upper", "lower", "title", "sentence", "camel", "pascal", "snake", "kebab"
]


class TextFormat(FrozenModel):
    case: TextCase | None = None
    trim: bool = False
    prefix: str = ""
    suffix: str = ""
    padding: int = Field(0, ge=0)
    truncate: TruncateOptions | None = None


class BooleanFormat(FrozenModel):
    true_text: str = "Yes"
    false_text: str = "No"
    null_text: str = ""


class CellFormat(FrozenModel):
    """How a raw cell value is rendered for display."""

    type: FormatType = FormatType.TEXT
    locale: str | None = None
    number: NumberFormat | None = None
    date: DateFormat | None = None
    text: TextFormat | None = None
    boolean: BooleanFormat | None = None
    color_format: Literal["hex", "rgb"] = "hex"


# =============================================================================
# Validation descriptors
# =============================================================================


class RuleType(StrEnum):
    REQUIRED = "required"
    EMAIL = "email"
    URL = "url"
    PATTERN = "pattern"
    RANGE = "range"
    LENGTH = "length"
    NUMBER = "number"
    DATE = "date"
    UNIQUE = "unique"
    CUSTOM = "custom"


RuleCondition = Callable[[str, Any], bool]
RuleCheck = Callable[[str, Any], Any]


class ValidationRule(FrozenModel):
    """One declarative validation rule.

    ``params`` carries the rule-specific settings: ``min``/``max`` for
    range and length, ``pattern`` (and optional ``flags``) for pattern,
    ``validator`` (a registered name) for custom rules.

    ``condition`` decides whether the rule applies to a given cell and
    ``check`` is the predicate of a custom rule. Both receive
    ``(content, cell)``; neither is serialized.
    """

    type: RuleType
    message: str
    severity: Severity = Severity.ERROR
    params: dict[str, Any] = Field(default_factory=dict)
    condition: RuleCondition | None = Field(None, exclude=True)
    check: RuleCheck | None = Field(None, exclude=True)


class CellValidation(FrozenModel):
    rules: tuple[ValidationRule, ...] = ()
    validate_on_change: bool = True
    validate_on_blur: bool = True
    show_errors: bool = True
    show_warnings: bool = True
