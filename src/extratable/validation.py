"""
Rule-based cell validation.

Rules come from the column first, then from the cell, and are evaluated
in declaration order. Every rule is evaluated even after a failure, so a
cell can collect several issues. A rule that raises while being evaluated
is reported as an error issue instead of propagating.

Validation never raises for bad content; callers decide from the
:class:`ValidationResult` whether to block a commit.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Collection
from typing import Any
from urllib.parse import urlparse

from dateutil import parser as date_parser
from email_validator import EmailNotValidError, validate_email
from loguru import logger

from extratable.models import Cell, Column, Table, touch
from extratable.schema import (
    CellValidation,
    FrozenModel,
    RuleCheck,
    RuleType,
    Severity,
    ValidationRule,
)

__all__ = [
    "CellValidation",
    "ValidationIssue",
    "ValidationResult",
    "ValidationRule",
    "register_validator",
    "validate_cell",
    "validate_table",
    "with_validation_errors",
]

_VALIDATORS: dict[str, RuleCheck] = {}


class ValidationIssue(FrozenModel):
    rule: RuleType
    message: str
    severity: Severity
    field: str | None = None
    value: str = ""


class ValidationResult(FrozenModel):
    """Outcome of validating one cell. Only errors affect ``is_valid``."""

    is_valid: bool = True
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    infos: tuple[ValidationIssue, ...] = ()

    @property
    def issues(self) -> tuple[ValidationIssue, ...]:
        return self.errors + self.warnings + self.infos


def register_validator(name: str, check: RuleCheck | None = None) -> Any:
    """Register a named check for ``custom`` rules.

    A check receives ``(content, cell)`` and returns True when the value
    is acceptable, False to report the rule's message, or a string to
    report that string instead. Usable as a decorator::

        @register_validator("even")
        def even(content, cell):
            return int(content) % 2 == 0
    """

    def decorator(fn: RuleCheck) -> RuleCheck:
        _VALIDATORS[name] = fn
        return fn

    if check is not None:
        return decorator(check)
    return decorator


def _to_float(content: str) -> float | None:
    try:
        return float(content.replace(",", "").strip())
    except ValueError:
        return None


def _out_of_bounds(value: float, params: dict[str, Any]) -> bool:
    low, high = params.get("min"), params.get("max")
    return (low is not None and value < low) or (high is not None and value > high)


def _check_email(content: str) -> bool:
    try:
        validate_email(content, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _check_url(content: str) -> bool:
    parsed = urlparse(content.strip())
    return bool(parsed.scheme and parsed.netloc)


def _check_date(content: str) -> bool:
    try:
        date_parser.parse(content)
    except (ValueError, OverflowError):
        return False
    return True


def _pattern_flags(spec: str) -> int:
    flags = 0
    for ch in spec:
        flags |= {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}.get(ch, 0)
    return flags


def _failure(
    rule: ValidationRule, content: str, cell: Cell, peers: Collection[str] | None
) -> str | None:
    """Message for a failed rule, or None when the rule passes."""
    params = rule.params
    if rule.type == RuleType.REQUIRED:
        return rule.message if not content.strip() else None
    if not content.strip():
        return None

    match rule.type:
        case RuleType.EMAIL:
            ok = _check_email(content)
        case RuleType.URL:
            ok = _check_url(content)
        case RuleType.PATTERN:
            pattern = re.compile(params["pattern"], _pattern_flags(params.get("flags", "")))
            ok = pattern.search(content) is not None
        case RuleType.RANGE:
            value = _to_float(content)
            ok = value is None or not _out_of_bounds(value, params)
        case RuleType.LENGTH:
            ok = not _out_of_bounds(len(content), params)
        case RuleType.NUMBER:
            ok = _to_float(content) is not None
        case RuleType.DATE:
            ok = _check_date(content)
        case RuleType.UNIQUE:
            ok = peers is None or content not in peers
        case RuleType.CUSTOM:
            check = rule.check or _VALIDATORS[params["validator"]]
            outcome = check(content, cell)
            if isinstance(outcome, str):
                return outcome
            ok = outcome is not False
        case _:
            ok = True
    return None if ok else rule.message


def validate_cell(
    cell: Cell,
    column: Column | None = None,
    *,
    peers: Collection[str] | None = None,
) -> ValidationResult:
    """Evaluate every applicable rule for ``cell``.

    Args:
        cell: The cell to check
        column: Its column; column rules run before the cell's own rules
        peers: Contents of the other cells in the column, for unique rules

    Returns:
        A ValidationResult; ``is_valid`` is False iff there are errors
    """
    rules: list[ValidationRule] = []
    if column is not None and column.validation is not None:
        rules.extend(column.validation.rules)
    if cell.validation is not None:
        rules.extend(cell.validation.rules)
    if cell.metadata.required and not any(r.type == RuleType.REQUIRED for r in rules):
        rules.append(ValidationRule(type=RuleType.REQUIRED, message="This field is required"))

    content = cell.content or ""
    field = column.name if column is not None else None
    buckets: dict[Severity, list[ValidationIssue]] = {s: [] for s in Severity}

    for rule in rules:
        severity = rule.severity
        try:
            if rule.condition is not None and not rule.condition(content, cell):
                continue
            message = _failure(rule, content, cell, peers)
        except Exception as e:
            logger.warning(f"Validation rule {rule.type} failed on {cell.id}: {e}")
            message = f"Validation error: {e}"
            severity = Severity.ERROR
        if message is not None:
            buckets[severity].append(
                ValidationIssue(
                    rule=rule.type,
                    message=message,
                    severity=severity,
                    field=field,
                    value=content,
                )
            )

    return ValidationResult(
        is_valid=not buckets[Severity.ERROR],
        errors=tuple(buckets[Severity.ERROR]),
        warnings=tuple(buckets[Severity.WARNING]),
        infos=tuple(buckets[Severity.INFO]),
    )


def validate_table(table: Table) -> dict[str, ValidationResult]:
    """Validate every cell; returns results only for cells with issues.

    Columns flagged ``unique`` additionally report duplicate non-empty
    values as errors.
    """
    results: dict[str, ValidationResult] = {}
    for column in table.columns:
        contents = [
            row.cells[column.id].content for row in table.rows if column.id in row.cells
        ]
        counts = Counter(c for c in contents if c.strip())
        for row in table.rows:
            cell = row.cells.get(column.id)
            if cell is None:
                continue
            peers = Counter(counts)
            peers[cell.content] -= 1
            result = validate_cell(cell, column, peers=+peers)
            if column.unique and counts[cell.content] > 1 and cell.content.strip():
                duplicate = ValidationIssue(
                    rule=RuleType.UNIQUE,
                    message=f"Value must be unique in column '{column.name}'",
                    severity=Severity.ERROR,
                    field=column.name,
                    value=cell.content,
                )
                result = result.model_copy(
                    update={"is_valid": False, "errors": result.errors + (duplicate,)}
                )
            if result.issues:
                results[cell.id] = result
    return results


def with_validation_errors(table: Table) -> Table:
    """Copy of ``table`` whose ``validation_errors`` index the current errors."""
    index = {
        cell_id: tuple(issue.message for issue in result.errors)
        for cell_id, result in validate_table(table).items()
        if result.errors
    }
    if index == table.validation_errors:
        return table
    return touch(table, validation_errors=index)

