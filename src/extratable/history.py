"""Bounded undo/redo stacks of operation records."""

from __future__ import annotations

from collections import deque

from loguru import logger

from extratable.exceptions import HistoryError
from extratable.operations import OperationRecord, OperationStatus


class OperationHistory:
    """Undo and redo stacks.

    The undo stack holds at most ``limit`` records; pushing past the limit
    silently drops the oldest. Any new forward record clears the redo
    stack.
    """

    def __init__(self, limit: int = 50) -> None:
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self.limit = limit
        self._undo: deque[OperationRecord] = deque(maxlen=limit)
        self._redo: list[OperationRecord] = []

    def __len__(self) -> int:
        return len(self._undo)

    @property
    def undo_stack(self) -> tuple[OperationRecord, ...]:
        """Oldest first."""
        return tuple(self._undo)

    @property
    def redo_stack(self) -> tuple[OperationRecord, ...]:
        """Next to redo last."""
        return tuple(self._redo)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def push(self, record: OperationRecord) -> None:
        """Record a completed forward operation."""
        if record.status != OperationStatus.COMPLETED:
            raise HistoryError(f"Only completed operations can be recorded, got {record.status}")
        if len(self._undo) == self.limit:
            logger.debug(f"Undo history full, dropping {self._undo[0].id}")
        self._undo.append(record)
        self._redo.clear()

    def peek_undo(self) -> OperationRecord | None:
        return self._undo[-1] if self._undo else None

    def peek_redo(self) -> OperationRecord | None:
        return self._redo[-1] if self._redo else None

    def mark_undone(self) -> OperationRecord:
        """Move the newest undo record onto the redo stack."""
        if not self._undo:
            raise HistoryError("Nothing to undo")
        record = self._undo.pop()
        self._redo.append(record)
        return record

    def mark_redone(self, record: OperationRecord) -> None:
        """Replace the newest redo record with its re-executed version on the undo stack."""
        if not self._redo:
            raise HistoryError("Nothing to redo")
        self._redo.pop()
        self._undo.append(record)

    def clear_redo(self) -> None:
        """Drop the redo stack without recording anything."""
        self._redo.clear()

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
