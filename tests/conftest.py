"""Shared fixtures for extratable tests."""

from __future__ import annotations

import os

import pytest
from loguru import logger

from extratable.config import get_settings
from extratable.controller import TableController
from extratable.models import Table, create_table
from extratable.mutations import paste_values


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch: pytest.MonkeyPatch):
    """Isolate every test from EXTRATABLE_* variables in the environment."""
    for key in list(os.environ):
        if key.startswith("EXTRATABLE_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def quiet_logger():
    """Undo any logging configuration a test or CLI run installed."""
    yield
    logger.remove()
    logger.disable("extratable")


@pytest.fixture
def table() -> Table:
    """A 3x3 table with contents 'r{row}c{col}'."""
    t = create_table(rows=3, columns=3, title="Grid")
    values = [[f"r{r}c{c}" for c in range(3)] for r in range(3)]
    return paste_values(t, t.cell_at(0, 0).id, values)


@pytest.fixture
def controller(table: Table) -> TableController:
    return TableController(table)
