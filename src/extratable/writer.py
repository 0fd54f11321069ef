"""
File writer utilities for extratable.

Handles writing table exports to disk.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from extratable.models import Table
from extratable.serialization import export_table
from extratable.utils import safe_filename

EXTENSIONS = {
    "csv": ".csv",
    "json": ".json",
    "html": ".html",
    "markdown": ".md",
}


class FileWriter:
    """Writes table exports to disk."""

    def __init__(self, base_path: str | Path) -> None:
        """Initialize the writer with a base output path.

        Args:
            base_path: Directory to write files to
        """
        self.base_path = Path(base_path)

    def write_text(self, rel_path: str, content: str) -> Path:
        """Write a text file.

        Args:
            rel_path: Relative path within base_path
            content: File content

        Returns:
            Path to written file
        """
        full_path = self.base_path / rel_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote {len(content)} characters to {full_path}")
        return full_path

    def write_export(self, table: Table, fmt: str, name: str | None = None) -> Path:
        """Export a table and write it under ``base_path``.

        The file is named after ``name`` or the table title, with the
        extension of the export format.

        Raises:
            ValueError: If the format is not supported
        """
        content = export_table(table, fmt)
        stem = safe_filename(name or table.metadata.title)
        return self.write_text(stem + EXTENSIONS[fmt.lower()], content)
