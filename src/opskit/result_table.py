"""Flat row/column tables built from Kusto REST responses.

Shaping steps for ad hoc exploration:
- remove_empty_columns: drop columns with no value in any row
- dedupe_column_names: rename repeated column names with a numeric suffix

Output helpers render a rich table or write CSV/JSON.
"""

import csv
import json
from dataclasses import dataclass, field
from typing import IO, Any

from rich.table import Table


class ResultTableError(Exception):
    """Raised when a REST payload cannot be turned into a table."""

    pass


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


@dataclass
class ResultTable:
    """A named table of columns and rows."""

    columns: list[str]
    rows: list[list[Any]] = field(default_factory=list)
    column_types: list[str] = field(default_factory=list)
    name: str = "PrimaryResult"

    def __len__(self) -> int:
        return len(self.rows)

    @classmethod
    def from_v1(cls, payload: dict[str, Any], index: int = 0) -> "ResultTable":
        """Build from a v1 (management) response: ``{"Tables": [...]}``."""
        try:
            table = payload["Tables"][index]
            columns = [c["ColumnName"] for c in table["Columns"]]
            types = [c.get("ColumnType") or c.get("DataType", "") for c in table["Columns"]]
            return cls(
                columns=columns,
                rows=[list(row) for row in table["Rows"]],
                column_types=types,
                name=table.get("TableName", f"Table_{index}"),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise ResultTableError(f"Unexpected v1 response shape: {e}") from e

    @classmethod
    def from_v2(cls, frames: list[dict[str, Any]]) -> "ResultTable":
        """Build from a v2 (query) response: a list of frames.

        The ``PrimaryResult`` data table is used.
        """
        for frame in frames:
            if frame.get("FrameType") == "DataTable" and frame.get("TableKind") == "PrimaryResult":
                try:
                    return cls(
                        columns=[c["ColumnName"] for c in frame["Columns"]],
                        rows=[list(row) for row in frame["Rows"] if isinstance(row, list)],
                        column_types=[c.get("ColumnType", "") for c in frame["Columns"]],
                        name=frame.get("TableName", "PrimaryResult"),
                    )
                except (KeyError, TypeError) as e:
                    raise ResultTableError(f"Unexpected v2 frame shape: {e}") from e
        raise ResultTableError("No PrimaryResult table in response")

    def to_records(self) -> list[dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_rich(self, title: str | None = None) -> Table:
        table = Table(title=title, show_header=True, header_style="bold")
        for column in self.columns:
            table.add_column(column)
        for row in self.rows:
            table.add_row(*["" if value is None else str(value) for value in row])
        return table

    def write_csv(self, stream: IO[str]) -> None:
        writer = csv.writer(stream)
        writer.writerow(self.columns)
        for row in self.rows:
            writer.writerow(["" if value is None else value for value in row])

    def write_json(self, stream: IO[str]) -> None:
        json.dump(self.to_records(), stream, indent=2, default=str)
        stream.write("\n")


def remove_empty_columns(table: ResultTable) -> ResultTable:
    """Return a table without columns that are empty in every row.

    With zero rows every column is empty, so all are removed.
    """
    keep = [
        index
        for index in range(len(table.columns))
        if any(not _is_empty(row[index]) for row in table.rows if index < len(row))
    ]
    return ResultTable(
        columns=[table.columns[i] for i in keep],
        rows=[[row[i] if i < len(row) else None for i in keep] for row in table.rows],
        column_types=[table.column_types[i] for i in keep] if table.column_types else [],
        name=table.name,
    )


def dedupe_column_names(table: ResultTable) -> ResultTable:
    """Rename later duplicate column names as name_1, name_2, ...

    Suffixes skip names already present in the table.
    """
    used: set[str] = set(table.columns)
    seen: set[str] = set()
    renamed: list[str] = []
    for column in table.columns:
        if column not in seen:
            seen.add(column)
            renamed.append(column)
            continue
        suffix = 1
        while f"{column}_{suffix}" in used:
            suffix += 1
        new_name = f"{column}_{suffix}"
        used.add(new_name)
        renamed.append(new_name)
    return ResultTable(
        columns=renamed, rows=table.rows, column_types=table.column_types, name=table.name
    )


def shape_table(table: ResultTable, remove_empty: bool = True, dedupe: bool = True) -> ResultTable:
    """Apply the configured post-processing steps."""
    if dedupe:
        table = dedupe_column_names(table)
    if remove_empty:
        table = remove_empty_columns(table)
    return table


__all__ = [
    "ResultTable",
    "ResultTableError",
    "dedupe_column_names",
    "remove_empty_columns",
    "shape_table",
]
