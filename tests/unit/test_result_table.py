"""Unit tests for result_table module."""

import io
import json

import pytest

from opskit.result_table import (
    ResultTable,
    ResultTableError,
    dedupe_column_names,
    remove_empty_columns,
    shape_table,
)


class TestRemoveEmptyColumns:
    """Tests for dropping all-empty columns."""

    def test_drops_columns_empty_in_every_row(self):
        table = ResultTable(
            columns=["a", "b", "c"],
            rows=[[1, None, ""], [2, "", "x"]],
            column_types=["int", "string", "string"],
        )

        result = remove_empty_columns(table)

        assert result.columns == ["a", "c"]
        assert result.rows == [[1, ""], [2, "x"]]
        assert result.column_types == ["int", "string"]

    def test_zero_rows_removes_every_column(self):
        result = remove_empty_columns(ResultTable(columns=["a", "b"]))
        assert result.columns == []
        assert result.rows == []

    def test_zero_and_false_are_values(self):
        table = ResultTable(columns=["n", "flag"], rows=[[0, False]])
        assert remove_empty_columns(table).columns == ["n", "flag"]

    def test_whitespace_is_empty(self):
        table = ResultTable(columns=["a", "b"], rows=[["x", "  "]])
        assert remove_empty_columns(table).columns == ["a"]

    def test_short_rows_padded(self):
        table = ResultTable(columns=["a", "b", "c"], rows=[["x", "y", "z"], ["x"]])

        result = remove_empty_columns(table)

        assert result.columns == ["a", "b", "c"]
        assert result.rows == [["x", "y", "z"], ["x", None, None]]


class TestDedupeColumnNames:
    """Tests for renaming duplicate columns."""

    def test_suffixes_later_duplicates(self):
        table = ResultTable(columns=["id", "id", "name", "id"], rows=[[1, 2, "n", 3]])
        assert dedupe_column_names(table).columns == ["id", "id_1", "name", "id_2"]

    def test_skips_existing_suffixed_names(self):
        table = ResultTable(columns=["id", "id_1", "id"])
        assert dedupe_column_names(table).columns == ["id", "id_1", "id_2"]

    def test_unique_columns_unchanged(self):
        table = ResultTable(columns=["a", "b"], rows=[[1, 2]])
        result = dedupe_column_names(table)
        assert result.columns == ["a", "b"]
        assert result.rows == [[1, 2]]


class TestShapeTable:
    """Tests for the combined shaping step."""

    def test_both_steps(self):
        table = ResultTable(columns=["x", "x", "e"], rows=[[1, 2, None]])
        result = shape_table(table)
        assert result.columns == ["x", "x_1"]

    def test_disabled(self):
        table = ResultTable(columns=["x", "x", "e"], rows=[[1, 2, None]])
        assert shape_table(table, remove_empty=False, dedupe=False).columns == ["x", "x", "e"]


class TestParsing:
    """Tests for building tables from REST payloads."""

    def test_from_v2_missing_primary(self):
        with pytest.raises(ResultTableError, match="No PrimaryResult"):
            ResultTable.from_v2([{"FrameType": "DataSetHeader"}])

    def test_from_v1_bad_shape(self):
        with pytest.raises(ResultTableError):
            ResultTable.from_v1({"Tables": []})


class TestOutput:
    """Tests for CSV and JSON rendering."""

    def test_csv(self):
        stream = io.StringIO()
        ResultTable(columns=["a", "b"], rows=[[1, None]]).write_csv(stream)
        assert stream.getvalue().splitlines() == ["a,b", "1,"]

    def test_json_records(self):
        stream = io.StringIO()
        ResultTable(columns=["a", "b"], rows=[[1, "x"]]).write_json(stream)
        assert json.loads(stream.getvalue()) == [{"a": 1, "b": "x"}]
