"""Tests for src.ingest -- workbook and JSON dataset readers."""

import json

import openpyxl
import pytest

from src.config.models import DatasetLoadError
from src.ingest import SheetTable, read_dataset, read_workbook
from src.ingest.workbook_reader import (
    find_sheet,
    parse_accounting_facts,
    parse_dimension_table,
)


class TestSheetTable:

    def test_records_skip_blank_rows_and_unnamed_columns(self):
        table = SheetTable(name="t", rows=[
            ["A", None, "B"],
            [1, "x", ""],
            [None, None, None],
            [2, None, "  "],
        ])
        assert table.header == ["A", "", "B"]
        assert table.records() == [{"A": 1, "B": None}, {"A": 2, "B": None}]

    def test_empty(self):
        table = SheetTable(name="t")
        assert table.header == []
        assert not table.has_content
        assert table.records() == []


class TestFindSheet:

    def _sheets(self, *names):
        return {n: SheetTable(name=n, rows=[["x"]]) for n in names}

    def test_exact_name_first(self):
        sheets = self._sheets("driver notes", "Driver Tree")
        assert find_sheet(sheets, "tree").name == "Driver Tree"

    def test_substring_fallback(self):
        sheets = self._sheets("My Naming Table")
        assert find_sheet(sheets, "naming").name == "My Naming Table"

    def test_dimension_sheets_excluded_from_substring(self):
        sheets = self._sheets("Dim_Driver")
        assert find_sheet(sheets, "tree") is None


class TestAccountingFacts:

    def test_long_layout(self):
        table = SheetTable(name="Accounting Fact", rows=[
            ["Driver", "Period", "Accounted Amount"],
            ["Fees", "Q1 2024", "1,000"],
            ["Fees", 45292, 5],
            ["Fees", None, 7],
            ["Comp", "Q1 2024", "n/a"],
        ])
        facts = parse_accounting_facts(table)
        assert [(p.period, p.value) for p in facts["Fees"]] == [("Q1 2024", 1000.0), ("2024-01-01", 5.0)]
        assert "Comp" not in facts

    def test_wide_layout(self):
        table = SheetTable(name="Accounting Fact", rows=[
            ["Driver", "Q1 2024 Amount", "Q2 2024 Amount"],
            ["Fees", 10, 12],
            ["Comp", None, 3],
        ])
        facts = parse_accounting_facts(table)
        assert [(p.period, p.value) for p in facts["Fees"]] == [("Q1 2024 Amount", 10.0), ("Q2 2024 Amount", 12.0)]
        assert len(facts["Comp"]) == 1


class TestDimensionTable:

    def test_keyed_by_id_column(self):
        table = SheetTable(name="Dim_Product", rows=[
            ["Name", "ProductID"],
            ["Custody", "P001"],
            ["Wealth", None],
        ])
        assert parse_dimension_table(table) == {"P001": {"Name": "Custody", "ProductID": "P001"}}


class TestReadWorkbook:

    def test_all_sections(self, sample_workbook_path):
        dataset = read_workbook(sample_workbook_path)
        assert len(dataset.tree) == 6
        assert [r.name for r in dataset.tree.roots] == ["Margin"]
        assert len(dataset.fact_records) == 2
        assert dataset.fact_records[0]["Quarter"] == "Q1 2024"
        assert len(dataset.naming_records) == 10
        assert set(dataset.accounting_facts) == {"Rev_TransactionalFees_$mm"}
        assert dataset.dimension_tables["Dim_Product"]["P001"]["ProductName"] == "Custody"
        assert dataset.metadata == {"fileName": "scenario.xlsx"}

    def test_missing_sheets_are_empty(self, tmp_path):
        wb = openpyxl.Workbook()
        wb.active.title = "Notes"
        path = tmp_path / "empty.xlsx"
        wb.save(str(path))
        dataset = read_workbook(str(path))
        assert len(dataset.tree) == 0
        assert dataset.fact_records == []
        assert dataset.naming_records == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_workbook(str(tmp_path / "nope.xlsx"))


class TestReadDataset:

    def test_dispatches_workbook(self, sample_workbook_path):
        assert len(read_dataset(sample_workbook_path).fact_records) == 2

    def test_json_with_envelope(self, tmp_path, dataset_payload):
        path = tmp_path / "stored.json"
        path.write_text(json.dumps({"uploadId": "u1", "metadata": {"fileName": "a.xlsx"}, "data": dataset_payload}))
        dataset = read_dataset(str(path))
        assert len(dataset.fact_records) == 2
        assert dataset.metadata == {"fileName": "a.xlsx"}

    def test_bare_json_payload(self, tmp_path, dataset_payload):
        path = tmp_path / "bare.json"
        path.write_text(json.dumps(dataset_payload))
        assert len(read_dataset(str(path)).naming_records) == 10

    def test_malformed_json_payload(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"factMarginRecords": "oops"}))
        with pytest.raises(DatasetLoadError):
            read_dataset(str(path))

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("a,b")
        with pytest.raises(ValueError, match="Unsupported file type"):
            read_dataset(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_dataset(str(tmp_path / "missing.xlsx"))
