"""
Tests for the workbook and in-memory row sources.

Run: python -m pytest test_sheet_source.py -v
"""

import pandas as pd

import sheet_source
from sheet_source import InMemoryRowSource, WorkbookRowSource, configured_source


def _write_workbook(path):
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame([
            {"FECHA": "05/03/2024", "PRODUCTO": "CEMENTO MAESTRO", "CANTIDAD": 2000, "TN": 100.0},
            {"FECHA": None, "PRODUCTO": None, "CANTIDAD": None, "TN": None},
            {"FECHA": "06/03/2024", "PRODUCTO": "FILM STRETCH", "CANTIDAD": 15, "TN": 3.0},
        ]).to_excel(writer, sheet_name="DETALLE CONTEO", index=False)


class TestWorkbookRowSource:
    def test_reads_rows_by_header(self, tmp_path):
        path = tmp_path / "planta.xlsx"
        _write_workbook(path)
        rows = WorkbookRowSource(str(path)).rows("DETALLE CONTEO")
        assert len(rows) == 2
        assert rows[0]["PRODUCTO"] == "CEMENTO MAESTRO"
        assert rows[1]["FECHA"] == "06/03/2024"

    def test_missing_sheet(self, tmp_path):
        path = tmp_path / "planta.xlsx"
        _write_workbook(path)
        assert WorkbookRowSource(str(path)).rows("PARO DE MAQUINA") == []

    def test_missing_file(self, tmp_path):
        assert WorkbookRowSource(str(tmp_path / "nope.xlsx")).rows("DETALLE CONTEO") == []

    def test_opens_workbook_once_per_read(self, tmp_path, monkeypatch):
        path = tmp_path / "planta.xlsx"
        _write_workbook(path)
        opened = []

        class CountingExcelFile(pd.ExcelFile):
            def __init__(self, *args, **kwargs):
                opened.append(args[0])
                super().__init__(*args, **kwargs)

        monkeypatch.setattr(pd, "ExcelFile", CountingExcelFile)
        rows = WorkbookRowSource(str(path)).rows("DETALLE CONTEO")
        assert len(rows) == 2
        assert opened == [str(path)]


class TestInMemoryRowSource:
    def test_rows_are_copies(self):
        source = InMemoryRowSource({"S": [{"a": 1}]})
        rows = source.rows("S")
        rows[0]["a"] = 2
        assert source.rows("S") == [{"a": 1}]
        assert source.rows("other") == []


class TestConfiguredSource:
    def test_unset_is_empty(self, monkeypatch):
        monkeypatch.setattr(sheet_source, "get_setting", lambda name, default=None: default)
        source = configured_source()
        assert source.rows("DETALLE CONTEO") == []

    def test_workbook_path(self, monkeypatch, tmp_path):
        path = str(tmp_path / "planta.xlsx")
        monkeypatch.setattr(sheet_source, "get_setting", lambda name, default=None: path)
        source = configured_source()
        assert isinstance(source, WorkbookRowSource)
        assert source.path == path
