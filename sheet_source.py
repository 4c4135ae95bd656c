"""
Row sources for the plant spreadsheet.

The plant's system of record is a shared spreadsheet; this module reads an
.xlsx export of it (PLANT_WORKBOOK) one sheet at a time and hands rows over
as plain dicts keyed by the header cells.  A missing workbook or sheet
yields no rows, never an exception, so the dashboard degrades to empty
aggregates instead of an error page.
"""

import logging
import os

import pandas as pd

from shared import get_setting

logger = logging.getLogger(__name__)


class InMemoryRowSource:
    """Rows held in memory, keyed by sheet title.  Used by tests and demos."""

    def __init__(self, sheets=None):
        self.sheets = {title: list(rows) for title, rows in (sheets or {}).items()}

    def rows(self, title):
        return [dict(r) for r in self.sheets.get(title, [])]


class WorkbookRowSource:
    """Reads sheets from an .xlsx export through pandas + openpyxl."""

    def __init__(self, path):
        self.path = path

    def sheet_names(self):
        with pd.ExcelFile(self.path, engine="openpyxl") as xls:
            return list(xls.sheet_names)

    def rows(self, title):
        if not os.path.exists(self.path):
            logger.warning("Workbook not found: %s", self.path)
            return []
        with pd.ExcelFile(self.path, engine="openpyxl") as xls:
            if title not in xls.sheet_names:
                logger.warning("Sheet %r not found in %s", title, self.path)
                return []
            df = pd.read_excel(xls, sheet_name=title, dtype=object)
        df.columns = [str(c).strip() for c in df.columns]
        df = df.dropna(how="all")
        return df.to_dict("records")


def configured_source():
    """Row source from PLANT_WORKBOOK, or an empty source when unset."""
    path = get_setting("PLANT_WORKBOOK")
    if not path:
        logger.warning("PLANT_WORKBOOK is not configured; serving empty data")
        return InMemoryRowSource()
    return WorkbookRowSource(path)
