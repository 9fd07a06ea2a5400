from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

import pytest
from openpyxl import Workbook

from xlsx_pipe.utils.logging import clear_context


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Drop handlers installed by configure_logging during a test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)
    clear_context()


@pytest.fixture
def three_sheet_workbook(tmp_path: Path) -> Path:
    """Workbook with sheets Data, Summary and Notes written by openpyxl."""
    wb = Workbook()
    data = wb.active
    data.title = "Data"
    data.append(["Name", "Amount", "Count"])
    data.append(["Alice", 123.45, 3])
    data.append(["Bob", 10, 7])

    summary = wb.create_sheet("Summary")
    summary["A1"] = "Total"
    summary["B1"] = 133.45

    notes = wb.create_sheet("Notes")
    notes["A1"] = "line one\nline two"

    path = tmp_path / "three.xlsx"
    wb.save(path)
    return path


@pytest.fixture
def typed_workbook(tmp_path: Path) -> Path:
    """Workbook exercising dates, booleans, merges and hidden content."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Typed"
    ws["A1"] = datetime(2023, 3, 15)
    ws["A1"].number_format = "yyyy-mm-dd"
    ws["B1"] = True
    ws["C1"] = 0.125
    ws["C1"].number_format = "0.00%"
    ws["A3"] = "Merged"
    ws.merge_cells("A3:C4")
    ws["A6"] = "hidden row"
    ws.row_dimensions[6].hidden = True
    ws["A7"] = "after"

    secret = wb.create_sheet("Secret")
    secret["A1"] = "classified"
    secret.sheet_state = "hidden"

    path = tmp_path / "typed.xlsx"
    wb.save(path)
    return path
