"""Streaming stages of the xlsx to CSV conversion."""

from xlsx_pipe.services.archive import ArchiveReader
from xlsx_pipe.services.catalog import SheetCatalog
from xlsx_pipe.services.cell_parser import CellEventParser, scan_sheet_metadata
from xlsx_pipe.services.row_assembler import RowAssembler
from xlsx_pipe.services.selector import SheetSelector
from xlsx_pipe.services.shared_strings import SharedStringTable
from xlsx_pipe.services.styles import StyleTable
from xlsx_pipe.services.value_formatter import ValueFormatter

__all__ = [
    "ArchiveReader",
    "CellEventParser",
    "RowAssembler",
    "SharedStringTable",
    "SheetCatalog",
    "SheetSelector",
    "StyleTable",
    "ValueFormatter",
    "scan_sheet_metadata",
]
