"""CSV output for assembled rows."""

from xlsx_pipe.output.csv_writer import CsvWriter, is_plain_number

__all__ = ["CsvWriter", "is_plain_number"]
