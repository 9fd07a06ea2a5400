"""xlsx-pipe - Streaming xlsx to CSV conversion."""

from xlsx_pipe.models import ConversionOptions, QuotingPolicy, SheetSelection
from xlsx_pipe.pipeline import ConversionResult, Pipeline, convert

__all__ = [
    "ConversionOptions",
    "ConversionResult",
    "Pipeline",
    "QuotingPolicy",
    "SheetSelection",
    "convert",
]
__version__ = "0.1.0"


def main() -> None:
    """Run the command-line interface."""
    from xlsx_pipe.cli import app

    app(prog_name="xlsx-pipe")
