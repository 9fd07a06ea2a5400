"""Sheet selection against the workbook catalog."""

from fnmatch import fnmatchcase

from xlsx_pipe.models import SheetSelection
from xlsx_pipe.services.catalog import SheetCatalog
from xlsx_pipe.utils.exceptions import ErrorCode, SelectionError
from xlsx_pipe.utils.logging import get_logger
from xlsx_pipe.workbook import SheetDescriptor

logger = get_logger(__name__)


class SheetSelector:
    """Resolves a SheetSelection to an ordered list of sheet descriptors.

    Explicit names and numbers are honoured in the order given, hidden
    sheets included, and each must exist. Include and exclude glob
    patterns filter the full catalog. Absent any criteria, only visible
    sheets are selected unless `all_sheets` is set. Results keep
    declaration order.
    """

    def __init__(self, catalog: SheetCatalog) -> None:
        self._catalog = catalog

    def select(self, selection: SheetSelection) -> list[SheetDescriptor]:
        """Return the sheets to stream; an empty list is a valid result.

        Raises:
            SelectionError: If an explicitly named or numbered sheet does
                not exist.
        """
        if selection.is_explicit:
            selected = self._explicit(selection)
        else:
            patterned = bool(
                selection.include_patterns or selection.exclude_patterns
            )
            selected = [
                sheet
                for sheet in self._catalog
                if (patterned or selection.all_sheets or not sheet.hidden)
                and self._matches(sheet.name, selection)
            ]
            if selection.exclude_hidden_sheets:
                selected = [sheet for sheet in selected if not sheet.hidden]

        logger.debug(
            "Sheets selected",
            requested=len(self._catalog),
            selected=len(selected),
            names=[sheet.name for sheet in selected],
        )
        return selected

    def _explicit(self, selection: SheetSelection) -> list[SheetDescriptor]:
        available = list(self._catalog.names)
        selected: list[SheetDescriptor] = []
        seen: set[int] = set()

        for name in selection.names:
            sheet = self._catalog.by_name(name)
            if sheet is None:
                raise SelectionError(
                    f"Sheet {name!r} not found", available=available
                )
            if sheet.position not in seen:
                seen.add(sheet.position)
                selected.append(sheet)

        for number in selection.numbers:
            sheet = self._catalog.by_position(number)
            if sheet is None:
                raise SelectionError(
                    f"Sheet number {number} out of range "
                    f"(workbook has {len(self._catalog)} sheets)",
                    ErrorCode.SHEET_NUMBER_OUT_OF_RANGE,
                    available=available,
                )
            if sheet.position not in seen:
                seen.add(sheet.position)
                selected.append(sheet)

        return selected

    @staticmethod
    def _matches(name: str, selection: SheetSelection) -> bool:
        if selection.include_patterns and not any(
            fnmatchcase(name, pattern) for pattern in selection.include_patterns
        ):
            return False
        return not any(
            fnmatchcase(name, pattern) for pattern in selection.exclude_patterns
        )
