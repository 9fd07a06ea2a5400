"""Workbook manifest and relationship parsing.

Binds every declared sheet to the part that holds its cells, and records
workbook-wide facts the conversion needs: the date epoch and the location
of the shared-strings and styles parts.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterator
from dataclasses import dataclass, field
from xml.etree.ElementTree import Element

from xlsx_pipe.services.archive import ArchiveReader
from xlsx_pipe.services.xml_stream import (
    get_attr,
    get_namespaced_attr,
    is_true,
    iter_events,
    local_name,
)
from xlsx_pipe.utils.exceptions import MalformedWorkbookError
from xlsx_pipe.utils.logging import get_logger
from xlsx_pipe.workbook import SheetDescriptor

logger = get_logger(__name__)

ROOT_RELATIONSHIPS = "_rels/.rels"
DEFAULT_WORKBOOK_PART = "xl/workbook.xml"

# Relationship types are compared by their last path segment so that both
# transitional and strict OOXML type URIs are recognised.
OFFICE_DOCUMENT = "officeDocument"
SHARED_STRINGS = "sharedStrings"
STYLES = "styles"


@dataclass(frozen=True)
class Relationship:
    """One entry of a relationship part."""

    rel_id: str
    rel_type: str
    target: str
    external: bool = False

    @property
    def kind(self) -> str:
        """Last segment of the relationship type URI."""
        return self.rel_type.rstrip("/").rpartition("/")[2]


def relationships_part_for(part: str) -> str:
    """Path of the relationship part describing `part`.

    Example:
        relationships_part_for("xl/worksheets/sheet1.xml")
        # "xl/worksheets/_rels/sheet1.xml.rels"
    """
    directory, _, name = part.rpartition("/")
    prefix = f"{directory}/" if directory else ""
    return f"{prefix}_rels/{name}.rels"


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship target relative to the part that declares it."""
    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    base = posixpath.dirname(source_part)
    return posixpath.normpath(posixpath.join(base, target))


def load_relationships(archive: ArchiveReader, part: str) -> dict[str, Relationship]:
    """Load a relationship part, returning an empty mapping if it is absent."""
    if not archive.has_entry(part):
        return {}

    relationships: dict[str, Relationship] = {}
    with archive.open_entry(part) as stream:
        for _event, elem in iter_events(
            stream,
            part=part,
            error_factory=lambda msg: MalformedWorkbookError(msg, part),
            events=("end",),
        ):
            if local_name(elem.tag) != "Relationship":
                continue
            rel_id = get_attr(elem, "Id")
            target = get_attr(elem, "Target")
            if rel_id is None or target is None:
                continue
            relationships[rel_id] = Relationship(
                rel_id=rel_id,
                rel_type=get_attr(elem, "Type") or "",
                target=target,
                external=(get_attr(elem, "TargetMode") or "") == "External",
            )
    return relationships


@dataclass(frozen=True)
class SheetCatalog:
    """Ordered, immutable list of the workbook's sheets plus workbook facts."""

    sheets: tuple[SheetDescriptor, ...]
    workbook_part: str = DEFAULT_WORKBOOK_PART
    date1904: bool = False
    shared_strings_part: str | None = None
    styles_part: str | None = None
    names: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "names", tuple(s.name for s in self.sheets))

    def __iter__(self) -> Iterator[SheetDescriptor]:
        return iter(self.sheets)

    def __len__(self) -> int:
        return len(self.sheets)

    def by_name(self, name: str) -> SheetDescriptor | None:
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None

    def by_position(self, position: int) -> SheetDescriptor | None:
        """Look up a sheet by its 1-based declaration position."""
        if 1 <= position <= len(self.sheets):
            return self.sheets[position - 1]
        return None

    @classmethod
    def load(cls, archive: ArchiveReader) -> SheetCatalog:
        """Read the manifest and relationships of an opened container.

        Raises:
            EntryMissingError: If the workbook part is absent.
            MalformedWorkbookError: If the manifest is invalid.
        """
        workbook_part = DEFAULT_WORKBOOK_PART
        for rel in load_relationships(archive, ROOT_RELATIONSHIPS).values():
            if rel.kind == OFFICE_DOCUMENT and not rel.external:
                workbook_part = resolve_target("", rel.target)
                break

        relationships = load_relationships(
            archive, relationships_part_for(workbook_part)
        )
        sheets: list[SheetDescriptor] = []
        date1904 = False

        with archive.open_entry(workbook_part) as stream:
            for _event, elem in iter_events(
                stream,
                part=workbook_part,
                error_factory=lambda msg: MalformedWorkbookError(msg, workbook_part),
                events=("end",),
            ):
                name = local_name(elem.tag)
                if name == "workbookPr":
                    date1904 = is_true(get_attr(elem, "date1904"))
                elif name == "sheet":
                    sheets.append(
                        cls._describe_sheet(
                            elem, len(sheets) + 1, workbook_part, relationships
                        )
                    )

        shared_strings_part = cls._find_part(
            relationships, SHARED_STRINGS, workbook_part, archive, "sharedStrings.xml"
        )
        styles_part = cls._find_part(
            relationships, STYLES, workbook_part, archive, "styles.xml"
        )

        logger.debug(
            "Workbook catalog loaded",
            sheets=len(sheets),
            date1904=date1904,
            shared_strings=shared_strings_part,
        )
        return cls(
            sheets=tuple(sheets),
            workbook_part=workbook_part,
            date1904=date1904,
            shared_strings_part=shared_strings_part,
            styles_part=styles_part,
        )

    @staticmethod
    def _describe_sheet(
        elem: Element,
        position: int,
        workbook_part: str,
        relationships: dict[str, Relationship],
    ) -> SheetDescriptor:
        name = get_attr(elem, "name")
        if name is None:
            raise MalformedWorkbookError(
                f"Sheet #{position} has no name attribute", workbook_part
            )
        raw_id = get_attr(elem, "sheetId")
        try:
            sheet_id = int(raw_id) if raw_id is not None else position
        except ValueError as e:
            raise MalformedWorkbookError(
                f"Sheet {name!r} has a non-numeric sheetId {raw_id!r}", workbook_part
            ) from e

        rel_id = get_namespaced_attr(elem, "id")
        rel = relationships.get(rel_id) if rel_id else None
        if rel is not None:
            part = resolve_target(workbook_part, rel.target)
        else:
            # Without a relationship fall back to the conventional layout.
            part = resolve_target(workbook_part, f"worksheets/sheet{position}.xml")
            logger.warning(
                "Sheet has no relationship; guessing part path",
                sheet=name,
                part=part,
            )

        state = get_attr(elem, "state") or "visible"
        return SheetDescriptor(
            sheet_id=sheet_id,
            name=name,
            hidden=state != "visible",
            part=part,
            position=position,
            state=state,
        )

    @staticmethod
    def _find_part(
        relationships: dict[str, Relationship],
        kind: str,
        workbook_part: str,
        archive: ArchiveReader,
        default_name: str,
    ) -> str | None:
        for rel in relationships.values():
            if rel.kind == kind and not rel.external:
                part = resolve_target(workbook_part, rel.target)
                if archive.has_entry(part):
                    return part
        fallback = resolve_target(workbook_part, default_name)
        return fallback if archive.has_entry(fallback) else None
