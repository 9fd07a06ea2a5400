"""Test fixtures and helpers for building xlsx containers by hand.

openpyxl writes realistic workbooks but cannot produce every edge case
the reader must handle (prefixed namespaces, out-of-order cells, unknown
cell types, truncated parts). These helpers assemble containers part by
part with `zipfile`.

Example usage:
    from tests.fixtures import make_xlsx, sheet_xml

    data = make_xlsx([("Data", sheet_xml('<row r="1"><c r="A1"><v>1</v></c></row>'))])
"""

import io
import zipfile
from collections.abc import Sequence
from xml.sax.saxutils import escape, quoteattr

from xlsx_pipe.workbook import column_letters

MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"

OFFICE_DOCUMENT_TYPE = f"{REL_NS}/officeDocument"
WORKSHEET_TYPE = f"{REL_NS}/worksheet"
SHARED_STRINGS_TYPE = f"{REL_NS}/sharedStrings"
STYLES_TYPE = f"{REL_NS}/styles"
HYPERLINK_TYPE = f"{REL_NS}/hyperlink"

CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" '
    'ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    "</Types>"
)


def sheet_xml(rows: str, after: str = "", prefix: str = "") -> str:
    """Wrap row markup into a worksheet part.

    Args:
        rows: Markup placed inside sheetData.
        after: Markup placed after sheetData (mergeCells, hyperlinks).
        prefix: Namespace prefix for spreadsheet elements, e.g. "x".
    """
    if prefix:
        p = f"{prefix}:"
        ns = f'xmlns:{prefix}="{MAIN_NS}"'
        rows = _prefix_tags(rows, prefix)
        after = _prefix_tags(after, prefix)
    else:
        p = ""
        ns = f'xmlns="{MAIN_NS}"'
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<{p}worksheet {ns} xmlns:r="{REL_NS}">'
        f"<{p}sheetData>{rows}</{p}sheetData>{after}"
        f"</{p}worksheet>"
    )


def _prefix_tags(markup: str, prefix: str) -> str:
    out = []
    i = 0
    while i < len(markup):
        char = markup[i]
        if char == "<" and i + 1 < len(markup) and markup[i + 1] == "/":
            out.append(f"</{prefix}:")
            i += 2
        elif char == "<":
            out.append(f"<{prefix}:")
            i += 1
        else:
            out.append(char)
            i += 1
    return "".join(out)


def shared_strings_xml(strings: Sequence[str]) -> str:
    items = "".join(
        f'<si><t xml:space="preserve">{escape(s)}</t></si>' for s in strings
    )
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<sst xmlns="{MAIN_NS}" count="{len(strings)}" '
        f'uniqueCount="{len(strings)}">{items}</sst>'
    )


def styles_xml(
    num_fmt_ids: Sequence[int], custom: dict[int, str] | None = None
) -> str:
    """Styles part whose cellXfs reference the given number formats in order."""
    custom = custom or {}
    num_fmts = ""
    if custom:
        entries = "".join(
            f'<numFmt numFmtId="{fid}" formatCode={quoteattr(code)}/>'
            for fid, code in custom.items()
        )
        num_fmts = f'<numFmts count="{len(custom)}">{entries}</numFmts>'
    xfs = "".join(
        f'<xf numFmtId="{fid}" fontId="0" fillId="0" borderId="0" xfId="0"/>'
        for fid in num_fmt_ids
    )
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<styleSheet xmlns="{MAIN_NS}">{num_fmts}'
        '<cellStyleXfs count="1"><xf numFmtId="0" fontId="0"/></cellStyleXfs>'
        f'<cellXfs count="{len(num_fmt_ids)}">{xfs}</cellXfs>'
        "</styleSheet>"
    )


def relationships_xml(entries: Sequence[tuple[str, str, str, bool]]) -> str:
    """Relationship part from (id, type, target, external) tuples."""
    rels = "".join(
        f'<Relationship Id="{rid}" Type="{rtype}" Target="{escape(target)}"'
        + (' TargetMode="External"' if external else "")
        + "/>"
        for rid, rtype, target, external in entries
    )
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<Relationships xmlns="{PKG_REL_NS}">{rels}</Relationships>'
    )


def make_xlsx(
    sheets: Sequence[tuple[str, str]],
    *,
    shared_strings: Sequence[str] | None = None,
    styles: str | None = None,
    date1904: bool = False,
    hidden: Sequence[str] = (),
    sheet_rels: dict[int, str] | None = None,
    omit: Sequence[str] = (),
) -> bytes:
    """Assemble an xlsx container in memory.

    Args:
        sheets: (name, worksheet xml) pairs in declaration order.
        shared_strings: Shared-string table contents, if any.
        styles: Styles part markup, if any.
        date1904: Declare the 1904 date system.
        hidden: Names of sheets marked hidden.
        sheet_rels: Relationship part markup per 1-based sheet position.
        omit: Part paths to leave out of the container.

    Returns:
        The container bytes.
    """
    parts: dict[str, str] = {
        "[Content_Types].xml": CONTENT_TYPES,
        "_rels/.rels": relationships_xml(
            [("rId1", OFFICE_DOCUMENT_TYPE, "xl/workbook.xml", False)]
        ),
    }

    workbook_rels: list[tuple[str, str, str, bool]] = []
    sheet_elems = []
    for position, (name, xml) in enumerate(sheets, start=1):
        rid = f"rId{position}"
        target = f"worksheets/sheet{position}.xml"
        workbook_rels.append((rid, WORKSHEET_TYPE, target, False))
        state = ' state="hidden"' if name in hidden else ""
        sheet_elems.append(
            f'<sheet name="{escape(name)}" sheetId="{position}"{state} r:id="{rid}"/>'
        )
        parts[f"xl/worksheets/sheet{position}.xml"] = xml
        if sheet_rels and position in sheet_rels:
            rels_part = f"xl/worksheets/_rels/sheet{position}.xml.rels"
            parts[rels_part] = sheet_rels[position]

    extra = len(sheets)
    if shared_strings is not None:
        extra += 1
        workbook_rels.append(
            (f"rId{extra}", SHARED_STRINGS_TYPE, "sharedStrings.xml", False)
        )
        parts["xl/sharedStrings.xml"] = shared_strings_xml(shared_strings)
    if styles is not None:
        extra += 1
        workbook_rels.append((f"rId{extra}", STYLES_TYPE, "styles.xml", False))
        parts["xl/styles.xml"] = styles

    workbook_pr = '<workbookPr date1904="1"/>' if date1904 else "<workbookPr/>"
    parts["xl/workbook.xml"] = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<workbook xmlns="{MAIN_NS}" xmlns:r="{REL_NS}">{workbook_pr}'
        f"<sheets>{''.join(sheet_elems)}</sheets></workbook>"
    )
    parts["xl/_rels/workbook.xml.rels"] = relationships_xml(workbook_rels)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for path, content in parts.items():
            if path not in omit:
                zf.writestr(path, content)
    return buffer.getvalue()


def number_row(row: int, values: Sequence[object]) -> str:
    """Row markup of numeric cells starting at column A."""
    cells = "".join(
        f'<c r="{column_letters(i)}{row}"><v>{value}</v></c>'
        for i, value in enumerate(values)
    )
    return f'<row r="{row}">{cells}</row>'
