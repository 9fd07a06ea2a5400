"""Pull-parsing helpers shared by every part reader.

Parts are fed to `xml.etree.ElementTree.XMLPullParser` chunk by chunk, so
parsing suspends only on reads from the container. Element and attribute
names are compared by local name, which keeps the readers independent of
whatever namespace prefix the producer chose (`x:`, none, or another
alias) and of transitional vs strict OOXML namespace URIs.
"""

from collections.abc import Callable, Iterator
from typing import IO
from xml.etree.ElementTree import Element, ParseError, XMLPullParser

from xlsx_pipe.services.archive import read_chunks
from xlsx_pipe.utils.exceptions import XlsxPipeError

DEFAULT_CHUNK_SIZE = 64 * 1024

XmlEvent = tuple[str, Element]


def local_name(tag: str) -> str:
    """Strip the "{namespace}" part of a tag or attribute name."""
    if tag[:1] == "{":
        return tag.rpartition("}")[2]
    return tag


def get_attr(elem: Element, name: str) -> str | None:
    """Look up an attribute by local name, ignoring its namespace."""
    value = elem.get(name)
    if value is not None:
        return value
    for key, candidate in elem.attrib.items():
        if local_name(key) == name:
            return candidate
    return None


def get_namespaced_attr(elem: Element, name: str) -> str | None:
    """Look up a namespace-qualified attribute such as r:id by local name."""
    for key, candidate in elem.attrib.items():
        if key[:1] == "{" and local_name(key) == name:
            return candidate
    return None


def is_true(value: str | None) -> bool:
    """Interpret an xsd:boolean attribute."""
    return value in ("1", "true")


def rich_text(elem: Element) -> str:
    """Concatenate the plain text of a string item.

    Handles a bare <t>, rich-text runs (<r><t>) and skips phonetic
    guides (<rPh>), which are reading aids rather than content.
    """
    parts: list[str] = []
    for child in elem:
        name = local_name(child.tag)
        if name == "t":
            parts.append(child.text or "")
        elif name == "r":
            for run_child in child:
                if local_name(run_child.tag) == "t":
                    parts.append(run_child.text or "")
    return "".join(parts)


def iter_events(
    stream: IO[bytes],
    *,
    part: str,
    error_factory: Callable[[str], XlsxPipeError],
    events: tuple[str, ...] = ("start", "end"),
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[XmlEvent]:
    """Yield (event, element) pairs from a part without building a full tree.

    Elements are still attached to their parents; callers must clear
    processed subtrees to keep memory bounded.

    Args:
        stream: Decompressed part stream.
        part: Part path for diagnostics.
        error_factory: Builds the exception raised on invalid XML.
        events: Parser events to report.
        chunk_size: Bytes read per feed.

    Raises:
        XlsxPipeError: Whatever `error_factory` builds, on malformed or
            truncated XML.
    """
    parser = XMLPullParser(events=events)
    try:
        for chunk in read_chunks(stream, chunk_size, part):
            parser.feed(chunk)
            yield from parser.read_events()
        parser.close()
        yield from parser.read_events()
    except ParseError as e:
        raise error_factory(f"Invalid XML in {part}: {e}") from e
